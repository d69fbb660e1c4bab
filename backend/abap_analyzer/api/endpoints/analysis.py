# -*- coding: utf-8 -*-
"""Analysis relay endpoint: uploaded ABAP files in, provider result out."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from abap_analyzer.analyzers.llm_analyzer import LLMAnalyzer, normalise_provider
from abap_analyzer.intake import split_by_extension
from abap_analyzer.models import AnalysisSettings, ApiConfig, UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


def _parse_settings(raw_settings: Optional[str]) -> AnalysisSettings:
    if raw_settings is None or not raw_settings.strip():
        return AnalysisSettings()
    try:
        payload = json.loads(raw_settings)
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail=f"settings is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="settings must be a JSON object.")
    try:
        return AnalysisSettings.model_validate(payload)
    except ValidationError as exc:
        messages = "; ".join(error["msg"] for error in exc.errors())
        raise HTTPException(status_code=400, detail=f"Invalid settings: {messages}") from exc


def _merge_with_server_config(settings: AnalysisSettings, config: ApiConfig) -> AnalysisSettings:
    """Fill credentials the client omitted or left empty from the server environment."""
    provided = settings.model_fields_set

    def _pick(field: str, fallback: str) -> str:
        value = getattr(settings, field)
        return value if field in provided and value else fallback

    provider = _pick("provider", config.api_provider)
    # The server's model belongs to the server's provider; a request that
    # switches provider without naming a model gets that provider's default.
    model_fallback = config.model_name
    if _same_provider(provider, config.api_provider) is False:
        model_fallback = ""

    return settings.model_copy(
        update={
            "api_key": _pick("api_key", config.api_key),
            "provider": provider,
            "model": _pick("model", model_fallback),
            "api_base_url": _pick("api_base_url", config.api_base_url),
        }
    )


def _same_provider(left: str, right: str) -> Optional[bool]:
    """Compare provider names through their aliases; None if either is unknown."""
    try:
        return normalise_provider(left) == normalise_provider(right)
    except ValueError:
        return None


async def _read_uploads(files: List[UploadFile]) -> List[UploadedFile]:
    uploads: List[UploadedFile] = []
    for upload in files:
        content = await upload.read()
        uploads.append(UploadedFile.from_bytes(upload.filename or "", content))
    return uploads


@router.post("/analyze")
async def analyze(
    files: List[UploadFile] = File(...),
    settings: Optional[str] = Form(None),
) -> Dict[str, Any]:
    """
    Relay uploaded ABAP files to the configured AI provider.
    - files: one or more .abap sources
    - settings: JSON encoded AnalysisSettings
    """
    request_start_time = time.time()

    analysis_settings = _parse_settings(settings)
    uploads = await _read_uploads(files)

    logger.info(
        "=== ANALYZE REQUEST STARTED === files=%s agents=%s format=%s",
        [uploaded.name for uploaded in uploads],
        analysis_settings.agents,
        analysis_settings.output_format.value,
    )

    accepted, rejected = split_by_extension(uploads)
    if rejected:
        names = ", ".join(uploaded.name or "<unnamed>" for uploaded in rejected)
        raise HTTPException(status_code=400, detail=f"Only .abap files are accepted: {names}")
    if not accepted:
        raise HTTPException(status_code=400, detail="Please upload at least one ABAP file.")
    empty = [uploaded.name for uploaded in accepted if uploaded.size == 0]
    if empty:
        raise HTTPException(status_code=400, detail=f"Uploaded files are empty: {', '.join(empty)}")

    effective = _merge_with_server_config(analysis_settings, ApiConfig.from_env())
    if not effective.api_key:
        raise HTTPException(status_code=400, detail="API key is not configured.")
    try:
        provider = normalise_provider(effective.provider)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    analyzer = LLMAnalyzer(
        provider=provider,
        api_key=effective.api_key,
        model=effective.model,
        base_url=effective.api_base_url,
    )

    llm_start_time = time.time()
    try:
        result = await run_in_threadpool(
            analyzer.analyze,
            accepted,
            effective.agents,
            effective.output_format,
        )
    except (RuntimeError, ValueError) as exc:
        logger.exception(
            "Provider analysis failed (provider=%s, duration=%.2fs)",
            provider,
            time.time() - llm_start_time,
        )
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - unexpected failures
        logger.exception("Unexpected error during analysis")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    result["metadata"] = {
        "provider": provider,
        "model": analyzer.model,
        "agents": effective.agents,
        "output_format": effective.output_format.value,
        "files": [{"name": uploaded.name, "size": uploaded.size} for uploaded in accepted],
    }

    logger.info(
        "=== ANALYZE REQUEST COMPLETED === provider=%s duration=%.2fs tokens=%s",
        provider,
        time.time() - request_start_time,
        (result.get("token_usage") or {}).get("total_tokens", "N/A"),
    )
    return result
