# -*- coding: utf-8 -*-
"""Provider configuration and agent catalogue endpoints."""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter

from abap_analyzer.models import AVAILABLE_AGENTS, Agent, ApiConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config", response_model=ApiConfig)
async def get_config() -> ApiConfig:
    """Expose the server side provider settings to the client."""
    config = ApiConfig.from_env()
    logger.debug(
        "Config requested (provider=%s, model=%s, api_key_set=%s)",
        config.api_provider,
        config.model_name,
        bool(config.api_key),
    )
    return config


@router.get("/agents", response_model=List[Agent])
async def list_agents() -> List[Agent]:
    return AVAILABLE_AGENTS
