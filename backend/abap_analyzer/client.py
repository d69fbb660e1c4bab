# -*- coding: utf-8 -*-
"""Client side controller for the analyzer API.

``AnalyzerController`` holds everything a front end needs between user
actions: the selected files, the analysis settings merged with the server
configuration, and a small state machine (idle, analyzing, success, error)
driven by one ``POST /api/analyze`` call at a time. It performs no rendering
itself; the Streamlit page in ``frontend/app.py`` is one consumer.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import requests

from abap_analyzer.config import DEFAULT_MODEL, DEFAULT_PROVIDER, get_client_api_url
from abap_analyzer.intake import is_abap_filename
from abap_analyzer.models import AGENT_IDS, AnalysisSettings, OutputFormat, UploadedFile
from abap_analyzer.utils.logging import get_logger

logger = get_logger(__name__)

NO_FILES_MESSAGE = "Please upload at least one ABAP file"
NO_API_KEY_MESSAGE = "Please provide an API key in settings"
WRONG_EXTENSION_MESSAGE = "Please select ABAP files (.abap extension)"
NOT_CONFIGURED = "Not Configured"


class AnalysisState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    ERROR = "error"


class AnalysisRequestError(RuntimeError):
    """Raised for a non-2xx answer from the analyze endpoint."""


class AnalyzerController:
    def __init__(
        self,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        config_timeout: Optional[float] = 10.0,
        analyze_timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or get_client_api_url()).rstrip("/")
        self.session = session or requests.Session()
        self.config_timeout = config_timeout
        self.analyze_timeout = analyze_timeout

        self.files: List[UploadedFile] = []
        self.settings = AnalysisSettings()
        self.state = AnalysisState.IDLE
        self.error: Optional[str] = None
        self.results: Optional[Dict[str, Any]] = None
        self.config_loaded = False
        self.config_error: Optional[str] = None

    @property
    def is_analyzing(self) -> bool:
        return self.state == AnalysisState.ANALYZING

    @property
    def can_analyze(self) -> bool:
        return not self.is_analyzing and not self.missing_requirements()

    def missing_requirements(self) -> List[str]:
        """Human readable list of what blocks an analysis right now."""
        missing = []
        if not self.files:
            missing.append("Upload at least one ABAP file")
        if not self.settings.api_key:
            missing.append("API Key not configured in server environment variables")
        return missing

    def masked_api_key(self) -> str:
        if not self.settings.api_key:
            return NOT_CONFIGURED
        return "********" + self.settings.api_key[-4:]

    # -- configuration -----------------------------------------------------

    def load_config(self) -> bool:
        """Fetch ``/api/config`` once and merge it into the settings.

        Failures are kept in ``config_error`` and never retried.
        """
        try:
            response = self.session.get(f"{self.base_url}/api/config", timeout=self.config_timeout)
            if not 200 <= response.status_code < 300:
                raise AnalysisRequestError("Failed to load configuration")
            config = response.json()
            if not isinstance(config, dict):
                raise ValueError("Configuration response is not a JSON object")
        except (requests.RequestException, ValueError, AnalysisRequestError) as exc:
            logger.error("Error loading configuration: %s", exc)
            self.config_error = str(exc)
            return False

        self.settings = self.settings.model_copy(
            update={
                "api_key": config.get("apiKey") or "",
                "provider": config.get("apiProvider") or DEFAULT_PROVIDER,
                "model": config.get("modelName") or DEFAULT_MODEL,
                "api_base_url": config.get("apiBaseUrl") or "",
            }
        )
        self.config_loaded = True
        self.config_error = None
        return True

    # -- file selection ----------------------------------------------------

    def add_files(self, files: Iterable[UploadedFile]) -> int:
        """Append the ABAP files among ``files``; return how many were kept."""
        abap_files = [uploaded for uploaded in files if is_abap_filename(uploaded.name)]
        if not abap_files:
            self.error = WRONG_EXTENSION_MESSAGE
            return 0
        self.files.extend(abap_files)
        self.error = None
        return len(abap_files)

    def remove_file(self, index: int) -> None:
        if 0 <= index < len(self.files):
            del self.files[index]

    def clear_files(self) -> None:
        self.files = []

    # -- settings ----------------------------------------------------------

    def toggle_agent(self, agent_id: str) -> None:
        if agent_id not in AGENT_IDS:
            raise ValueError(f"Unknown analysis agent: {agent_id}")
        agents = list(self.settings.agents)
        if agent_id in agents:
            agents.remove(agent_id)
        else:
            agents.append(agent_id)
        self.settings = self.settings.model_copy(update={"agents": agents})

    def set_output_format(self, output_format: str | OutputFormat) -> None:
        self.settings = self.settings.model_copy(
            update={"output_format": OutputFormat(output_format)}
        )

    # -- analysis ----------------------------------------------------------

    @staticmethod
    def _describe_failure(response: requests.Response) -> str:
        detail: Any = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail")
        if detail is None:
            detail = (response.text or "").strip() or response.reason
        if not isinstance(detail, str):
            detail = json.dumps(detail)
        return f"HTTP {response.status_code}: {detail}"

    def run_analysis(self) -> bool:
        """Send the selected files and settings to ``/api/analyze``.

        Returns True when results were stored. Missing files or a missing API
        key are reported in ``error`` without contacting the server.
        """
        if self.is_analyzing:
            logger.warning("Analysis already in progress, ignoring request")
            return False
        if not self.files:
            self.error = NO_FILES_MESSAGE
            return False
        if not self.settings.api_key:
            self.error = NO_API_KEY_MESSAGE
            return False

        self.state = AnalysisState.ANALYZING
        self.error = None
        multipart = [
            ("files", (uploaded.name, uploaded.content, "text/plain"))
            for uploaded in self.files
        ]
        logger.info(
            "Submitting %d file(s) for analysis (agents=%s)",
            len(self.files),
            self.settings.agents,
        )

        try:
            response = self.session.post(
                f"{self.base_url}/api/analyze",
                files=multipart,
                data={"settings": json.dumps(self.settings.to_wire())},
                timeout=self.analyze_timeout,
            )
            if not 200 <= response.status_code < 300:
                raise AnalysisRequestError(self._describe_failure(response))
            results = response.json()
        except (requests.RequestException, ValueError, AnalysisRequestError) as exc:
            logger.error("Analysis failed: %s", exc)
            self.results = None
            self.error = f"Analysis failed: {exc}"
            self.state = AnalysisState.ERROR
            return False

        self.results = results
        self.error = None
        self.state = AnalysisState.SUCCESS
        return True
