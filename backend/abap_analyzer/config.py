# -*- coding: utf-8 -*-
"""Environment backed configuration for the analyzer service."""

from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "anthropic"
DEFAULT_MODEL = "claude-3-7-sonnet-20250219"
DEFAULT_OPENAI_MODEL = "gpt-4o"

# Used when the request names a provider but no model.
DEFAULT_MODELS = {"anthropic": DEFAULT_MODEL, "openai": DEFAULT_OPENAI_MODEL}

DEFAULT_CORS_ORIGINS = "http://localhost:3000"
DEFAULT_API_URL = "http://localhost:5000"

# Checked in order, the first non-empty value wins.
API_KEY_ENV_VARS = ("API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY")


def _first_env(names: Iterable[str]) -> Optional[str]:
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return None


def _int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError:
        logger.warning("Invalid integer for %s: %r, using %s", name, raw_value, default)
        return default


def get_api_key() -> str:
    return _first_env(API_KEY_ENV_VARS) or ""


def get_api_provider() -> str:
    return os.getenv("API_PROVIDER") or DEFAULT_PROVIDER


def get_model_name() -> str:
    return os.getenv("MODEL_NAME") or DEFAULT_MODEL


def get_api_base_url() -> str:
    return os.getenv("API_BASE_URL") or ""


def get_cors_origins() -> List[str]:
    raw_value = os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw_value.split(",") if origin.strip()]


def get_max_source_chars() -> int:
    """Per-file character limit applied before source is sent to a provider."""
    return _int_env("MAX_SOURCE_CHARS", 60000)


def get_max_output_tokens() -> int:
    return _int_env("MAX_OUTPUT_TOKENS", 8192)


def get_client_api_url() -> str:
    return (os.getenv("ANALYZER_API_URL") or DEFAULT_API_URL).rstrip("/")


__all__ = [
    "API_KEY_ENV_VARS",
    "DEFAULT_MODEL",
    "DEFAULT_MODELS",
    "DEFAULT_OPENAI_MODEL",
    "DEFAULT_PROVIDER",
    "get_api_base_url",
    "get_api_key",
    "get_api_provider",
    "get_client_api_url",
    "get_cors_origins",
    "get_max_output_tokens",
    "get_max_source_chars",
    "get_model_name",
]
