"""Pydantic models and domain entities shared by the relay and the client."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from abap_analyzer.config import (
    DEFAULT_MODEL,
    DEFAULT_PROVIDER,
    get_api_base_url,
    get_api_key,
    get_api_provider,
    get_model_name,
)


class OutputFormat(str, Enum):
    JSON = "json"
    MARKDOWN = "markdown"


class Agent(BaseModel):
    """A named analysis lens the provider is asked to apply."""

    id: str
    label: str
    description: str


AVAILABLE_AGENTS: List[Agent] = [
    Agent(
        id="functionality",
        label="Functionality",
        description="Analyzes business purpose and functional aspects",
    ),
    Agent(
        id="technical",
        label="Technical",
        description="Examines technical implementation details",
    ),
    Agent(
        id="logic",
        label="Logic",
        description="Extracts core logic and algorithm patterns",
    ),
    Agent(
        id="context",
        label="Context",
        description="Maintains relationships between code segments",
    ),
    Agent(
        id="documentation",
        label="Documentation",
        description="Analyzes code documentation quality",
    ),
    Agent(
        id="security",
        label="Security",
        description="Identifies security issues and best practices",
    ),
]

AGENT_IDS = [agent.id for agent in AVAILABLE_AGENTS]
DEFAULT_AGENTS = ["functionality", "technical", "logic", "context"]


class ApiConfig(BaseModel):
    """Provider configuration exposed to the client by ``GET /api/config``."""

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    api_key: str = Field("", alias="apiKey")
    api_provider: str = Field(DEFAULT_PROVIDER, alias="apiProvider")
    model_name: str = Field(DEFAULT_MODEL, alias="modelName")
    api_base_url: str = Field("", alias="apiBaseUrl")

    @classmethod
    def from_env(cls) -> "ApiConfig":
        return cls(
            api_key=get_api_key(),
            api_provider=get_api_provider(),
            model_name=get_model_name(),
            api_base_url=get_api_base_url(),
        )


class AnalysisSettings(BaseModel):
    """User selected options plus provider credentials for one analysis."""

    model_config = ConfigDict(populate_by_name=True)

    agents: List[str] = Field(default_factory=lambda: list(DEFAULT_AGENTS))
    model: str = DEFAULT_MODEL
    output_format: OutputFormat = Field(OutputFormat.JSON, alias="outputFormat")
    api_key: str = Field("", alias="apiKey")
    provider: str = DEFAULT_PROVIDER
    api_base_url: str = Field("", alias="apiBaseUrl")

    @field_validator("agents")
    @classmethod
    def _check_agents(cls, value: List[str]) -> List[str]:
        unknown = [agent for agent in value if agent not in AGENT_IDS]
        if unknown:
            raise ValueError(f"Unknown analysis agents: {', '.join(unknown)}")
        # Keep the first occurrence of each agent, in order.
        return list(dict.fromkeys(value))

    def to_wire(self) -> Dict[str, Any]:
        """Return the camelCase JSON form sent in the ``settings`` form part."""
        return self.model_dump(mode="json", by_alias=True)


class UploadedFile(BaseModel):
    """A source file selected for analysis; lives only for one request."""

    name: str
    size: int
    content: bytes

    @classmethod
    def from_bytes(cls, name: str, content: bytes) -> "UploadedFile":
        return cls(name=name, size=len(content), content=content)
