"""Pytest configuration and fixtures."""
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

# Add backend to path
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

ENV_VARS = (
    "API_KEY",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "API_PROVIDER",
    "MODEL_NAME",
    "API_BASE_URL",
    "MAX_SOURCE_CHARS",
    "MAX_OUTPUT_TOKENS",
)

SAMPLE_ABAP = b"""REPORT z_flight_list.

TABLES: sflight.

SELECT-OPTIONS: s_carrid FOR sflight-carrid.

DATA: lt_flights TYPE STANDARD TABLE OF sflight.

START-OF-SELECTION.
  SELECT * FROM sflight INTO TABLE lt_flights WHERE carrid IN s_carrid.
  LOOP AT lt_flights INTO DATA(ls_flight).
    WRITE: / ls_flight-carrid, ls_flight-connid, ls_flight-fldate.
  ENDLOOP.
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Isolate tests from provider settings in the developer's environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sample_abap():
    """Source of a small ABAP report."""
    return SAMPLE_ABAP


def make_claude_response(text, input_tokens=120, output_tokens=80):
    """Build an object shaped like an Anthropic ``Message``."""
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        stop_reason="end_turn",
    )


class DummyMessages:
    def __init__(self, response_text):
        self.response_text = response_text
        self.last_kwargs = None

    def create(self, **kwargs):
        self.last_kwargs = kwargs
        return make_claude_response(self.response_text)


class DummyAnthropic:
    """Stand-in for ``anthropic.Anthropic`` recording its construction."""

    def __init__(self, response_text, **kwargs):
        self.init_kwargs = kwargs
        self.messages = DummyMessages(response_text)


@pytest.fixture
def fake_anthropic(monkeypatch):
    """Patch the Anthropic client; set ``.response_text`` before calling."""

    state = SimpleNamespace(response_text="{}", clients=[])

    def _factory(**kwargs):
        client = DummyAnthropic(state.response_text, **kwargs)
        state.clients.append(client)
        return client

    monkeypatch.setattr("abap_analyzer.analyzers.llm_analyzer.Anthropic", _factory)
    return state
