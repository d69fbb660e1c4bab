"""Tests for the client side analysis controller."""
import json

import pytest
import requests

from abap_analyzer.client import (
    NO_API_KEY_MESSAGE,
    NO_FILES_MESSAGE,
    WRONG_EXTENSION_MESSAGE,
    AnalysisState,
    AnalyzerController,
)
from abap_analyzer.models import OutputFormat, UploadedFile


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")
        self.reason = reason

    def json(self):
        if self._payload is None:
            raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)
        return self._payload


class FakeSession:
    """Records requests and replays queued responses or exceptions."""

    def __init__(self, get=None, post=None):
        self.get_result = get
        self.post_result = post
        self.calls = []

    def _reply(self, result):
        if isinstance(result, Exception):
            raise result
        return result

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        return self._reply(self.get_result)

    def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        return self._reply(self.post_result)


@pytest.fixture
def abap_file(sample_abap):
    return UploadedFile.from_bytes("z_flight_list.abap", sample_abap)


def _controller(session, api_key="sk-test-1234"):
    controller = AnalyzerController(base_url="http://analyzer.test/", session=session)
    controller.settings = controller.settings.model_copy(update={"api_key": api_key})
    return controller


class TestConfigLoading:
    def test_populates_settings_from_response(self):
        session = FakeSession(
            get=FakeResponse(
                payload={
                    "apiKey": "sk-live-abcd",
                    "apiProvider": "openai",
                    "modelName": "gpt-4o",
                    "apiBaseUrl": "https://gateway.example.com/v1",
                }
            )
        )
        controller = AnalyzerController(base_url="http://analyzer.test", session=session)

        assert controller.load_config() is True

        assert session.calls[0][1] == "http://analyzer.test/api/config"
        assert controller.config_loaded is True
        assert controller.config_error is None
        assert controller.settings.api_key == "sk-live-abcd"
        assert controller.settings.provider == "openai"
        assert controller.settings.model == "gpt-4o"
        assert controller.settings.api_base_url == "https://gateway.example.com/v1"

    def test_defaults_only_for_absent_fields(self):
        session = FakeSession(get=FakeResponse(payload={"apiKey": "sk-only-key"}))
        controller = AnalyzerController(base_url="http://analyzer.test", session=session)

        controller.load_config()

        assert controller.settings.api_key == "sk-only-key"
        assert controller.settings.provider == "anthropic"
        assert controller.settings.model == "claude-3-7-sonnet-20250219"
        assert controller.settings.api_base_url == ""

    def test_http_failure_is_stored_not_raised(self):
        session = FakeSession(get=FakeResponse(status_code=500, text="boom", reason="Server Error"))
        controller = AnalyzerController(base_url="http://analyzer.test", session=session)

        assert controller.load_config() is False

        assert controller.config_error == "Failed to load configuration"
        assert controller.config_loaded is False
        assert controller.settings.api_key == ""
        assert len(session.calls) == 1

    def test_redirect_is_a_failure(self):
        session = FakeSession(get=FakeResponse(status_code=302, payload={"apiKey": "sk-x"}, reason="Found"))
        controller = AnalyzerController(base_url="http://analyzer.test", session=session)

        assert controller.load_config() is False
        assert controller.settings.api_key == ""

    def test_network_failure_is_stored(self):
        session = FakeSession(get=requests.ConnectionError("connection refused"))
        controller = AnalyzerController(base_url="http://analyzer.test", session=session)

        assert controller.load_config() is False
        assert "connection refused" in controller.config_error


class TestFileSelection:
    def test_keeps_only_abap_files(self, sample_abap):
        controller = _controller(FakeSession())

        added = controller.add_files(
            [
                UploadedFile.from_bytes("a.abap", sample_abap),
                UploadedFile.from_bytes("B.ABAP", sample_abap),
                UploadedFile.from_bytes("readme.md", b"# hi"),
            ]
        )

        assert added == 2
        assert [uploaded.name for uploaded in controller.files] == ["a.abap", "B.ABAP"]
        assert controller.error is None

    def test_no_matching_extension_reports_error(self, abap_file):
        controller = _controller(FakeSession())
        controller.add_files([abap_file])

        added = controller.add_files([UploadedFile.from_bytes("notes.txt", b"x")])

        assert added == 0
        assert controller.error == WRONG_EXTENSION_MESSAGE
        assert [uploaded.name for uploaded in controller.files] == ["z_flight_list.abap"]

    def test_remove_and_clear(self, sample_abap):
        controller = _controller(FakeSession())
        controller.add_files(
            [UploadedFile.from_bytes(name, sample_abap) for name in ("a.abap", "b.abap", "c.abap")]
        )

        controller.remove_file(1)
        assert [uploaded.name for uploaded in controller.files] == ["a.abap", "c.abap"]

        controller.remove_file(10)
        assert len(controller.files) == 2

        controller.clear_files()
        assert controller.files == []


class TestSettings:
    def test_toggle_agent(self):
        controller = _controller(FakeSession())

        controller.toggle_agent("security")
        assert controller.settings.agents[-1] == "security"

        controller.toggle_agent("logic")
        assert "logic" not in controller.settings.agents

    def test_toggle_unknown_agent(self):
        controller = _controller(FakeSession())
        with pytest.raises(ValueError):
            controller.toggle_agent("astrology")

    def test_set_output_format(self):
        controller = _controller(FakeSession())
        controller.set_output_format("markdown")
        assert controller.settings.output_format == OutputFormat.MARKDOWN

    def test_masked_api_key(self):
        assert _controller(FakeSession(), api_key="sk-secret-9876").masked_api_key() == "********9876"
        assert _controller(FakeSession(), api_key="").masked_api_key() == "Not Configured"

    def test_missing_requirements(self, abap_file):
        controller = _controller(FakeSession(), api_key="")
        assert len(controller.missing_requirements()) == 2
        assert controller.can_analyze is False

        controller.add_files([abap_file])
        controller.settings = controller.settings.model_copy(update={"api_key": "sk-x"})
        assert controller.missing_requirements() == []
        assert controller.can_analyze is True


class TestRunAnalysis:
    def test_no_files_skips_network(self):
        session = FakeSession()
        controller = _controller(session)

        assert controller.run_analysis() is False

        assert session.calls == []
        assert controller.error == NO_FILES_MESSAGE
        assert controller.state == AnalysisState.IDLE

    def test_no_api_key_skips_network(self, abap_file):
        session = FakeSession()
        controller = _controller(session, api_key="")
        controller.add_files([abap_file])

        assert controller.run_analysis() is False

        assert session.calls == []
        assert controller.error == NO_API_KEY_MESSAGE

    def test_success_stores_results_and_clears_error(self, abap_file):
        results = {"summary": "Looks good", "files": [], "recommendations": []}
        session = FakeSession(post=FakeResponse(payload=results))
        controller = _controller(session)
        controller.add_files([abap_file])
        controller.error = "Analysis failed: earlier problem"

        assert controller.run_analysis() is True

        assert controller.state == AnalysisState.SUCCESS
        assert controller.results == results
        assert controller.error is None

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("POST", "http://analyzer.test/api/analyze")
        assert kwargs["files"][0][0] == "files"
        assert kwargs["files"][0][1][0] == "z_flight_list.abap"
        sent_settings = json.loads(kwargs["data"]["settings"])
        assert sent_settings["apiKey"] == "sk-test-1234"
        assert sent_settings["outputFormat"] == "json"
        assert sent_settings["agents"] == ["functionality", "technical", "logic", "context"]

    def test_http_failure_sets_error_and_drops_stale_results(self, abap_file):
        session = FakeSession(post=FakeResponse(payload={"summary": "first run"}))
        controller = _controller(session)
        controller.add_files([abap_file])
        controller.run_analysis()
        assert controller.results is not None

        session.post_result = FakeResponse(
            status_code=502,
            payload={"detail": "Claude request failed: overloaded"},
            reason="Bad Gateway",
        )

        assert controller.run_analysis() is False

        assert controller.state == AnalysisState.ERROR
        assert controller.results is None
        assert controller.error.startswith("Analysis failed:")
        assert "502" in controller.error
        assert "overloaded" in controller.error

    def test_redirect_is_not_treated_as_success(self, abap_file):
        session = FakeSession(post=FakeResponse(status_code=302, payload={"summary": "moved"}, reason="Found"))
        controller = _controller(session)
        controller.add_files([abap_file])

        assert controller.run_analysis() is False

        assert controller.state == AnalysisState.ERROR
        assert controller.results is None
        assert "302" in controller.error

    def test_network_failure(self, abap_file):
        session = FakeSession(post=requests.ConnectionError("connection refused"))
        controller = _controller(session)
        controller.add_files([abap_file])

        assert controller.run_analysis() is False

        assert controller.state == AnalysisState.ERROR
        assert controller.error == "Analysis failed: connection refused"

    def test_invalid_json_body(self, abap_file):
        session = FakeSession(post=FakeResponse(status_code=200, payload=None, text="<html>"))
        controller = _controller(session)
        controller.add_files([abap_file])

        assert controller.run_analysis() is False

        assert controller.state == AnalysisState.ERROR
        assert controller.results is None

    def test_ignored_while_analyzing(self, abap_file):
        session = FakeSession()
        controller = _controller(session)
        controller.add_files([abap_file])
        controller.state = AnalysisState.ANALYZING

        assert controller.run_analysis() is False
        assert session.calls == []
