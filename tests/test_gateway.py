from __future__ import annotations

from types import SimpleNamespace

import pytest
from google.genai import errors as genai_errors

from config import LOW_THINKING_BUDGET, Settings
from conftest import parts_response, text_response
from errors import ConfigError, UpstreamError
from gateway import build_config, extract_output_text


def test_complete_returns_direct_text(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(text_response("hello"))

    assert gateway.complete("prompt") == "hello"
    call = fake_client.models.calls[0]
    assert call["model"] == "gemini-2.5-flash"
    assert call["contents"] == "prompt"
    assert fake_client.api_keys == ["test-key"]


def test_complete_falls_back_to_candidate_parts(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(parts_response('{"terms": ', "[]}"))

    assert gateway.complete("prompt") == '{"terms": []}'


def test_complete_falls_back_to_output_text(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(SimpleNamespace(text=None, candidates=None, output_text="generic"))

    assert gateway.complete("prompt") == "generic"


def test_complete_raises_when_every_shape_is_empty(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(SimpleNamespace(text="  ", candidates=[]))

    with pytest.raises(UpstreamError, match="No output from gemini-2.5-flash"):
        gateway.complete("prompt")


def test_missing_credential_fails_before_building_a_client(no_api_key, gateway, fake_client) -> None:
    with pytest.raises(ConfigError, match="GEMINI_API_KEY not configured"):
        gateway.complete("prompt")

    assert fake_client.api_keys == []
    assert fake_client.models.calls == []


def test_google_api_key_is_accepted(monkeypatch, gateway, fake_client) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    fake_client.models.queue(text_response("ok"))

    gateway.complete("prompt")
    assert fake_client.api_keys == ["google-key"]


def test_web_search_mode_attaches_google_search_tool(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(text_response("ok"))

    gateway.complete("prompt", use_web_search=True, json_output=True)
    config = fake_client.models.calls[0]["config"]
    assert len(config.tools) == 1
    assert config.tools[0].google_search is not None
    assert config.response_mime_type is None


def test_plain_mode_can_request_json_output(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(text_response("{}"))

    gateway.complete("prompt", json_output=True)
    config = fake_client.models.calls[0]["config"]
    assert config.response_mime_type == "application/json"
    assert not config.tools


def test_api_errors_become_upstream_errors(api_key, gateway, fake_client) -> None:
    fake_client.models.queue(
        genai_errors.APIError(503, {"error": {"message": "overloaded", "status": "UNAVAILABLE"}})
    )

    with pytest.raises(UpstreamError, match="gemini-2.5-flash request failed"):
        gateway.complete("prompt")


def test_build_config_skips_thinking_for_unknown_models() -> None:
    assert build_config("some-other-model").thinking_config is None


def test_build_config_uses_thinking_level_only_for_gemini_3() -> None:
    thinking = build_config("gemini-3-pro-preview").thinking_config
    assert thinking.thinking_level is not None
    assert thinking.thinking_budget is None


@pytest.mark.parametrize("model", [Settings().text_model, Settings().search_model, "gemini-2.5-pro"])
def test_build_config_uses_thinking_budget_for_gemini_2_5(model) -> None:
    thinking = build_config(model).thinking_config
    assert thinking.thinking_budget == LOW_THINKING_BUDGET
    assert thinking.thinking_level is None


def test_extract_output_text_ignores_thought_parts() -> None:
    thought = SimpleNamespace(text="reasoning...", thought=True)
    answer = SimpleNamespace(text="answer")
    response = SimpleNamespace(
        text=None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=[thought, answer]))],
    )
    assert extract_output_text(response) == "answer"
