"""Thin wrapper around the Gemini ``generate_content`` call."""

import functools
import time

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from config import (
    LOW_THINKING_BUDGET,
    THINKING_BUDGET_MODELS,
    THINKING_LEVEL_MODELS,
    Settings,
    get_api_key,
)
from errors import ConfigError, UpstreamError
from log_setup import get_logger

log = get_logger(__name__)


@functools.lru_cache(maxsize=4)
def _cached_client(api_key, timeout_ms):
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=timeout_ms),
    )


def extract_output_text(response):
    """Return the text of a model response, or None if every known shape is empty."""
    try:
        text = response.text
    except (AttributeError, ValueError):
        text = None
    if isinstance(text, str) and text.strip():
        return text

    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        parts = getattr(content, "parts", None) or []
        texts = [
            part.text for part in parts
            if isinstance(getattr(part, "text", None), str) and not getattr(part, "thought", False)
        ]
        joined = "".join(texts)
        if joined.strip():
            return joined

    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text
    return None


def build_config(model, use_web_search=False, json_output=False):
    kwargs = {}
    if use_web_search:
        kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
    elif json_output:
        # Grounding tools and JSON mime type cannot be combined.
        kwargs["response_mime_type"] = "application/json"
    if model in THINKING_LEVEL_MODELS:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_level="low")
    elif model in THINKING_BUDGET_MODELS:
        kwargs["thinking_config"] = types.ThinkingConfig(thinking_budget=LOW_THINKING_BUDGET)
    return types.GenerateContentConfig(**kwargs)


class ModelGateway:
    def __init__(self, settings=None, client_factory=None):
        self.settings = settings or Settings.from_env()
        self._client_factory = client_factory or (
            lambda api_key: _cached_client(api_key, self.settings.model_timeout_ms)
        )

    def require_api_key(self):
        api_key = get_api_key()
        if not api_key:
            raise ConfigError("GEMINI_API_KEY not configured")
        return api_key

    def model_for(self, use_web_search=False):
        return self.settings.search_model if use_web_search else self.settings.text_model

    def complete(self, prompt, use_web_search=False, json_output=False, model=None):
        """Run one completion and return its text. Raises ConfigError or UpstreamError."""
        api_key = self.require_api_key()
        model = model or self.model_for(use_web_search)

        client = self._client_factory(api_key)
        config = build_config(model, use_web_search=use_web_search, json_output=json_output)

        log.info("model_call_started", model=model, web_search=use_web_search)
        start = time.time()
        try:
            response = client.models.generate_content(
                model=model, contents=prompt, config=config,
            )
        except genai_errors.APIError as e:
            log.error("model_call_failed", model=model, error=str(e))
            raise UpstreamError(f"{model} request failed: {e}") from e
        elapsed_ms = int((time.time() - start) * 1000)

        text = extract_output_text(response)
        if not text:
            log.error("model_output_empty", model=model, elapsed_ms=elapsed_ms)
            raise UpstreamError(f"No output from {model}")

        log.info("model_call_completed", model=model, elapsed_ms=elapsed_ms, chars=len(text))
        return text
