from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from config import Settings
from gateway import ModelGateway


def text_response(text):
    return SimpleNamespace(text=text, candidates=[])


def parts_response(*texts):
    parts = [SimpleNamespace(text=t) for t in texts]
    return SimpleNamespace(
        text=None,
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))],
    )


class FakeModels:
    def __init__(self):
        self.responses = []
        self.calls = []

    def queue(self, response):
        if isinstance(response, (dict, list)):
            response = text_response(json.dumps(response))
        elif isinstance(response, str):
            response = text_response(response)
        self.responses.append(response)

    def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if not self.responses:
            raise AssertionError("unexpected generate_content call")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeGenaiClient:
    def __init__(self):
        self.models = FakeModels()
        self.api_keys = []


@pytest.fixture
def fake_client():
    return FakeGenaiClient()


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    return "test-key"


@pytest.fixture
def no_api_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)


@pytest.fixture
def gateway(fake_client):
    def factory(key):
        fake_client.api_keys.append(key)
        return fake_client

    return ModelGateway(Settings(), client_factory=factory)
