import base64

import pytest
import requests

from services import gemini_client
from services.gemini_client import GeminiClient, GeminiClientError


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self._payload


def test_transform_image_posts_prompt_and_decodes_result(monkeypatch):
    captured = {}

    def fake_post(url, json=None, params=None, timeout=None):
        captured.update(url=url, json=json, params=params, timeout=timeout)
        encoded = base64.b64encode(b"result").decode("utf-8")
        return FakeResponse({"candidates": [{"content": {"parts": [{"text": "hi"}, {"inlineData": {"data": encoded}}]}}]})

    monkeypatch.setattr(gemini_client.requests, "post", fake_post)
    client = GeminiClient(api_key="key", model="models/image-model", timeout=5)

    assert client.transform_image(b"raw", "Make it blue.") == b"result"
    assert captured["url"].endswith("/models/image-model:generateContent")
    assert captured["params"] == {"key": "key"}
    assert captured["timeout"] == 5
    parts = captured["json"]["contents"][0]["parts"]
    assert parts[0] == {"text": "Make it blue."}
    assert parts[1]["inlineData"]["data"] == base64.b64encode(b"raw").decode("utf-8")


def test_transform_image_requires_api_key():
    with pytest.raises(GeminiClientError):
        GeminiClient(api_key="", model="m").transform_image(b"raw", "prompt")


def test_transform_image_missing_image_data(monkeypatch):
    monkeypatch.setattr(gemini_client.requests, "post", lambda *args, **kwargs: FakeResponse({"candidates": []}))

    with pytest.raises(GeminiClientError, match="missing expected image data"):
        GeminiClient(api_key="key", model="m").transform_image(b"raw", "prompt")


def test_transform_image_http_error(monkeypatch):
    monkeypatch.setattr(
        gemini_client.requests, "post", lambda *args, **kwargs: FakeResponse({"error": "nope"}, status_code=429)
    )

    with pytest.raises(GeminiClientError, match="Gemini request failed"):
        GeminiClient(api_key="key", model="m").transform_image(b"raw", "prompt")
