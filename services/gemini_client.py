"""Client for the Gemini image transform API."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional

import requests


class GeminiClientError(RuntimeError):
    """Raised when Gemini API interaction fails."""


@dataclass
class GeminiClient:
    """REST client that applies a resolved preset prompt to a captured photo."""

    api_key: str
    model: str
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: int = 60

    def transform_image(self, image_bytes: bytes, prompt: str, mime_type: str = "image/png") -> bytes:
        """Send one capture with its prompt and return the generated image bytes."""
        if not self.api_key:
            raise GeminiClientError("Gemini API key is not configured.")

        payload = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                        {
                            "inlineData": {
                                "mimeType": mime_type,
                                "data": base64.b64encode(image_bytes).decode("utf-8"),
                            }
                        },
                    ],
                }
            ]
        }

        data = self._post_and_parse(payload)
        encoded_output = self._extract_inline_image(data)
        if not encoded_output:
            raise GeminiClientError("Gemini response missing expected image data.")
        return base64.b64decode(encoded_output)

    def _post_and_parse(self, payload: dict) -> dict:
        """Send request to Gemini and return JSON data."""
        model_name = self.model.removeprefix("models/")
        url = f"{self.endpoint}/models/{model_name}:generateContent"
        params = {"key": self.api_key}

        try:
            response = requests.post(url, json=payload, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            details = ""
            if exc.response is not None:
                try:
                    details = f" Response: {exc.response.text}"
                except Exception:  # noqa: BLE001
                    details = ""
            raise GeminiClientError(f"Gemini request failed: {exc}.{details}") from exc

        try:
            return response.json()
        except ValueError as exc:
            raise GeminiClientError("Gemini returned a non-JSON response.") from exc

    @staticmethod
    def _extract_inline_image(response_data: dict) -> Optional[str]:
        """Find the first inlineData entry containing base64 image data."""
        for candidate in response_data.get("candidates") or []:
            content = candidate.get("content") or {}
            for part in content.get("parts") or []:
                inline = part.get("inlineData")
                if inline and inline.get("data"):
                    return inline["data"]
        return None
