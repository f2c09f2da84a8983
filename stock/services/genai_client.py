import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from django.conf import settings

from .base_service import ExternalServiceError, AIResponseError

logger = logging.getLogger(__name__)

SERVICE_NAME = "AI service"


@dataclass
class GenerativeAIConfig:
    api_url: str
    api_key: str
    model: str
    timeout: int = 30

    @classmethod
    def from_settings(cls) -> "GenerativeAIConfig":
        return cls(
            api_url=settings.GENAI_API_URL.rstrip("/"),
            api_key=settings.GENAI_API_KEY,
            model=settings.GENAI_MODEL,
            timeout=settings.GENAI_TIMEOUT,
        )


class GenerativeAIClient:

    ENDPOINT = "{url}/models/{model}:generateContent"

    def __init__(self, config: Optional[GenerativeAIConfig] = None):
        self.config = config or GenerativeAIConfig.from_settings()
        self._url = self.ENDPOINT.format(url=self.config.api_url, model=self.config.model)

    def generate_json(self, prompt: str) -> Any:
        """Send one prompt and return the decoded JSON the model answered with."""
        if not self.config.api_key:
            raise ExternalServiceError(SERVICE_NAME, "API key is not configured")

        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        try:
            response = requests.post(
                self._url,
                params={"key": self.config.api_key},
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.exceptions.ConnectionError:
            logger.warning("AI request failed: no connection to %s", self.config.api_url)
            raise ExternalServiceError(SERVICE_NAME, "No connection")
        except requests.exceptions.Timeout:
            logger.warning("AI request timed out after %ss", self.config.timeout)
            raise ExternalServiceError(SERVICE_NAME, "Request timed out")
        except requests.exceptions.RequestException as e:
            logger.warning("AI request failed: %s", e)
            raise ExternalServiceError(SERVICE_NAME, f"Request failed: {e}")

        if not response.ok:
            logger.warning("AI API error: %s - %s", response.status_code, response.text[:500])
            raise ExternalServiceError(SERVICE_NAME, f"API error {response.status_code}")

        return self._decode(response)

    @staticmethod
    def _extract_text(body: Dict[str, Any]) -> str:
        try:
            parts = body["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise AIResponseError("AI response contained no candidates", {"body": body})
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @classmethod
    def _decode(cls, response: requests.Response) -> Any:
        try:
            body = response.json()
        except ValueError:
            raise AIResponseError("AI service returned a non-JSON body")

        text = cls._extract_text(body).strip()
        # Models sometimes wrap JSON in a markdown fence despite the MIME type
        if text.startswith("```"):
            text = text.strip("`")
            if text.lower().startswith("json"):
                text = text[4:]
        try:
            return json.loads(text)
        except ValueError:
            logger.warning("Undecodable AI response: %s", text[:500])
            raise AIResponseError("AI response was not valid JSON", {"text": text[:500]})
