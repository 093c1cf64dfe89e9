import asyncio
import json
import logging
import os
from typing import Any, Optional

import httpx

from ..errors import AIConfigurationError, AIResponseError, AITimeoutError

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_API_URL = os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "30"))

PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "stages": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "name": {"type": "STRING"},
                    "tasks": {
                        "type": "ARRAY",
                        "items": {
                            "type": "OBJECT",
                            "properties": {
                                "title": {"type": "STRING"},
                                "description": {"type": "STRING"},
                                "estimatedHours": {"type": "NUMBER"},
                                "durationDays": {"type": "NUMBER"},
                            },
                            "required": ["title", "description", "estimatedHours", "durationDays"],
                        },
                    },
                },
                "required": ["name", "tasks"],
            },
        },
    },
    "required": ["stages"],
}

INSIGHTS_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "description": {"type": "STRING"},
            "urgency": {"type": "STRING", "enum": ["Low", "Medium", "High"]},
        },
        "required": ["title", "description", "urgency"],
    },
}


def _extract_text(data: dict) -> Optional[str]:
    """Texto de la primera respuesta candidata, o None si viene vacía."""
    candidates = data.get("candidates") or []
    if not candidates:
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts).strip()
    return text or None


class GeminiClient:
    """
    Cliente mínimo de la API REST de Gemini.

    Cada llamada es independiente y queda acotada por `timeout`; al vencer se
    cancela la corrutina en curso (no se mata ningún hilo) y se lanza
    `AITimeoutError`. Nunca reintenta.
    """

    def __init__(
        self,
        api_key: Optional[str] = GEMINI_API_KEY,
        base_url: str = GEMINI_API_URL,
        timeout: float = AI_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _generate_content(self, model: str, contents: str, response_schema: dict) -> Optional[str]:
        body = {
            "contents": [{"role": "user", "parts": [{"text": contents}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }
        async with httpx.AsyncClient(transport=self._transport) as client:
            response = await client.post(
                f"{self.base_url}/models/{model}:generateContent",
                params={"key": self.api_key},
                json=body,
                timeout=None,
            )
            response.raise_for_status()
            return _extract_text(response.json())

    async def generate_json(self, model: str, contents: str, response_schema: dict) -> Optional[Any]:
        """Devuelve el JSON generado ya decodificado, o None si la respuesta vino vacía."""
        if not self.api_key:
            raise AIConfigurationError()
        try:
            text = await asyncio.wait_for(
                self._generate_content(model, contents, response_schema),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"⏰ Gemini excedió {self.timeout}s con el modelo {model}")
            raise AITimeoutError() from e
        except httpx.HTTPError as e:
            raise AIResponseError(f"AI request failed: {e}") from e

        if text is None:
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise AIResponseError("AI returned invalid JSON") from e

    async def generate_plan(self, description: str, model: str) -> Optional[Any]:
        return await self.generate_json(
            model,
            f"Generate a detailed project plan for: {description}. "
            "Include stages and specific tasks for each stage with dates.",
            PLAN_SCHEMA,
        )

    async def project_insights(self, project_data: dict, model: str) -> Optional[Any]:
        return await self.generate_json(
            model,
            "Analyze this project data and provide 3 key insights or suggestions "
            f"for improvement: {json.dumps(project_data)}",
            INSIGHTS_SCHEMA,
        )


gemini_client = GeminiClient()


def get_gemini() -> GeminiClient:
    return gemini_client
