import json
import logging
from datetime import datetime, timezone
from typing import Optional, Any

from google import genai
from google.genai import types

from ..settings import settings

logger = logging.getLogger("weeknight.ai")


class AIClient:
    _instance = None

    def __init__(self):
        self.api_key = settings.gemini_api_key
        self.mode = settings.ai_mode  # "mock" or "gemini"
        self._client: Optional[genai.Client] = None
        self.last_error: Optional[str] = None
        self.last_error_at: Optional[datetime] = None

        if self.mode == "gemini" and self.api_key:
            self._client = genai.Client(api_key=self.api_key)

    @classmethod
    def get_instance(cls):
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def is_available(self) -> bool:
        return self.mode == "gemini" and self._client is not None

    async def generate_json(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.3,
    ) -> Optional[dict[str, Any]]:
        """
        Ask Gemini for a JSON object (Async).
        Returns None if AI is disabled/unavailable or the reply is not a JSON object.
        """
        if not self.is_available():
            logger.warning("AI is not available (mode=%s), skipping generation", self.mode)
            return None

        model_id = model or settings.gemini_model

        try:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                system_instruction=system_instruction,
                temperature=temperature,
            )
            response = await self._client.aio.models.generate_content(
                model=model_id,
                contents=prompt,
                config=config,
            )

            if not response.text:
                logger.warning("Gemini returned empty response")
                return None

            parsed = json.loads(response.text)
            if not isinstance(parsed, dict):
                logger.warning("Gemini returned non-object JSON")
                return None
            return parsed

        except Exception as e:
            self.last_error = f"{e.__class__.__name__}: {str(e)}"
            self.last_error_at = datetime.now(timezone.utc)
            logger.error(f"Gemini generation failed: {e}")
            return None


# Singleton instance access
ai_client = AIClient.get_instance()
