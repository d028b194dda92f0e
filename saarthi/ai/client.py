"""OpenAI client wrapper with error handling."""

import json
import logging
from typing import Any

from openai import APIError, AsyncOpenAI, RateLimitError

from saarthi.config import get_settings
from saarthi.services.tracing import traced

logger = logging.getLogger(__name__)
settings = get_settings()


class OpenAIClient:
    """Thin async wrapper around the chat completions API."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (defaults to settings)
            model: Chat model (defaults to settings)
        """
        self.api_key = api_key or settings.openai_api_key
        self.model = model or settings.openai_model
        if not self.api_key:
            logger.warning("No OpenAI API key configured - AI features will be disabled")
            self.client = None
        else:
            self.client = AsyncOpenAI(api_key=self.api_key)

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    async def _complete(self, params: dict[str, Any]) -> str:
        if not self.is_configured:
            raise ValueError("OpenAI client not configured - missing API key")

        try:
            response = await self.client.chat.completions.create(model=self.model, **params)
        except RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            raise
        except APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        if response.usage:
            logger.debug(
                f"GPT usage: {response.usage.prompt_tokens} in, "
                f"{response.usage.completion_tokens} out"
            )
        return (response.choices[0].message.content or "").strip()

    @traced(trace_type="ai_call", capture_args=["prompt"])
    async def generate_text(
        self,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.7,
        max_tokens: int = 400,
    ) -> str:
        """Generate a reply for a single prompt.

        Raises:
            ValueError: If the client has no API key
            APIError: If the API call fails
        """
        return await self._complete({
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        })

    @traced(trace_type="ai_call", capture_args=["prompt"])
    async def generate_json(
        self,
        system_prompt: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 500,
    ) -> dict[str, Any]:
        """Generate a JSON object.

        Raises:
            ValueError: If unconfigured or the reply is not a JSON object
            APIError: If the API call fails
        """
        content = await self._complete({
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        })
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Model returned invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("Model returned JSON that is not an object")
        return data


_client: OpenAIClient | None = None


def get_openai_client() -> OpenAIClient:
    """Get singleton OpenAI client instance."""
    global _client
    if _client is None:
        _client = OpenAIClient()
    return _client
