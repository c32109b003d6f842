"""
LLM Service - Text completion wrapper

Single entry point for the chat-completion API used by the categorizer and
the reply-suggestion generator. Every call is bounded by
``settings.llm_timeout_seconds`` and is never retried; callers own the
fallback behavior.
"""
import asyncio
from typing import Optional

from supportflow.config import get_settings
from supportflow.exceptions import ExternalServiceError
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()


class LLMService:
    """
    Chat completion service (OpenAI)

    The AsyncOpenAI client is created lazily so that importing this module
    never needs an API key.
    """

    def __init__(self, client=None, model: Optional[str] = None, timeout: Optional[float] = None):
        self._client = client
        self.model = model or settings.openai_model
        self.timeout = timeout if timeout is not None else settings.llm_timeout_seconds

    @property
    def client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=settings.openai_api_key)
            logger.info(f"LLMService initialized ({self.model})")
        return self._client

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool = True
    ) -> str:
        """
        Run one chat completion

        Args:
            system_prompt: System instruction
            user_prompt: User message
            temperature: Sampling temperature
            max_tokens: Completion token budget
            json_mode: Request a JSON object response

        Returns:
            Raw text content of the first choice

        Raises:
            ExternalServiceError: API error, timeout or empty response
        """
        kwargs = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt}
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(**kwargs),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"LLM call timed out after {self.timeout}s")
            raise ExternalServiceError(f"LLM call timed out after {self.timeout}s") from e
        except Exception as e:
            logger.error(f"LLM call failed: {e}")
            raise ExternalServiceError(f"LLM call failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise ExternalServiceError("No response from LLM")

        return content
