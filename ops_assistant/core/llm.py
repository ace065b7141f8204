"""Chat completion client for the model endpoint.

Talks to any OpenAI-compatible endpoint (OpenRouter by default). Each attempt
is timeboxed; transport failures, non-success responses and empty completions
are retried with exponential backoff before giving up with
``ModelUnavailableError``.
"""

import asyncio
import json
import re
from typing import Awaitable, Callable, TypeVar

from openai import APIError, AsyncOpenAI
from pydantic import BaseModel

from ops_assistant.core.config import Settings, get_settings
from ops_assistant.core.errors import ModelUnavailableError
from ops_assistant.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class EmptyCompletionError(Exception):
    """The endpoint answered but returned no content."""


class ModelClient:
    """Retrying wrapper around ``AsyncOpenAI.chat.completions``."""

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        # Retries are handled here so the backoff schedule stays predictable
        self._client = client or AsyncOpenAI(
            api_key=self.settings.OPENAI_API_KEY,
            base_url=self.settings.OPENAI_BASE_URL,
            max_retries=0,
        )
        self._sleep = sleep

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str | None = None,
    ) -> str:
        """
        Run one chat completion with retries.

        Args:
            system_prompt: System instruction
            user_prompt: Rendered user prompt
            model: Optional model override (defaults to settings.AI_MODEL)

        Returns:
            Raw completion text

        Raises:
            ModelUnavailableError: If every attempt failed
        """
        model = model or self.settings.AI_MODEL
        max_attempts = max(1, self.settings.MODEL_MAX_ATTEMPTS)
        base_delay = self.settings.MODEL_BACKOFF_BASE_SECONDS

        last_error: Exception | None = None
        for attempt in range(max_attempts):
            try:
                return await asyncio.wait_for(
                    self._create(system_prompt, user_prompt, model),
                    timeout=self.settings.MODEL_TIMEOUT_SECONDS,
                )
            except (APIError, asyncio.TimeoutError, EmptyCompletionError) as e:
                last_error = e
                if attempt < max_attempts - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Model call attempt {attempt + 1}/{max_attempts} failed "
                        f"({type(e).__name__}), retrying in {delay}s"
                    )
                    await self._sleep(delay)

        logger.error(f"Model call failed after {max_attempts} attempts: {last_error!r}")
        raise ModelUnavailableError(
            f"Model endpoint unavailable after {max_attempts} attempts",
            attempts=max_attempts,
            last_error=last_error,
        )

    async def _create(self, system_prompt: str, user_prompt: str, model: str) -> str:
        response = await self._client.chat.completions.create(
            model=model,
            temperature=self.settings.AI_TEMPERATURE,
            max_tokens=self.settings.AI_MAX_TOKENS,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
        )
        if not response.choices:
            raise EmptyCompletionError("No choices in completion response")
        content = response.choices[0].message.content or ""
        if not content.strip():
            raise EmptyCompletionError("Empty completion content")
        return content


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse LLM output as JSON and validate against a Pydantic model.

    Raises:
        json.JSONDecodeError: If JSON parsing fails after cleanup
        pydantic.ValidationError: If parsed JSON doesn't match schema
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    return model.model_validate(parsed)
