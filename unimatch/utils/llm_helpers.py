"""
LLM Helpers Module

Completion capability used by the matching engine, plus JSON response helpers.
Prompts are rendered from templates in prompts/ (see prompt_loader); no
inline prompts here.

Example Usage:
    from unimatch.utils.llm_helpers import OpenAICompletionClient, parse_json_object

    client = OpenAICompletionClient(api_key=os.getenv("OPENAI_API_KEY"))
    text = await client.complete(
        system_prompt="...",
        user_prompt="...",
        model="gpt-4o-mini",
        temperature=0.3,
        max_tokens=1500,
        expect_json=True,
    )
    payload = parse_json_object(text)
"""

import json
import logging
from typing import Any, Optional, Protocol

import structlog
from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    InternalServerError,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    RetryError,
    after_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from unimatch.models.config import LLMConfig
from unimatch.utils.errors import ConfigurationError, MatchingError

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


def _extract_json_from_markdown(response_text: str) -> str:
    """Extract JSON from LLM response, removing markdown code block markers if present.

    Args:
        response_text: Raw text response from LLM

    Returns:
        Clean JSON string with code block markers removed
    """
    json_text = response_text.strip()

    if json_text.startswith("```json"):
        json_text = json_text[7:]
    elif json_text.startswith("```"):
        json_text = json_text[3:]

    if json_text.endswith("```"):
        json_text = json_text[:-3]

    return json_text.strip()


def parse_json_object(response_text: Optional[str]) -> dict[str, Any]:
    """Parse an LLM response into a JSON object.

    Returns:
        The decoded object, or {} when the text is empty, not valid JSON,
        or decodes to something other than an object
    """
    if not response_text:
        return {}

    json_text = _extract_json_from_markdown(response_text)
    try:
        result = json.loads(json_text)
    except json.JSONDecodeError:
        # Prose around the payload: fall back to the outermost braces
        start, end = json_text.find("{"), json_text.rfind("}")
        if start == -1 or end <= start:
            logger.warning("Failed to parse JSON from LLM response", response=json_text[:200])
            return {}
        try:
            result = json.loads(json_text[start : end + 1])
        except json.JSONDecodeError as e:
            logger.warning(
                "Failed to parse JSON from LLM response",
                error=str(e),
                response=json_text[:200],
            )
            return {}

    if not isinstance(result, dict):
        logger.warning("LLM response is not a JSON object", response_type=type(result).__name__)
        return {}
    return result


class CompletionClient(Protocol):
    """Abstract completion capability."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        expect_json: bool = False,
    ) -> str: ...


class OpenAICompletionClient:
    """CompletionClient backed by the OpenAI chat completions API.

    Two-phase: construction never fails without a key.
    ``check_configuration()`` validates eagerly when wanted and the SDK
    client is created on the first ``complete`` call, so a missing key
    surfaces as ConfigurationError at first use.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[LLMConfig] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            api_key: OpenAI API key (may be None until first use)
            config: Timeout and retry settings
            client: Pre-built SDK client, mainly for tests
        """
        self.api_key = api_key
        self.config = config if config is not None else LLMConfig()
        self._client = client

    def check_configuration(self) -> None:
        """
        Raises:
            ConfigurationError: If no API key is configured
        """
        if self._client is None and not self.api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self.check_configuration()
            # Retries are handled by tenacity below
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                timeout=self.config.timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: str,
        temperature: float,
        max_tokens: int,
        expect_json: bool = False,
    ) -> str:
        """
        Run one chat completion with retry on transient failures.

        Returns:
            Response text ("" when the model returned no content)

        Raises:
            ConfigurationError: If no API key is configured
            MatchingError: If the call fails after the retry budget
        """
        client = self._get_client()
        request: dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if expect_json:
            request["response_format"] = {"type": "json_object"}

        logger.debug(
            "LLM call initiated",
            model=model,
            prompt_length=len(system_prompt) + len(user_prompt),
            expect_json=expect_json,
        )

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_retries + 1),
                wait=wait_exponential(multiplier=self.config.retry_backoff, min=0, max=10),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                after=after_log(logging.getLogger(__name__), logging.INFO),
                reraise=True,
            ):
                with attempt:
                    response = await client.chat.completions.create(**request)
        except (APIError, RetryError) as e:
            logger.error("LLM call failed", model=model, error_type=type(e).__name__, error=str(e))
            raise MatchingError(f"Completion request failed: {e}") from e

        content = response.choices[0].message.content if response.choices else None
        logger.debug("LLM call succeeded", model=model, response_length=len(content or ""))
        return content or ""
