"""
Unit tests for llm_helpers module.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from unimatch.models.config import LLMConfig
from unimatch.utils.errors import ConfigurationError, MatchingError
from unimatch.utils.llm_helpers import OpenAICompletionClient, parse_json_object


def _completion(content):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def _sdk_client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _connection_error() -> openai.APIConnectionError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return openai.APIConnectionError(request=request)


class TestParseJsonObject:
    """Test cases for parse_json_object."""

    def test_plain_object(self):
        """Test that a plain JSON object is decoded."""
        assert parse_json_object('{"matches": []}') == {"matches": []}

    @pytest.mark.parametrize(
        "text",
        ['```json\n{"a": 1}\n```', '```\n{"a": 1}\n```', 'Here you go: {"a": 1} Thanks!'],
    )
    def test_wrapped_object(self, text):
        """Test that fenced or prose-wrapped payloads are recovered."""
        assert parse_json_object(text) == {"a": 1}

    @pytest.mark.parametrize("text", [None, "", "not json", "[1, 2]", "{broken", "} backwards {"])
    def test_unusable_text_yields_empty_dict(self, text):
        """Test that anything but a JSON object yields {}."""
        assert parse_json_object(text) == {}


class TestOpenAICompletionClient:
    """Test cases for OpenAICompletionClient."""

    def test_construction_without_key_does_not_fail(self):
        """Test that a missing key is only reported on use."""
        # Act
        client = OpenAICompletionClient(api_key=None)

        # Assert
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            client.check_configuration()

    @pytest.mark.asyncio
    async def test_complete_without_key_raises_configuration_error(self):
        """Test that the first call without a key raises ConfigurationError."""
        # Arrange
        client = OpenAICompletionClient(api_key="")

        # Act & Assert
        with pytest.raises(ConfigurationError):
            await client.complete("sys", "user", model="gpt-4o-mini", temperature=0.3, max_tokens=100)

    @pytest.mark.asyncio
    async def test_complete_sends_request(self):
        """Test request shape, including JSON mode."""
        # Arrange
        create = AsyncMock(return_value=_completion('{"matches": []}'))
        client = OpenAICompletionClient(client=_sdk_client(create))

        # Act
        text = await client.complete(
            "system text", "user text", model="gpt-4o-mini", temperature=0.3, max_tokens=1500, expect_json=True
        )

        # Assert
        assert text == '{"matches": []}'
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "user text"},
        ]
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1500
        assert kwargs["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_plain_text_mode_omits_response_format(self):
        """Test that response_format is only sent in JSON mode."""
        # Arrange
        create = AsyncMock(return_value=_completion("hello"))
        client = OpenAICompletionClient(client=_sdk_client(create))

        # Act
        await client.complete("s", "u", model="m", temperature=0, max_tokens=10)

        # Assert
        assert "response_format" not in create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_empty_content_returns_empty_string(self):
        """Test that a None message content becomes an empty string."""
        # Arrange
        create = AsyncMock(return_value=_completion(None))
        client = OpenAICompletionClient(client=_sdk_client(create))

        # Act & Assert
        assert await client.complete("s", "u", model="m", temperature=0, max_tokens=10) == ""

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self):
        """Test that a connection error is retried and the later success returned."""
        # Arrange
        create = AsyncMock(side_effect=[_connection_error(), _completion("ok")])
        client = OpenAICompletionClient(
            client=_sdk_client(create), config=LLMConfig(max_retries=2, retry_backoff=0)
        )

        # Act
        text = await client.complete("s", "u", model="m", temperature=0, max_tokens=10)

        # Assert
        assert text == "ok"
        assert create.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_matching_error(self):
        """Test that persistent transient errors become MatchingError after the budget."""
        # Arrange
        create = AsyncMock(side_effect=_connection_error())
        client = OpenAICompletionClient(
            client=_sdk_client(create), config=LLMConfig(max_retries=2, retry_backoff=0)
        )

        # Act & Assert
        with pytest.raises(MatchingError, match="Completion request failed"):
            await client.complete("s", "u", model="m", temperature=0, max_tokens=10)
        assert create.await_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_error_not_retried(self):
        """Test that a bad request fails immediately as MatchingError."""
        # Arrange
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.BadRequestError(
            "bad request", response=httpx.Response(400, request=request), body=None
        )
        create = AsyncMock(side_effect=error)
        client = OpenAICompletionClient(
            client=_sdk_client(create), config=LLMConfig(max_retries=2, retry_backoff=0)
        )

        # Act & Assert
        with pytest.raises(MatchingError):
            await client.complete("s", "u", model="m", temperature=0, max_tokens=10)
        assert create.await_count == 1
