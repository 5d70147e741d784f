"""Tests for chat backends with mocked SDK clients."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import anthropic
import pytest

from scribe_os.config import Settings
from scribe_os.llm.anthropic_llm import JSON_ONLY_SUFFIX, AnthropicLLM
from scribe_os.llm.base import (
    LLMConnectionError,
    LLMOverloadError,
    LLMRequestError,
    LLMTimeoutError,
    LLMValidationError,
    Message,
    parse_json_object,
    strip_code_fence,
)
from scribe_os.llm.factory import create_llm_from_settings
from scribe_os.llm.local import OpenAICompatibleLLM

REQUEST = httpx.Request("POST", "https://api.example/v1/chat/completions")


def _openai_reply(content: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        model="gpt-4o-mini",
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=34),
    )


def _openai_client(reply=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=reply, side_effect=error)
    return client


class TestJsonParsing:
    def test_strip_code_fence(self):
        assert strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
        assert strip_code_fence('{"a": 1}') == '{"a": 1}'

    def test_parse_json_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", '"text"'])
    def test_parse_json_object_rejects(self, content):
        with pytest.raises(LLMValidationError):
            parse_json_object(content)


class TestOpenAICompatibleLLM:
    async def test_complete_json_mode(self):
        client = _openai_client(_openai_reply('{"plan": "rest"}'))
        llm = OpenAICompatibleLLM("https://api.example/v1", "gpt-4o-mini", client=client)

        data = await llm.complete_json([Message.system("s"), Message.user("u")], temperature=0.3)

        assert data == {"plan": "rest"}
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"][0] == {"role": "system", "content": "s"}

    async def test_usage_is_reported(self):
        llm = OpenAICompatibleLLM("u", "m", client=_openai_client(_openai_reply("hi")))
        response = await llm.complete([Message.user("u")])
        assert response.input_tokens == 12
        assert response.output_tokens == 34

    @pytest.mark.parametrize(
        "error,expected",
        [
            (openai.APITimeoutError(request=REQUEST), LLMTimeoutError),
            (openai.APIConnectionError(request=REQUEST), LLMConnectionError),
            (
                openai.RateLimitError("slow down", response=httpx.Response(429, request=REQUEST), body=None),
                LLMOverloadError,
            ),
            (
                openai.InternalServerError("oops", response=httpx.Response(500, request=REQUEST), body=None),
                LLMOverloadError,
            ),
            (
                openai.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None),
                LLMRequestError,
            ),
            (
                openai.BadRequestError("bad input", response=httpx.Response(400, request=REQUEST), body=None),
                LLMRequestError,
            ),
        ],
    )
    async def test_error_mapping(self, error, expected):
        llm = OpenAICompatibleLLM("u", "m", client=_openai_client(error=error))
        with pytest.raises(expected):
            await llm.complete([Message.user("u")])


class TestAnthropicLLM:
    async def test_system_prompt_split_and_json_suffix(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            return_value=SimpleNamespace(
                content=[SimpleNamespace(type="text", text='{"a": 1}')],
                model="claude",
                usage=SimpleNamespace(input_tokens=5, output_tokens=6),
                stop_reason="end_turn",
            )
        )
        llm = AnthropicLLM(api_key="k", client=client)

        data = await llm.complete_json([Message.system("sys"), Message.user("u")])

        assert data == {"a": 1}
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys" + JSON_ONLY_SUFFIX
        assert kwargs["messages"] == [{"role": "user", "content": "u"}]

    async def test_timeout_mapping(self):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APITimeoutError(request=REQUEST))
        with pytest.raises(LLMTimeoutError):
            await AnthropicLLM(api_key="k", client=client).complete([Message.user("u")])

    @pytest.mark.parametrize(
        "error,expected",
        [
            (
                anthropic.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None),
                LLMRequestError,
            ),
            (
                anthropic.NotFoundError("no model", response=httpx.Response(404, request=REQUEST), body=None),
                LLMRequestError,
            ),
            (
                anthropic.APIStatusError("overloaded", response=httpx.Response(529, request=REQUEST), body=None),
                LLMOverloadError,
            ),
        ],
    )
    async def test_status_error_mapping(self, error, expected):
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=error)
        with pytest.raises(expected):
            await AnthropicLLM(api_key="k", client=client).complete([Message.user("u")])

    async def test_rejected_request_keeps_status_code(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.BadRequestError("bad", response=httpx.Response(400, request=REQUEST), body=None)
        )
        with pytest.raises(LLMRequestError) as exc_info:
            await AnthropicLLM(api_key="k", client=client).complete([Message.user("u")])
        assert exc_info.value.status_code == 400


class TestFactory:
    def test_default_is_openai_compatible(self):
        llm = create_llm_from_settings(Settings(llm_provider="openai", llm_model="gpt-4o-mini"))
        assert isinstance(llm, OpenAICompatibleLLM)
        assert llm.model_name == "gpt-4o-mini"

    def test_anthropic_requires_key(self):
        with pytest.raises(ValueError):
            create_llm_from_settings(Settings(llm_provider="anthropic", anthropic_api_key=""))

    def test_anthropic(self):
        llm = create_llm_from_settings(Settings(llm_provider="anthropic", anthropic_api_key="k"))
        assert llm.provider == "anthropic"
