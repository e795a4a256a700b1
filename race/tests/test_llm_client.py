"""Tests for LLMClient provider abstraction."""

import logging
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from race.common.config import LLMConfig
from race.common.llm_client import (
    PERSONAL_ASSISTANT_PROMPT,
    LLMClient,
    build_system_message,
    create_llm_client,
)
from race.common.schemas import ChatMessage


class TestLLMClientInit:
    @pytest.mark.parametrize("provider", ["anthropic", "openai", "google"])
    def test_missing_key_logs_info(self, provider, caplog):
        with caplog.at_level(logging.INFO, logger="race.common.llm_client"):
            client = LLMClient(provider=provider)
        assert not client.is_available
        assert "API key not provided" in caplog.text

    def test_unsupported_provider_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="race.common.llm_client"):
            client = LLMClient(provider="unsupported_xyz")
        assert not client.is_available
        assert "Unsupported" in caplog.text

    def test_create_from_config_picks_provider_model(self):
        client = create_llm_client(LLMConfig(provider="anthropic", anthropic_model="claude-x"))

        assert client.provider == "anthropic"
        assert client.model == "claude-x"
        assert not client.is_available


class TestSystemMessage:
    def test_default_prompt_embeds_context(self):
        message = build_system_message("CTX")

        assert message == PERSONAL_ASSISTANT_PROMPT.format(context="CTX")
        assert "CTX" in message

    def test_custom_prompt(self):
        assert build_system_message("CTX", "Be brief.") == "Be brief.\n\nContext from data:\n\nCTX"


class TestComplete:
    @pytest.mark.asyncio
    async def test_raises_when_unavailable(self):
        client = LLMClient(provider="anthropic")
        with pytest.raises(RuntimeError, match="not available"):
            await client.complete([ChatMessage(role="user", content="hi")], "ctx")

    @pytest.mark.asyncio
    async def test_openai_request_shape(self):
        client = LLMClient(provider="openai", model="gpt-4o")
        client._client = MagicMock()
        client._client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="  answer  "))],
        )
        history = [
            ChatMessage(role="user", content="earlier"),
            ChatMessage(role="assistant", content="reply"),
            ChatMessage(role="user", content="now"),
        ]

        answer = await client.complete(history, "CTX", "Be brief.")

        assert answer == "answer"
        kwargs = client._client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief.\n\nContext from data:\n\nCTX"}
        assert [m["role"] for m in kwargs["messages"][1:]] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_anthropic_folds_system_turns(self):
        client = LLMClient(provider="anthropic", model="claude-x")
        client._client = MagicMock()
        client._client.messages.create.return_value = SimpleNamespace(
            content=[SimpleNamespace(text="answer")],
        )
        messages = [
            ChatMessage(role="system", content="Earlier instructions"),
            ChatMessage(role="user", content="question"),
        ]

        await client.complete(messages, "CTX")

        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["system"].endswith("\n\nEarlier instructions")
        assert "CTX" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "question"}]

    @pytest.mark.asyncio
    async def test_google_maps_assistant_to_model(self):
        client = LLMClient(provider="google", model="gemini-x")
        genai = MagicMock()
        genai.GenerativeModel.return_value.generate_content.return_value = SimpleNamespace(text="answer ")
        client._client = genai

        answer = await client.complete(
            [ChatMessage(role="user", content="a"), ChatMessage(role="assistant", content="b")], "CTX",
        )

        assert answer == "answer"
        contents = genai.GenerativeModel.return_value.generate_content.call_args.args[0]
        assert [c["role"] for c in contents] == ["user", "model"]
        assert "CTX" in genai.GenerativeModel.call_args.kwargs["system_instruction"]
