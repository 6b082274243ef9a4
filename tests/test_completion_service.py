"""
Tests for the completion service adapter
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from agent_discovery.core.config import Settings
from agent_discovery.core.constants import Role
from agent_discovery.core.errors import CompletionUnavailable
from agent_discovery.services.llm_provider import (
    CompletionOptions,
    CompletionTurn,
    DisabledCompletionService,
    LangChainCompletionService,
    build_completion_service,
)


TURNS = [
    CompletionTurn(role=Role.SYSTEM, content="Tu es un assistant."),
    CompletionTurn(role=Role.USER, content="Bonjour"),
    CompletionTurn(role=Role.ASSISTANT, content="Bonjour !"),
    CompletionTurn(role=Role.USER, content="Ça va ?"),
]


class TestLangChainCompletionService:
    """Test LangChain-backed completions"""

    @pytest.fixture
    def settings(self):
        return Settings(
            LLM_PROVIDER="openai",
            OPENAI_API_KEY="sk-test",
            COMPLETION_TIMEOUT_SECONDS=0.1,
            LOG_DIR=None,
        )

    @pytest.fixture
    def llm(self):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(return_value=AIMessage(content="Très bien, merci."))
        return llm

    def test_complete(self, settings, llm):
        service = LangChainCompletionService(settings)
        with patch.object(service, "_create_model", return_value=llm) as create_model:
            reply = asyncio.run(service.complete(TURNS, CompletionOptions(temperature=0.3, max_output_tokens=200)))

        assert reply == "Très bien, merci."
        create_model.assert_called_once_with(0.3, 200)

        messages = llm.ainvoke.call_args.args[0]
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
        assert messages[-1].content == "Ça va ?"

    def test_models_are_cached_per_options(self, settings, llm):
        service = LangChainCompletionService(settings)
        with patch.object(service, "_create_model", return_value=llm) as create_model:
            asyncio.run(service.complete(TURNS))
            asyncio.run(service.complete(TURNS))
            asyncio.run(service.complete(TURNS, CompletionOptions(temperature=0.1)))

        assert create_model.call_count == 2

    def test_content_blocks_are_joined(self, settings, llm):
        llm.ainvoke.return_value = AIMessage(content=[{"type": "text", "text": "Bon"}, {"type": "text", "text": "jour"}])
        service = LangChainCompletionService(settings)
        with patch.object(service, "_create_model", return_value=llm):
            assert asyncio.run(service.complete(TURNS)) == "Bonjour"

    def test_timeout(self, settings, llm):
        async def slow(messages):
            await asyncio.sleep(1)

        llm.ainvoke = slow
        service = LangChainCompletionService(settings)
        with patch.object(service, "_create_model", return_value=llm):
            with pytest.raises(CompletionUnavailable, match="timed out"):
                asyncio.run(service.complete(TURNS))

    def test_provider_error_is_wrapped(self, settings, llm):
        llm.ainvoke.side_effect = ConnectionError("connection reset")
        service = LangChainCompletionService(settings)
        with patch.object(service, "_create_model", return_value=llm):
            with pytest.raises(CompletionUnavailable, match="connection reset"):
                asyncio.run(service.complete(TURNS))

    def test_missing_api_key(self):
        settings = Settings(LLM_PROVIDER="anthropic", ANTHROPIC_API_KEY=None, LOG_DIR=None)
        with pytest.raises(CompletionUnavailable, match="ANTHROPIC_API_KEY"):
            asyncio.run(LangChainCompletionService(settings).complete(TURNS))

    def test_unsupported_provider(self):
        settings = Settings(LLM_PROVIDER="carrier-pigeon", LOG_DIR=None)
        with pytest.raises(CompletionUnavailable, match="Unsupported provider"):
            asyncio.run(LangChainCompletionService(settings).complete(TURNS))


class TestBuildCompletionService:
    """Test provider selection"""

    def test_disabled_provider(self):
        service = build_completion_service(Settings(LLM_PROVIDER="disabled", LOG_DIR=None))
        assert isinstance(service, DisabledCompletionService)

    def test_missing_credentials(self):
        service = build_completion_service(Settings(LLM_PROVIDER="openai", OPENAI_API_KEY=None, LOG_DIR=None))
        assert isinstance(service, DisabledCompletionService)

    def test_configured_provider(self):
        service = build_completion_service(Settings(LLM_PROVIDER="openai", OPENAI_API_KEY="sk-test", LOG_DIR=None))
        assert isinstance(service, LangChainCompletionService)

    def test_onprem_needs_no_key(self):
        service = build_completion_service(Settings(LLM_PROVIDER="onprem", LOG_DIR=None))
        assert isinstance(service, LangChainCompletionService)

    def test_disabled_service_raises(self):
        with pytest.raises(CompletionUnavailable):
            asyncio.run(DisabledCompletionService().complete(TURNS))
