"""
Completion Service Adapter
Single seam between the discovery engine and any text-completion backend
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.constants import Role
from agent_discovery.core.errors import CompletionUnavailable
from agent_discovery.core.logging import get_logger

logger = get_logger(__name__)


# ============================================================================
# REQUEST TYPES
# ============================================================================

@dataclass(frozen=True)
class CompletionTurn:
    """One message sent to the completion backend"""
    role: Role
    content: str


@dataclass(frozen=True)
class CompletionOptions:
    temperature: float = 0.7
    max_output_tokens: int = 1000


# ============================================================================
# INTERFACE
# ============================================================================

class CompletionService(ABC):
    """
    Text-completion backend

    Implementations must raise CompletionUnavailable for every backend
    failure (network, timeout, quota, configuration) so callers can degrade.
    """

    @abstractmethod
    async def complete(
        self,
        turns: List[CompletionTurn],
        options: Optional[CompletionOptions] = None
    ) -> str:
        """
        Produce a completion for the given conversation

        Args:
            turns: Ordered system/user/assistant turns
            options: Sampling options

        Returns:
            Reply text

        Raises:
            CompletionUnavailable: Backend failed or timed out
        """


class DisabledCompletionService(CompletionService):
    """Backend used when no provider is configured; always unavailable"""

    def __init__(self, reason: str = "completion service disabled"):
        self.reason = reason

    async def complete(
        self,
        turns: List[CompletionTurn],
        options: Optional[CompletionOptions] = None
    ) -> str:
        raise CompletionUnavailable(self.reason)


# ============================================================================
# LANGCHAIN IMPLEMENTATION
# ============================================================================

class LangChainCompletionService(CompletionService):
    """
    Completion service backed by LangChain chat models

    Supports:
    - openai: ChatOpenAI against the OpenAI API
    - openrouter: ChatOpenAI with the OpenRouter base URL
    - onprem: ChatOpenAI against an OpenAI-compatible Ollama endpoint
    - anthropic: ChatAnthropic

    Usage:
        service = LangChainCompletionService()
        reply = await service.complete(
            [CompletionTurn(Role.USER, "Bonjour")],
            CompletionOptions(temperature=0.3, max_output_tokens=200)
        )
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None
    ):
        self.settings = settings or get_settings()
        self.provider = self.settings.LLM_PROVIDER.lower()
        self.model = model or self.settings.DEFAULT_LLM_MODEL
        self.timeout_seconds = timeout_seconds or self.settings.COMPLETION_TIMEOUT_SECONDS
        self._model_cache: Dict[str, BaseChatModel] = {}

    def _create_model(self, temperature: float, max_tokens: int) -> BaseChatModel:
        """
        Create LangChain model instance

        Raises:
            ValueError: If provider is unsupported or API key missing
        """
        if self.provider == "anthropic":
            if not self.settings.ANTHROPIC_API_KEY:
                raise ValueError("Missing API key for anthropic. Set ANTHROPIC_API_KEY.")
            return ChatAnthropic(
                model=self.model,
                anthropic_api_key=self.settings.ANTHROPIC_API_KEY,
                temperature=temperature,
                max_tokens=max_tokens
            )

        elif self.provider == "openai":
            if not self.settings.OPENAI_API_KEY:
                raise ValueError("Missing API key for openai. Set OPENAI_API_KEY.")
            return ChatOpenAI(
                model=self.model,
                openai_api_key=self.settings.OPENAI_API_KEY,
                temperature=temperature,
                max_tokens=max_tokens
            )

        elif self.provider == "openrouter":
            if not self.settings.OPENROUTER_API_KEY:
                raise ValueError("Missing API key for openrouter. Set OPENROUTER_API_KEY.")
            # OpenRouter uses OpenAI-compatible API
            return ChatOpenAI(
                base_url=self.settings.OPENROUTER_BASE_URL,
                openai_api_key=self.settings.OPENROUTER_API_KEY,
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens
            )

        elif self.provider == "onprem":
            # Ollama ignores the key but the client requires one
            return ChatOpenAI(
                base_url=self.settings.ONPREM_BASE_URL,
                api_key="ollama",
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens
            )

        raise ValueError(f"Unsupported provider: {self.provider}")

    def _get_or_create_model(self, temperature: float, max_tokens: int) -> BaseChatModel:
        """Get cached model or create new one"""
        cache_key = f"{self.model}:{temperature}:{max_tokens}"
        if cache_key not in self._model_cache:
            self._model_cache[cache_key] = self._create_model(temperature, max_tokens)
        return self._model_cache[cache_key]

    @staticmethod
    def _to_messages(turns: List[CompletionTurn]) -> List[BaseMessage]:
        messages: List[BaseMessage] = []
        for turn in turns:
            if turn.role == Role.SYSTEM:
                messages.append(SystemMessage(content=turn.content))
            elif turn.role == Role.ASSISTANT:
                messages.append(AIMessage(content=turn.content))
            else:
                messages.append(HumanMessage(content=turn.content))
        return messages

    @staticmethod
    def _content_text(response: BaseMessage) -> str:
        content = response.content
        if isinstance(content, list):
            # Anthropic may return content blocks
            parts = []
            for block in content:
                if isinstance(block, dict):
                    parts.append(block.get("text", ""))
                else:
                    parts.append(str(block))
            return "".join(parts)
        return str(content)

    async def complete(
        self,
        turns: List[CompletionTurn],
        options: Optional[CompletionOptions] = None
    ) -> str:
        options = options or CompletionOptions()

        try:
            llm = self._get_or_create_model(options.temperature, options.max_output_tokens)
        except ValueError as e:
            raise CompletionUnavailable(str(e)) from e

        try:
            response = await asyncio.wait_for(
                llm.ainvoke(self._to_messages(turns)),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"Completion timed out after {self.timeout_seconds}s (provider={self.provider})")
            raise CompletionUnavailable(f"completion timed out after {self.timeout_seconds}s") from e
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Completion failed (provider={self.provider}): {e}")
            raise CompletionUnavailable(str(e)) from e

        if hasattr(response, "response_metadata"):
            usage = response.response_metadata.get("usage", {}) or response.response_metadata.get("token_usage", {})
            if usage:
                logger.debug(f"Completion usage: model={self.model}, usage={usage}")

        return self._content_text(response)


# ============================================================================
# GLOBAL INSTANCE
# ============================================================================

_completion_service: Optional[CompletionService] = None


def _has_credentials(settings: Settings) -> bool:
    provider = settings.LLM_PROVIDER.lower()
    if provider == "onprem":
        return True
    if provider == "anthropic":
        return bool(settings.ANTHROPIC_API_KEY)
    if provider == "openai":
        return bool(settings.OPENAI_API_KEY)
    if provider == "openrouter":
        return bool(settings.OPENROUTER_API_KEY)
    return False


def build_completion_service(settings: Optional[Settings] = None) -> CompletionService:
    """
    Build the completion service described by settings

    Falls back to DisabledCompletionService when the provider is disabled
    or has no credentials, so the engine keeps working on heuristics.
    """
    settings = settings or get_settings()
    if not _has_credentials(settings):
        logger.warning(
            f"No credentials for LLM provider '{settings.LLM_PROVIDER}', "
            "running with deterministic fallbacks only"
        )
        return DisabledCompletionService(f"provider '{settings.LLM_PROVIDER}' not configured")
    logger.info(f"Completion service: provider={settings.LLM_PROVIDER}, model={settings.DEFAULT_LLM_MODEL}")
    return LangChainCompletionService(settings)


def get_completion_service() -> CompletionService:
    """
    Get global completion service instance

    Returns:
        Completion service
    """
    global _completion_service

    if _completion_service is None:
        _completion_service = build_completion_service()

    return _completion_service
