"""
Shared fixtures for the discovery engine test suite.

Completion calls are always served by scripted fakes; no test talks to a
real provider.
"""
import asyncio
from typing import List, Optional

import pytest

from agent_discovery.core.config import Settings
from agent_discovery.core.errors import CompletionUnavailable
from agent_discovery.discovery.intent import (
    FallbackIntentClassifier,
    IntentClassifier,
    KeywordIntentClassifier,
    LLMIntentClassifier,
)
from agent_discovery.discovery.orchestrator import DiscoveryOrchestrator
from agent_discovery.discovery.responders import GeneralInfoResponder
from agent_discovery.discovery.session_store import InMemorySessionStore
from agent_discovery.discovery.synthesizer import ConfigurationSynthesizer
from agent_discovery.services.agent_store import InMemoryAgentRepository
from agent_discovery.services.llm_provider import (
    CompletionOptions,
    CompletionService,
    CompletionTurn,
    DisabledCompletionService,
)


KOREAN_RESTAURANT = "I run a Korean restaurant and want help with reservations"

RESTAURANT_CONVERSATION = [
    KOREAN_RESTAURANT,
    "Des touristes et des familles",
    "Simple",
    "Google Calendar",
    "Oui",
    "Non merci",
]


class FakeCompletionService(CompletionService):
    """Returns scripted replies in order; exceptions in the script are raised"""

    def __init__(self, replies: Optional[list] = None, delay: float = 0.0):
        self.replies = list(replies or [])
        self.delay = delay
        self.calls: List[List[CompletionTurn]] = []
        self.options: List[Optional[CompletionOptions]] = []

    async def complete(self, turns, options=None) -> str:
        self.calls.append(list(turns))
        self.options.append(options)
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.replies:
            raise CompletionUnavailable("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class SlowClassifier(IntentClassifier):
    """Delays another classifier so turns can interleave"""

    def __init__(self, inner: IntentClassifier, delay: float):
        self.inner = inner
        self.delay = delay

    async def classify(self, utterance, context, bound_agent_id=None, pending_step=None):
        await asyncio.sleep(self.delay)
        return await self.inner.classify(utterance, context, bound_agent_id, pending_step)


@pytest.fixture
def settings():
    return Settings(
        LLM_PROVIDER="disabled",
        LOG_DIR=None,
        COMPLETION_TIMEOUT_SECONDS=0.5,
        SYNTHESIS_MAX_CHARS=500,
    )


@pytest.fixture
def disabled_completion():
    return DisabledCompletionService()


@pytest.fixture
def store():
    return InMemorySessionStore()


@pytest.fixture
def agent_repository():
    return InMemoryAgentRepository()


@pytest.fixture
def make_orchestrator(store, agent_repository, settings, disabled_completion):
    """Build an orchestrator; completion service and classifier can be swapped"""

    def _make(completion_service=None, classifier=None, repository=None):
        completion = completion_service or disabled_completion
        return DiscoveryOrchestrator(
            store=store,
            classifier=classifier or FallbackIntentClassifier(
                primary=LLMIntentClassifier(completion, settings),
                fallback=KeywordIntentClassifier(),
            ),
            synthesizer=ConfigurationSynthesizer(completion, settings),
            agent_repository=repository or agent_repository,
            general_responder=GeneralInfoResponder(completion, settings),
            settings=settings,
        )

    return _make
