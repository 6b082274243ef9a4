"""
Discovery Service
Service layer wrapper for the discovery engine
Provides the interface used by the API layer and owns the wiring
"""
import asyncio
from typing import List, Optional

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery.intent import build_intent_classifier
from agent_discovery.discovery.orchestrator import DiscoveryOrchestrator
from agent_discovery.discovery.responders import GeneralInfoResponder
from agent_discovery.discovery.session_store import InMemorySessionStore, Session, SessionStore
from agent_discovery.discovery.state_machine import progress
from agent_discovery.discovery.synthesizer import ConfigurationSynthesizer
from agent_discovery.schemas.api_models import (
    AgentRecord,
    ListSessionsResponse,
    SessionView,
    TurnRequest,
    TurnResponse,
    TurnView,
)
from agent_discovery.services.agent_store import AgentRepository, InMemoryAgentRepository
from agent_discovery.services.llm_provider import CompletionService, get_completion_service

logger = get_logger(__name__)


def session_view(session: Session) -> SessionView:
    """Read-only API view of a session"""
    done, total = progress(session.requirements)
    return SessionView(
        session_id=session.session_id,
        owner_id=session.owner_id,
        status=session.status,
        pending_step=session.pending_step,
        bound_agent_id=session.bound_agent_id,
        requirements=session.requirements,
        configuration=session.configuration,
        turns=[TurnView(**turn.to_dict()) for turn in session.turns],
        created_at=session.created_at.isoformat(),
        last_activity=session.last_activity.isoformat(),
        progress={"answered": done, "total": total},
    )


class DiscoveryService:
    """
    Service layer for discovery conversations

    Responsibilities:
    - Wiring of store, classifier, synthesizer and agent repository
    - Turn handling through the orchestrator
    - Session queries and reset
    - Periodic eviction of inactive sessions
    """

    def __init__(
        self,
        completion_service: Optional[CompletionService] = None,
        store: Optional[SessionStore] = None,
        agent_repository: Optional[AgentRepository] = None,
        settings: Optional[Settings] = None
    ):
        """Initialize discovery service"""
        self.settings = settings or get_settings()
        completion_service = completion_service or get_completion_service()

        self.store = store or InMemorySessionStore()
        self.agent_repository = agent_repository or InMemoryAgentRepository()
        self.orchestrator = DiscoveryOrchestrator(
            store=self.store,
            classifier=build_intent_classifier(completion_service),
            synthesizer=ConfigurationSynthesizer(completion_service, self.settings),
            agent_repository=self.agent_repository,
            general_responder=GeneralInfoResponder(completion_service, self.settings),
            settings=self.settings,
        )
        logger.info("DiscoveryService initialized")

    async def handle_turn(self, request: TurnRequest) -> TurnResponse:
        """
        Process one user turn

        Raises:
            InvalidTurnRequest: Missing caller input
            SessionNotFound: Unknown session and no owner
        """
        return await self.orchestrator.handle_turn(request)

    async def get_session(self, session_id: str) -> SessionView:
        session = await self.orchestrator.get_session(session_id)
        return session_view(session)

    async def list_sessions(self, owner_id: str) -> ListSessionsResponse:
        sessions = await self.store.list_for_owner(owner_id)
        return ListSessionsResponse(
            sessions=[session_view(s) for s in sessions],
            count=len(sessions),
        )

    async def reset_session(self, session_id: str) -> SessionView:
        logger.info(f"Resetting session: {session_id}")
        session = await self.orchestrator.reset_session(session_id)
        return session_view(session)

    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        return await self.agent_repository.get_agent(agent_id)

    async def list_agents(self, owner_id: Optional[str] = None) -> List[AgentRecord]:
        return await self.agent_repository.list_agents(owner_id)

    async def evict_inactive(self) -> int:
        return await self.store.evict_inactive(self.settings.SESSION_TTL_MINUTES)

    async def run_eviction_loop(self):
        """Evict inactive sessions every SESSION_EVICTION_INTERVAL_SECONDS until cancelled"""
        interval = self.settings.SESSION_EVICTION_INTERVAL_SECONDS
        logger.info(f"Session eviction every {interval}s (ttl={self.settings.SESSION_TTL_MINUTES}min)")
        while True:
            await asyncio.sleep(interval)
            try:
                await self.evict_inactive()
            except Exception as e:
                logger.error(f"Session eviction failed: {e}", exc_info=True)


# ============================================================================
# SINGLETON INSTANCE
# ============================================================================

_discovery_service: Optional[DiscoveryService] = None


def get_discovery_service() -> DiscoveryService:
    """
    Get singleton discovery service instance

    Returns:
        DiscoveryService instance
    """
    global _discovery_service

    if _discovery_service is None:
        _discovery_service = DiscoveryService()

    return _discovery_service
