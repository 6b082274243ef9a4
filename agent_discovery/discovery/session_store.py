"""
Session Registry
Owns every discovery session. Other components only ever see snapshots;
all mutation goes through the store, one session at a time.
"""
import asyncio
import copy
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from agent_discovery.core.constants import DiscoveryStep, Role, SessionStatus
from agent_discovery.core.errors import SessionNotFound
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery import requirements as req
from agent_discovery.schemas.api_models import (
    GeneratedConfiguration,
    Requirements,
    RequirementsUpdate,
)
from agent_discovery.utils.ids import generate_session_id
from agent_discovery.utils.time import is_expired, utc_now

logger = get_logger(__name__)


@dataclass
class Turn:
    """Single message in a discovery session"""
    role: Role
    text: str
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, str]:
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Session:
    """Discovery session"""
    session_id: str
    owner_id: str
    bound_agent_id: Optional[str] = None
    turns: List[Turn] = field(default_factory=list)
    requirements: Requirements = field(default_factory=Requirements)
    status: SessionStatus = SessionStatus.DISCOVERY
    pending_step: Optional[DiscoveryStep] = None
    configuration: Optional[GeneratedConfiguration] = None
    created_at: datetime = field(default_factory=utc_now)
    last_activity: datetime = field(default_factory=utc_now)
    version: int = 0

    @property
    def has_configuration(self) -> bool:
        return self.configuration is not None

    def add_turn(self, role: Role, text: str):
        """Add message to session history"""
        self.turns.append(Turn(role=role, text=text))
        self.touch()

    def touch(self):
        self.last_activity = utc_now()
        self.version += 1

    def recent_turns(self, limit: int) -> List[Turn]:
        return self.turns[-limit:] if limit > 0 else []

    def snapshot(self) -> "Session":
        return copy.deepcopy(self)


@dataclass
class TurnCommit:
    """Everything one turn writes, applied at once"""
    user_text: str
    assistant_text: str
    update: RequirementsUpdate = field(default_factory=RequirementsUpdate)
    is_correction: bool = False
    status: Optional[SessionStatus] = None
    pending_step: Optional[DiscoveryStep] = None
    configuration: Optional[GeneratedConfiguration] = None
    bound_agent_id: Optional[str] = None


# ============================================================================
# INTERFACE
# ============================================================================

class SessionStore(ABC):
    """
    Session registry interface

    Read operations return snapshots. Callers needing a consistent
    read-modify-write hold `lock(session_id)` around it.
    """

    @abstractmethod
    async def get_or_create(self, session_id: Optional[str], owner_id: Optional[str]) -> Session:
        """
        Fetch a session, creating it when unknown

        Raises:
            SessionNotFound: Unknown (or missing) id and no owner to create it for
        """

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]: ...

    @abstractmethod
    async def append_turn(self, session_id: str, role: Role, text: str) -> Session: ...

    @abstractmethod
    async def merge_requirements(
        self,
        session_id: str,
        update: RequirementsUpdate,
        is_correction: bool = False
    ) -> Session: ...

    @abstractmethod
    async def bind_agent(self, session_id: str, agent_id: str) -> Session: ...

    @abstractmethod
    async def commit_turn(self, session_id: str, commit: TurnCommit) -> Session:
        """Apply all writes of one turn atomically"""

    @abstractmethod
    async def reset(self, session_id: str) -> Session: ...

    @abstractmethod
    async def list_for_owner(self, owner_id: str) -> List[Session]: ...

    @abstractmethod
    async def evict_inactive(self, max_age_minutes: float) -> int:
        """Delete sessions idle for longer than max_age_minutes; returns count"""

    @abstractmethod
    def lock(self, session_id: str):
        """Async context manager giving exclusive access to one session"""

    @abstractmethod
    def pin(self, session_id: str): ...

    @abstractmethod
    def unpin(self, session_id: str): ...


# ============================================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================================

class InMemorySessionStore(SessionStore):
    """
    Process-local session registry

    Features:
    - Get-or-create with owner check
    - Requirements merging through `requirements.merge`
    - Per-session asyncio locks
    - Pinning so eviction never drops a session with a turn in flight
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._pins: Dict[str, int] = {}

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def get_or_create(self, session_id: Optional[str], owner_id: Optional[str]) -> Session:
        if session_id and session_id in self._sessions:
            return self._sessions[session_id].snapshot()

        if not owner_id:
            raise SessionNotFound(session_id or "<none>")

        session = Session(
            session_id=session_id or generate_session_id(owner_id),
            owner_id=owner_id,
        )
        self._sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id} for owner {owner_id}")
        return session.snapshot()

    async def get(self, session_id: str) -> Optional[Session]:
        session = self._sessions.get(session_id)
        return session.snapshot() if session else None

    async def append_turn(self, session_id: str, role: Role, text: str) -> Session:
        session = self._require(session_id)
        session.add_turn(role, text)
        return session.snapshot()

    async def merge_requirements(
        self,
        session_id: str,
        update: RequirementsUpdate,
        is_correction: bool = False
    ) -> Session:
        session = self._require(session_id)
        session.requirements = req.merge(session.requirements, update, is_correction)
        session.touch()
        return session.snapshot()

    async def bind_agent(self, session_id: str, agent_id: str) -> Session:
        session = self._require(session_id)
        session.bound_agent_id = agent_id
        session.touch()
        return session.snapshot()

    async def commit_turn(self, session_id: str, commit: TurnCommit) -> Session:
        session = self._require(session_id)

        # Build the new state first so a failure leaves the session untouched
        merged = req.merge(session.requirements, commit.update, commit.is_correction)
        now = utc_now()
        turns = session.turns + [
            Turn(role=Role.USER, text=commit.user_text, timestamp=now),
            Turn(role=Role.ASSISTANT, text=commit.assistant_text, timestamp=now),
        ]

        session.requirements = merged
        session.turns = turns
        if commit.status is not None:
            session.status = commit.status
        session.pending_step = commit.pending_step
        if commit.configuration is not None:
            session.configuration = commit.configuration
        if commit.bound_agent_id is not None:
            session.bound_agent_id = commit.bound_agent_id
        session.touch()
        return session.snapshot()

    async def reset(self, session_id: str) -> Session:
        session = self._require(session_id)
        session.turns = []
        session.requirements = Requirements()
        session.status = SessionStatus.DISCOVERY
        session.pending_step = None
        session.configuration = None
        session.bound_agent_id = None
        session.touch()
        logger.info(f"Reset session {session_id}")
        return session.snapshot()

    async def list_for_owner(self, owner_id: str) -> List[Session]:
        sessions = [s.snapshot() for s in self._sessions.values() if s.owner_id == owner_id]
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    async def evict_inactive(self, max_age_minutes: float) -> int:
        now = utc_now()
        candidates = [
            session_id for session_id, session in list(self._sessions.items())
            if is_expired(session.last_activity, max_age_minutes, now) and not self._pins.get(session_id)
        ]

        evicted = 0
        for session_id in candidates:
            async with self.lock(session_id):
                session = self._sessions.get(session_id)
                if session is None or self._pins.get(session_id):
                    continue
                if not is_expired(session.last_activity, max_age_minutes):
                    continue
                del self._sessions[session_id]
                evicted += 1

        for session_id in candidates:
            lock = self._locks.get(session_id)
            if session_id not in self._sessions and lock is not None and not lock.locked():
                del self._locks[session_id]

        if evicted:
            logger.info(f"Evicted {evicted} inactive session(s)")
        return evicted

    @asynccontextmanager
    async def lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield

    def pin(self, session_id: str):
        self._pins[session_id] = self._pins.get(session_id, 0) + 1

    def unpin(self, session_id: str):
        count = self._pins.get(session_id, 0) - 1
        if count > 0:
            self._pins[session_id] = count
        else:
            self._pins.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._sessions)
