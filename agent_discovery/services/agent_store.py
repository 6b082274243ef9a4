"""
Agent Repository
Persists generated configurations and hands back the agent id bound to
the discovery session.
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from agent_discovery.core.logging import get_logger
from agent_discovery.schemas.api_models import AgentRecord, GeneratedConfiguration
from agent_discovery.utils.ids import generate_agent_id
from agent_discovery.utils.time import iso_now

logger = get_logger(__name__)


class AgentRepository(ABC):
    """Persistence collaborator for generated agents"""

    @abstractmethod
    async def create_agent(
        self,
        config: GeneratedConfiguration,
        owner_id: Optional[str] = None
    ) -> str:
        """
        Store a configuration as a new draft agent

        Returns:
            New agent id
        """

    @abstractmethod
    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]: ...

    @abstractmethod
    async def list_agents(self, owner_id: Optional[str] = None) -> List[AgentRecord]: ...

    @abstractmethod
    async def delete_agent(self, agent_id: str) -> bool:
        """Remove an agent; False if it did not exist"""


class InMemoryAgentRepository(AgentRepository):
    """
    Process-local agent storage

    Usage:
        repo = InMemoryAgentRepository()
        agent_id = await repo.create_agent(config, owner_id="usr_42")
        record = await repo.get_agent(agent_id)
    """

    def __init__(self):
        self._agents: Dict[str, AgentRecord] = {}

    async def create_agent(
        self,
        config: GeneratedConfiguration,
        owner_id: Optional[str] = None
    ) -> str:
        agent_id = generate_agent_id()
        self._agents[agent_id] = AgentRecord(
            agent_id=agent_id,
            owner_id=owner_id,
            configuration=config.model_copy(deep=True),
            created_at=iso_now(),
        )
        logger.info(f"Stored agent {agent_id} ('{config.name}', template={config.template_id})")
        return agent_id

    async def get_agent(self, agent_id: str) -> Optional[AgentRecord]:
        record = self._agents.get(agent_id)
        return record.model_copy(deep=True) if record else None

    async def list_agents(self, owner_id: Optional[str] = None) -> List[AgentRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._agents.values()
            if owner_id is None or record.owner_id == owner_id
        ]

    async def delete_agent(self, agent_id: str) -> bool:
        record = self._agents.pop(agent_id, None)
        if record is None:
            return False
        logger.info(f"Deleted agent {agent_id}")
        return True
