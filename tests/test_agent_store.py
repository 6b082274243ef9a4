"""
Tests for the in-memory agent repository
"""
import asyncio

import pytest

from agent_discovery.schemas.api_models import GeneratedConfiguration
from agent_discovery.services.agent_store import InMemoryAgentRepository


@pytest.fixture
def config():
    return GeneratedConfiguration(
        name="Assistant Restaurant Premium",
        description="Assistant IA",
        instructions="Tu es un assistant.",
        template_id="hospitality",
        catalog_version="1",
        created_at="2026-01-01T00:00:00+00:00",
    )


class TestInMemoryAgentRepository:
    """Test storage of generated agents"""

    def test_create_and_get(self, config):
        repo = InMemoryAgentRepository()
        agent_id = asyncio.run(repo.create_agent(config, owner_id="usr_42"))

        record = asyncio.run(repo.get_agent(agent_id))
        assert record.owner_id == "usr_42"
        assert record.configuration == config

    def test_list_by_owner(self, config):
        repo = InMemoryAgentRepository()
        mine = asyncio.run(repo.create_agent(config, owner_id="usr_42"))
        asyncio.run(repo.create_agent(config, owner_id="usr_7"))

        assert [r.agent_id for r in asyncio.run(repo.list_agents("usr_42"))] == [mine]
        assert len(asyncio.run(repo.list_agents())) == 2

    def test_delete(self, config):
        repo = InMemoryAgentRepository()
        agent_id = asyncio.run(repo.create_agent(config))

        assert asyncio.run(repo.delete_agent(agent_id)) is True
        assert asyncio.run(repo.get_agent(agent_id)) is None
        assert asyncio.run(repo.delete_agent(agent_id)) is False
