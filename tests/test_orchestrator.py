"""
Tests for the discovery orchestrator

Each scenario runs inside a single event loop so per-session locks are
shared by the turns they serialize.
"""
import asyncio
import json

import pytest

from agent_discovery.core.constants import Complexity, DiscoveryStep, IntentType, SessionStatus
from agent_discovery.core.errors import InvalidTurnRequest, SessionNotFound
from agent_discovery.discovery.intent import IntentClassifier, KeywordIntentClassifier
from agent_discovery.discovery.responders import APOLOGY
from agent_discovery.schemas.api_models import TurnRequest
from agent_discovery.services.agent_store import InMemoryAgentRepository

from tests.conftest import (
    KOREAN_RESTAURANT,
    RESTAURANT_CONVERSATION,
    FakeCompletionService,
    SlowClassifier,
)

OWNER = "usr_42"


async def converse(orchestrator, messages, session_id=None):
    responses = []
    for message in messages:
        response = await orchestrator.handle_turn(
            TurnRequest(session_id=session_id, owner_id=OWNER, message=message)
        )
        session_id = response.session_id
        responses.append(response)
    return responses


class FailingRepository(InMemoryAgentRepository):
    async def create_agent(self, config, owner_id=None):
        raise RuntimeError("database unavailable")


class CrashingClassifier(IntentClassifier):
    async def classify(self, utterance, context, bound_agent_id=None, pending_step=None):
        raise RuntimeError("classifier bug")


class TestDiscoveryFlow:
    """Test turns during discovery"""

    def test_first_turn_extracts_and_skips_filled_slots(self, make_orchestrator, store):
        orchestrator = make_orchestrator()
        [response] = asyncio.run(converse(orchestrator, [KOREAN_RESTAURANT]))

        assert response.success is True
        assert response.intent == IntentType.CREATE_AGENT
        assert response.step == DiscoveryStep.TARGET_AUDIENCE
        assert response.status == SessionStatus.DISCOVERY
        assert "Qui sera l'audience principale" in response.message
        assert "Des touristes" in response.suggested_replies

        session = asyncio.run(store.get(response.session_id))
        assert session.requirements.business_type == "restaurant"
        assert session.requirements.key_features == ["réservations"]
        assert session.requirements.target_audience is None
        assert len(session.turns) == 2

    def test_full_conversation_reaches_complete(self, make_orchestrator, store, agent_repository):
        orchestrator = make_orchestrator()
        responses = asyncio.run(converse(orchestrator, RESTAURANT_CONVERSATION))

        assert [r.step for r in responses] == [
            DiscoveryStep.TARGET_AUDIENCE,
            DiscoveryStep.TECHNICAL_FEATURES,
            DiscoveryStep.INTEGRATIONS,
            DiscoveryStep.VALIDATION,
            DiscoveryStep.SANDBOX_TEST,
            DiscoveryStep.COMPLETE,
        ]

        final = responses[-1]
        assert final.status == SessionStatus.COMPLETE
        assert final.bound_agent_id is not None
        config = final.generated_configuration
        assert config.template_id == "hospitality"
        assert config.capabilities == [
            "réservations",
            "Menu et plats",
            "Horaires et localisation",
            "Événements spéciaux",
        ]
        assert config.integrations == ["Google Calendar"]
        assert config.target_audience == "touristes, familles"
        assert config.personalized is False
        assert "Assistant Restaurant Premium" in final.message

        record = asyncio.run(agent_repository.get_agent(final.bound_agent_id))
        assert record.owner_id == OWNER
        assert record.status == "draft"

        session = asyncio.run(store.get(final.session_id))
        assert session.bound_agent_id == final.bound_agent_id
        assert session.configuration == config
        assert len(session.turns) == 2 * len(RESTAURANT_CONVERSATION)

    def test_greeting_on_empty_first_message(self, make_orchestrator):
        [response] = asyncio.run(converse(make_orchestrator(), ["Bonjour"]))

        assert response.success is True
        assert response.message.startswith("Bonjour")
        assert response.step == DiscoveryStep.BUSINESS_TYPE
        assert "Créer un agent pour mon restaurant" in response.suggested_replies

    def test_unstructured_reply_fills_pending_slot(self, make_orchestrator, store):
        responses = asyncio.run(converse(make_orchestrator(), ["Bonjour", "Une boulangerie"]))

        assert responses[-1].step == DiscoveryStep.KEY_FEATURES
        session = asyncio.run(store.get(responses[-1].session_id))
        assert session.requirements.business_type == "Une boulangerie"

    def test_stated_complexity_is_not_asked_again(self, make_orchestrator, store):
        responses = asyncio.run(converse(make_orchestrator(), [
            "Je veux un agent avancé pour mon restaurant pour gérer les réservations pour des touristes",
            "Simple",
        ]))

        assert responses[0].step == DiscoveryStep.INTEGRATIONS
        assert responses[1].step == DiscoveryStep.VALIDATION
        session = asyncio.run(store.get(responses[-1].session_id))
        assert session.requirements.complexity == Complexity.COMPLEX
        assert session.requirements.target_audience == "touristes"

    def test_feature_reply_mentioning_integration_fills_features(self, make_orchestrator, store):
        responses = asyncio.run(converse(make_orchestrator(), [
            "Bonjour", "Un restaurant", "envoyer des emails aux clients",
        ]))

        assert responses[-1].step == DiscoveryStep.TARGET_AUDIENCE
        session = asyncio.run(store.get(responses[-1].session_id))
        assert session.requirements.key_features == ["envoyer des emails aux clients"]
        assert session.requirements.integrations_needed == ["Email"]
        assert session.requirements.target_audience is None

    def test_deploy_before_configuration(self, make_orchestrator):
        [response] = asyncio.run(converse(make_orchestrator(), ["Je veux déployer mon agent"]))

        assert response.success is True
        assert response.intent == IntentType.DEPLOY
        assert "pas encore créé" in response.message
        assert response.step == DiscoveryStep.BUSINESS_TYPE
        assert response.bound_agent_id is None

    def test_general_question_repeats_pending_question(self, make_orchestrator):
        responses = asyncio.run(converse(make_orchestrator(), [KOREAN_RESTAURANT, "Comment ça marche ?"]))

        answer = responses[-1]
        assert answer.intent == IntentType.GENERAL_INFO
        assert answer.message.endswith("Qui sera l'audience principale de cet agent ? (ex: clients, employés, prospects)")
        assert answer.step == DiscoveryStep.TARGET_AUDIENCE

    def test_completion_backed_turn(self, make_orchestrator, store):
        classification = json.dumps({
            "type": "create_agent",
            "confidence": 0.95,
            "extracted": {
                "business_type": "restaurant",
                "objectives": "gérer les réservations",
                "target_audience": "touristes",
                "key_features": ["réservations"],
            },
        })
        orchestrator = make_orchestrator(completion_service=FakeCompletionService([classification]))
        [response] = asyncio.run(converse(orchestrator, [KOREAN_RESTAURANT]))

        assert response.step == DiscoveryStep.TECHNICAL_FEATURES
        session = asyncio.run(store.get(response.session_id))
        assert session.requirements.objectives == "gérer les réservations"
        assert session.requirements.target_audience == "touristes"


class TestAfterCompletion:
    """Test turns once a configuration exists"""

    @pytest.fixture
    def finish(self, make_orchestrator):
        def _finish(extra_messages, **kwargs):
            orchestrator = make_orchestrator(**kwargs)

            async def scenario():
                responses = await converse(orchestrator, RESTAURANT_CONVERSATION)
                return responses + await converse(orchestrator, extra_messages, responses[-1].session_id)

            return orchestrator, asyncio.run(scenario())

        return _finish

    def test_never_returns_to_discovery(self, finish, store):
        _, responses = finish(["En fait, notre audience ce sont surtout des étudiants"])
        response = responses[-1]

        assert response.status == SessionStatus.COMPLETE
        assert response.step == DiscoveryStep.COMPLETE
        assert response.intent == IntentType.FILL_SLOT
        assert "mis à jour" in response.message

        session = asyncio.run(store.get(response.session_id))
        assert session.requirements.target_audience == "étudiants"
        assert session.bound_agent_id == responses[-2].bound_agent_id

    def test_deploy_options(self, finish):
        _, responses = finish(["Je veux déployer sur mon site"])
        response = responses[-1]

        assert response.intent == IntentType.DEPLOY
        assert "Widget flottant" in response.suggested_replies
        assert response.status == SessionStatus.COMPLETE

    def test_integration_request(self, finish, store):
        _, responses = finish(["Connecter avec Gmail"])
        response = responses[-1]

        assert response.intent == IntentType.INTEGRATE
        assert "Gmail" in response.message
        session = asyncio.run(store.get(response.session_id))
        assert session.requirements.integrations_needed == ["Google Calendar", "Gmail"]

    def test_reset_is_the_only_way_back(self, finish, store):
        orchestrator, responses = finish([])
        session_id = responses[-1].session_id

        session = asyncio.run(orchestrator.reset_session(session_id))
        assert session.status == SessionStatus.DISCOVERY
        assert session.configuration is None

        [response] = asyncio.run(converse(orchestrator, [KOREAN_RESTAURANT], session_id))
        assert response.status == SessionStatus.DISCOVERY
        assert response.step == DiscoveryStep.TARGET_AUDIENCE

    def test_persistence_failure_still_returns_configuration(self, finish, store):
        _, responses = finish([], repository=FailingRepository())
        response = responses[-1]

        assert response.success is True
        assert response.status == SessionStatus.COMPLETE
        assert response.bound_agent_id is None
        assert response.generated_configuration is not None
        assert "n'a pas pu être enregistrée" in response.message

        session = asyncio.run(store.get(response.session_id))
        assert session.configuration is not None


class TestTurnErrors:
    """Test request validation and failure isolation"""

    def test_missing_message(self, make_orchestrator):
        with pytest.raises(InvalidTurnRequest):
            asyncio.run(make_orchestrator().handle_turn(TurnRequest(owner_id=OWNER, message="  ")))

    def test_new_session_requires_owner(self, make_orchestrator):
        with pytest.raises(InvalidTurnRequest):
            asyncio.run(make_orchestrator().handle_turn(TurnRequest(message="Bonjour")))

    def test_unknown_session_without_owner(self, make_orchestrator):
        with pytest.raises(SessionNotFound):
            asyncio.run(make_orchestrator().handle_turn(TurnRequest(session_id="missing", message="Bonjour")))

    def test_unknown_session_with_owner_is_created(self, make_orchestrator):
        [response] = asyncio.run(converse(make_orchestrator(), [KOREAN_RESTAURANT], session_id="conv-9"))
        assert response.session_id == "conv-9"

    def test_failure_leaves_session_unchanged(self, make_orchestrator, store):
        [first] = asyncio.run(converse(make_orchestrator(), [KOREAN_RESTAURANT]))
        before = asyncio.run(store.get(first.session_id))

        [response] = asyncio.run(converse(
            make_orchestrator(classifier=CrashingClassifier()), ["Des touristes"], first.session_id
        ))

        assert response.success is False
        assert response.message == APOLOGY
        assert "classifier bug" in response.error
        after = asyncio.run(store.get(first.session_id))
        assert after.version == before.version
        assert len(after.turns) == len(before.turns)
        assert store._pins == {}


class TestConcurrency:
    """Test overlapping turns on one session"""

    def test_overlapping_turns_both_apply(self, make_orchestrator, store):
        [first] = asyncio.run(converse(make_orchestrator(), [KOREAN_RESTAURANT]))
        session_id = first.session_id
        slow = make_orchestrator(classifier=SlowClassifier(KeywordIntentClassifier(), delay=0.05))

        async def scenario():
            return await asyncio.gather(
                slow.handle_turn(TurnRequest(session_id=session_id, message="Des touristes")),
                slow.handle_turn(TurnRequest(session_id=session_id, message="Nous voulons aussi le menu")),
            )

        responses = asyncio.run(scenario())

        assert all(r.success for r in responses)
        session = asyncio.run(store.get(session_id))
        assert session.requirements.target_audience == "touristes"
        assert session.requirements.key_features == ["réservations", "menu"]
        assert session.pending_step == DiscoveryStep.TECHNICAL_FEATURES
        assert len(session.turns) == 6
        assert store._pins == {}

    def test_losing_completion_discards_its_agent(self, make_orchestrator, store, agent_repository):
        responses = asyncio.run(converse(make_orchestrator(), RESTAURANT_CONVERSATION[:-1]))
        session_id = responses[-1].session_id
        assert responses[-1].step == DiscoveryStep.SANDBOX_TEST
        slow = make_orchestrator(classifier=SlowClassifier(KeywordIntentClassifier(), delay=0.05))

        async def scenario():
            return await asyncio.gather(
                slow.handle_turn(TurnRequest(session_id=session_id, message="Non merci")),
                slow.handle_turn(TurnRequest(session_id=session_id, message="Non merci")),
            )

        results = asyncio.run(scenario())

        assert all(r.success for r in results)
        session = asyncio.run(store.get(session_id))
        assert session.status == SessionStatus.COMPLETE
        agents = asyncio.run(agent_repository.list_agents())
        assert [a.agent_id for a in agents] == [session.bound_agent_id]
        assert {r.bound_agent_id for r in results} == {session.bound_agent_id}

    def test_cancelled_turn_leaves_no_trace(self, make_orchestrator, store):
        [first] = asyncio.run(converse(make_orchestrator(), [KOREAN_RESTAURANT]))
        before = asyncio.run(store.get(first.session_id))
        slow = make_orchestrator(classifier=SlowClassifier(KeywordIntentClassifier(), delay=1.0))

        async def scenario():
            task = asyncio.create_task(
                slow.handle_turn(TurnRequest(session_id=first.session_id, message="Des touristes"))
            )
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        after = asyncio.run(store.get(first.session_id))
        assert after.version == before.version
        assert after.requirements == before.requirements
        assert store._pins == {}
