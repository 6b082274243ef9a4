"""
Tests for intent classification
"""
import asyncio
import json

import pytest

from agent_discovery.core.constants import Complexity, DiscoveryStep, IntentType, Role
from agent_discovery.core.errors import CompletionUnavailable, MalformedExtraction
from agent_discovery.discovery.intent import (
    FallbackIntentClassifier,
    KeywordIntentClassifier,
    LLMIntentClassifier,
    canonical_business_type,
    canonical_features,
    is_correction,
    is_question,
)
from agent_discovery.schemas.api_models import Requirements

from tests.conftest import KOREAN_RESTAURANT, FakeCompletionService


def classify(classifier, utterance, context=None, bound_agent_id=None, pending_step=None):
    return asyncio.run(classifier.classify(utterance, context or Requirements(), bound_agent_id, pending_step))


class TestKeywordIntentClassifier:
    """Test the deterministic heuristic"""

    @pytest.fixture
    def classifier(self):
        return KeywordIntentClassifier()

    @pytest.fixture
    def restaurant_context(self):
        return Requirements(business_type="restaurant", key_features=["réservations"])

    def test_korean_restaurant(self, classifier):
        result = classify(classifier, KOREAN_RESTAURANT)

        assert result.type == IntentType.CREATE_AGENT
        assert result.source == "keyword"
        assert result.extracted.business_type == "restaurant"
        assert result.extracted.key_features == ["réservations"]
        assert result.extracted.target_audience is None
        assert result.extracted.objectives == KOREAN_RESTAURANT

    def test_french_description(self, classifier):
        result = classify(
            classifier,
            "J'ai une boutique en ligne et je veux gérer le suivi de commandes et les retours pour mes clients"
        )

        assert result.type == IntentType.CREATE_AGENT
        assert result.extracted.business_type == "ecommerce"
        assert result.extracted.key_features == ["suivi de commandes", "retours et échanges"]
        assert result.extracted.target_audience == "clients"

    def test_feature_noun_is_not_an_audience(self, classifier):
        result = classify(classifier, "Je veux un agent de support client pour mes employés")

        assert result.extracted.key_features == ["support client"]
        assert result.extracted.target_audience == "employés"

    def test_short_audience_answer(self, classifier, restaurant_context):
        result = classify(
            classifier, "Des touristes et des familles", restaurant_context,
            pending_step=DiscoveryStep.TARGET_AUDIENCE
        )

        assert result.type == IntentType.FILL_SLOT
        assert result.extracted.target_audience == "touristes, familles"

    @pytest.mark.parametrize("pending_step", [None, DiscoveryStep.KEY_FEATURES])
    def test_short_reply_names_no_audience_outside_its_question(self, classifier, restaurant_context, pending_step):
        result = classify(classifier, "envoyer des emails aux clients", restaurant_context, pending_step=pending_step)

        assert result.extracted.target_audience is None
        assert result.extracted.integrations_needed == ["Email"]

    def test_deploy_takes_precedence(self, classifier, restaurant_context):
        result = classify(classifier, "Je veux déployer mon agent avec Google Calendar", restaurant_context)
        assert result.type == IntentType.DEPLOY

    def test_integrate_verb(self, classifier, restaurant_context):
        result = classify(classifier, "Comment connecter Gmail ?", restaurant_context)

        assert result.type == IntentType.INTEGRATE
        assert result.extracted.integrations_needed == ["Gmail"]

    def test_bare_integration_with_context(self, classifier, restaurant_context):
        result = classify(classifier, "Google Calendar", restaurant_context)

        assert result.type == IntentType.INTEGRATE
        assert result.extracted.integrations_needed == ["Google Calendar"]

    def test_correction_with_context(self, classifier, restaurant_context):
        result = classify(classifier, "En fait, c'est un hôtel", restaurant_context)

        assert result.type == IntentType.FILL_SLOT
        assert result.is_correction is True
        assert result.extracted.business_type == "hotel"

    def test_complexity_answer(self, classifier, restaurant_context):
        result = classify(classifier, "Simple", restaurant_context)

        assert result.type == IntentType.FILL_SLOT
        assert result.extracted.complexity == Complexity.SIMPLE

    def test_unrecognized_reply_is_general_info(self, classifier, restaurant_context):
        result = classify(classifier, "Oui", restaurant_context)

        assert result.type == IntentType.GENERAL_INFO
        assert result.extracted.is_empty()

    def test_objectives_not_overwritten_when_known(self, classifier):
        context = Requirements(objectives="gérer les réservations")
        result = classify(classifier, "Je voudrais créer un assistant pour mon hôtel", context)

        assert result.type == IntentType.CREATE_AGENT
        assert result.extracted.objectives is None

    def test_context_is_not_mutated(self, classifier, restaurant_context):
        before = restaurant_context.model_copy(deep=True)
        classify(classifier, "Nous voulons aussi le menu", restaurant_context)
        assert restaurant_context == before


class TestVocabularyHelpers:
    """Test canonicalization helpers"""

    def test_canonical_business_type(self):
        assert canonical_business_type("restaurant coréen") == "restaurant"
        assert canonical_business_type("Cabinet dentaire") == "healthcare"
        assert canonical_business_type("  une   boulangerie ") == "une boulangerie"
        assert canonical_business_type(None) is None

    def test_canonical_features(self):
        assert canonical_features(["Réservations", "booking", "Click & collect", ""]) == ["réservations", "commandes"]

    def test_is_correction(self):
        assert is_correction("Actually it's a hotel")
        assert is_correction("Finalement plutôt pour des étudiants")
        assert not is_correction("Des touristes")

    def test_is_question(self):
        assert is_question("Comment ça marche ?")
        assert is_question("what can the agent do")
        assert not is_question("Non merci")


class TestLLMIntentClassifier:
    """Test the completion-backed classifier"""

    @pytest.fixture
    def payload(self):
        return {
            "type": "create",
            "confidence": 0.92,
            "extractedInfo": {
                "businessType": "restaurant coréen",
                "features": ["Réservations"],
                "targetAudience": None,
                "integrations": "Google Calendar",
                "complexity": "simple",
            },
        }

    def test_parses_fenced_reply_with_aliases(self, settings, payload):
        service = FakeCompletionService([f"```json\n{json.dumps(payload)}\n```"])
        result = classify(LLMIntentClassifier(service, settings), KOREAN_RESTAURANT)

        assert result.type == IntentType.CREATE_AGENT
        assert result.source == "llm"
        assert result.confidence == pytest.approx(0.92)
        assert result.extracted.business_type == "restaurant"
        assert result.extracted.key_features == ["réservations"]
        assert result.extracted.integrations_needed == ["Google Calendar"]
        assert result.extracted.complexity == Complexity.SIMPLE
        assert result.extracted.objectives == KOREAN_RESTAURANT

    def test_sends_system_and_user_turns(self, settings, payload):
        service = FakeCompletionService([json.dumps(payload)])
        classify(LLMIntentClassifier(service, settings), KOREAN_RESTAURANT)

        turns = service.calls[0]
        assert [t.role for t in turns] == [Role.SYSTEM, Role.USER]
        assert KOREAN_RESTAURANT in turns[1].content
        assert service.options[0].temperature == settings.CLASSIFIER_TEMPERATURE

    def test_context_aware_prompt(self, settings):
        classifier = LLMIntentClassifier(FakeCompletionService(), settings)
        context = Requirements(business_type="restaurant", key_features=["menu"])

        assert "Contexte existant" in classifier.build_prompt("Et aussi la livraison", context)
        assert "Contexte existant" not in classifier.build_prompt("Bonjour", Requirements())
        assert "agt_1" in classifier.build_prompt("Bonjour", Requirements(), bound_agent_id="agt_1")

    def test_prompt_names_the_pending_question(self, settings):
        classifier = LLMIntentClassifier(FakeCompletionService(), settings)
        context = Requirements(business_type="restaurant")

        prompt = classifier.build_prompt("Des touristes", context, pending_step=DiscoveryStep.TARGET_AUDIENCE)
        assert "Dernière question posée : Qui sera l'audience principale" in prompt
        assert "Dernière question posée" not in classifier.build_prompt(
            "Bonjour", context, pending_step=DiscoveryStep.COMPLETE
        )

    def test_correction_flag(self, settings):
        reply = json.dumps({"type": "fill_slot", "correction": True, "extracted": {"target_audience": "étudiants"}})
        context = Requirements(business_type="restaurant", target_audience="touristes")
        result = classify(LLMIntentClassifier(FakeCompletionService([reply]), settings), "Pour des étudiants", context)

        assert result.type == IntentType.FILL_SLOT
        assert result.is_correction is True
        assert result.extracted.target_audience == "étudiants"

    @pytest.mark.parametrize("reply", [
        "je ne sais pas",
        "[1, 2, 3]",
        '{"type": "dance"}',
        '{"type": "deploy", "confidence": 7}',
    ])
    def test_malformed_reply(self, settings, reply):
        classifier = LLMIntentClassifier(FakeCompletionService([reply]), settings)
        with pytest.raises(MalformedExtraction):
            classify(classifier, "Bonjour")

    def test_completion_failure_propagates(self, settings):
        classifier = LLMIntentClassifier(FakeCompletionService([CompletionUnavailable("quota")]), settings)
        with pytest.raises(CompletionUnavailable):
            classify(classifier, "Bonjour")


class TestFallbackIntentClassifier:
    """Test degradation to the keyword heuristic"""

    @pytest.mark.parametrize("reply", [CompletionUnavailable("timeout"), "pas du JSON"])
    def test_degrades_to_keywords(self, settings, reply):
        classifier = FallbackIntentClassifier(
            primary=LLMIntentClassifier(FakeCompletionService([reply]), settings),
            fallback=KeywordIntentClassifier(),
        )
        result = classify(classifier, KOREAN_RESTAURANT)

        assert result.source == "keyword"
        assert result.type == IntentType.CREATE_AGENT
        assert result.extracted.business_type == "restaurant"

    def test_primary_result_used_when_available(self, settings):
        reply = json.dumps({"type": "deploy", "confidence": 0.95})
        classifier = FallbackIntentClassifier(
            primary=LLMIntentClassifier(FakeCompletionService([reply]), settings),
            fallback=KeywordIntentClassifier(),
        )
        result = classify(classifier, "Mettre en ligne", Requirements(business_type="restaurant"))

        assert result.source == "llm"
        assert result.type == IntentType.DEPLOY

    def test_pending_step_reaches_the_fallback(self, settings, caplog):
        classifier = FallbackIntentClassifier(
            primary=LLMIntentClassifier(FakeCompletionService([CompletionUnavailable("timeout")]), settings),
            fallback=KeywordIntentClassifier(),
        )
        result = classify(
            classifier, "Des touristes", Requirements(business_type="restaurant"),
            pending_step=DiscoveryStep.TARGET_AUDIENCE
        )

        assert result.source == "keyword"
        assert result.extracted.target_audience == "touristes"
        assert "Classification degraded" in caplog.text
        assert "CompletionUnavailable: timeout" in caplog.text
