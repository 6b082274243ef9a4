"""
Discovery state machine.

Pure decision logic: given the accumulated `Requirements`, return the next
unanswered step and its question, or COMPLETE. No I/O, no side effects;
calling `next_step` twice on the same value yields the same result.

Step order:
    business_type → key_features → target_audience → technical_features →
    integrations (optional) → validation → sandbox_test → COMPLETE
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from agent_discovery.core.constants import DiscoveryStep, QuestionCategory
from agent_discovery.schemas.api_models import Requirements


@dataclass(frozen=True)
class DiscoveryQuestion:
    """Immutable catalog entry for one discovery step"""
    id: DiscoveryStep
    question: str
    category: QuestionCategory
    required: bool
    suggestions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class NextStep:
    """Outcome of evaluating the state machine"""
    step: DiscoveryStep
    question: Optional[DiscoveryQuestion] = None

    @property
    def is_complete(self) -> bool:
        return self.step == DiscoveryStep.COMPLETE


DISCOVERY_QUESTIONS: Tuple[DiscoveryQuestion, ...] = (
    DiscoveryQuestion(
        id=DiscoveryStep.BUSINESS_TYPE,
        question="Quel est le type d'entreprise ou d'activité pour laquelle vous souhaitez créer cet agent IA ?",
        category=QuestionCategory.BUSINESS,
        required=True,
        suggestions=("Un restaurant", "Une boutique en ligne", "Un cabinet médical", "Une agence immobilière"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.KEY_FEATURES,
        question="Quelles fonctionnalités clés souhaitez-vous que l'agent possède ? (ex: réservations, FAQ, suivi de commandes)",
        category=QuestionCategory.BUSINESS,
        required=True,
        suggestions=("Réservations", "Répondre aux questions fréquentes", "Suivi de commandes", "Prise de rendez-vous"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.TARGET_AUDIENCE,
        question="Qui sera l'audience principale de cet agent ? (ex: clients, employés, prospects)",
        category=QuestionCategory.BUSINESS,
        required=True,
        suggestions=("Mes clients", "Des touristes", "Mes employés", "Des prospects"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.TECHNICAL_FEATURES,
        question="Quel niveau de sophistication souhaitez-vous ? (simple, modéré ou avancé) Avez-vous des contraintes techniques particulières ?",
        category=QuestionCategory.TECHNICAL,
        required=True,
        suggestions=("Simple", "Modéré", "Avancé"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.INTEGRATIONS,
        question="Avec quels systèmes ou services souhaitez-vous intégrer l'agent ? (ex: CRM, calendrier, email)",
        category=QuestionCategory.TECHNICAL,
        required=False,
        suggestions=("Google Calendar", "Gmail", "Un CRM", "Aucune pour l'instant"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.VALIDATION,
        question="Voulez-vous que je valide la configuration de l'agent avant de le générer ?",
        category=QuestionCategory.PREFERENCES,
        required=True,
        suggestions=("Oui, validez la configuration", "Non, générez directement"),
    ),
    DiscoveryQuestion(
        id=DiscoveryStep.SANDBOX_TEST,
        question="Souhaitez-vous tester l'agent dans un environnement sandbox avant de le déployer ?",
        category=QuestionCategory.PREFERENCES,
        required=True,
        suggestions=("Oui, je veux le tester", "Non merci"),
    ),
)

_QUESTIONS_BY_STEP: Dict[DiscoveryStep, DiscoveryQuestion] = {q.id: q for q in DISCOVERY_QUESTIONS}


def _answered(step: DiscoveryStep) -> Callable[[Requirements], bool]:
    return lambda r: step in r.answered_steps


# Satisfaction predicate per step, evaluated in catalog order
_SATISFIED: Dict[DiscoveryStep, Callable[[Requirements], bool]] = {
    DiscoveryStep.BUSINESS_TYPE: lambda r: bool(r.business_type),
    DiscoveryStep.KEY_FEATURES: lambda r: len(r.key_features) > 0,
    DiscoveryStep.TARGET_AUDIENCE: lambda r: bool(r.target_audience),
    DiscoveryStep.TECHNICAL_FEATURES: _answered(DiscoveryStep.TECHNICAL_FEATURES),
    DiscoveryStep.INTEGRATIONS: lambda r: bool(r.integrations_needed) or DiscoveryStep.INTEGRATIONS in r.answered_steps,
    DiscoveryStep.VALIDATION: _answered(DiscoveryStep.VALIDATION),
    DiscoveryStep.SANDBOX_TEST: _answered(DiscoveryStep.SANDBOX_TEST),
}


def question_for(step: DiscoveryStep) -> DiscoveryQuestion:
    """
    Catalog entry for a step

    Raises:
        KeyError: For COMPLETE, which has no question
    """
    return _QUESTIONS_BY_STEP[step]


def is_step_satisfied(step: DiscoveryStep, requirements: Requirements) -> bool:
    """True if `step` needs no further answer"""
    if step == DiscoveryStep.COMPLETE:
        return True
    return _SATISFIED[step](requirements)


def next_step(requirements: Requirements) -> NextStep:
    """
    Determine the next unanswered step.

    Filled slots are skipped, so a first utterance that already names the
    features and the audience jumps straight past those questions.

    Args:
        requirements: Accumulated requirements

    Returns:
        NextStep with the question to ask, or NextStep(COMPLETE)
    """
    for question in DISCOVERY_QUESTIONS:
        if not _SATISFIED[question.id](requirements):
            return NextStep(step=question.id, question=question)
    return NextStep(step=DiscoveryStep.COMPLETE)


def progress(requirements: Requirements) -> Tuple[int, int]:
    """
    Discovery progress

    Returns:
        (satisfied steps, total steps)
    """
    done = sum(1 for q in DISCOVERY_QUESTIONS if _SATISFIED[q.id](requirements))
    return done, len(DISCOVERY_QUESTIONS)
