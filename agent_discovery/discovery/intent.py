"""
Intent Classifier
Maps a user utterance, read against the session context, onto one of the
five intents and extracts partial requirements from it.

Two strategies share one interface:
- LLMIntentClassifier: asks the completion service for structured JSON
- KeywordIntentClassifier: deterministic rules over an en/fr vocabulary

FallbackIntentClassifier composes them; classification never fails.
"""
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Pattern, Sequence, Tuple

from pydantic import ValidationError

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.constants import INTENT_ALIASES, DiscoveryStep, IntentType, Role
from agent_discovery.core.errors import (
    ClassificationDegraded,
    CompletionUnavailable,
    MalformedExtraction,
)
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery.requirements import complexity_from_text, union_preserving_order
from agent_discovery.discovery.state_machine import question_for
from agent_discovery.schemas.api_models import (
    ClassificationPayload,
    IntentClassification,
    Requirements,
    RequirementsUpdate,
)
from agent_discovery.services.llm_provider import (
    CompletionOptions,
    CompletionService,
    CompletionTurn,
)
from agent_discovery.utils.json_utils import string_to_json_object

logger = get_logger(__name__)


Vocabulary = Sequence[Tuple[str, Sequence[str]]]


# ============================================================================
# VOCABULARY
# ============================================================================

# Canonical business type -> patterns. First match wins.
BUSINESS_VOCABULARY: Vocabulary = (
    ("restaurant", (r"\brestaurants?\b", r"\bresto\b", r"\bcaf[ée]s?\b", r"\bbistrots?\b", r"\bbistros?\b",
                    r"\bbrasseries?\b", r"\bpizzerias?\b", r"\btraiteurs?\b", r"\bdiner\b")),
    ("hotel", (r"\bh[ôo]tels?\b", r"\bg[îi]tes?\b", r"\bchambres? d'h[ôo]tes\b", r"\bauberges?\b")),
    ("ecommerce", (r"\be-?commerce\b", r"\bboutiques?\b", r"\bshops?\b", r"\bstores?\b", r"\bmagasins?\b",
                   r"\bvente en ligne\b", r"\bonline store\b")),
    ("healthcare", (r"\bcliniques?\b", r"\bclinics?\b", r"\bm[ée]decins?\b", r"\bm[ée]dical(?:e|es|aux)?\b",
                    r"\bmedical\b", r"\bsant[ée]\b", r"\bhealth(?:care)?\b", r"\bdentist(?:e|es|s)?\b",
                    r"\bdentaire\b", r"\bpharmac(?:ie|y)\b", r"\bkin[ée]\b")),
    ("real_estate", (r"\bimmobili[eè]re?s?\b", r"\breal estate\b", r"\brealty\b", r"\bagents? immobiliers?\b")),
    ("education", (r"\b[ée]coles?\b", r"\bschools?\b", r"\bformations?\b", r"\btraining\b", r"\buniversit(?:é|e|y|ies)\b",
                   r"\btutor(?:ing|s)?\b", r"\bcentre de formation\b")),
    ("finance", (r"\bcomptab(?:le|les|ilit[ée])\b", r"\baccounting\b", r"\bbanques?\b", r"\bbanks?\b",
                 r"\bassurances?\b", r"\binsurance\b", r"\bfinanci(?:al|er|[èe]re)\b", r"\bfintech\b")),
)

# Canonical feature -> patterns. Longer phrases are listed first; a matched
# span is consumed so "suivi de commandes" does not also yield "commandes".
FEATURE_VOCABULARY: Vocabulary = (
    ("suivi de commandes", (r"\bsuivi (?:des|de) commandes?\b", r"\border tracking\b", r"\btrack(?:ing)? (?:my |the )?orders?\b")),
    ("support client", (r"\bsupport client\b", r"\bservice client\b", r"\bcustomer (?:support|service)\b")),
    ("qualification de prospects", (r"\bqualification\b", r"\bqualifier\b", r"\bleads?\b")),
    ("retours et échanges", (r"\bretours?\b", r"\b[ée]changes?\b", r"\breturns?\b", r"\brefunds?\b")),
    ("recommandations produits", (r"\brecommandations?\b", r"\brecommend(?:ation|ations)?\b", r"\bconseils? produits?\b")),
    ("horaires et localisation", (r"\bhoraires?\b", r"\bopening hours\b", r"\blocalisation\b", r"\badresse\b", r"\blocation\b")),
    ("réservations", (r"\br[ée]serv\w*", r"\bbook(?:ing|ings)?\b")),
    ("rendez-vous", (r"\brendez[- ]vous\b", r"\brdv\b", r"\bappointments?\b")),
    ("menu", (r"\bmenus?\b", r"\bcarte des plats\b", r"\bplats?\b")),
    ("commandes", (r"\bcommandes?\b", r"\borders?\b", r"\bclick (?:and|&) collect\b")),
    ("livraison", (r"\blivraisons?\b", r"\bdeliver(?:y|ies)\b")),
    ("FAQ", (r"\bfaq\b", r"\bquestions? fr[ée]quentes?\b", r"\bfrequently asked\b", r"\bcommon questions\b")),
    ("facturation", (r"\bfactur\w*", r"\binvoic\w*", r"\bbilling\b")),
    ("paiements", (r"\bpaiements?\b", r"\bpayments?\b")),
    ("devis", (r"\bdevis\b", r"\bquotes?\b", r"\bestimates?\b")),
    ("événements", (r"\b[ée]v[ée]nements?\b", r"\bevents?\b")),
    ("inscriptions", (r"\binscriptions?\b", r"\benrol?lments?\b", r"\bregistrations?\b")),
    ("visites", (r"\bvisites?\b", r"\bviewings?\b")),
    ("catalogue produits", (r"\bcatalogues?\b", r"\bcatalogs?\b")),
)

INTEGRATION_VOCABULARY: Vocabulary = (
    ("Google Calendar", (r"\bgoogle (?:calendar|agenda)\b", r"\bcalendrier(?: google)?\b", r"\bcalendar\b", r"\bagenda\b")),
    ("Gmail", (r"\bgmail\b",)),
    ("Google Drive", (r"\b(?:google )?drive\b",)),
    ("WhatsApp Business", (r"\bwhatsapp\b",)),
    ("CRM", (r"\bcrm\b", r"\bhubspot\b", r"\bsalesforce\b")),
    ("Stripe", (r"\bstripe\b",)),
    ("Shopify", (r"\bshopify\b",)),
    ("Slack", (r"\bslack\b",)),
    ("Email", (r"\be-?mails?\b", r"\bcourriels?\b")),
)

AUDIENCE_VOCABULARY: Vocabulary = (
    ("clients", (r"\bclient(?:e|s|es)?\b", r"\bcustomers?\b")),
    ("touristes", (r"\btouristes?\b", r"\btourists?\b", r"\bvoyageurs?\b", r"\btravell?ers?\b")),
    ("employés", (r"\bemploy[ée]s?\b", r"\bemployees?\b", r"\bstaff\b", r"\b[ée]quipes?\b", r"\bcollaborateurs?\b")),
    ("patients", (r"\bpatients?\b",)),
    ("étudiants", (r"\b[ée]tudiants?\b", r"\bstudents?\b", r"\b[ée]l[èe]ves?\b", r"\blearners?\b")),
    ("prospects", (r"\bprospects?\b",)),
    ("familles", (r"\bfamilles?\b", r"\bfamil(?:y|ies)\b")),
    ("professionnels", (r"\bprofessionnels?\b", r"\bprofessionals?\b", r"\bentreprises\b", r"\bb2b\b")),
    ("particuliers", (r"\bparticuliers\b", r"\bgrand public\b", r"\bgeneral public\b")),
    ("acheteurs", (r"\bacheteurs?\b", r"\bbuyers?\b", r"\blocataires?\b", r"\btenants?\b")),
)

# Audience nouns only count as an audience when introduced this way, so
# "support client" is a feature and not an audience
_AUDIENCE_LEAD = (
    r"(?:\bpour\b|\bfor\b|\bdestin[ée]e?s? (?:à|a|aux)\b|\bs'adresse (?:à|a|aux)\b|\baimed at\b|"
    r"\btargeting\b|\baudience\b|\bcible\b|\bpublic\b)"
)
_AUDIENCE_SHORT_ANSWER = re.compile(
    r"^(?:(?:mes|nos|les|des|my|our|the|surtout|principalement|mainly)\s+)+", re.IGNORECASE
)

_DEPLOY = re.compile(
    r"\bd[ée]ploy\w*|\bdeploy\w*|\bmettre en ligne\b|\bmise en ligne\b|\bpubli(?:er|sh)\b|\bwidget\b|"
    r"\bpage d[ée]di[ée]e\b|\bint[ée]gration compl[èe]te\b",
    re.IGNORECASE
)
_INTEGRATE = re.compile(
    r"\bint[ée]gr(?:er|ez|ation|ations)\b|\bintegrat\w*|\bconnect\w*|\bbrancher\b|\bsynchronis\w*|\bsync\b|\blink\b",
    re.IGNORECASE
)
_CREATE = re.compile(
    r"\bcr[ée]er\b|\bcr[ée]ation\b|\bcreate\b|\bbuild\b|\bconstruire\b|\bnouvel agent\b|\bnew (?:agent|assistant|bot)\b|"
    r"\bje veux\b|\bje voudrais\b|\bj'ai besoin\b|\bi want\b|\bi need\b|\bi'd like\b|\bhelp with\b|"
    r"\bchatbot\b|\bassistant\b|\bagent\b",
    re.IGNORECASE
)
_CORRECTION = re.compile(
    r"\bactually\b|\binstead\b|\ben fait\b|\bplut[ôo]t\b|\bchange\w*|\bcorrection\b|\bcorrige\w*|"
    r"\bfinalement\b|\bje me suis tromp[ée]\b|\bi meant\b",
    re.IGNORECASE
)
_QUESTION_START = re.compile(
    r"^(?:what|how|why|when|can|could|is|are|do|does|qu'est|que|quoi|comment|pourquoi|quand|est-ce|combien|quel|quelle)\b",
    re.IGNORECASE
)

OBJECTIVES_MAX_LENGTH = 200


def _compile(vocabulary: Vocabulary) -> List[Tuple[str, List[Pattern]]]:
    return [(name, [re.compile(p, re.IGNORECASE) for p in patterns]) for name, patterns in vocabulary]


_BUSINESS = _compile(BUSINESS_VOCABULARY)
_FEATURES = _compile(FEATURE_VOCABULARY)
_INTEGRATIONS = _compile(INTEGRATION_VOCABULARY)
_AUDIENCES = _compile(AUDIENCE_VOCABULARY)


def _find_first(compiled: List[Tuple[str, List[Pattern]]], text: str) -> Optional[str]:
    for name, patterns in compiled:
        if any(p.search(text) for p in patterns):
            return name
    return None


def _find_all(compiled: List[Tuple[str, List[Pattern]]], text: str) -> List[str]:
    """All canonical names found in text, ordered by first position"""
    consumed: List[Tuple[int, int]] = []
    hits: List[Tuple[int, str]] = []
    for name, patterns in compiled:
        for pattern in patterns:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < c_end and end > c_start for c_start, c_end in consumed):
                    continue
                consumed.append((start, end))
                hits.append((start, name))
    hits.sort(key=lambda hit: hit[0])
    return union_preserving_order([], [name for _, name in hits])


def _mask(compiled: List[Tuple[str, List[Pattern]]], text: str) -> str:
    """Blank out every vocabulary match, keeping offsets"""
    for _, patterns in compiled:
        for pattern in patterns:
            text = pattern.sub(lambda m: " " * len(m.group(0)), text)
    return text


def canonical_business_type(text: Optional[str]) -> Optional[str]:
    """'restaurant coréen' -> 'restaurant'; unknown domains are returned as given"""
    if not text:
        return None
    return _find_first(_BUSINESS, text) or " ".join(text.split())


def canonical_items(items: Sequence[str], compiled: List[Tuple[str, List[Pattern]]]) -> List[str]:
    result = []
    for item in items:
        if not isinstance(item, str) or not item.strip():
            continue
        result.append(_find_first(compiled, item) or " ".join(item.split()))
    return union_preserving_order([], result)


def canonical_features(items: Sequence[str]) -> List[str]:
    return canonical_items(items, _FEATURES)


def canonical_integrations(items: Sequence[str]) -> List[str]:
    return canonical_items(items, _INTEGRATIONS)


def is_correction(utterance: str) -> bool:
    """True if the utterance carries an explicit correction marker"""
    return bool(_CORRECTION.search(utterance or ""))


def is_question(utterance: str) -> bool:
    text = (utterance or "").strip()
    return text.endswith("?") or bool(_QUESTION_START.match(text))


# ============================================================================
# INTERFACE
# ============================================================================

class IntentClassifier(ABC):
    """Classifies one utterance against the current requirements; never mutates them"""

    @abstractmethod
    async def classify(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str] = None,
        pending_step: Optional[DiscoveryStep] = None
    ) -> IntentClassification:
        """
        Classify an utterance

        Args:
            utterance: Raw user message
            context: Requirements accumulated so far
            bound_agent_id: Agent already generated for the session, if any
            pending_step: Discovery step whose question the user is answering

        Returns:
            Intent, extracted partial requirements and confidence
        """


# ============================================================================
# KEYWORD HEURISTIC
# ============================================================================

class KeywordIntentClassifier(IntentClassifier):
    """
    Deterministic classifier used when the completion service is unavailable.

    Intent precedence: deploy, integrate, create_agent, fill_slot, general_info.
    """

    def extract(self, utterance: str, pending_step: Optional[DiscoveryStep] = None) -> RequirementsUpdate:
        """Extract every slot value the vocabulary recognizes"""
        text = utterance or ""
        return RequirementsUpdate(
            business_type=_find_first(_BUSINESS, text),
            key_features=_find_all(_FEATURES, text),
            integrations_needed=_find_all(_INTEGRATIONS, text),
            target_audience=self._extract_audience(text, pending_step == DiscoveryStep.TARGET_AUDIENCE),
            complexity=complexity_from_text(text),
        )

    def _extract_audience(self, text: str, short_answer: bool = False) -> Optional[str]:
        # "support client" names a feature, not an audience
        stripped = _mask(_FEATURES, text).strip().rstrip(".!")

        lead = re.search(_AUDIENCE_LEAD + r"(.*)$", stripped, re.IGNORECASE)
        if lead:
            audiences = _find_all(_AUDIENCES, lead.group(1))
            if audiences:
                return ", ".join(audiences)

        # A bare "Des touristes" only names an audience in reply to that question
        if short_answer and len(text.split()) <= 6:
            audiences = _find_all(_AUDIENCES, _AUDIENCE_SHORT_ANSWER.sub("", stripped))
            if audiences:
                return ", ".join(audiences)
        return None

    def _detect_type(
        self,
        utterance: str,
        extracted: RequirementsUpdate,
        context: Requirements,
        bound_agent_id: Optional[str],
        correction: bool
    ) -> Tuple[IntentType, float]:
        has_context = bool(context.business_type) or bound_agent_id is not None

        if _DEPLOY.search(utterance):
            return IntentType.DEPLOY, 0.7
        if _INTEGRATE.search(utterance) or (extracted.integrations_needed and has_context and not extracted.key_features):
            return IntentType.INTEGRATE, 0.7
        if correction and has_context:
            return IntentType.FILL_SLOT, 0.7
        if extracted.business_type and not context.business_type:
            return IntentType.CREATE_AGENT, 0.7
        if _CREATE.search(utterance) and not has_context:
            return IntentType.CREATE_AGENT, 0.6
        if not extracted.is_empty():
            return IntentType.FILL_SLOT, 0.6
        return IntentType.GENERAL_INFO, 0.5

    async def classify(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str] = None,
        pending_step: Optional[DiscoveryStep] = None
    ) -> IntentClassification:
        extracted = self.extract(utterance, pending_step)
        correction = is_correction(utterance)
        intent, confidence = self._detect_type(utterance, extracted, context, bound_agent_id, correction)

        if intent == IntentType.CREATE_AGENT and not context.objectives:
            extracted.objectives = " ".join(utterance.split())[:OBJECTIVES_MAX_LENGTH] or None

        logger.debug(f"Keyword classification: {intent.value} (confidence: {confidence})")
        return IntentClassification(
            type=intent,
            extracted=extracted,
            confidence=confidence,
            is_correction=correction,
            source="keyword",
        )


# ============================================================================
# COMPLETION-BACKED CLASSIFIER
# ============================================================================

SYSTEM_PROMPT = (
    "Tu es un expert en analyse d'intention utilisateur pour une plateforme de création d'agents IA. "
    "Réponds uniquement avec du JSON valide, sans markdown ni explication."
)

_INTENT_TYPES = """Types d'intention possibles :
- create_agent: L'utilisateur décrit l'agent IA qu'il veut créer
- fill_slot: L'utilisateur ajoute, précise ou corrige des informations sur son agent
- deploy: L'utilisateur veut déployer l'agent
- integrate: L'utilisateur veut intégrer des services externes
- general_info: L'utilisateur pose une question générale"""

_RESPONSE_SHAPE = """Réponds uniquement avec un JSON :
{
  "type": "create_agent|fill_slot|deploy|integrate|general_info",
  "confidence": 0.9,
  "correction": false,
  "extracted": {
    "business_type": "restaurant",
    "objectives": "gestion des réservations",
    "target_audience": null,
    "key_features": ["réservations"],
    "integrations_needed": [],
    "complexity": null
  }
}
N'invente rien : un champ absent du message vaut null ou une liste vide.
"correction" vaut true uniquement si l'utilisateur corrige explicitement une information déjà donnée."""

# Keys seen in model replies that map onto RequirementsUpdate fields
_EXTRACTED_KEY_ALIASES = {
    "businessType": "business_type",
    "targetAudience": "target_audience",
    "features": "key_features",
    "keyFeatures": "key_features",
    "integrations": "integrations_needed",
    "integrationsNeeded": "integrations_needed",
}


class LLMIntentClassifier(IntentClassifier):
    """
    Classifier backed by the completion service

    Raises CompletionUnavailable or MalformedExtraction; wrap it in
    FallbackIntentClassifier for a classifier that never fails.
    """

    def __init__(
        self,
        completion_service: CompletionService,
        settings: Optional[Settings] = None
    ):
        self.completion_service = completion_service
        self.settings = settings or get_settings()

    def build_prompt(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str] = None,
        pending_step: Optional[DiscoveryStep] = None
    ) -> str:
        """From-scratch prompt, or a reconciliation prompt once context exists"""
        if context.business_type or bound_agent_id:
            asked = ""
            if pending_step is not None and pending_step != DiscoveryStep.COMPLETE:
                asked = f"\nDernière question posée : {question_for(pending_step).question}\n"
            return f"""Analyse cette demande utilisateur en tenant compte du contexte existant :
{asked}
Message: "{utterance}"

Contexte existant :
- Type d'entreprise: {context.business_type or 'non défini'}
- Objectifs: {context.objectives or 'non définis'}
- Audience cible: {context.target_audience or 'non définie'}
- Fonctionnalités: {', '.join(context.key_features) or 'non définies'}
- Intégrations: {', '.join(context.integrations_needed) or 'aucune'}
- Agent actuel: {bound_agent_id or 'aucun'}

{_INTENT_TYPES}

N'extrais que les informations nouvelles ou corrigées par ce message.

{_RESPONSE_SHAPE}"""

        return f"""Analyse cette demande utilisateur et détermine l'intention :

Message: "{utterance}"

{_INTENT_TYPES}

Extrais aussi le type d'entreprise, les objectifs, l'audience cible, les fonctionnalités demandées,
les intégrations et le niveau de complexité (simple, moderate, complex) s'ils sont mentionnés.

{_RESPONSE_SHAPE}"""

    @staticmethod
    def _normalize_payload(data: Dict[str, Any]) -> Dict[str, Any]:
        if "extracted" not in data and isinstance(data.get("extractedInfo"), dict):
            data["extracted"] = data.pop("extractedInfo")
        extracted = data.get("extracted")
        if isinstance(extracted, dict):
            for alias, field in _EXTRACTED_KEY_ALIASES.items():
                if alias in extracted and field not in extracted:
                    extracted[field] = extracted.pop(alias)
            for field in ("key_features", "integrations_needed"):
                if extracted.get(field) is None:
                    extracted[field] = []
                elif isinstance(extracted[field], str):
                    extracted[field] = [extracted[field]]
        return data

    def parse(self, content: str, utterance: str, context: Requirements) -> IntentClassification:
        """
        Validate a model reply

        Raises:
            MalformedExtraction: Reply is not JSON, has the wrong shape or an unknown intent
        """
        try:
            data = self._normalize_payload(string_to_json_object(content))
            payload = ClassificationPayload.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise MalformedExtraction(f"Unusable classification reply: {e}") from e

        intent = INTENT_ALIASES.get(payload.type.strip().lower())
        if intent is None:
            raise MalformedExtraction(f"Unknown intent type: {payload.type}")

        fields = payload.extracted
        extracted = RequirementsUpdate(
            business_type=canonical_business_type(fields.business_type),
            objectives=(fields.objectives or "").strip()[:OBJECTIVES_MAX_LENGTH] or None,
            target_audience=(fields.target_audience or "").strip() or None,
            key_features=canonical_features(fields.key_features),
            integrations_needed=canonical_integrations(fields.integrations_needed),
            complexity=complexity_from_text(fields.complexity or ""),
        )
        if intent == IntentType.CREATE_AGENT and not extracted.objectives and not context.objectives:
            extracted.objectives = " ".join(utterance.split())[:OBJECTIVES_MAX_LENGTH] or None

        return IntentClassification(
            type=intent,
            extracted=extracted,
            confidence=payload.confidence,
            is_correction=payload.correction or is_correction(utterance),
            source="llm",
        )

    async def classify(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str] = None,
        pending_step: Optional[DiscoveryStep] = None
    ) -> IntentClassification:
        prompt = self.build_prompt(utterance, context, bound_agent_id, pending_step)
        turns = [
            CompletionTurn(role=Role.SYSTEM, content=SYSTEM_PROMPT),
            CompletionTurn(role=Role.USER, content=prompt),
        ]
        options = CompletionOptions(
            temperature=self.settings.CLASSIFIER_TEMPERATURE,
            max_output_tokens=self.settings.CLASSIFIER_MAX_TOKENS,
        )
        content = await self.completion_service.complete(turns, options)
        result = self.parse(content, utterance, context)
        logger.info(f"Intent classified: {result.type.value} (confidence: {result.confidence})")
        return result


# ============================================================================
# COMPOSITION
# ============================================================================

class FallbackIntentClassifier(IntentClassifier):
    """Tries the primary classifier, degrades to the fallback on failure"""

    def __init__(self, primary: IntentClassifier, fallback: IntentClassifier):
        self.primary = primary
        self.fallback = fallback

    async def _classify_primary(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str],
        pending_step: Optional[DiscoveryStep]
    ) -> IntentClassification:
        try:
            return await self.primary.classify(utterance, context, bound_agent_id, pending_step)
        except (CompletionUnavailable, MalformedExtraction) as e:
            raise ClassificationDegraded(f"{type(e).__name__}: {e}") from e

    async def classify(
        self,
        utterance: str,
        context: Requirements,
        bound_agent_id: Optional[str] = None,
        pending_step: Optional[DiscoveryStep] = None
    ) -> IntentClassification:
        try:
            return await self._classify_primary(utterance, context, bound_agent_id, pending_step)
        except ClassificationDegraded as e:
            logger.warning(f"Classification degraded, using keyword heuristic ({e})")
            return await self.fallback.classify(utterance, context, bound_agent_id, pending_step)


def build_intent_classifier(completion_service: CompletionService) -> IntentClassifier:
    """Completion-backed classifier with the keyword heuristic as fallback"""
    return FallbackIntentClassifier(
        primary=LLMIntentClassifier(completion_service),
        fallback=KeywordIntentClassifier(),
    )
