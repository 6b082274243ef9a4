"""
Response generators
User-facing (French) messages and quick replies for every turn outcome.
Only `GeneralInfoResponder` talks to the completion service.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.constants import Role
from agent_discovery.core.errors import CompletionUnavailable
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery.state_machine import DiscoveryQuestion
from agent_discovery.schemas.api_models import (
    ConfigurationReview,
    GeneratedConfiguration,
    Requirements,
    RequirementsUpdate,
)
from agent_discovery.services.llm_provider import CompletionOptions, CompletionService, CompletionTurn

logger = get_logger(__name__)


@dataclass(frozen=True)
class Reply:
    message: str
    suggested_replies: Tuple[str, ...] = ()


GREETING_SUGGESTIONS = (
    "Créer un agent pour mon restaurant",
    "Créer un agent pour mon e-commerce",
    "Créer un agent pour mon service client",
    "Voir des exemples d'agents",
)

DEPLOY_SUGGESTIONS = ("Widget flottant", "Page dédiée", "Intégration complète", "Voir un aperçu")

INTEGRATION_SUGGESTIONS = ("Connecter Google Calendar", "Configurer Gmail", "Intégrer Google Drive", "Activer WhatsApp")

APOLOGY = "Désolé, une erreur s'est produite lors du traitement de votre message. Pouvez-vous réessayer ?"


def _bullets(items: Sequence[str]) -> str:
    return "\n".join(f"• {item}" for item in items)


def _agent_label(config: Optional[GeneratedConfiguration]) -> str:
    if config is None:
        return "votre agent"
    return f"votre agent \"{config.name}\""


# ============================================================================
# DISCOVERY
# ============================================================================

def acknowledgement(update: RequirementsUpdate) -> Optional[str]:
    """Short recap of what was understood from the last message"""
    noted = []
    if update.business_type:
        noted.append(f"activité : {update.business_type}")
    if update.key_features:
        noted.append(f"fonctionnalités : {', '.join(update.key_features)}")
    if update.target_audience:
        noted.append(f"audience : {update.target_audience}")
    if update.integrations_needed:
        noted.append(f"intégrations : {', '.join(update.integrations_needed)}")
    if not noted:
        return None
    return f"Parfait, j'ai bien noté ({'; '.join(noted)})."


def question_reply(question: DiscoveryQuestion, update: Optional[RequirementsUpdate] = None) -> Reply:
    """Ask the next discovery question, prefixed by a recap when something was understood"""
    ack = acknowledgement(update) if update is not None else None
    message = f"{ack}\n\n{question.question}" if ack else question.question
    return Reply(message=message, suggested_replies=question.suggestions)


def greeting() -> Reply:
    return Reply(
        message="""Bonjour ! Je suis votre assistant IA spécialisé dans la création d'agents intelligents.

Je peux vous aider à créer un chatbot personnalisé pour votre entreprise. Dites-moi simplement :
• Quel type d'entreprise vous avez
• Quelles tâches vous voulez automatiser
• Vos objectifs principaux

Par exemple : "J'ai un restaurant coréen et j'aimerais créer un chatbot qui puisse gérer les réservations\"""",
        suggested_replies=GREETING_SUGGESTIONS,
    )


def deploy_before_configuration(question: DiscoveryQuestion) -> Reply:
    return Reply(
        message=(
            "Votre agent n'est pas encore créé : il faut d'abord terminer sa configuration "
            "avant de pouvoir le déployer.\n\n"
            f"{question.question}"
        ),
        suggested_replies=question.suggestions,
    )


# ============================================================================
# AFTER COMPLETION
# ============================================================================

def confirmation(
    config: GeneratedConfiguration,
    review: ConfigurationReview,
    recommendations: Sequence[str],
    persisted: bool
) -> Reply:
    """Configuration ready: capabilities plus the personalization, integration and deployment follow-ups"""
    business = config.business_type or "votre activité"
    lines = [
        f"🎉 Excellent ! J'ai créé votre agent \"{config.name}\" spécialisé pour votre {business}.",
        "",
        "Votre agent peut maintenant :",
        _bullets(config.capabilities),
        "",
        "**Prochaines étapes :**",
        "",
        "1️⃣ **Personnaliser votre agent** - Voulez-vous ajouter des informations spécifiques "
        "(horaires, spécialités, tarifs) ?",
        "",
        "2️⃣ **Intégrations** - Souhaitez-vous connecter votre agent avec :",
        "   • Google Calendar (pour les réservations)",
        "   • Gmail (pour les confirmations)",
        "   • Votre site web existant",
        "",
        "3️⃣ **Déploiement** - Comment voulez-vous déployer votre agent :",
        "   • Sur votre site web",
        "   • En widget flottant",
        "   • En page dédiée",
    ]
    if review.suggestions:
        lines += ["", "💡 Suggestions :", _bullets(review.suggestions)]
    if not persisted:
        lines += [
            "",
            "⚠️ La configuration est prête mais n'a pas pu être enregistrée pour le moment. "
            "Elle reste disponible dans cette conversation.",
        ]
    lines += ["", "Dites-moi ce qui vous intéresse le plus !"]

    suggestions = [f"Ajouter : {recommendations[0]}"] if recommendations else ["Ajouter des informations sur mon activité"]
    suggestions += ["Connecter avec Google Calendar", "Déployer sur mon site web", "Tester l'agent maintenant"]
    return Reply(message="\n".join(lines), suggested_replies=tuple(suggestions))


def personalization_ack(requirements: Requirements, config: Optional[GeneratedConfiguration]) -> Reply:
    """Acknowledge requirement updates made after the configuration was generated"""
    return Reply(
        message=f"""Parfait ! J'ai mis à jour les informations de {_agent_label(config)}.

**Informations mises à jour :**
• Type d'entreprise: {requirements.business_type or 'non défini'}
• Objectifs: {requirements.objectives or 'non définis'}
• Audience: {requirements.target_audience or 'non définie'}
• Fonctionnalités: {', '.join(requirements.key_features) or 'non définies'}
• Intégrations: {', '.join(requirements.integrations_needed) or 'aucune'}

Que souhaitez-vous faire maintenant ?""",
        suggested_replies=(
            "Connecter avec Google Calendar",
            "Déployer sur mon site web",
            "Tester l'agent maintenant",
            "Ajouter plus d'informations",
        ),
    )


def deploy_options(config: Optional[GeneratedConfiguration]) -> Reply:
    return Reply(
        message=f"""Excellent ! Je vais vous aider à déployer {_agent_label(config)} sur votre site web.

**Options de déploiement disponibles :**

1️⃣ **Widget flottant** - Bouton de chat en bas à droite
2️⃣ **Page dédiée** - Page complète avec votre agent
3️⃣ **Intégration complète** - Intégré dans votre design existant

**Étapes :**
• Génération du code d'intégration
• Personnalisation du design
• Test en temps réel
• Mise en ligne

Quelle option préférez-vous ?""",
        suggested_replies=DEPLOY_SUGGESTIONS,
    )


def integration_options(config: Optional[GeneratedConfiguration], requested: Sequence[str] = ()) -> Reply:
    intro = f"Parfait ! Connectons {_agent_label(config)} avec vos outils préférés."
    if requested:
        intro += f"\n\nJ'ai noté votre intérêt pour : {', '.join(requested)}."
    return Reply(
        message=f"""{intro}

**Intégrations disponibles :**

🔗 **Google Calendar** - Gérer les réservations automatiquement
📧 **Gmail** - Envoyer des confirmations par email
☁️ **Google Drive** - Sauvegarder les données clients
📱 **WhatsApp Business** - Notifications SMS et WhatsApp

Quelle intégration vous intéresse ?""",
        suggested_replies=INTEGRATION_SUGGESTIONS,
    )


# ============================================================================
# GENERAL INFORMATION
# ============================================================================

GENERAL_SYSTEM_PROMPT = (
    "Tu es un assistant IA expert en création d'agents intelligents. Tu aides les utilisateurs "
    "à créer des chatbots personnalisés pour leur entreprise. Tu es professionnel, utile et "
    "enthousiaste. Réponds en français, en moins de 150 mots."
)

GENERAL_FALLBACK = (
    "Je suis là pour vous aider à créer un agent IA adapté à votre entreprise : "
    "prise de réservations, réponses aux questions fréquentes, suivi de commandes, "
    "prise de rendez-vous et bien plus. Décrivez-moi votre activité et ce que vous "
    "souhaitez automatiser, je m'occupe du reste."
)


class GeneralInfoResponder:
    """Answers general questions through the completion service, with a canned fallback"""

    def __init__(
        self,
        completion_service: Optional[CompletionService] = None,
        settings: Optional[Settings] = None
    ):
        self.completion_service = completion_service
        self.settings = settings or get_settings()

    async def answer(
        self,
        utterance: str,
        history: Sequence[Tuple[Role, str]] = (),
        follow_up: Optional[DiscoveryQuestion] = None
    ) -> Reply:
        """
        Answer a general question

        Args:
            utterance: User question
            history: Recent (role, text) turns, oldest first
            follow_up: Pending discovery question to repeat after the answer

        Returns:
            Reply; never raises on completion failure
        """
        answer = GENERAL_FALLBACK
        if self.completion_service is not None:
            turns: List[CompletionTurn] = [CompletionTurn(role=Role.SYSTEM, content=GENERAL_SYSTEM_PROMPT)]
            turns += [CompletionTurn(role=role, content=text) for role, text in history]
            turns.append(CompletionTurn(role=Role.USER, content=utterance))
            try:
                content = await self.completion_service.complete(
                    turns, CompletionOptions(temperature=0.7, max_output_tokens=500)
                )
                if content and content.strip():
                    answer = content.strip()
            except CompletionUnavailable as e:
                logger.warning(f"General answer degraded to canned reply: {e}")

        if follow_up is not None:
            return Reply(message=f"{answer}\n\n{follow_up.question}", suggested_replies=follow_up.suggestions)
        return Reply(message=answer, suggested_replies=GREETING_SUGGESTIONS)
