"""
Configuration Synthesizer
Turns a template plus accumulated requirements into a GeneratedConfiguration.

The skeleton is always rendered deterministically first; the completion
service may then elaborate it once. Any failure there keeps the rendered
skeleton, so synthesis only raises for a structurally broken template.
"""
import re
from typing import Dict, List, Optional

from agent_discovery.core.config import Settings, get_settings
from agent_discovery.core.constants import Complexity, Role
from agent_discovery.core.errors import CompletionUnavailable, SynthesisDegraded, SynthesisError
from agent_discovery.core.logging import get_logger
from agent_discovery.discovery.requirements import union_preserving_order
from agent_discovery.discovery.templates import CATALOG_VERSION, ConfigurationTemplate
from agent_discovery.schemas.api_models import (
    ConfigurationReview,
    GeneratedConfiguration,
    PersonalityParameters,
    Requirements,
)
from agent_discovery.services.llm_provider import CompletionOptions, CompletionService, CompletionTurn
from agent_discovery.utils.time import iso_now

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z_]+)\s*\}\}")
_BLOCK_OPEN = re.compile(r"\{\{#each\s+([a-zA-Z_]+)\s*\}\}")
_TOKEN = re.compile(
    r"\{\{#each\s+([a-zA-Z_]+)\s*\}\}(.*?)\{\{/each\}\}\n?|\{\{\s*([a-zA-Z_]+)\s*\}\}",
    re.DOTALL
)

_RESPONSE_STYLE = {
    Complexity.SIMPLE: "concis",
    Complexity.MODERATE: "conversationnel",
    Complexity.COMPLEX: "détaillé",
}

DEFAULT_AUDIENCE = "clients généraux"
NO_INTEGRATION = "Aucune intégration pour le moment"

ENHANCE_SYSTEM_PROMPT = (
    "Tu es un expert en création de prompts système pour agents IA. "
    "Tu crées des prompts hautement personnalisés et efficaces."
)


# ============================================================================
# TEMPLATE RENDERING
# ============================================================================

def validate_template(template: ConfigurationTemplate) -> None:
    """
    Check a template is renderable

    Raises:
        SynthesisError: Empty skeleton, undeclared placeholder or unbalanced list block
    """
    skeleton = template.skeleton or ""
    if not skeleton.strip():
        raise SynthesisError(f"Template '{template.id}' has an empty skeleton")

    depth = 0
    for match in re.finditer(r"\{\{#each\s+[a-zA-Z_]+\s*\}\}|\{\{/each\}\}", skeleton):
        depth += 1 if match.group(0).startswith("{{#") else -1
        if depth not in (0, 1):
            raise SynthesisError(f"Template '{template.id}' has unbalanced or nested list blocks")
    if depth != 0:
        raise SynthesisError(f"Template '{template.id}' has an unclosed list block")

    for name in _BLOCK_OPEN.findall(skeleton):
        if name not in template.list_variables:
            raise SynthesisError(f"Template '{template.id}' iterates undeclared list '{name}'")

    for name in _PLACEHOLDER.findall(skeleton):
        if name != "this" and name not in template.scalar_variables:
            raise SynthesisError(f"Template '{template.id}' uses undeclared variable '{name}'")


def render_skeleton(
    template: ConfigurationTemplate,
    scalars: Dict[str, str],
    lists: Dict[str, List[str]]
) -> str:
    """
    Substitute scalars and render each list item through its block body

    The skeleton is scanned once, so values that look like placeholders are
    inserted verbatim.

    Args:
        template: Validated template
        scalars: Value for every declared scalar variable
        lists: Items for every declared list variable

    Returns:
        Instruction text with every template placeholder substituted
    """
    validate_template(template)

    def _render_item(body: str, item: str) -> str:
        return _PLACEHOLDER.sub(
            lambda m: item if m.group(1) == "this" else scalars.get(m.group(1), ""), body
        )

    def _render_token(match: re.Match) -> str:
        if match.group(3) is not None:
            return scalars.get(match.group(3), "")
        body = match.group(2)
        if body.startswith("\n"):
            body = body[1:]
        return "".join(_render_item(body, item) for item in lists.get(match.group(1)) or [])

    text = _TOKEN.sub(_render_token, template.skeleton)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def merge_capabilities(key_features: List[str], defaults) -> List[str]:
    """Requested features first, then template defaults"""
    return union_preserving_order(key_features, list(defaults))


def _same_capability(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    return a in b or b in a


def capabilities_for(template: ConfigurationTemplate, requirements: Requirements) -> List[str]:
    """
    Requested features plus template defaults, skipping defaults that only
    restate a requested feature ("réservations" vs "Prise de réservation").
    """
    requested = list(requirements.key_features)
    extra = [
        default for default in template.default_capabilities
        if not any(_same_capability(default.rstrip("s"), r.rstrip("s")) for r in requested)
    ]
    return merge_capabilities(requested, extra)


# ============================================================================
# SYNTHESIZER
# ============================================================================

class ConfigurationSynthesizer:
    """
    Builds the final configuration for a completed discovery

    Usage:
        synthesizer = ConfigurationSynthesizer(completion_service)
        config = await synthesizer.synthesize(select("restaurant"), requirements)
    """

    def __init__(
        self,
        completion_service: Optional[CompletionService] = None,
        settings: Optional[Settings] = None
    ):
        self.completion_service = completion_service
        self.settings = settings or get_settings()

    def build_skeleton(self, template: ConfigurationTemplate, requirements: Requirements) -> str:
        """Deterministic, fully substituted instructions"""
        business = requirements.business_type or template.name
        scalars = {
            "name": template.agent_name,
            "business_type": business,
            "objectives": requirements.objectives or f"Accompagner efficacement les clients de votre activité {business}.",
            "personality": template.personality.communication_style,
            "target_audience": requirements.target_audience or DEFAULT_AUDIENCE,
        }
        lists = {
            "capabilities": capabilities_for(template, requirements),
            "specialties": list(template.default_capabilities),
            "integrations": list(requirements.integrations_needed) or [NO_INTEGRATION],
        }
        return render_skeleton(template, scalars, lists)

    def _enhancement_prompt(self, skeleton: str, requirements: Requirements) -> str:
        return f"""Améliore ce prompt système pour un agent IA spécialisé {requirements.business_type or 'généraliste'}.

Prompt de base:
{skeleton}

Contexte additionnel:
- Secteur: {requirements.business_type or 'non précisé'}
- Objectifs: {requirements.objectives or 'non précisés'}
- Public cible: {requirements.target_audience or DEFAULT_AUDIENCE}
- Fonctionnalités: {', '.join(requirements.key_features) or 'non précisées'}
- Intégrations: {', '.join(requirements.integrations_needed) or 'aucune'}
- Niveau de sophistication: {requirements.complexity.value}

Instructions:
1. Rends le prompt plus spécifique et personnalisé
2. Ajoute des exemples concrets d'interactions
3. Conserve toutes les capacités et limites listées
4. Garde un ton professionnel mais engageant
5. Maximum 800 mots

Réponds uniquement avec le prompt amélioré, sans commentaires."""

    async def _enhance(self, skeleton: str, requirements: Requirements) -> str:
        """
        Elaborate the skeleton once through the completion service

        Raises:
            SynthesisDegraded: No service, failure, timeout or empty reply
        """
        if self.completion_service is None:
            raise SynthesisDegraded("no completion service")

        turns = [
            CompletionTurn(role=Role.SYSTEM, content=ENHANCE_SYSTEM_PROMPT),
            CompletionTurn(role=Role.USER, content=self._enhancement_prompt(skeleton, requirements)),
        ]
        options = CompletionOptions(
            temperature=self.settings.SYNTHESIS_TEMPERATURE,
            max_output_tokens=self.settings.SYNTHESIS_MAX_OUTPUT_TOKENS,
        )
        try:
            content = await self.completion_service.complete(turns, options)
        except CompletionUnavailable as e:
            raise SynthesisDegraded(str(e)) from e

        content = (content or "").strip()
        if not content:
            raise SynthesisDegraded("empty completion")
        return content[:self.settings.SYNTHESIS_MAX_CHARS].rstrip()

    async def synthesize(
        self,
        template: ConfigurationTemplate,
        requirements: Requirements
    ) -> GeneratedConfiguration:
        """
        Produce a configuration for the requirements

        Args:
            template: Selected template
            requirements: Completed requirements

        Returns:
            Generated configuration (skeleton-based if elaboration failed)

        Raises:
            SynthesisError: Template is structurally invalid
        """
        skeleton = self.build_skeleton(template, requirements)

        personalized = True
        try:
            instructions = await self._enhance(skeleton, requirements)
        except SynthesisDegraded as e:
            logger.warning(f"Synthesis degraded for template '{template.id}', using skeleton: {e}")
            instructions = skeleton
            personalized = False

        business = requirements.business_type or template.name
        description = f"Assistant IA pour {business}"
        if requirements.objectives:
            description = f"{description} : {requirements.objectives}"

        personality = PersonalityParameters(
            tone=template.personality.tone,
            expertise_level=template.personality.expertise_level,
            response_style=_RESPONSE_STYLE[requirements.complexity],
            proactivity=template.personality.proactivity,
            communication_style=template.personality.communication_style,
        )

        config = GeneratedConfiguration(
            name=template.agent_name,
            description=description[:300],
            instructions=instructions,
            capabilities=capabilities_for(template, requirements),
            personality=personality,
            business_type=requirements.business_type,
            target_audience=requirements.target_audience,
            integrations=list(requirements.integrations_needed),
            complexity=requirements.complexity,
            template_id=template.id,
            catalog_version=CATALOG_VERSION,
            personalized=personalized,
            created_at=iso_now(),
        )
        logger.info(
            f"Synthesized configuration '{config.name}' (template={template.id}, "
            f"capabilities={len(config.capabilities)}, personalized={personalized})"
        )
        return config


# ============================================================================
# VALIDATION
# ============================================================================

def validate_configuration(config: GeneratedConfiguration) -> ConfigurationReview:
    """Report missing fields and improvement suggestions for a configuration"""
    issues: List[str] = []
    suggestions: List[str] = []

    if not config.name:
        issues.append("Le nom de l'agent est requis")
    if not config.description:
        issues.append("La description de l'agent est requise")
    if not config.instructions:
        issues.append("Le prompt système est requis")
    if not config.capabilities:
        issues.append("Au moins une capacité doit être définie")

    if not config.personality.tone:
        issues.append("Le ton de l'agent doit être défini")
    if config.personality.proactivity < 0 or config.personality.proactivity > 100:
        issues.append("La proactivité doit être entre 0 et 100")

    if config.capabilities and len(config.capabilities) < 3:
        suggestions.append("Considérez ajouter plus de capacités pour enrichir l'agent")
    if config.instructions and len(config.instructions) < 100:
        suggestions.append("Le prompt système pourrait être plus détaillé")

    return ConfigurationReview(is_valid=not issues, issues=issues, suggestions=suggestions)
