"""
Core Constants and Enums
Central source of truth for intents, discovery steps and session states
"""
from enum import Enum


# ============================================================================
# INTENTS
# ============================================================================

class IntentType(str, Enum):
    """
    High-level action requested by the user

    CREATE_AGENT: Describes the assistant they want
    FILL_SLOT: Adds or corrects details (personalization)
    DEPLOY: Wants to publish the assistant
    INTEGRATE: Wants to connect external services
    GENERAL_INFO: Questions and chit-chat
    """
    CREATE_AGENT = "create_agent"
    FILL_SLOT = "fill_slot"
    DEPLOY = "deploy"
    INTEGRATE = "integrate"
    GENERAL_INFO = "general_info"


# Names produced by completion models that map onto our intents
INTENT_ALIASES = {
    "create": IntentType.CREATE_AGENT,
    "create_agent": IntentType.CREATE_AGENT,
    "fill_slot": IntentType.FILL_SLOT,
    "personalize": IntentType.FILL_SLOT,
    "personalize_agent": IntentType.FILL_SLOT,
    "deploy": IntentType.DEPLOY,
    "deploy_agent": IntentType.DEPLOY,
    "deployment": IntentType.DEPLOY,
    "integrate": IntentType.INTEGRATE,
    "integrate_services": IntentType.INTEGRATE,
    "integration": IntentType.INTEGRATE,
    "general_info": IntentType.GENERAL_INFO,
    "test_agent": IntentType.GENERAL_INFO,
}


# ============================================================================
# REQUIREMENTS
# ============================================================================

class Complexity(str, Enum):
    """Desired sophistication of the generated assistant"""
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class QuestionCategory(str, Enum):
    BUSINESS = "business"
    TECHNICAL = "technical"
    PREFERENCES = "preferences"


# ============================================================================
# DISCOVERY
# ============================================================================

class DiscoveryStep(str, Enum):
    """
    Discovery steps, in the order they are evaluated

    BUSINESS_TYPE → KEY_FEATURES → TARGET_AUDIENCE → TECHNICAL_FEATURES →
    INTEGRATIONS (optional) → VALIDATION → SANDBOX_TEST → COMPLETE
    """
    BUSINESS_TYPE = "business_type"
    KEY_FEATURES = "key_features"
    TARGET_AUDIENCE = "target_audience"
    TECHNICAL_FEATURES = "technical_features"
    INTEGRATIONS = "integrations"
    VALIDATION = "validation"
    SANDBOX_TEST = "sandbox_test"
    COMPLETE = "complete"


class SessionStatus(str, Enum):
    """
    Session lifecycle

    DISCOVERY: Requirements are still being gathered
    COMPLETE: A configuration was synthesized; only an explicit reset
              brings the session back to DISCOVERY
    """
    DISCOVERY = "discovery"
    COMPLETE = "complete"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
