"""
API Request/Response Models for the Discovery Engine
"""
from typing import Dict, List, Optional, Any, Literal
from pydantic import BaseModel, Field

from agent_discovery.core.constants import (
    Complexity,
    DiscoveryStep,
    IntentType,
    SessionStatus,
)


# ============================================================================
# REQUIREMENTS (SLOT-FILLING)
# ============================================================================

class Requirements(BaseModel):
    """
    Slot-filling structure accumulated across a conversation

    Scalars are only overwritten by an explicit correction; list fields
    accumulate (deduplicated, first-seen order). Use
    `discovery.requirements.merge` rather than mutating instances.
    """
    business_type: Optional[str] = Field(default=None, description="Business domain, e.g. 'restaurant'")
    objectives: Optional[str] = Field(default=None, description="What the assistant should achieve")
    target_audience: Optional[str] = Field(default=None, description="Who will talk to the assistant")
    key_features: List[str] = Field(default_factory=list, description="Requested capabilities")
    integrations_needed: List[str] = Field(default_factory=list, description="External services to connect")
    complexity: Complexity = Field(default=Complexity.MODERATE)
    answered_steps: List[DiscoveryStep] = Field(
        default_factory=list,
        description="Discovery steps the user already answered"
    )


class RequirementsUpdate(BaseModel):
    """Partial requirements extracted from a single utterance"""
    business_type: Optional[str] = None
    objectives: Optional[str] = None
    target_audience: Optional[str] = None
    key_features: List[str] = Field(default_factory=list)
    integrations_needed: List[str] = Field(default_factory=list)
    complexity: Optional[Complexity] = None
    answered_steps: List[DiscoveryStep] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when nothing was extracted"""
        return not any([
            self.business_type,
            self.objectives,
            self.target_audience,
            self.key_features,
            self.integrations_needed,
            self.complexity,
            self.answered_steps,
        ])


# ============================================================================
# INTENT CLASSIFICATION
# ============================================================================

class IntentClassification(BaseModel):
    """Result of classifying one utterance"""
    type: IntentType
    extracted: RequirementsUpdate = Field(default_factory=RequirementsUpdate)
    confidence: float = Field(default=0.5, ge=0, le=1)
    is_correction: bool = False
    source: Literal["llm", "keyword"] = "keyword"


class ExtractedFields(BaseModel):
    """Fields a completion model may return inside `extracted`"""
    business_type: Optional[str] = None
    objectives: Optional[str] = None
    target_audience: Optional[str] = None
    key_features: List[str] = Field(default_factory=list)
    integrations_needed: List[str] = Field(default_factory=list)
    complexity: Optional[str] = Field(default=None, description="Free text, mapped onto Complexity")


class ClassificationPayload(BaseModel):
    """Shape a completion model must return when classifying"""
    type: str
    confidence: float = Field(default=0.8, ge=0, le=1)
    correction: bool = False
    extracted: ExtractedFields = Field(default_factory=ExtractedFields)


# ============================================================================
# GENERATED CONFIGURATION
# ============================================================================

class PersonalityParameters(BaseModel):
    """Declared personality of a generated agent"""
    tone: str = Field(default="professionnel")
    expertise_level: Literal["beginner", "intermediate", "expert"] = "expert"
    response_style: str = Field(default="conversationnel")
    proactivity: int = Field(default=50, description="0-100")
    communication_style: str = Field(default="Professionnel, chaleureux et efficace")


class GeneratedConfiguration(BaseModel):
    """Synthesis output handed to the persistence layer"""
    name: str
    description: str
    instructions: str = Field(..., description="Behavioral instructions (system prompt)")
    capabilities: List[str] = Field(default_factory=list)
    personality: PersonalityParameters = Field(default_factory=PersonalityParameters)
    business_type: Optional[str] = None
    target_audience: Optional[str] = None
    integrations: List[str] = Field(default_factory=list)
    complexity: Complexity = Complexity.MODERATE
    template_id: str
    catalog_version: str
    personalized: bool = Field(default=False, description="Instructions elaborated by the completion service")
    created_at: str


class ConfigurationReview(BaseModel):
    """Validation report for a generated configuration"""
    is_valid: bool
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class AgentRecord(BaseModel):
    """Persisted agent"""
    agent_id: str
    owner_id: Optional[str] = None
    status: Literal["draft", "active"] = "draft"
    configuration: GeneratedConfiguration
    created_at: str


# ============================================================================
# TURN API
# ============================================================================

class TurnRequest(BaseModel):
    """One inbound user turn"""
    session_id: Optional[str] = Field(default=None, description="Omit to start a new conversation")
    owner_id: Optional[str] = Field(default=None, description="Required to create a session")
    message: Optional[str] = Field(default=None, description="User utterance")


class TurnResponse(BaseModel):
    """Outbound turn"""
    success: bool
    message: str
    session_id: Optional[str] = None
    suggested_replies: List[str] = Field(default_factory=list)
    bound_agent_id: Optional[str] = None
    generated_configuration: Optional[GeneratedConfiguration] = None
    error: Optional[str] = None
    intent: Optional[IntentType] = None
    step: Optional[DiscoveryStep] = None
    status: Optional[SessionStatus] = None


class TurnView(BaseModel):
    role: str
    text: str
    timestamp: str


class SessionView(BaseModel):
    """Read-only view of a session"""
    session_id: str
    owner_id: str
    status: SessionStatus
    pending_step: Optional[DiscoveryStep] = None
    bound_agent_id: Optional[str] = None
    requirements: Requirements
    configuration: Optional[GeneratedConfiguration] = None
    turns: List[TurnView] = Field(default_factory=list)
    created_at: str
    last_activity: str
    progress: Dict[str, Any] = Field(default_factory=dict)


class ListSessionsResponse(BaseModel):
    sessions: List[SessionView]
    count: int
