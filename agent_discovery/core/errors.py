"""
Discovery error types.
"""


class DiscoveryError(Exception):
    """Base discovery error."""
    pass


class CompletionUnavailable(DiscoveryError):
    """Completion service failed (network, timeout, quota or configuration)."""
    pass


class MalformedExtraction(DiscoveryError):
    """Completion service returned non-conforming structured output."""
    pass


class ClassificationDegraded(DiscoveryError):
    """Classification fell back to the keyword heuristic."""
    pass


class SynthesisDegraded(DiscoveryError):
    """Synthesis fell back to the un-personalized skeleton."""
    pass


class SynthesisError(DiscoveryError):
    """Configuration template is structurally invalid."""
    pass


class SessionNotFound(DiscoveryError):
    """Session id is unknown and no owner id was given to create it."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTurnRequest(DiscoveryError):
    """Inbound turn is missing required caller input."""
    pass
