"""
ID Generation Utilities
Generates unique IDs for sessions and agents
"""
import re
import uuid


def generate_session_id(owner_id: str, prefix: str = "session") -> str:
    """
    Generate session ID scoped to an owner

    Args:
        owner_id: Owner the conversation belongs to
        prefix: Optional prefix (default: "session")

    Returns:
        Session ID

    Examples:
        >>> generate_session_id("usr_42")
        "session_usr_42_7f3b4c2a1d8e"
    """
    owner = re.sub(r"[^a-zA-Z0-9_-]", "", owner_id)[:32] or "anon"
    uuid_short = uuid.uuid4().hex[:12]
    return f"{prefix}_{owner}_{uuid_short}"


def generate_agent_id(prefix: str = "agt") -> str:
    """
    Generate agent ID

    Args:
        prefix: Optional prefix (default: "agt")

    Returns:
        Agent ID (e.g., "agt_abc123def456")
    """
    uuid_short = uuid.uuid4().hex[:12]
    return f"{prefix}_{uuid_short}"
