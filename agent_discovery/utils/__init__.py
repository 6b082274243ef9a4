"""
Utilities Module
Shared utility functions for the application
"""
from agent_discovery.utils.ids import (
    generate_session_id,
    generate_agent_id
)

from agent_discovery.utils.json_utils import (
    strip_code_fences,
    string_to_json_object
)

from agent_discovery.utils.time import (
    utc_now,
    iso_now,
    minutes_since,
    is_expired
)

__all__ = [
    # IDs
    "generate_session_id",
    "generate_agent_id",

    # JSON
    "strip_code_fences",
    "string_to_json_object",

    # Time
    "utc_now",
    "iso_now",
    "minutes_since",
    "is_expired",
]
