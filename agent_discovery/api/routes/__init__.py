"""
External API Routes
Export all routers for main.py to include
"""
from agent_discovery.api.routes import (
    health,
    discovery
)

__all__ = [
    "health",
    "discovery"
]
