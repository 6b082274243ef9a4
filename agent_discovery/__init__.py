"""
Agent Discovery Engine
Conversational requirements discovery for AI agent configurations
"""
__version__ = "1.0.0"
