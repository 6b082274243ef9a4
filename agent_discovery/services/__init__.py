"""
Service Layer
Completion adapter, agent persistence and the discovery service
"""
