"""
Discovery Module
Intent classification, slot filling, state machine and configuration synthesis
"""
