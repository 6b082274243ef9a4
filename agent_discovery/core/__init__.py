"""
Core Module
Configuration, logging, constants and error types
"""
