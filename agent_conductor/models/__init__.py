"""
Core data models and error types for Agent Conductor.
"""
