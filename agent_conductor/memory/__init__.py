"""
Session and shared-context components for Agent Conductor.
"""

from .context_store import (
    SharedContextStore, InMemoryContextStore, Session, Interaction, SessionStatus
)

__all__ = [
    'SharedContextStore',
    'InMemoryContextStore',
    'Session',
    'Interaction',
    'SessionStatus'
]
