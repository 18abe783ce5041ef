"""
Agent Conductor: keyword-routed orchestration of specialized workers.
"""

__version__ = "0.1.0"
