"""
Worker implementations for Agent Conductor.
"""

from .base import BaseAgent, AgentMetrics, HealthReport
from .specialized import CompletionAgent, BlogAgent, SEOAgent, ServicesAgent, build_default_fleet

__all__ = [
    'BaseAgent',
    'AgentMetrics',
    'HealthReport',
    'CompletionAgent',
    'BlogAgent',
    'SEOAgent',
    'ServicesAgent',
    'build_default_fleet'
]
