"""
Agent Conductor API module.

This module provides REST API endpoints for submitting commands and
inspecting the worker registry.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
