"""
Agent Foundry API module.

This module provides the REST endpoints of the multi-agent orchestrator.
"""

from .main import app, create_app

__all__ = ["app", "create_app"]
