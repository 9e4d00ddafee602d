"""
Agent Foundry: multi-agent task orchestration for full-stack project builds.
"""

__version__ = "0.1.0"
