"""
Data models and error types for Agent Foundry.
"""
