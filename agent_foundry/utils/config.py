"""
Configuration management for Agent Foundry.
"""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


class AggregationPolicy(str, Enum):
    """How partial task failures affect the overall project result."""
    STRICT = "strict"
    CRITICAL_ONLY = "critical_only"


class HistoryOrder(str, Enum):
    """Default ordering of the orchestration history."""
    NEWEST_FIRST = "newest_first"
    OLDEST_FIRST = "oldest_first"


class AgentConfig(BaseModel):
    """Defaults applied to agents that do not override them."""
    max_concurrent_tasks: int = Field(default=1, ge=1, le=100)
    task_timeout_seconds: float = Field(default=300.0, gt=0, le=3600)
    unhealthy_after_failures: int = Field(default=3, ge=1, le=100)


class DispatcherConfig(BaseModel):
    """Configuration for the task dispatcher."""
    availability_timeout_seconds: float = Field(default=30.0, gt=0, le=3600)
    poll_interval_seconds: float = Field(default=0.05, gt=0, le=10)


class OrchestrationConfig(BaseModel):
    """Configuration for project orchestration runs."""
    max_retry_attempts: int = Field(default=2, ge=0, le=10)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0, le=60)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0, le=600)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0, le=10.0)
    run_timeout_seconds: float = Field(default=600.0, gt=0, le=86400)
    aggregation_policy: AggregationPolicy = AggregationPolicy.CRITICAL_ONLY


class HistoryConfig(BaseModel):
    """Retention and ordering of the orchestration history."""
    max_records: Optional[int] = Field(default=1000, ge=1)
    order: HistoryOrder = HistoryOrder.NEWEST_FIRST


class SystemConfig(BaseModel):
    """Main system configuration."""
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    json_logging: bool = Field(default=False)

    agents: AgentConfig = Field(default_factory=AgentConfig)
    dispatcher: DispatcherConfig = Field(default_factory=DispatcherConfig)
    orchestration: OrchestrationConfig = Field(default_factory=OrchestrationConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)


ENV_PREFIX = "AGENT_FOUNDRY_"

# Environment variable -> (section, field, parser)
_ENV_FIELDS = {
    "MAX_CONCURRENT_TASKS": ("agents", "max_concurrent_tasks", int),
    "TASK_TIMEOUT": ("agents", "task_timeout_seconds", float),
    "UNHEALTHY_AFTER_FAILURES": ("agents", "unhealthy_after_failures", int),
    "AVAILABILITY_TIMEOUT": ("dispatcher", "availability_timeout_seconds", float),
    "POLL_INTERVAL": ("dispatcher", "poll_interval_seconds", float),
    "MAX_RETRIES": ("orchestration", "max_retry_attempts", int),
    "RETRY_BASE_DELAY": ("orchestration", "retry_base_delay_seconds", float),
    "RUN_TIMEOUT": ("orchestration", "run_timeout_seconds", float),
    "AGGREGATION_POLICY": ("orchestration", "aggregation_policy", str),
    "HISTORY_MAX_RECORDS": ("history", "max_records", int),
    "HISTORY_ORDER": ("history", "order", str),
}


def load_config_from_env() -> SystemConfig:
    """
    Load configuration from environment variables.

    Returns:
        SystemConfig: Configuration object with values from environment
    """
    config_data = {}

    if os.getenv("DEBUG"):
        config_data["debug"] = os.getenv("DEBUG").lower() == "true"

    if os.getenv("LOG_LEVEL"):
        config_data["log_level"] = os.getenv("LOG_LEVEL")

    if os.getenv("JSON_LOGGING"):
        config_data["json_logging"] = os.getenv("JSON_LOGGING").lower() == "true"

    for suffix, (section, field, parser) in _ENV_FIELDS.items():
        raw = os.getenv(f"{ENV_PREFIX}{suffix}")
        if raw:
            config_data.setdefault(section, {})[field] = parser(raw)

    return SystemConfig(**config_data)


def load_config_from_file(config_path: Optional[Path] = None) -> SystemConfig:
    """
    Load configuration from a JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        SystemConfig: Configuration object, defaults when the file is absent
    """
    if config_path is None:
        config_path = Path(os.getenv(f"{ENV_PREFIX}CONFIG", "config.json"))

    if not config_path.exists():
        return SystemConfig()

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = json.load(f)
    return SystemConfig(**config_data)


def _merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Global configuration instance
_config: Optional[SystemConfig] = None


def get_config() -> SystemConfig:
    """
    Get the global configuration instance.

    Returns:
        SystemConfig: Global configuration
    """
    global _config
    if _config is None:
        # File first, then environment variables on top
        _config = load_config_from_file()
        env_overrides = load_config_from_env().model_dump(exclude_unset=True)

        if env_overrides:
            _config = SystemConfig(**_merge(_config.model_dump(), env_overrides))

    return _config


def set_config(config: Optional[SystemConfig]) -> None:
    """
    Set the global configuration instance.

    Args:
        config: Configuration to set as global, or None to reload on next access
    """
    global _config
    _config = config
