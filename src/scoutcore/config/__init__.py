"""Configuration models for ScoutCore."""

from .config import (
    AISettings,
    ClassifierSettings,
    Config,
    ConsensusSettings,
    FallbackSettings,
    HttpSettings,
    MonitoringConfig,
    PipelineSettings,
    RemoteSettings,
    StrategySettings,
    find_config_file,
)

__all__ = [
    "AISettings",
    "ClassifierSettings",
    "Config",
    "ConsensusSettings",
    "FallbackSettings",
    "HttpSettings",
    "MonitoringConfig",
    "PipelineSettings",
    "RemoteSettings",
    "StrategySettings",
    "find_config_file",
]
