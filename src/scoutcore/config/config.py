"""
Configuration management for ScoutCore using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Setup Logging ---
log = logging.getLogger(__name__)

KNOWN_STRATEGIES = ("direct_api", "browser_dom", "proxy", "ai_dom")

# --- Nested Configuration Models ---


class HttpSettings(BaseModel):
    """HTTP client configuration."""

    timeout: float = Field(default=8.0, description="Per-request timeout in seconds.")
    max_retries: int = Field(default=3, ge=0, description="Retry attempts for 429/5xx/timeouts.")
    retry_delay: float = Field(default=0.5, ge=0.0, description="Fixed delay between retries in seconds.")
    user_agent: str = Field(
        default="Mozilla/5.0 (compatible; ScoutCore/0.1; +https://github.com/scoutcore/scoutcore)",
        description="User-Agent string for HTTP requests.",
    )
    max_concurrency_per_domain: int = Field(default=2, ge=1, description="Maximum concurrent requests per domain.")


class ClassifierSettings(BaseModel):
    """Query classification configuration."""

    ai_enabled: bool = Field(default=True, description="Try the AI classifier before keyword matching.")
    ai_timeout: float = Field(default=5.0, gt=0, description="Hard ceiling for the AI classification call.")


class StrategySettings(BaseModel):
    """Configuration for the extraction strategy chain."""

    order: List[str] = Field(
        default_factory=lambda: list(KNOWN_STRATEGIES), description="Order of strategies to try for each target"
    )
    api_timeout: float = Field(default=6.0, gt=0, description="Per-call timeout for direct API requests.")
    navigation_timeout: float = Field(default=15.0, gt=0, description="Timeout for a bridge navigation.")
    script_timeout: float = Field(default=10.0, gt=0, description="Timeout awaiting an injected script's reply.")
    dom_ready_attempts: int = Field(default=10, ge=1, description="Polls for the ready selector.")
    dom_ready_interval: float = Field(default=0.5, ge=0, description="Delay between ready polls in seconds.")
    settle_delay: float = Field(default=3.0, ge=0, description="Wait after navigation when no ready selector.")
    proxy_url_template: Optional[str] = Field(
        default="https://api.allorigins.win/raw?url={url}",
        description="CORS-bypassing intermediary; {url} is replaced by the quoted target URL. None disables.",
    )
    ai_timeout: float = Field(default=15.0, gt=0, description="Timeout for AI-assisted extraction.")
    max_visible_text: int = Field(default=6000, ge=200, description="Characters of visible text sent to the AI.")

    @field_validator("order")
    @classmethod
    def validate_order(cls, v: List[str]) -> List[str]:
        """Ensure the strategy order is non-empty and only names known strategies."""
        if not v:
            raise ValueError("order must contain at least one strategy")
        unknown = [name for name in v if name not in KNOWN_STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown strategies {unknown}. Available strategies: {list(KNOWN_STRATEGIES)}")
        return v


class PipelineSettings(BaseModel):
    """Orchestrator configuration."""

    quorum: int = Field(default=2, ge=1, description="Successes needed before iteration stops.")
    global_timeout: float = Field(default=30.0, gt=0, description="Hard ceiling for one extract_data call.")
    max_targets: Optional[int] = Field(default=None, ge=1, description="Cap on targets attempted per run.")


class ConsensusSettings(BaseModel):
    """Consensus aggregation configuration."""

    decimals: int = Field(default=4, ge=0, le=10)
    max_deviation: Optional[float] = Field(
        default=None,
        gt=0,
        description="Drop values deviating from the median by more than this fraction. None disables.",
    )


class FallbackSettings(BaseModel):
    """Static values served when every strategy fails."""

    exchange_rate: float = 17.26
    crypto_price: float = 68245.32
    crypto_change_24h: str = "+1.2%"
    temperature_c: float = 24.0
    condition: str = "Partly Cloudy"
    location: str = "Mexico City"


class AISettings(BaseModel):
    """OpenAI-compatible completion endpoint."""

    enabled: bool = False
    base_url: str = Field(default="https://openrouter.ai/api/v1", description="Endpoint base URL.")
    model: str = Field(default="deepseek/deepseek-chat-v3-0324:free")
    api_keys: List[str] = Field(default_factory=list, description="Keys rotated on HTTP 429.")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=400, gt=0)


class RemoteSettings(BaseModel):
    """Server-side extraction service."""

    enabled: bool = False
    base_url: str = Field(default="http://localhost:3000/api")
    client_id: str = Field(default="scoutcore")
    poll_interval: float = Field(default=1.0, ge=0)
    poll_attempts: int = Field(default=20, ge=1)


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    enabled: bool = True
    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: int | None = Field(default=None, description="Port for Prometheus metrics exporter.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "ScoutCore"
    version: str = "0.1.0"
    catalog_file: Optional[Path] = Field(
        default=None, description="YAML file with extraction targets. None uses the built-in catalog."
    )
    http: HttpSettings = Field(default_factory=HttpSettings)
    classifier: ClassifierSettings = Field(default_factory=ClassifierSettings)
    strategies: StrategySettings = Field(default_factory=StrategySettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    fallback: FallbackSettings = Field(default_factory=FallbackSettings)
    ai: AISettings = Field(default_factory=AISettings)
    remote: RemoteSettings = Field(default_factory=RemoteSettings)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="SCOUT_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data: Dict[str, Any] | None = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    """Return the first ScoutCore config file in the working directory, if any."""
    current_dir = Path.cwd()
    for path in (current_dir / "scoutcore.yaml", current_dir / "scoutcore.yml", current_dir / "config.yaml"):
        if path.exists():
            return path
    return None

