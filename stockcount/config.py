"""
STOCKCOUNT Configuration

Pydantic models for every tunable in the voice inventory pipeline, loaded
from YAML with environment variable overrides.

Search order for the config file:
    ./stockcount.yaml
    ~/.stockcount/config.yaml
    /etc/stockcount/config.yaml

Environment overrides use STOCKCOUNT_<SECTION>_<FIELD>, for example
STOCKCOUNT_SERVER_PORT=10600 or STOCKCOUNT_LLM_BACKEND=rules.

Usage:
    from stockcount.config import load_config

    config = load_config()
    print(config.aggregator.idle_timeout_seconds)
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from stockcount.exceptions import ConfigurationError

logger = logging.getLogger("stockcount.config")

ENV_PREFIX = "STOCKCOUNT"


# =============================================================================
# Section Models
# =============================================================================

class LLMConfig(BaseModel):
    """Command extraction backend."""
    backend: Literal["openai", "anthropic", "mock", "rules"] = "openai"
    model: Optional[str] = None
    api_key: Optional[str] = None
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=300, ge=16, le=4096)


class AggregatorConfig(BaseModel):
    """Transcript aggregation."""
    idle_timeout_seconds: float = Field(default=3.0, gt=0.0, le=30.0)


class AccumulatorConfig(BaseModel):
    """Partial command accumulation."""
    context_window_seconds: float = Field(default=5.0, gt=0.0, le=60.0)


class SessionConfig(BaseModel):
    """Per-session rolling context."""
    max_conversation_turns: int = Field(default=8, ge=1, le=100)
    max_recent_commands: int = Field(default=2, ge=1, le=20)
    max_session_items: int = Field(default=10, ge=1, le=100)
    default_user_role: str = "staff"


class ConfirmationConfig(BaseModel):
    """Thresholds for the confirmation policy."""
    implicit_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    explicit_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    visual_timeout_seconds: float = Field(default=10.0, gt=0.0)
    ambiguous_timeout_seconds: float = Field(default=15.0, gt=0.0)
    set_change_timeout_seconds: float = Field(default=8.0, gt=0.0)
    similar_item_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    large_add_quantity: float = Field(default=100.0, gt=0.0)
    large_remove_quantity: float = Field(default=50.0, gt=0.0)
    large_set_quantity: float = Field(default=200.0, gt=0.0)
    large_add_ratio: float = Field(default=0.5, gt=0.0)
    large_remove_ratio: float = Field(default=0.3, gt=0.0)
    large_set_ratio: float = Field(default=0.5, gt=0.0)
    set_change_ratio: float = Field(default=0.5, gt=0.0)

    min_history_for_personalization: int = Field(default=5, ge=0)
    high_error_rate: float = Field(default=0.3, ge=0.0, le=1.0)
    low_error_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_ordering(self) -> "ConfirmationConfig":
        if self.explicit_confidence > self.implicit_confidence:
            raise ValueError("explicit_confidence must not exceed implicit_confidence")
        if self.low_error_rate > self.high_error_rate:
            raise ValueError("low_error_rate must not exceed high_error_rate")
        return self


class CatalogConfig(BaseModel):
    """Item resolution and similarity search."""
    embedder: Literal["hashing", "openai"] = "hashing"
    embedding_model: str = "text-embedding-3-small"
    dimensions: int = Field(default=256, ge=16, le=4096)
    top_k: int = Field(default=5, ge=1, le=50)
    similarity_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    acceptance_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    search_url: Optional[str] = None
    search_api_key: Optional[str] = None
    search_timeout_seconds: float = Field(default=10.0, gt=0.0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "CatalogConfig":
        if self.similarity_floor >= self.acceptance_threshold:
            raise ValueError("similarity_floor must be below acceptance_threshold")
        return self


class InventoryConfig(BaseModel):
    """Backing inventory store."""
    database_path: str = "stockcount.db"


class ServerConfig(BaseModel):
    """Session event server."""
    host: str = "0.0.0.0"
    port: int = Field(default=10500, ge=1, le=65535)


class StockcountConfig(BaseModel):
    """Root configuration."""
    llm: LLMConfig = Field(default_factory=LLMConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    accumulator: AccumulatorConfig = Field(default_factory=AccumulatorConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    inventory: InventoryConfig = Field(default_factory=InventoryConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_file: Optional[str] = None


# =============================================================================
# Loading
# =============================================================================

def get_config_paths() -> list[Path]:
    """Return config file locations in search order."""
    return [
        Path.cwd() / "stockcount.yaml",
        Path.home() / ".stockcount" / "config.yaml",
        Path("/etc/stockcount/config.yaml"),
    ]


def _coerce_env_value(raw: str, current: Any) -> Any:
    """Coerce an environment string to the type of the current field value."""
    if isinstance(current, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay STOCKCOUNT_<SECTION>_<FIELD> variables onto raw config data."""
    defaults = StockcountConfig()

    for section_name, section_field in StockcountConfig.model_fields.items():
        section_default = getattr(defaults, section_name)

        if not isinstance(section_default, BaseModel):
            env_name = f"{ENV_PREFIX}_{section_name.upper()}"
            if env_name in os.environ:
                data[section_name] = os.environ[env_name]
            continue

        for field_name in type(section_default).model_fields:
            env_name = f"{ENV_PREFIX}_{section_name.upper()}_{field_name.upper()}"
            if env_name not in os.environ:
                continue
            section_data = data.setdefault(section_name, {})
            try:
                section_data[field_name] = _coerce_env_value(
                    os.environ[env_name], getattr(section_default, field_name)
                )
            except ValueError as e:
                raise ConfigurationError(
                    f"Invalid value in {env_name}: {e}", config_key=f"{section_name}.{field_name}"
                ) from e
            logger.debug(f"Config override from {env_name}")

    return data


def load_config(path: Optional[Union[str, Path]] = None) -> StockcountConfig:
    """Load configuration from YAML with environment overrides.

    Args:
        path: Explicit config file. When omitted, the search paths are tried
              in order and defaults are used if none exists.

    Returns:
        Validated StockcountConfig

    Raises:
        ConfigurationError: File missing, YAML malformed, or values invalid
    """
    config_file: Optional[Path] = None
    if path is not None:
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError("Configuration file not found", config_file=str(config_file))
    else:
        for candidate in get_config_paths():
            if candidate.exists():
                config_file = candidate
                break

    data: dict[str, Any] = {}
    if config_file is not None:
        try:
            with open(config_file) as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML: {e}", config_file=str(config_file)) from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigurationError("Configuration root must be a mapping", config_file=str(config_file))
        data = loaded or {}
        logger.info(f"Loaded configuration from {config_file}")

    data = _apply_env_overrides(data)

    try:
        return StockcountConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Configuration validation failed: {e}",
            config_file=str(config_file) if config_file else None,
        ) from e


__all__ = [
    "LLMConfig",
    "AggregatorConfig",
    "AccumulatorConfig",
    "SessionConfig",
    "ConfirmationConfig",
    "CatalogConfig",
    "InventoryConfig",
    "ServerConfig",
    "StockcountConfig",
    "get_config_paths",
    "load_config",
]
