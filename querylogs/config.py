"""
querylogs configuration.

A single QueryLogsConfig instance describes how comments are built:
- which tags are emitted and in what order
- the comment format (legacy or sqlcommenter)
- whether the comment is prepended or appended
- whether the rendered comment is cached per execution context

Defaults come from QUERYLOGS_* environment variables. Every field assignment
bumps a private generation counter that cached comments are checked against,
so changing configuration never serves a stale comment.
"""
import json
import logging
import os
from enum import Enum
from typing import Any, List, Optional, Tuple

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

log = logging.getLogger(__name__)


# ============================================================================
# Formats
# ============================================================================

class Format(str, Enum):
    """Comment serialization format."""
    LEGACY = "legacy"
    SQLCOMMENTER = "sqlcommenter"


def parse_format(value: Any) -> Format:
    """Resolve a format name (case-insensitive) or Format member."""
    from .exceptions import UnknownFormatError

    if isinstance(value, Format):
        return value
    try:
        return Format(str(value).strip().lower())
    except ValueError:
        raise UnknownFormatError(value) from None


# ============================================================================
# Environment Parsers
# ============================================================================

def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _parse_tags_env() -> List[Any]:
    """
    Parse QUERYLOGS_TAGS environment variable.

    Supports JSON, YAML, and plain comma-separated names:
    - JSON: ["application", {"team": "billing"}]
    - YAML: [application, pid]
    - CSV:  application,pid,source_location

    Returns:
        Tag spec list (defaults to ["application"] when unset)
    """
    tags_str = os.getenv("QUERYLOGS_TAGS", "").strip()
    if not tags_str:
        return ["application"]

    # Try JSON first (most common for env vars)
    try:
        result = json.loads(tags_str)
        if isinstance(result, list):
            return result
    except json.JSONDecodeError:
        pass

    # YAML flow sequences
    if tags_str.startswith("["):
        try:
            result = yaml.safe_load(tags_str)
            if isinstance(result, list):
                return result
        except yaml.YAMLError as e:
            log.warning(f"[config] Could not parse QUERYLOGS_TAGS as YAML: {e}")

    return [name.strip() for name in tags_str.split(",") if name.strip()]


# ============================================================================
# Configuration Model
# ============================================================================

class QueryLogsConfig(BaseModel):
    """
    Query log tagging configuration.

    Environment variable prefix: QUERYLOGS_
    Example: QUERYLOGS_FORMAT=sqlcommenter sets format
    """

    # Comment format: "legacy" (key:value) or "sqlcommenter" (key='value')
    format: Format = Field(
        default_factory=lambda: parse_format(os.getenv("QUERYLOGS_FORMAT", "legacy"))
    )

    # Ordered tag spec: names and {label: resolver} blocks. Stored as a tuple,
    # so changing tags means assigning a new spec (which bumps the generation).
    tags: Tuple[Any, ...] = Field(default_factory=_parse_tags_env, validate_default=True)

    # Put the comment before the statement instead of after it
    prepend_comment: bool = Field(
        default_factory=lambda: _env_bool("QUERYLOGS_PREPEND_COMMENT")
    )

    # Cache the rendered comment until the execution context changes
    cache_query_log_tags: bool = Field(
        default_factory=lambda: _env_bool("QUERYLOGS_CACHE_QUERY_LOG_TAGS")
    )

    # Value of the built-in "application" tag
    application: Optional[str] = Field(
        default_factory=lambda: os.getenv("QUERYLOGS_APPLICATION") or None
    )

    # Named tags missing from the registry are read from the execution context
    context_fallback: bool = Field(
        default_factory=lambda: _env_bool("QUERYLOGS_CONTEXT_FALLBACK", "true")
    )

    _generation: int = PrivateAttr(default=0)

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    @field_validator("format", mode="before")
    @classmethod
    def _validate_format(cls, value: Any) -> Format:
        return parse_format(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _validate_tags(cls, value: Any) -> Tuple[Any, ...]:
        from .exceptions import InvalidTagError
        from .tags import normalize_tag_spec

        if value is None:
            return ()
        if isinstance(value, (str, dict)):
            value = [value]
        try:
            normalize_tag_spec(value)
        except InvalidTagError as e:
            raise ValueError(str(e)) from e
        return tuple(value)

    def __setattr__(self, name: str, value: Any) -> None:
        super().__setattr__(name, value)
        if not name.startswith("_"):
            self._generation += 1
            log.debug(f"[config] {name} changed (generation {self._generation})")

    @property
    def generation(self) -> int:
        """Counter bumped on every field assignment."""
        return self._generation


# Global configuration instance
_global_config: Optional[QueryLogsConfig] = None


def get_config() -> QueryLogsConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = QueryLogsConfig()
    return _global_config


def set_config(
    format: Any = None,
    tags: Optional[List[Any]] = None,
    prepend_comment: Optional[bool] = None,
    cache_query_log_tags: Optional[bool] = None,
    application: Optional[str] = None,
) -> QueryLogsConfig:
    """
    Override global settings at runtime.

    Args:
        format: "legacy" or "sqlcommenter"
        tags: Ordered tag spec
        prepend_comment: Prepend instead of append
        cache_query_log_tags: Enable the per-context comment cache
        application: Value of the "application" tag

    Returns:
        The updated global configuration
    """
    config = get_config()
    if format is not None:
        config.format = format
    if tags is not None:
        config.tags = tags
    if prepend_comment is not None:
        config.prepend_comment = prepend_comment
    if cache_query_log_tags is not None:
        config.cache_query_log_tags = cache_query_log_tags
    if application is not None:
        config.application = application
    return config


def reset_config() -> None:
    """Drop the global configuration so the next get_config() re-reads the environment."""
    global _global_config
    _global_config = None
