"""
Configuration objects for streams and the control API.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from .errors import MutationRejected

ENV_CONFIG_VAR = "STREAMBLY_CONFIG"

LOG = logging.getLogger(__name__)


class StopPolicy(str, Enum):
    """What ``stop()`` does while the initializer is still pending."""

    REJECT = "reject"
    DEFER = "defer"


@dataclass(frozen=True)
class StreamOptions:
    stop_policy: StopPolicy = StopPolicy.REJECT
    strict: bool = False
    on_ignored_mutation: Optional[Callable[["MutationRejected"], None]] = None


DEFAULT_OPTIONS = StreamOptions()


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8080, ge=0, le=65535)
    log_level: str = "INFO"
    stop_policy: StopPolicy = StopPolicy.REJECT
    strict: bool = False
    queue_size: int = Field(default=64, ge=1)
    max_sessions: int = Field(default=256, ge=1)

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value: object) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level '{value}'")
        return level

    def stream_options(self) -> StreamOptions:
        return StreamOptions(stop_policy=self.stop_policy, strict=self.strict)

    @property
    def log_level_value(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level]


def _resolve_path(path: Union[str, Path, None]) -> Optional[Path]:
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(ENV_CONFIG_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return None


def load_settings(path: Union[str, Path, None] = None) -> ServerSettings:
    """
    Load :class:`ServerSettings` from a YAML file.

    ``path`` falls back to ``$STREAMBLY_CONFIG``.  A missing file yields
    the defaults.
    """

    resolved = _resolve_path(path)
    if resolved is None:
        return ServerSettings()

    try:
        with resolved.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.info("Settings file %s not found; using defaults.", resolved)
        return ServerSettings()

    if not isinstance(payload, dict):
        raise ValueError(f"{resolved}: expected a mapping at the top level")
    return ServerSettings(**payload)


__all__ = [
    "DEFAULT_OPTIONS",
    "ENV_CONFIG_VAR",
    "ServerSettings",
    "StopPolicy",
    "StreamOptions",
    "load_settings",
]
