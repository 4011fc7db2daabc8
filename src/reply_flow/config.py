"""Configuration for the candidate engine.

Backend settings come from the host environment (optionally a repo-local
``.env``); tuning knobs live in ``EngineConfig`` and may be loaded from YAML.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigurationError
from .types import DecodingParams, FlowWeights
from .utils.env import load_repo_dotenv

DEFAULT_MODEL_ID = "ibm/granite-3-8b-instruct"
DEFAULT_IAM_URL = "https://iam.cloud.ibm.com/identity/token"
DEFAULT_API_VERSION = "2024-08-01"


@dataclass(slots=True)
class EngineSettings:
    """Backend credentials and endpoints supplied by the host environment."""

    api_key: str | None = None
    project_id: str | None = None
    endpoint: str | None = None
    model_id: str = DEFAULT_MODEL_ID
    iam_url: str = DEFAULT_IAM_URL
    api_version: str = DEFAULT_API_VERSION
    call_timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "EngineSettings":
        if environ is None:
            load_repo_dotenv()
            environ = os.environ
        timeout_raw = environ.get("REPLY_FLOW_CALL_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else 30.0
        except ValueError as exc:
            raise ConfigurationError(
                ("REPLY_FLOW_CALL_TIMEOUT",),
                f"REPLY_FLOW_CALL_TIMEOUT must be a number, got {timeout_raw!r}",
            ) from exc
        endpoint = environ.get("IBM_WATSON_ENDPOINT") or None
        return cls(
            api_key=environ.get("IBM_API_KEY") or None,
            project_id=environ.get("IBM_PROJECT_ID") or None,
            endpoint=endpoint.rstrip("/") if endpoint else None,
            model_id=environ.get("IBM_MODEL_ID") or DEFAULT_MODEL_ID,
            iam_url=environ.get("IBM_IAM_URL") or DEFAULT_IAM_URL,
            api_version=environ.get("IBM_API_VERSION") or DEFAULT_API_VERSION,
            call_timeout_seconds=timeout,
        )

    def validate(self) -> None:
        """Raise ``ConfigurationError`` naming every missing setting."""

        missing = [
            name
            for name, value in (
                ("IBM_API_KEY", self.api_key),
                ("IBM_WATSON_ENDPOINT", self.endpoint),
                ("IBM_PROJECT_ID", self.project_id),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(missing)
        if self.call_timeout_seconds <= 0:
            raise ConfigurationError(
                ("REPLY_FLOW_CALL_TIMEOUT",), "REPLY_FLOW_CALL_TIMEOUT must be > 0"
            )


@dataclass(slots=True)
class SelectionConfig:
    """Shortlist controls for the diversity selector."""

    min_return: int = 3
    max_return: int = 6
    prefer_count: int = 5
    mmr_lambda: float = 0.15
    short_dup_threshold: float = 0.97
    long_dup_threshold: float = 0.88
    short_text_chars: int = 45
    distinct_start_words: int = 2
    min_fourth_prob: float = 0.04
    trim_tolerance: float = 0.01


@dataclass(slots=True)
class EngineConfig:
    """Engine-wide defaults."""

    decoding: DecodingParams = field(default_factory=DecodingParams)
    weights: FlowWeights = field(default_factory=FlowWeights)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    default_call_count: int = 6
    max_calls: int = 8

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "EngineConfig":
        """Build a config from a nested mapping, rejecting unknown keys."""

        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError("Engine config must be a mapping.")
        _reject_unknown(
            data,
            ("decoding", "weights", "selection", "default_call_count", "max_calls"),
            "engine",
        )
        config = cls()
        if "decoding" in data:
            config.decoding = config.decoding.merged(data["decoding"])
        if "weights" in data:
            config.weights = _build_block(FlowWeights, data["weights"], "weights")
        if "selection" in data:
            config.selection = _build_block(SelectionConfig, data["selection"], "selection")
        if "default_call_count" in data:
            config.default_call_count = int(data["default_call_count"])
        if "max_calls" in data:
            config.max_calls = int(data["max_calls"])
        return config


def load_engine_config(path: str | Path) -> EngineConfig:
    """Load an ``EngineConfig`` from a YAML file."""

    with Path(path).open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return EngineConfig.from_mapping(data)


def _reject_unknown(data: Mapping[str, Any], allowed: tuple[str, ...], section: str) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown key(s) in '{section}' config: {', '.join(unknown)}")


def _build_block(cls: type, data: Any, section: str):
    if not isinstance(data, Mapping):
        raise ValueError(f"'{section}' config must be a mapping.")
    names = tuple(f.name for f in fields(cls))
    _reject_unknown(data, names, section)
    return cls(**dict(data))


__all__ = [
    "DEFAULT_API_VERSION",
    "DEFAULT_IAM_URL",
    "DEFAULT_MODEL_ID",
    "EngineConfig",
    "EngineSettings",
    "SelectionConfig",
    "load_engine_config",
]
