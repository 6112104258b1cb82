"""Bridge configuration, loadable from YAML or JSON."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

from .errors import error_config

DEFAULT_MAX_PARAMS = 10
CONFIG_ENV_VAR = "SCRIPTBRIDGE_CONFIG"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class BridgeConfig:
    """
    Settings for a ScriptBridge.

    max_params: largest parameter count a registered function may have
    provenance_enabled: record calls for undo/redo from the start
    reentry_exception: raise on nested logged calls instead of skipping them
    history_limit: maximum number of undo records kept (0 = unbounded)
    log_level: level applied by the command line front-end
    """
    max_params: int = DEFAULT_MAX_PARAMS
    provenance_enabled: bool = True
    reentry_exception: bool = True
    history_limit: int = 0
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Raise ConfigError on out-of-range values."""
        for name, expected in (("max_params", int), ("history_limit", int),
                               ("provenance_enabled", bool), ("reentry_exception", bool),
                               ("log_level", str)):
            value = getattr(self, name)
            if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
                raise error_config(
                    f"'{name}' must be of type {expected.__name__}, got {type(value).__name__}")
        if self.max_params < 0:
            raise error_config("'max_params' must be non-negative")
        if self.history_limit < 0:
            raise error_config("'history_limit' must be non-negative", hint="use 0 for unbounded")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise error_config(f"unknown log level '{self.log_level}'",
                               hint=f"use one of {', '.join(_LOG_LEVELS)}")

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeConfig":
        """Create from a mapping; unknown keys are rejected."""
        if not isinstance(data, dict):
            raise error_config("configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise error_config(f"unknown configuration key(s): {', '.join(unknown)}",
                               hint=f"valid keys are {', '.join(sorted(known))}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, path: Path | str) -> "BridgeConfig":
        """Load a `.yaml`/`.yml` or `.json` configuration file."""
        config_path = Path(path)
        if not config_path.exists():
            raise error_config(f"configuration file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fp:
            if config_path.suffix == ".json":
                try:
                    data = json.load(fp)
                except json.JSONDecodeError as exc:
                    raise error_config(f"invalid JSON in {config_path}: {exc}") from exc
            else:
                import yaml  # local import to avoid hard dependency if unused

                try:
                    data = yaml.safe_load(fp) or {}
                except yaml.YAMLError as exc:
                    raise error_config(f"invalid YAML in {config_path}: {exc}") from exc
        return cls.from_dict(data)

    def save(self, path: Path | str) -> None:
        """Write the configuration as YAML (or JSON for a `.json` path)."""
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with config_path.open("w", encoding="utf-8") as fp:
            if config_path.suffix == ".json":
                json.dump(self.to_dict(), fp, indent=2)
                fp.write("\n")
            else:
                import yaml

                yaml.safe_dump(self.to_dict(), fp, sort_keys=False)
