# boardsync: configuration
# Defaults, overridden by boardsync.yaml, overridden by BOARDSYNC_* env vars.

import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError

CONFIG_FILE = "boardsync.yaml"

ROLLBACK_POLICIES = ("compensate", "refetch", "local")

LOG_FORMAT = "%(asctime)s [boardsync] %(levelname)s: %(message)s"

# env var -> (field, type)
ENV_OVERRIDES = {
    "BOARDSYNC_API_URL": ("api_url", str),
    "BOARDSYNC_API_KEY": ("api_key", str),
    "BOARDSYNC_TIMEOUT": ("request_timeout", float),
    "BOARDSYNC_MAX_PARALLEL": ("max_parallel_requests", int),
    "BOARDSYNC_ROLLBACK_POLICY": ("rollback_policy", str),
    "BOARDSYNC_VERIFY_AFTER_COMMIT": ("verify_after_commit", bool),
    "BOARDSYNC_LOG_LEVEL": ("log_level", str),
}


def _truthy(value: str) -> bool:
    return value.strip().lower() not in {"0", "false", "no", "off", ""}


def _coerce(value, kind):
    """Convert a raw YAML or env value to a field's type; raises TypeError/ValueError."""
    if value is None:
        raise TypeError("value is null")
    if kind is bool:
        if isinstance(value, str):
            return _truthy(value)
        if isinstance(value, (bool, int)):
            return bool(value)
        raise TypeError(f"cannot read {type(value).__name__} as bool")
    if isinstance(value, bool) or isinstance(value, (list, dict)):
        raise TypeError(f"cannot read {type(value).__name__} as {kind.__name__}")
    return kind(value)


@dataclass
class Config:
    """Runtime configuration for a board session."""

    # Backend
    api_url: str = "http://localhost:5000"
    api_key: str = ""
    request_timeout: float = 10.0

    # Dispatch
    max_parallel_requests: int = 0      # 0 = no cap
    dispatch_timeout: float = 0.0       # 0 = rely on request_timeout

    # Recovery
    rollback_policy: str = "compensate"  # "compensate" | "refetch" | "local"
    verify_after_commit: bool = False

    log_level: str = "INFO"

    def validate(self) -> "Config":
        if self.rollback_policy not in ROLLBACK_POLICIES:
            raise ConfigError(
                f"Invalid rollback_policy {self.rollback_policy!r}. "
                f"Expected one of: {', '.join(ROLLBACK_POLICIES)}"
            )
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.max_parallel_requests < 0:
            raise ConfigError(f"max_parallel_requests must be >= 0, got {self.max_parallel_requests}")
        if self.dispatch_timeout < 0:
            raise ConfigError(f"dispatch_timeout must be >= 0, got {self.dispatch_timeout}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ConfigError(f"Unknown log_level {self.log_level!r}")
        return self

    def apply_env(self, environ: Optional[dict] = None) -> "Config":
        """Override fields from BOARDSYNC_* environment variables."""
        environ = os.environ if environ is None else environ
        for name, (attr, kind) in ENV_OVERRIDES.items():
            raw = environ.get(name)
            if raw is None or raw == "":
                continue
            try:
                value = _coerce(raw, kind)
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{name}={raw!r} is not a valid {kind.__name__}") from e
            setattr(self, attr, value)
        return self

    @classmethod
    def load(cls, path: Optional[str] = None, environ: Optional[dict] = None) -> "Config":
        """Load config from YAML file, falling back to defaults, then apply env."""
        cfg_path = Path(path) if path else Path.cwd() / CONFIG_FILE
        known = {f.name: f.type for f in fields(cls)}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Cannot parse {cfg_path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"{cfg_path} must contain a mapping")
            values = {}
            for key, raw in data.items():
                if key not in known:
                    continue
                try:
                    values[key] = _coerce(raw, known[key])
                except (TypeError, ValueError) as e:
                    raise ConfigError(f"{cfg_path}: {key}={raw!r} is not a valid {known[key].__name__}") from e
            cfg = cls(**values)
        else:
            cfg = cls()
        return cfg.apply_env(environ).validate()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Send boardsync logs to stdout in the standard format."""
    logger = logging.getLogger("boardsync")
    logger.setLevel(level.upper())
    if not any(getattr(h, "_boardsync", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._boardsync = True
        logger.addHandler(handler)
    return logger
