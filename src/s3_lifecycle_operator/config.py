"""Configuration for the S3 Lifecycle Operator runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields


@dataclass
class OperatorConfig:
    """Timeouts and intervals used by the reconciler and the operator process.

    Every field can be overridden by an upper-cased environment variable of the
    same name, e.g. ``EXTRA_RETRY_DELAY=1``.
    """

    bucket_propagation_timeout: float = 120.0
    rules_steady_timeout: float = 120.0
    extra_retry_delay: float = 5.0
    rules_status_timeout: float = 180.0
    rules_status_min_interval: float = 10.0
    rules_status_continuous_target: int = 3
    operation_timeout: float = 600.0
    retry_min_delay: float = 1.0
    retry_max_delay: float = 10.0
    drift_check_interval: int = 300
    metrics_port: int = 8080
    cache_ttl: float = 60.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "OperatorConfig":
        """Build a config from environment variables, falling back to defaults."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(f.name.upper())
            if raw is None or raw == "":
                continue
            default = f.default
            if isinstance(default, bool):
                values[f.name] = raw.lower() in ("1", "true", "yes")
            elif isinstance(default, int):
                values[f.name] = int(raw)
            elif isinstance(default, float):
                values[f.name] = float(raw)
            else:
                values[f.name] = raw
        return cls(**values)


_config: OperatorConfig | None = None


def get_config() -> OperatorConfig:
    """Return the process-wide config, loading it from the environment once."""
    global _config
    if _config is None:
        _config = OperatorConfig.from_env()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() re-reads the environment."""
    global _config
    _config = None
