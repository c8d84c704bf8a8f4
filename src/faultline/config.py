"""Service configuration loaded from FAULTLINE_* environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_LOG_SINKS = {"stdout", "memory"}


class ConfigError(ValueError):
    """Raised when an environment variable holds an invalid value."""


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return value


def _choice_env(
    env: Mapping[str, str], name: str, default: str, choices: set[str]
) -> str:
    raw = env.get(name) or default
    if raw not in choices:
        raise ConfigError(f"{name} must be one of {sorted(choices)}, got {raw!r}")
    return raw


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the service.

    Attributes:
        host: Interface the HTTP listener binds to.
        port: HTTP listener port.
        profiling_url: Base URL of the profiling listener, echoed in the
            /leak and /cpu responses.
        log_level: Level for operational (stdlib) logging.
        log_sink: "stdout" writes NDJSON records, "memory" keeps them in
            process.
        exclude_paths: Path patterns excluded from request accounting.
        graceful_timeout: Seconds to wait for in-flight requests on shutdown.
        keepalive_timeout: Seconds an idle connection is kept open.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    profiling_url: str = "http://localhost:6060/debug/pprof"
    log_level: str = "INFO"
    log_sink: str = "stdout"
    exclude_paths: list[str] = field(default_factory=list)
    graceful_timeout: int = 30
    keepalive_timeout: int = 60

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            env: Mapping to read from (default: os.environ).

        Raises:
            ConfigError: If a variable is present but invalid.
        """
        if env is None:
            env = os.environ
        exclude = env.get("FAULTLINE_EXCLUDE_PATHS", "")
        return cls(
            host=env.get("FAULTLINE_HOST") or cls.host,
            port=_int_env(env, "FAULTLINE_PORT", cls.port),
            profiling_url=(
                env.get("FAULTLINE_PROFILING_URL") or cls.profiling_url
            ).rstrip("/"),
            log_level=_choice_env(
                env, "FAULTLINE_LOG_LEVEL", cls.log_level, _LOG_LEVELS
            ),
            log_sink=_choice_env(env, "FAULTLINE_LOG_SINK", cls.log_sink, _LOG_SINKS),
            exclude_paths=[p.strip() for p in exclude.split(",") if p.strip()],
            graceful_timeout=_int_env(
                env, "FAULTLINE_GRACEFUL_TIMEOUT", cls.graceful_timeout
            ),
            keepalive_timeout=_int_env(
                env, "FAULTLINE_KEEPALIVE_TIMEOUT", cls.keepalive_timeout
            ),
        )
