"""
config.py

Responsibility: Builds the immutable TargetConfig from environment variables.
Does NOT: talk to the server, touch the credential file, or configure logging.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

_CREDENTIAL_FILENAME = "serviceaccount.json"

_TRUTHY = {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class TargetConfig:
    """
    Process-wide settings for the single server this daemon manages.

    Created once at startup by load_config() and shared read-only by every
    component.
    """

    base_url: str = "http://localhost:3000"
    admin_user: str = "grafana"
    admin_password: str = "grafana"
    provisioning_path: str = "/etc/grafana/provisioning"
    data_dir: str = "/data"
    log_level: str = "info"

    # Seconds to wait before the first health probe
    startup_delay: float = 5.0
    health_retries: int = 5
    health_retry_delay: float = 2.0
    debounce_seconds: float = 2.0
    debounce_immediate: bool = False
    request_timeout: float = 5.0

    @property
    def credential_file(self) -> str:
        """Path of the persisted service credential."""
        return os.path.join(self.data_dir, _CREDENTIAL_FILENAME)


# ---------------------------------------------------------------------------
# Environment helpers
# ---------------------------------------------------------------------------


def _first(env: Mapping[str, str], *names: str, default: str) -> str:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid value %s=%r, using default %s.", name, raw, default)
        return default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid value %s=%r, using default %s.", name, raw, default)
        return default


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(env: Mapping[str, str] | None = None) -> TargetConfig:
    """
    Reads the daemon configuration from the environment.

    Each server setting accepts a plain name (SERVER_DOMAIN, ...) and falls
    back to the Grafana-style name (GF_SERVER_DOMAIN, ...) so the sidecar can
    share an env file with the server container.

    Args:
        env: Mapping to read from. Defaults to os.environ.

    Returns:
        A frozen TargetConfig.
    """
    if env is None:
        env = os.environ

    protocol = _first(env, "SERVER_PROTOCOL", "GF_SERVER_PROTOCOL", default="http")
    domain = _first(env, "SERVER_DOMAIN", "GF_SERVER_DOMAIN", default="localhost")
    port = _first(env, "SERVER_HTTP_PORT", "GF_SERVER_HTTP_PORT", default="3000")

    return TargetConfig(
        base_url=f"{protocol}://{domain}:{port}",
        admin_user=_first(env, "SERVER_ADMIN_USER", "GF_SECURITY_ADMIN_USER", default="grafana"),
        admin_password=_first(env, "SERVER_ADMIN_PASSWORD", "GF_SECURITY_ADMIN_PASSWORD", default="grafana"),
        provisioning_path=_first(env, "PROVISIONING_PATH", "GF_PATHS_PROVISIONING", default="/etc/grafana/provisioning"),
        data_dir=_first(env, "DATA_DIR", "GRAFANA_PROVISIONING_CONFIG_RELOADER_DATA_DIR", default="/data"),
        log_level=_first(env, "LOG_LEVEL", default="info"),
        startup_delay=_env_float(env, "STARTUP_DELAY", 5.0),
        health_retries=_env_int(env, "HEALTH_RETRIES", 5),
        health_retry_delay=_env_float(env, "HEALTH_RETRY_DELAY", 2.0),
        debounce_seconds=_env_float(env, "DEBOUNCE_SECONDS", 2.0),
        debounce_immediate=_env_bool(env, "DEBOUNCE_IMMEDIATE", False),
        request_timeout=_env_float(env, "REQUEST_TIMEOUT", 5.0),
    )
