"""Configuration loading from environment variables."""

from __future__ import annotations

import json
import os

from restartinfo.models.config import (
    ControllerConfig,
    FilterConfig,
    KubeConfig,
    LogConfig,
    RestartInfoConfig,
    SlackConfig,
)


class ConfigError(ValueError):
    """Raised when required configuration is missing or malformed."""


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"RESTARTINFO_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default)) or str(default)
    try:
        val = int(raw)
    except ValueError as exc:
        raise ConfigError(f"RESTARTINFO_{key} must be an integer, got {raw!r}") from exc
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str) -> list[str]:
    """Split a comma-separated variable, dropping empty entries."""
    return [item.strip() for item in _env(key).split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ConfigError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _parse_ignored_errors(value: str) -> dict[str, list[str]]:
    """Parse ``{"pod-prefix": ["error substring", ...]}``."""
    if not value:
        return {}
    try:
        raw = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"IGNORED_ERRORS_FOR_POD_NAME_PREFIXES is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError("IGNORED_ERRORS_FOR_POD_NAME_PREFIXES must be a JSON object")
    return {str(prefix): [str(e) for e in (errors or [])] for prefix, errors in raw.items()}


def load_config() -> RestartInfoConfig:
    """Load configuration from RESTARTINFO_* environment variables.

    Raises:
        ConfigError: if the Slack webhook URL is not set.
    """
    webhook_url = _env("SLACK_WEBHOOK_URL")
    if not webhook_url:
        raise ConfigError("RESTARTINFO_SLACK_WEBHOOK_URL is not set")

    return RestartInfoConfig(
        cluster_name=_env("CLUSTER_NAME", "cluster-name") or "cluster-name",
        filters=FilterConfig(
            ignored_namespaces=_env_list("IGNORED_NAMESPACES"),
            watched_namespaces=_env_list("WATCHED_NAMESPACES"),
            ignored_pod_name_prefixes=_env_list("IGNORED_POD_NAME_PREFIXES"),
            watched_pod_name_prefixes=_env_list("WATCHED_POD_NAME_PREFIXES"),
            ignore_restart_count=_env_int("IGNORE_RESTART_COUNT", 30, min_val=0),
            ignore_restarts_with_exit_code_zero=_env_bool("IGNORE_RESTARTS_WITH_EXIT_CODE_ZERO", False),
            ignored_errors_for_pod_prefixes=_parse_ignored_errors(_env("IGNORED_ERRORS_FOR_POD_NAME_PREFIXES")),
        ),
        slack=SlackConfig(
            webhook_url=webhook_url,
            channel=_env("SLACK_CHANNEL", "restart-info-nonprod") or "restart-info-nonprod",
            username=_env("SLACK_USERNAME", "k8s-pod-restart-info-collector") or "k8s-pod-restart-info-collector",
            mute_seconds=_env_int("MUTE_SECONDS", 600, min_val=0),
        ),
        controller=ControllerConfig(
            workers=_env_int("WORKERS", 1, min_val=1, max_val=16),
            max_retries=_env_int("MAX_RETRIES", 3, min_val=0, max_val=10),
        ),
        kube=KubeConfig(
            kubeconfig=_env("KUBECONFIG", ""),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
