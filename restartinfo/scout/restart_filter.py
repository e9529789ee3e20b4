"""Restart filter -- decides which pod updates are worth reconciling.

``restart_key`` is a pure function of an (old, new) pod pair plus the static
``FilterConfig``: it returns the pod key when a fresh restart was observed on
an eligible pod and ``None`` otherwise.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from functools import lru_cache
from typing import Any

import structlog

from restartinfo.models.config import FilterConfig
from restartinfo.models.pods import last_terminated, pod_key, pod_name, pod_namespace, total_restart_count

_log = structlog.get_logger(component="scout.restart_filter")


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error as exc:
        _log.warning("invalid_filter_pattern", pattern=pattern, error=str(exc))
        return None


def _first_match(patterns: list[str], value: str) -> str | None:
    """Return the first pattern that matches anywhere in *value*."""
    for pattern in patterns:
        compiled = _compile(pattern)
        if compiled is not None and compiled.search(value):
            return pattern
    return None


def is_ignored_namespace(namespace: str, config: FilterConfig) -> bool:
    pattern = _first_match(config.ignored_namespaces, namespace)
    if pattern is not None:
        _log.info("namespace_ignored", namespace=namespace, pattern=pattern)
        return True
    return False


def is_watched_namespace(namespace: str, config: FilterConfig) -> bool:
    if not config.watched_namespaces:
        return True
    return _first_match(config.watched_namespaces, namespace) is not None


def is_ignored_pod(name: str, config: FilterConfig) -> bool:
    pattern = _first_match(config.ignored_pod_name_prefixes, name)
    if pattern is not None:
        _log.info("pod_ignored", pod=name, pattern=pattern)
        return True
    return False


def is_watched_pod(name: str, config: FilterConfig) -> bool:
    if not config.watched_pod_name_prefixes:
        return True
    return _first_match(config.watched_pod_name_prefixes, name) is not None


def is_eligible(pod: dict[str, Any], config: FilterConfig) -> bool:
    """Apply the namespace and pod-name allow/deny lists."""
    namespace = pod_namespace(pod)
    if is_ignored_namespace(namespace, config) or not is_watched_namespace(namespace, config):
        return False
    name = pod_name(pod)
    if is_ignored_pod(name, config) or not is_watched_pod(name, config):
        return False
    return True


def restart_key(
    old: dict[str, Any] | None,
    new: dict[str, Any],
    config: FilterConfig,
) -> str | None:
    """Return the pod key if *new* shows a restart that *old* did not."""
    if not is_eligible(new, config):
        return None

    new_count = total_restart_count(new)
    if new_count > config.ignore_restart_count:
        _log.info(
            "restart_count_above_ceiling",
            key=pod_key(new),
            restart_count=new_count,
            ceiling=config.ignore_restart_count,
        )
        return None

    old_count = total_restart_count(old)
    if new_count <= old_count:
        return None

    key = pod_key(new)
    _log.info("pod_restarted", key=key, old_restart_count=old_count, restart_count=new_count)
    return key


class RestartFilter:
    """Binds ``restart_key`` to a config and forwards accepted keys to *sink*."""

    def __init__(self, config: FilterConfig, sink: Callable[[str], None]) -> None:
        self._config = config
        self._sink = sink

    def on_update(self, old: dict[str, Any] | None, new: dict[str, Any]) -> None:
        key = restart_key(old, new, self._config)
        if key is not None:
            self._sink(key)


def ignored_error(name: str, log_line: str, config: FilterConfig) -> str | None:
    """Return the configured error text found in *log_line*, if *name* has one."""
    for prefix, errors in config.ignored_errors_for_pod_prefixes.items():
        if not name.startswith(prefix):
            continue
        for error in errors:
            if error in log_line:
                _log.info("error_ignored", pod=name, error=error)
                return error
    return None


def is_clean_exit(status: dict[str, Any], config: FilterConfig) -> bool:
    """True when exit-code-zero restarts are ignored and *status* exited cleanly."""
    if not config.ignore_restarts_with_exit_code_zero:
        return False
    terminated = last_terminated(status)
    return terminated is not None and int(terminated.get("exitCode") or 0) == 0
