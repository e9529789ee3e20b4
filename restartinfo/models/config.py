"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class FilterConfig:
    """Pod eligibility rules applied by the restart filter and reconciler."""

    ignored_namespaces: list[str] = field(default_factory=list)
    watched_namespaces: list[str] = field(default_factory=list)
    ignored_pod_name_prefixes: list[str] = field(default_factory=list)
    watched_pod_name_prefixes: list[str] = field(default_factory=list)
    ignore_restart_count: int = 30
    ignore_restarts_with_exit_code_zero: bool = False
    # pod name prefix -> substrings of the last log line that suppress an alert
    ignored_errors_for_pod_prefixes: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SlackConfig:
    """Slack incoming-webhook configuration."""

    webhook_url: str = ""
    channel: str = "restart-info-nonprod"
    username: str = "k8s-pod-restart-info-collector"
    mute_seconds: int = 600


@dataclass
class ControllerConfig:
    """Worker pool and retry configuration."""

    workers: int = 1
    max_retries: int = 3


@dataclass
class KubeConfig:
    """Kubernetes client configuration."""

    kubeconfig: str = ""


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class RestartInfoConfig:
    """Top-level restartinfo configuration."""

    cluster_name: str = "cluster-name"
    filters: FilterConfig = field(default_factory=FilterConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)
    controller: ControllerConfig = field(default_factory=ControllerConfig)
    kube: KubeConfig = field(default_factory=KubeConfig)
    log: LogConfig = field(default_factory=LogConfig)
