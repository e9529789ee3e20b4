"""Collector package for restartinfo.

Submodules
----------
watcher     -- BaseWatcher: reconnect logic, exponential back-off, relist recovery.
pod_watcher -- PodWatcher: feeds the PodIndex and reports (old, new) pod pairs.
cluster     -- ClusterClient: event, node and previous-log lookups.
"""

from restartinfo.collector.cluster import ClusterClient
from restartinfo.collector.pod_watcher import PodWatcher
from restartinfo.collector.watcher import BaseWatcher

__all__ = ["BaseWatcher", "ClusterClient", "PodWatcher"]
