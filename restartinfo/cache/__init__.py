"""Cache layer for restartinfo.

Submodules:
    pod_index -- In-memory pod snapshots fed by the pod watch stream.
"""

from restartinfo.cache.pod_index import PodIndex

__all__ = ["PodIndex"]
