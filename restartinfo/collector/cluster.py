"""Read-only cluster queries used while assembling diagnostics.

Thin adapter over kubernetes-asyncio's ``CoreV1Api``.  Every result is
returned as the raw camelCase dict the API server sent, matching the shape of
pod snapshots delivered by the watch stream.  ``ApiException`` is never
caught here: the controller owns retry decisions.
"""

from __future__ import annotations

from typing import Any

import structlog

_log = structlog.get_logger(component="collector.cluster")

NODE_EVENTS_NAMESPACE = "default"
WARNING_EVENTS_SELECTOR = "type!=Normal"
NODE_WARNING_EVENTS_SELECTOR = "involvedObject.kind=Node,type!=Normal"


class ClusterClient:
    """Event, node and log lookups against the Kubernetes API.

    Args:
        core_v1: A ``kubernetes_asyncio.client.CoreV1Api`` instance.
    """

    def __init__(self, core_v1: Any) -> None:
        self._api = core_v1

    def _to_dict(self, obj: Any) -> Any:
        return self._api.api_client.sanitize_for_serialization(obj)

    async def list_events(self, namespace: str, field_selector: str = WARNING_EVENTS_SELECTOR) -> list[dict[str, Any]]:
        """List core/v1 events in *namespace* matching *field_selector*, in arrival order."""
        result = await self._api.list_namespaced_event(namespace, field_selector=field_selector)
        events = [self._to_dict(item) for item in (result.items or [])]
        _log.debug("events_listed", namespace=namespace, selector=field_selector, count=len(events))
        return events

    async def list_node_events(self) -> list[dict[str, Any]]:
        return await self.list_events(NODE_EVENTS_NAMESPACE, NODE_WARNING_EVENTS_SELECTOR)

    async def get_node(self, name: str) -> dict[str, Any]:
        node = await self._api.read_node(name)
        result: dict[str, Any] = self._to_dict(node)
        return result

    async def read_previous_log(
        self,
        namespace: str,
        pod: str,
        container: str,
        tail_lines: int = 50,
        timestamps: bool = True,
    ) -> str:
        """Return the log of the previous (pre-restart) instance of *container*."""
        text = await self._api.read_namespaced_pod_log(
            pod,
            namespace,
            container=container,
            previous=True,
            timestamps=timestamps,
            tail_lines=tail_lines,
        )
        return text or ""
