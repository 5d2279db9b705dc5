from __future__ import annotations

import logging
from typing import Any

from kubernetes.client import CoreV1Api
from kubernetes.client.exceptions import ApiException
from opentelemetry import trace

from controller.gate import Workload
from ..types import AdapterResponse, PatchOp

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

# A remove on a missing path is rejected as Unprocessable; a missing pod is a 404.
# In both cases the annotation is already gone.
ALREADY_ABSENT_STATUSES = (404, 422)


def escape_pointer_token(token: str) -> str:
    """Escape a single JSON Pointer reference token (RFC 6901)."""
    return token.replace("~", "~0").replace("/", "~1")


def annotation_path(key: str) -> str:
    return f"/metadata/annotations/{escape_pointer_token(key)}"


def remove_annotation_patch(key: str) -> list[PatchOp]:
    return [{"op": "remove", "path": annotation_path(key)}]


class PodLookup:
    """Lists pods bound to a node through the API server's spec.nodeName field index."""

    def __init__(self, core_v1: CoreV1Api) -> None:
        self.core_v1 = core_v1

    def list_pods_on_node(self, node_name: str) -> list[Workload]:
        with tracer.start_as_current_span("k8s.pods.list_on_node") as span:
            span.set_attribute("node", node_name)
            pods = self.core_v1.list_pod_for_all_namespaces(field_selector=f"spec.nodeName={node_name}")
            span.set_attribute("count", len(pods.items))
            return [Workload.from_pod(p) for p in pods.items]


class PodPatcher:
    """Removes a single annotation from a pod with a JSON patch."""

    def __init__(self, core_v1: CoreV1Api) -> None:
        self.core_v1 = core_v1

    def remove_annotation(self, namespace: str, name: str, key: str, dry_run: bool = True) -> AdapterResponse:
        patch = remove_annotation_patch(key)
        kwargs: dict[str, Any] = {}
        if dry_run:
            kwargs["dry_run"] = "All"

        with tracer.start_as_current_span("k8s.pods.remove_annotation") as span:
            span.set_attribute("namespace", namespace)
            span.set_attribute("name", name)
            span.set_attribute("dry_run", dry_run)

            audit = {
                "adapter": "k8s.real",
                "tool": "k8s.remove_pod_annotation",
                "namespace": namespace,
                "name": name,
                "path": patch[0]["path"],
                "dryRun": dry_run,
            }
            try:
                # A list body makes the client send application/json-patch+json
                self.core_v1.patch_namespaced_pod(name, namespace, patch, **kwargs)
            except ApiException as e:
                if e.status not in ALREADY_ABSENT_STATUSES:
                    span.set_attribute("success", False)
                    span.record_exception(e)
                    raise
                logger.info(
                    "Annotation %s already absent from pod %s/%s (status %s)", key, namespace, name, e.status
                )
                span.set_attribute("success", True)
                return {
                    "output": {"ok": True, "idempotent": True},
                    "audit": {**audit, "status": e.status},
                }

            span.set_attribute("success", True)
            return {"output": {"ok": True}, "audit": audit}
