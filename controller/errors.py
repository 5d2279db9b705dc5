from __future__ import annotations


class ReconcileError(RuntimeError):
    """Base class for failures that abort a single reconciliation."""


class UnresolvableEventError(ReconcileError):
    """The triggering event carries no usable node identity."""


class WorkloadLookupError(ReconcileError):
    """Listing the pods bound to a node failed."""

    def __init__(self, node_name: str, cause: Exception) -> None:
        super().__init__(f"failed getting pods for node {node_name}: {cause}")
        self.node_name = node_name
        self.cause = cause
