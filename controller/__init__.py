"""Lift do-not-disrupt protection from pods on expiring Karpenter nodes inside their disruption window."""

from .errors import ReconcileError, UnresolvableEventError, WorkloadLookupError
from .events import BlockedEvent, ExpiryEvent, resolve_node
from .gate import Action, Decision, Workload, decide
from .reconciler import PatchOutcome, Reconciler
from .window import is_window_active, parse_duration

__all__ = [
    "Action",
    "BlockedEvent",
    "Decision",
    "ExpiryEvent",
    "PatchOutcome",
    "ReconcileError",
    "Reconciler",
    "UnresolvableEventError",
    "Workload",
    "WorkloadLookupError",
    "decide",
    "is_window_active",
    "parse_duration",
    "resolve_node",
]
