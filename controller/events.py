"""Triggering events and the predicates that decide when they reconcile.

Both deployment modes reduce to a node name: an expired Karpenter NodeClaim
carries it in ``status.nodeName``, a ``DisruptionBlocked`` event names the
Node as its involved object.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .errors import UnresolvableEventError

EXPIRED_CONDITION = "Expired"
BLOCKED_KIND = "Node"
BLOCKED_REASON = "DisruptionBlocked"


@dataclass(frozen=True)
class Condition:
    type: str
    status: str

    @property
    def is_true(self) -> bool:
        return str(self.status).lower() == "true"


@dataclass(frozen=True)
class ExpiryEvent:
    node_name: str
    conditions: tuple[Condition, ...] = ()
    claim_name: str = ""

    @property
    def is_expired(self) -> bool:
        return any(c.type == EXPIRED_CONDITION and c.is_true for c in self.conditions)

    @classmethod
    def from_nodeclaim(cls, obj: dict[str, Any]) -> ExpiryEvent:
        status = obj.get("status") or {}
        conditions = tuple(
            Condition(type=c.get("type", ""), status=str(c.get("status", "")))
            for c in status.get("conditions") or []
        )
        return cls(
            node_name=status.get("nodeName") or "",
            conditions=conditions,
            claim_name=(obj.get("metadata") or {}).get("name", ""),
        )


@dataclass(frozen=True)
class BlockedEvent:
    involved_kind: str
    involved_name: str
    reason: str

    @classmethod
    def from_event(cls, obj: Any) -> BlockedEvent:
        """Build from a kubernetes CoreV1Event or an event manifest dict."""
        if isinstance(obj, dict):
            involved = obj.get("involvedObject") or {}
            return cls(involved.get("kind", ""), involved.get("name", ""), obj.get("reason", ""))
        involved = obj.involved_object
        return cls(involved.kind or "", involved.name or "", obj.reason or "")


TriggerEvent = Union[ExpiryEvent, BlockedEvent]


def resolve_node(event: TriggerEvent) -> str:
    if isinstance(event, ExpiryEvent):
        node_name = event.node_name
    elif isinstance(event, BlockedEvent):
        node_name = event.involved_name
    else:
        raise UnresolvableEventError(f"unsupported event type: {type(event).__name__}")
    if not node_name:
        raise UnresolvableEventError(f"event carries no node name: {event!r}")
    return node_name


def should_reconcile_create(event: ExpiryEvent) -> bool:
    return event.is_expired


def should_reconcile_update(old: ExpiryEvent, new: ExpiryEvent) -> bool:
    return not old.is_expired and new.is_expired


def should_reconcile_delete(event: ExpiryEvent) -> bool:
    return False


def is_blocked_signal(event: BlockedEvent) -> bool:
    return event.involved_kind == BLOCKED_KIND and event.reason == BLOCKED_REASON
