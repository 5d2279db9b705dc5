from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Mapping

from .metrics import MetricsSink, NullSink
from .window import is_window_active

DO_NOT_DISRUPT_KEY = "karpenter.sh/do-not-disrupt"
DISRUPTION_WINDOW_SCHEDULE_KEY = "k8s.jukie.net/disruption-window-schedule"
DISRUPTION_WINDOW_DURATION_KEY = "k8s.jukie.net/disruption-window-duration"


class Action(str, Enum):
    PATCH = "patch"
    SKIP = "skip"


@dataclass(frozen=True)
class Workload:
    namespace: str
    name: str
    node_name: str = ""
    annotations: Mapping[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    @property
    def protection_marker(self) -> str:
        return self.annotations.get(DO_NOT_DISRUPT_KEY) or ""

    @property
    def window_schedule(self) -> str:
        return self.annotations.get(DISRUPTION_WINDOW_SCHEDULE_KEY) or ""

    @property
    def window_duration(self) -> str:
        return self.annotations.get(DISRUPTION_WINDOW_DURATION_KEY) or ""

    @classmethod
    def from_pod(cls, pod: Any) -> Workload:
        """Build from a kubernetes V1Pod or a pod manifest dict."""
        if isinstance(pod, dict):
            metadata = pod.get("metadata") or {}
            spec = pod.get("spec") or {}
            return cls(
                namespace=metadata.get("namespace", ""),
                name=metadata.get("name", ""),
                node_name=spec.get("nodeName") or "",
                annotations=dict(metadata.get("annotations") or {}),
            )
        return cls(
            namespace=pod.metadata.namespace or "",
            name=pod.metadata.name or "",
            node_name=(pod.spec.node_name if pod.spec else None) or "",
            annotations=dict(pod.metadata.annotations or {}),
        )


@dataclass(frozen=True)
class Decision:
    workload: Workload
    action: Action


def decide(
    workloads: Iterable[Workload],
    node_name: str,
    *,
    now: datetime | None = None,
    metrics: MetricsSink | None = None,
) -> list[Decision]:
    """Decide, per pod on ``node_name``, whether its do-not-disrupt annotation should go now."""
    metrics = metrics if metrics is not None else NullSink()
    now = now if now is not None else datetime.now(timezone.utc)

    decisions: list[Decision] = []
    for workload in workloads:
        decisions.append(Decision(workload, _action_for(workload, node_name, now, metrics)))
    return decisions


def _action_for(workload: Workload, node_name: str, now: datetime, metrics: MetricsSink) -> Action:
    if not workload.protection_marker:
        return Action.SKIP
    # stale cache entry from a pod that moved
    if workload.node_name and workload.node_name != node_name:
        return Action.SKIP
    active = is_window_active(
        workload.window_schedule,
        workload.window_duration,
        now,
        name=workload.key,
        metrics=metrics,
    )
    return Action.PATCH if active else Action.SKIP
