from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from opentelemetry import trace

from adapters.base import Lookup, Patcher
from .errors import WorkloadLookupError
from .events import TriggerEvent, resolve_node
from .gate import DO_NOT_DISRUPT_KEY, Action, Workload, decide
from .metrics import MetricsSink, NullSink, record_patch

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

PATCH_KIND = "Pod"


class StopSignal(Protocol):
    def is_set(self) -> bool:
        ...


@dataclass(frozen=True)
class PatchOutcome:
    workload: Workload
    succeeded: bool
    error: str | None = None


class Reconciler:
    """Lifts do-not-disrupt protection from pods on a node whose disruption window is open."""

    def __init__(
        self,
        lookup: Lookup,
        patcher: Patcher,
        *,
        dry_run: bool = True,
        metrics: MetricsSink | None = None,
    ) -> None:
        self.lookup = lookup
        self.patcher = patcher
        self.dry_run = dry_run
        self.metrics = metrics if metrics is not None else NullSink()

    def reconcile(
        self,
        event: TriggerEvent,
        *,
        stop: StopSignal | None = None,
        now: datetime | None = None,
    ) -> list[PatchOutcome]:
        node_name = resolve_node(event)

        with tracer.start_as_current_span("controller.reconcile") as span:
            span.set_attribute("node", node_name)
            span.set_attribute("dry_run", self.dry_run)

            try:
                workloads = self.lookup.list_pods_on_node(node_name)
            except Exception as e:
                span.record_exception(e)
                raise WorkloadLookupError(node_name, e) from e

            decisions = decide(workloads, node_name, now=now, metrics=self.metrics)
            candidates = [d.workload for d in decisions if d.action is Action.PATCH]
            span.set_attribute("candidates", len(candidates))

            outcomes = self.apply(candidates, node_name, stop=stop)
            span.set_attribute("patched", sum(1 for o in outcomes if o.succeeded))
            span.set_attribute("failed", sum(1 for o in outcomes if not o.succeeded))
            return outcomes

    def apply(
        self, workloads: list[Workload], node_name: str, *, stop: StopSignal | None = None
    ) -> list[PatchOutcome]:
        outcomes: list[PatchOutcome] = []
        for workload in workloads:
            if stop is not None and stop.is_set():
                logger.info(
                    "Stop requested, leaving %d pod(s) on node %s unpatched",
                    len(workloads) - len(outcomes),
                    node_name,
                )
                break
            outcomes.append(self._remove_marker(workload, node_name))
        return outcomes

    def _remove_marker(self, workload: Workload, node_name: str) -> PatchOutcome:
        logger.info(
            "Node %s is being disrupted, removing %s from pod %s to allow deprovisioning%s",
            node_name,
            DO_NOT_DISRUPT_KEY,
            workload.key,
            " (dry-run)" if self.dry_run else "",
        )
        try:
            self.patcher.remove_annotation(
                workload.namespace, workload.name, DO_NOT_DISRUPT_KEY, dry_run=self.dry_run
            )
        except Exception as e:
            logger.error("Failed to remove annotations from pod %s: %s", workload.key, e)
            record_patch(self.metrics, PATCH_KIND, workload.name, succeeded=False)
            return PatchOutcome(workload, succeeded=False, error=str(e))

        logger.info("Annotation %s removed from pod %s", DO_NOT_DISRUPT_KEY, workload.key)
        record_patch(self.metrics, PATCH_KIND, workload.name, succeeded=True)
        return PatchOutcome(workload, succeeded=True)
