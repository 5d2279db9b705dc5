"""Counters recorded by the controller.

The reconciliation code only sees a ``MetricsSink``; ``PrometheusSink`` is
wired in by the entry point and tests pass their own sink.
"""

from __future__ import annotations

from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter

NAMESPACE = "karpenter"
SUBSYSTEM = "disruption_controller"

KIND_LABEL = "kind"
NAME_LABEL = "name"
TYPE_LABEL = "type"
SUCCEEDED_LABEL = "succeeded"

PATCH_OPERATIONS = "patch_operations_total"
ANNOTATION_PARSE_FAILED = "annotation_parse_failed_total"

SCHEDULE_PARSE_FAILURE = "DisruptionWindowSchedule"
DURATION_PARSE_FAILURE = "DisruptionWindowDuration"


class MetricsSink(Protocol):
    def increment(self, name: str, labels: dict[str, str]) -> None:
        ...


class NullSink:
    def increment(self, name: str, labels: dict[str, str]) -> None:
        return None


class PrometheusSink:
    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        registry = registry if registry is not None else REGISTRY
        self.counters: dict[str, Counter] = {
            PATCH_OPERATIONS: Counter(
                PATCH_OPERATIONS,
                "Number of patch events in total by the disruption controller. "
                "Labeled by resource kind, resource name, and success status.",
                [KIND_LABEL, NAME_LABEL, SUCCEEDED_LABEL],
                namespace=NAMESPACE,
                subsystem=SUBSYSTEM,
                registry=registry,
            ),
            ANNOTATION_PARSE_FAILED: Counter(
                ANNOTATION_PARSE_FAILED,
                "Number of annotation parsing failures in total by the disruption controller. "
                "Labeled by annotation type and pod name.",
                [TYPE_LABEL, NAME_LABEL],
                namespace=NAMESPACE,
                subsystem=SUBSYSTEM,
                registry=registry,
            ),
        }

    def increment(self, name: str, labels: dict[str, str]) -> None:
        self.counters[name].labels(**labels).inc()


def record_patch(sink: MetricsSink, kind: str, name: str, succeeded: bool) -> None:
    sink.increment(
        PATCH_OPERATIONS,
        {KIND_LABEL: kind, NAME_LABEL: name, SUCCEEDED_LABEL: "true" if succeeded else "false"},
    )


def record_parse_failure(sink: MetricsSink, annotation_type: str, name: str) -> None:
    sink.increment(ANNOTATION_PARSE_FAILED, {TYPE_LABEL: annotation_type, NAME_LABEL: name})
