from __future__ import annotations

from datetime import timedelta

from kubernetes.client import V1ObjectMeta, V1Pod, V1PodSpec

from controller.gate import DO_NOT_DISRUPT_KEY, Action, Workload, decide
from controller.metrics import ANNOTATION_PARSE_FAILED
from tests.fakes import make_pod


def test_unprotected_pod_skipped(now, sink):
    """Test a pod without do-not-disrupt is never patched, even with a broken schedule."""
    pod = make_pod("no-blocking-annotation", protected=False, schedule="hello", duration="1h")
    [decision] = decide([pod], "expired-node", now=now, metrics=sink)
    assert decision.action is Action.SKIP
    assert sink.calls == []


def test_empty_marker_is_unprotected(now):
    pod = Workload("testing", "empty-marker", "expired-node", {DO_NOT_DISRUPT_KEY: ""})
    assert decide([pod], "expired-node", now=now)[0].action is Action.SKIP


def test_protected_without_schedule_patched(now):
    pod = make_pod("blocking-no-sched")
    assert decide([pod], "expired-node", now=now)[0].action is Action.PATCH


def test_protected_with_inactive_schedule_skipped(now):
    pod = make_pod("blocking-inactive-sched", schedule=f"0 {(now - timedelta(hours=4)).hour} * * *", duration="4h")
    assert decide([pod], "expired-node", now=now)[0].action is Action.SKIP


def test_protected_with_active_schedule_patched(now):
    pod = make_pod("blocking-active-sched", schedule="* * * * *")
    assert decide([pod], "expired-node", now=now)[0].action is Action.PATCH


def test_invalid_schedule_patched_and_counted(now, sink):
    pod = make_pod("blocking-invalid-sched", schedule="hello", duration="4h")
    assert decide([pod], "expired-node", now=now, metrics=sink)[0].action is Action.PATCH
    assert sink.calls == [
        (ANNOTATION_PARSE_FAILED, {"type": "DisruptionWindowSchedule", "name": "testing/blocking-invalid-sched"})
    ]


def test_pod_bound_elsewhere_skipped(now):
    pod = make_pod("moved", node="other-node")
    assert decide([pod], "expired-node", now=now)[0].action is Action.SKIP


def test_decisions_preserve_input_order(now):
    pods = [make_pod("a"), make_pod("b", protected=False), make_pod("c")]
    decisions = decide(pods, "expired-node", now=now)
    assert [d.workload.name for d in decisions] == ["a", "b", "c"]
    assert [d.action for d in decisions] == [Action.PATCH, Action.SKIP, Action.PATCH]


def test_workload_from_v1_pod():
    pod = V1Pod(
        metadata=V1ObjectMeta(name="web-0", namespace="prod", annotations={DO_NOT_DISRUPT_KEY: "true"}),
        spec=V1PodSpec(node_name="ip-10-0-0-1", containers=[]),
    )
    workload = Workload.from_pod(pod)
    assert workload.key == "prod/web-0"
    assert workload.node_name == "ip-10-0-0-1"
    assert workload.protection_marker == "true"
    assert workload.window_schedule == ""


def test_workload_from_manifest_without_annotations():
    workload = Workload.from_pod({"metadata": {"name": "web-0", "namespace": "prod"}, "spec": {"nodeName": "n1"}})
    assert workload.annotations == {}
    assert workload.protection_marker == ""
    assert workload.node_name == "n1"


def test_missing_duration_annotation_not_counted(now, sink):
    pod = make_pod("blocking-active-sched", schedule="* * * * *")
    assert pod.window_duration == ""
    assert decide([pod], "expired-node", now=now, metrics=sink)[0].action is Action.PATCH
    assert sink.count(ANNOTATION_PARSE_FAILED, type="DisruptionWindowDuration") == 0


def test_huge_duration_does_not_abort_batch(now, sink):
    """Test an unrepresentable duration only affects its own pod."""
    pods = [make_pod("good"), make_pod("bad", schedule="* * * * *", duration="20000000h")]
    decisions = decide(pods, "expired-node", now=now, metrics=sink)
    assert [d.action for d in decisions] == [Action.PATCH, Action.PATCH]
    assert sink.count(ANNOTATION_PARSE_FAILED, type="DisruptionWindowDuration", name="testing/bad") == 1
