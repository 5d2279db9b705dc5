from __future__ import annotations

from types import SimpleNamespace

import pytest
from kubernetes.client import V1ObjectMeta, V1Pod, V1PodList, V1PodSpec
from kubernetes.client.exceptions import ApiException

from adapters.k8s.pods import PodLookup, PodPatcher, annotation_path, escape_pointer_token
from controller.gate import DO_NOT_DISRUPT_KEY
from tests.fakes import FakeCoreV1, make_pod


def test_escape_pointer_token():
    assert escape_pointer_token("karpenter.sh/do-not-disrupt") == "karpenter.sh~1do-not-disrupt"
    assert escape_pointer_token("a~b/c") == "a~0b~1c"
    assert escape_pointer_token("plain") == "plain"


def test_annotation_path():
    assert annotation_path(DO_NOT_DISRUPT_KEY) == "/metadata/annotations/karpenter.sh~1do-not-disrupt"


def test_lookup_uses_node_field_selector():
    calls = []

    def list_pod_for_all_namespaces(**kwargs):
        calls.append(kwargs)
        return V1PodList(
            items=[
                V1Pod(
                    metadata=V1ObjectMeta(name="web-0", namespace="prod", annotations={DO_NOT_DISRUPT_KEY: "true"}),
                    spec=V1PodSpec(node_name="n1", containers=[]),
                )
            ]
        )

    lookup = PodLookup(SimpleNamespace(list_pod_for_all_namespaces=list_pod_for_all_namespaces))  # type: ignore[arg-type]
    workloads = lookup.list_pods_on_node("n1")

    assert calls == [{"field_selector": "spec.nodeName=n1"}]
    assert [w.key for w in workloads] == ["prod/web-0"]
    assert workloads[0].protection_marker == "true"


def test_lookup_propagates_api_errors():
    def list_pod_for_all_namespaces(**kwargs):
        raise ApiException(status=503, reason="Service Unavailable")

    lookup = PodLookup(SimpleNamespace(list_pod_for_all_namespaces=list_pod_for_all_namespaces))  # type: ignore[arg-type]
    with pytest.raises(ApiException):
        lookup.list_pods_on_node("n1")


def test_remove_annotation_live():
    cluster = FakeCoreV1([make_pod("web-0")])
    resp = PodPatcher(cluster).remove_annotation("testing", "web-0", DO_NOT_DISRUPT_KEY, dry_run=False)  # type: ignore[arg-type]

    assert resp["output"] == {"ok": True}
    assert resp["audit"]["dryRun"] is False
    assert DO_NOT_DISRUPT_KEY not in cluster.annotations[("testing", "web-0")]


def test_remove_annotation_twice_is_idempotent(cluster, patcher):
    """Test removing an already-absent annotation is reported as success."""
    cluster.annotations[("testing", "web-0")] = {DO_NOT_DISRUPT_KEY: "true"}

    first = patcher.remove_annotation("testing", "web-0", DO_NOT_DISRUPT_KEY, dry_run=False)
    second = patcher.remove_annotation("testing", "web-0", DO_NOT_DISRUPT_KEY, dry_run=False)

    assert first["output"]["ok"] is True
    assert second["output"] == {"ok": True, "idempotent": True}
    assert second["audit"]["status"] == 422


def test_remove_annotation_missing_pod(patcher):
    resp = patcher.remove_annotation("testing", "gone", DO_NOT_DISRUPT_KEY, dry_run=False)
    assert resp["output"]["idempotent"] is True
    assert resp["audit"]["status"] == 404


def test_remove_annotation_dry_run(cluster, patcher):
    cluster.annotations[("testing", "web-0")] = {DO_NOT_DISRUPT_KEY: "true"}
    resp = patcher.remove_annotation("testing", "web-0", DO_NOT_DISRUPT_KEY)

    assert resp["audit"]["dryRun"] is True
    assert cluster.patches[0]["dry_run"] == "All"
    assert cluster.annotations[("testing", "web-0")] == {DO_NOT_DISRUPT_KEY: "true"}


def test_remove_annotation_server_error_raises(cluster, patcher):
    cluster.annotations[("testing", "web-0")] = {DO_NOT_DISRUPT_KEY: "true"}
    cluster.fail.add(("testing", "web-0"))
    with pytest.raises(ApiException) as excinfo:
        patcher.remove_annotation("testing", "web-0", DO_NOT_DISRUPT_KEY, dry_run=False)
    assert excinfo.value.status == 500
