from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from .types import AdapterResponse

if TYPE_CHECKING:
    from controller.gate import Workload


class Lookup(Protocol):
    def list_pods_on_node(self, node_name: str) -> list[Workload]:
        ...


class Patcher(Protocol):
    def remove_annotation(
        self, namespace: str, name: str, key: str, dry_run: bool = True
    ) -> AdapterResponse:
        ...
