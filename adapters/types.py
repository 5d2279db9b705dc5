from __future__ import annotations

from typing import Any, Dict, TypedDict


class PatchOp(TypedDict):
    op: str
    path: str


class AdapterResponse(TypedDict, total=False):
    output: Dict[str, Any] | None
    audit: Dict[str, Any]
