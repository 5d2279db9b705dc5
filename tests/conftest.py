from __future__ import annotations

from datetime import datetime

import pytest

from adapters.k8s.pods import PodPatcher
from tests.fakes import NOW, FakeCoreV1, RecordingSink


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def cluster() -> FakeCoreV1:
    return FakeCoreV1()


@pytest.fixture
def patcher(cluster: FakeCoreV1) -> PodPatcher:
    return PodPatcher(cluster)  # type: ignore[arg-type]
