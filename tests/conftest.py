from __future__ import annotations

import pytest

from megaverse.config import ResilienceConfig
from tests.support.fake_megaverse import SleepRecorder
from tests.support.http_fakes import resilience_for_tests


@pytest.fixture
def resilience() -> ResilienceConfig:
    return resilience_for_tests()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CANDIDATE_ID", raising=False)
    monkeypatch.delenv("MEGAVERSE_BASE_URL", raising=False)
