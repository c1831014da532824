import os
import sys
from pathlib import Path
from typing import Any

import pytest

from tapeharness.config import Settings

FIXTURES = Path(__file__).resolve().parent / "fixtures"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    _ = config
    run_slow = os.getenv("RUN_SLOW_TESTS", "") or os.getenv("TAPEHARNESS_RUN_SLOW", "")
    if str(run_slow).strip().lower() in {"1", "true", "yes"}:
        return
    skip_slow = pytest.mark.skip(reason="set RUN_SLOW_TESTS=1 to run slow tests")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("TAPEHARNESS_"):
            monkeypatch.delenv(key)


@pytest.fixture
def fixture_path() -> Any:
    def resolve(name: str) -> Path:
        return FIXTURES / name

    return resolve


@pytest.fixture
def guest_settings() -> Any:
    def build(*artifacts: Path, **overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "guest_test": True,
            "guest_runner": [sys.executable, "{artifact}"],
            "artifacts": list(artifacts),
            "timeout_floor_s": 10.0,
            "handshake_timeout_s": 30.0,
        }
        values.update(overrides)
        return Settings(**values)

    return build
