"""Pytest configuration file."""

import threading
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Sequence, Union

import pytest
from pytest_mock import MockerFixture

from converge.core.settings import Settings
from converge.dependencies import get_settings

Snapshot = Union[Dict[str, Any], BaseException]


class FakeResource:
    """
    Stand-in for the remote store.

    ``get`` returns the scripted snapshots in order and keeps returning the last
    one once the script runs out. A snapshot that is an exception is raised.
    """

    def __init__(self, snapshots: Sequence[Snapshot]) -> None:
        self.snapshots: List[Snapshot] = list(snapshots)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def get(self, name: str) -> Dict[str, Any]:
        with self._lock:
            index = min(len(self.calls), len(self.snapshots) - 1)
            self.calls.append(name)
            snapshot = self.snapshots[index]
        if isinstance(snapshot, BaseException):
            raise snapshot
        return snapshot

    @property
    def call_count(self) -> int:
        return len(self.calls)


# ==============================================================================
# UNIT TEST FIXTURES
# ==============================================================================


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def isolate_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep a developer's environment and config.yaml out of unit tests."""
    for key in Settings.model_fields:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with intervals shrunk so polling tests finish quickly."""
    return Settings(
        WAITER_POLL_INTERVAL_SECONDS=0.01,
        ERROR_ON_POLL_INTERVAL_SECONDS=0.02,
        DELETE_POLL_INTERVAL_SECONDS=0.01,
        APPLY_INITIAL_INTERVAL_SECONDS=0.01,
        APPLY_MAX_INTERVAL_SECONDS=0.02,
    )


@pytest.fixture
def make_resource() -> Callable[..., FakeResource]:
    """Build a FakeResource from scripted snapshots."""

    def _make(*snapshots: Snapshot) -> FakeResource:
        return FakeResource(snapshots)

    return _make


@pytest.fixture
def no_sleep(mocker: MockerFixture) -> Any:
    """Replace asyncio.sleep for tests that only count sleeps."""
    return mocker.AsyncMock(return_value=None)


def pod(phase: str = "Pending", **status: Any) -> Dict[str, Any]:
    """A minimal Pod snapshot."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "web", "namespace": "default"},
        "status": {"phase": phase, **status},
    }
