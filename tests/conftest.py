import os
import sys
import threading
from pathlib import Path

# Keep ambient configuration out of tests that build Settings.from_env()
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("LOG_JSON", "false")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from satoken.config import Settings  # noqa: E402
from satoken.service.manager import Manager  # noqa: E402
from satoken.storage.memory import MemoryStorage  # noqa: E402


class FakeClock:
    """Manually advanced monotonic clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self.now

    def advance(self, seconds: float) -> None:
        with self._lock:
            self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage(clock):
    return MemoryStorage(clock=clock)


@pytest.fixture
def settings():
    """Settings with background renewal off so TTL assertions are deterministic."""
    return Settings(
        timeout=3600,
        auto_renew=False,
        jwt_secret_key="test-secret-key-for-testing-only",
    )


@pytest.fixture
def manager(storage, settings):
    mgr = Manager(storage, settings)
    yield mgr
    mgr.close()
