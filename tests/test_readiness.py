"""ReadinessGate unit tests.

Test coverage:
- Child side marker creation (parent directories, idempotence)
- Consumption (existence check + delete)
- Blocking wait: success, timeout, child exit
- Async wait
"""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from fork_harness.errors import ChildExitedError, ReadinessTimeoutError
from fork_harness.runtime.readiness import ReadinessGate


class FakeProcess:
    """Minimal stand-in exposing poll()."""

    def __init__(self, returncode: int | None = None) -> None:
        self.returncode = returncode

    def poll(self) -> int | None:
        return self.returncode


@pytest.fixture
def marker(tmp_path: Path) -> Path:
    return tmp_path / "nested" / "dir" / "ready.sync"


def _signal_later(gate: ReadinessGate, delay: float) -> threading.Timer:
    timer = threading.Timer(delay, gate.signal)
    timer.start()
    return timer


# =============================================================================
# Child Side
# =============================================================================


class TestSignal:
    """Marker creation."""

    def test_creates_parent_directories(self, marker: Path):
        ReadinessGate(marker).signal()

        assert marker.is_file()
        assert marker.stat().st_size == 0

    def test_idempotent(self, marker: Path):
        gate = ReadinessGate(marker)
        gate.signal()
        gate.signal()

        assert marker.is_file()


# =============================================================================
# Parent Side
# =============================================================================


class TestConsume:
    """Marker consumption."""

    def test_missing_marker(self, marker: Path):
        assert ReadinessGate(marker).consume() is False

    def test_present_marker_is_deleted(self, marker: Path):
        gate = ReadinessGate(marker)
        gate.signal()

        assert gate.consume() is True
        assert not marker.exists()
        assert gate.consume() is False


class TestWait:
    """Blocking wait."""

    @pytest.mark.timeout(10)
    def test_returns_once_marker_appears(self, marker: Path):
        gate = ReadinessGate(marker)
        timer = _signal_later(gate, 0.1)

        gate.wait(FakeProcess(), timeout=5)
        timer.join()

        assert not marker.exists()

    def test_marker_already_present(self, marker: Path):
        gate = ReadinessGate(marker)
        gate.signal()

        gate.wait(timeout=1)

        assert not marker.exists()

    def test_timeout(self, marker: Path):
        gate = ReadinessGate(marker)
        start = time.monotonic()

        with pytest.raises(ReadinessTimeoutError) as exc_info:
            gate.wait(FakeProcess(), timeout=0.2)

        assert time.monotonic() - start >= 0.2
        assert exc_info.value.path == marker
        assert exc_info.value.timeout == 0.2

    def test_child_exit_without_marker(self, marker: Path):
        gate = ReadinessGate(marker)

        with pytest.raises(ChildExitedError) as exc_info:
            gate.wait(FakeProcess(returncode=3), timeout=5)

        assert exc_info.value.returncode == 3

    def test_child_exit_after_marker(self, marker: Path):
        """A marker left by an already exited child still counts."""
        gate = ReadinessGate(marker)
        gate.signal()

        gate.wait(FakeProcess(returncode=0), timeout=5)

        assert not marker.exists()

    def test_backoff_is_bounded(self, marker: Path):
        gate = ReadinessGate(marker, poll_interval=0.01, max_interval=0.02, backoff=10)

        assert gate.max_interval == 0.02
        with pytest.raises(ReadinessTimeoutError):
            gate.wait(timeout=0.1)

    def test_max_interval_never_below_poll_interval(self, marker: Path):
        gate = ReadinessGate(marker, poll_interval=0.5, max_interval=0.1)

        assert gate.max_interval == 0.5


class TestWaitAsync:
    """Async wait."""

    @pytest.mark.asyncio
    @pytest.mark.timeout(10)
    async def test_returns_once_marker_appears(self, marker: Path):
        gate = ReadinessGate(marker)
        timer = _signal_later(gate, 0.1)

        await gate.wait_async(FakeProcess(), timeout=5)
        timer.join()

        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_timeout(self, marker: Path):
        with pytest.raises(ReadinessTimeoutError):
            await ReadinessGate(marker).wait_async(timeout=0.1)

    @pytest.mark.asyncio
    async def test_child_exit_without_marker(self, marker: Path):
        with pytest.raises(ChildExitedError):
            await ReadinessGate(marker).wait_async(FakeProcess(returncode=1), timeout=5)
