"""Filesystem-based readiness handshake between parent and child.

The child creates an empty marker file once it is initialized; the parent
polls for it, deletes it and carries on. There is no shared monitor across
the process boundary, so the parent polls with exponential backoff and gives
up after a timeout.

A marker path must be unique per concurrent launch. Sequential launches may
reuse a path because every observed marker is consumed.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Protocol

import anyio

from ..errors import ChildExitedError, ReadinessTimeoutError

__all__ = [
    "ReadinessGate",
]

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.01
DEFAULT_MAX_INTERVAL = 0.05
DEFAULT_BACKOFF = 1.5


class _Pollable(Protocol):
    def poll(self) -> int | None: ...


class ReadinessGate:
    """One-shot, single-consumer readiness marker.

    Attributes:
        path: Marker file location
        poll_interval: First delay between existence checks (seconds)
        max_interval: Upper bound for the backed-off delay (seconds)
        backoff: Delay multiplier after each unsuccessful check
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_interval: float = DEFAULT_MAX_INTERVAL,
        backoff: float = DEFAULT_BACKOFF,
    ) -> None:
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.max_interval = max(max_interval, poll_interval)
        self.backoff = backoff

    def __repr__(self) -> str:
        return f"ReadinessGate(path={str(self.path)!r})"

    # -- child side -----------------------------------------------------------

    def signal(self) -> Path:
        """Create the marker file (and any missing parent directories)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch(exist_ok=True)
        return self.path

    # -- parent side ----------------------------------------------------------

    def consume(self) -> bool:
        """Delete the marker if present.

        Returns:
            True if the marker existed
        """
        if not self.path.exists():
            return False
        self.path.unlink(missing_ok=True)
        return True

    def wait(self, process: _Pollable | None = None, timeout: float | None = None) -> None:
        """Block until the marker appears, then consume it.

        Args:
            process: Child to watch; its exit ends the wait early
            timeout: Seconds to wait, None waits forever

        Raises:
            ChildExitedError: The child exited without creating the marker
            ReadinessTimeoutError: The marker did not appear in time
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        delay = self.poll_interval

        while not self._check(process):
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise ReadinessTimeoutError(self.path, timeout)
                delay = min(delay, remaining)
            logger.debug(f"Waiting for sync on {self.path.absolute()}")
            time.sleep(delay)
            delay = min(delay * self.backoff, self.max_interval)

        logger.debug(f"Consumed readiness marker {self.path}")

    async def wait_async(
        self, process: _Pollable | None = None, timeout: float | None = None
    ) -> None:
        """Async variant of wait(); cancellation propagates untouched."""
        deadline = None if timeout is None else anyio.current_time() + timeout
        delay = self.poll_interval

        while not self._check(process):
            if deadline is not None:
                remaining = deadline - anyio.current_time()
                if remaining <= 0:
                    raise ReadinessTimeoutError(self.path, timeout)
                delay = min(delay, remaining)
            logger.debug(f"Waiting for sync on {self.path.absolute()}")
            await anyio.sleep(delay)
            delay = min(delay * self.backoff, self.max_interval)

        logger.debug(f"Consumed readiness marker {self.path}")

    def _check(self, process: _Pollable | None) -> bool:
        if self.consume():
            return True
        if process is not None:
            returncode = process.poll()
            if returncode is not None:
                # the marker may have landed between consume() and poll()
                if self.consume():
                    return True
                raise ChildExitedError(self.path, returncode)
        return False
