"""Child-side self-destruct timer.

Once armed, the watchdog terminates the whole process after a fixed delay no
matter what the main thread is doing. It is never cancelled: a normal exit
simply wins the race, which is all the watchdog has to guarantee.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable

__all__ = [
    "WATCHDOG_EXIT_CODE",
    "SelfDestructWatchdog",
    "kill_after",
]

logger = logging.getLogger(__name__)

WATCHDOG_EXIT_CODE = 1


class SelfDestructWatchdog:
    """Fire-once timer ending the process with a non-zero exit code.

    os._exit is used because sys.exit from a non-main thread only ends that
    thread. Buffered output and atexit handlers are skipped.

    Attributes:
        delay_ms: Delay in milliseconds, fixed at construction
        exit_code: Exit status used on expiry
    """

    def __init__(
        self,
        delay_ms: int,
        *,
        exit_code: int = WATCHDOG_EXIT_CODE,
        exit_func: Callable[[int], object] = os._exit,
    ) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got {delay_ms}")
        self.delay_ms = delay_ms
        self.exit_code = exit_code
        self._exit_func = exit_func
        self._timer: threading.Timer | None = None

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def arm(self) -> None:
        """Start the countdown. Can only be called once."""
        if self._timer is not None:
            raise RuntimeError("watchdog already armed")
        self._timer = threading.Timer(self.delay_ms / 1000.0, self._fire)
        self._timer.name = "self-destruct-watchdog"
        self._timer.daemon = True
        self._timer.start()
        logger.debug(f"Watchdog armed, killing pid={os.getpid()} in {self.delay_ms}ms")

    def _fire(self) -> None:
        logger.warning(
            f"Watchdog expired after {self.delay_ms}ms, "
            f"terminating pid={os.getpid()} with exit code {self.exit_code}"
        )
        self._exit_func(self.exit_code)


def kill_after(delay_ms: int) -> SelfDestructWatchdog:
    """Arm a watchdog that ends this process after delay_ms milliseconds."""
    watchdog = SelfDestructWatchdog(delay_ms)
    watchdog.arm()
    return watchdog
