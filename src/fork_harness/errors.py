"""fork-harness exception classes.

fork-harness v0.1.0
"""

from __future__ import annotations

from pathlib import Path

__all__ = [
    "HarnessError",
    "HarnessConfigError",
    "HarnessEnvironmentError",
    "LaunchError",
    "ReadinessError",
    "ReadinessTimeoutError",
    "ChildExitedError",
]


class HarnessError(Exception):
    """Base exception for fork-harness."""
    pass


class HarnessConfigError(HarnessError):
    """Invalid FORK_HARNESS_* configuration value."""
    pass


class HarnessEnvironmentError(HarnessError):
    """The running interpreter reports inconsistent module locations.

    Not recoverable: the import system itself is in a broken state.
    """
    pass


class LaunchError(HarnessError):
    """The OS refused to start the child process.

    Attributes:
        argv: Command line that failed to start
        cause: The underlying OSError
    """

    def __init__(self, argv: list[str], cause: OSError) -> None:
        self.argv = argv
        self.cause = cause
        super().__init__(f"Failed to start {argv[0]!r}: {cause}")


class ReadinessError(HarnessError):
    """The child never signalled readiness.

    Attributes:
        path: Readiness marker path the parent waited on
    """

    def __init__(self, path: Path, message: str) -> None:
        self.path = path
        super().__init__(message)


class ReadinessTimeoutError(ReadinessError):
    """No readiness marker appeared within the timeout."""

    def __init__(self, path: Path, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(path, f"Readiness marker {path} not created within {timeout:.2f}s")


class ChildExitedError(ReadinessError):
    """The child exited before creating its readiness marker."""

    def __init__(self, path: Path, returncode: int) -> None:
        self.returncode = returncode
        super().__init__(
            path,
            f"Child exited with code {returncode} before creating readiness marker {path}",
        )
