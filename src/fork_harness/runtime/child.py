"""Child-side entry hook.

A program launched by ProcessLauncher calls setup() first thing in its main
function:

    def main():
        setup()
        do_the_work()

setup() reads the configuration the parent passed through the environment,
announces itself on stdout, creates the readiness marker, then arms the
self-destruct watchdog.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from ..config import ChildConfig, load_child_config
from .readiness import ReadinessGate
from .watchdog import kill_after

__all__ = ["setup"]

logger = logging.getLogger(__name__)


def setup(environ: Mapping[str, str] | None = None) -> ChildConfig:
    """Run the child side of the launch protocol.

    Args:
        environ: Environment to read (default os.environ)

    Returns:
        The configuration that was applied
    """
    config = load_child_config(environ)
    # stdout is drained by the parent even when the child has no logging set up
    print(f"forked: syncing on {config.sync_path}", flush=True)
    logger.debug(f"Child config: {config}")

    if config.sync_path is not None:
        ReadinessGate(config.sync_path).signal()

    if config.kill_after_ms is not None:
        kill_after(config.kill_after_ms)

    return config
