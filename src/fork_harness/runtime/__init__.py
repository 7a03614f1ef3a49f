"""Runtime module for forking, draining and synchronizing child interpreters.

This module provides out-of-process test execution: a child interpreter is
started with a controlled PYTHONPATH, its output is drained so it can never
block on a full pipe, readiness is signalled through a marker file and a
watchdog bounds the child's lifetime.
"""

from __future__ import annotations

from .child import setup
from .drainer import OutputDrainer
from .launcher import LaunchedProcess, LaunchSpec, ProcessLauncher
from .path_source import get_module_source, get_object_source
from .readiness import ReadinessGate
from .watchdog import SelfDestructWatchdog, kill_after

__all__ = [
    "LaunchSpec",
    "LaunchedProcess",
    "OutputDrainer",
    "ProcessLauncher",
    "ReadinessGate",
    "SelfDestructWatchdog",
    "get_module_source",
    "get_object_source",
    "kill_after",
    "setup",
]
