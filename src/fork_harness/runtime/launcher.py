"""Launch a Python module in a separate, disposable interpreter.

fork-harness runtime module v0.1.0

Some test scenarios need to kill a whole process mid-operation (a thread
cannot be killed safely halfway through I/O). ProcessLauncher starts the
code under test in a child interpreter and hands back a LaunchedProcess.

This module provides:
- Command line and environment construction (PYTHONPATH, sync/kill settings)
- Child isolation (new session/process group)
- Merged stdout/stderr drained on a background thread
- Optional readiness handshake through a marker file
- Reliable termination (SIGTERM -> timeout -> SIGKILL)

The child program calls fork_harness.setup() at entry to take part in the
handshake and to arm its self-destruct watchdog.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, BinaryIO

import anyio

from ..config import ENV_KILL_AFTER, ENV_SYNC_PATH, HarnessConfig, get_config
from ..errors import LaunchError, ReadinessError
from .drainer import OutputDrainer
from .path_source import get_object_source
from .readiness import ReadinessGate

__all__ = [
    "LaunchSpec",
    "LaunchedProcess",
    "ProcessLauncher",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

DEBUG_HOST = "127.0.0.1"

# Sentinel: take the readiness timeout from HarnessConfig
USE_CONFIG = object()


@dataclass
class LaunchSpec:
    """Everything needed to start one child.

    Attributes:
        path_entries: PYTHONPATH entries in order (duplicates are harmless)
        working_directory: Working directory of the child
        parameters: Arguments passed verbatim to the entry point
        debug_port: Port for a debugpy listener that waits for a client
        sync_path: Readiness marker path, enables the handshake
        kill_after_ms: Self-destruct delay, enables the watchdog
        entry_point: Module run with ``-m`` (None = launcher's own module)
    """

    path_entries: list[str] = field(default_factory=list)
    working_directory: Path = field(default_factory=lambda: Path("."))
    parameters: list[str] = field(default_factory=list)
    debug_port: int | None = None
    sync_path: str | None = None
    kill_after_ms: int | None = None
    entry_point: str | None = None

    def snapshot(self) -> LaunchSpec:
        """Copy that later setter calls cannot affect."""
        return replace(
            self,
            path_entries=list(self.path_entries),
            parameters=list(self.parameters),
        )

    def marker_path(self) -> Path | None:
        """Absolute marker path; relative paths are taken from the working directory."""
        if self.sync_path is None:
            return None
        return Path(os.path.abspath(Path(self.working_directory) / self.sync_path))


class LaunchedProcess:
    """A running child together with its output drainer.

    The caller owns waiting and termination; the drainer only reads.
    """

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        drainer: OutputDrainer,
        *,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self._process = process
        self._drainer = drainer
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout

    def __repr__(self) -> str:
        return f"LaunchedProcess(pid={self.pid}, returncode={self.returncode})"

    def __enter__(self) -> LaunchedProcess:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.destroy()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def argv(self) -> list[str]:
        return list(self._process.args)

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def drainer(self) -> OutputDrainer:
        return self._drainer

    def poll(self) -> int | None:
        """Exit code, or None while the child is running."""
        return self._process.poll()

    def wait(self, timeout: float | None = None) -> int:
        """Wait for exit and for the drainer to forward the remaining output.

        Raises:
            subprocess.TimeoutExpired: The child is still running after timeout
        """
        returncode = self._process.wait(timeout)
        self._drainer.join()
        return returncode

    async def wait_async(self, timeout: float | None = None) -> int:
        """Async variant of wait(), run on a worker thread."""
        return await anyio.to_thread.run_sync(self.wait, timeout)

    def destroy(self) -> int | None:
        """Terminate the child (and its process group) if still running.

        Returns:
            Exit code of the child
        """
        if self._process.poll() is None:
            self._terminate_process()
        if self._process.returncode is not None:
            self._drainer.join()
        return self._process.returncode

    def _terminate_process(self) -> None:
        """Terminate subprocess gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM to the process group (or CTRL_BREAK_EVENT on Windows)
        2. Wait up to term_timeout for graceful exit
        3. If still running, send SIGKILL (or kill() on Windows)
        4. Wait up to kill_timeout for forced exit
        """
        process = self._process
        pid = process.pid
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            if IS_WINDOWS:
                self._windows_terminate()
            else:
                self._posix_signal(signal.SIGTERM)

            try:
                process.wait(timeout=self.term_timeout)
                logger.debug(
                    f"Subprocess terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return
            except subprocess.TimeoutExpired:
                pass

            logger.debug(f"Force killing subprocess pid={pid}")
            if IS_WINDOWS:
                process.kill()
            else:
                self._posix_signal(signal.SIGKILL)

            try:
                process.wait(timeout=self.kill_timeout)
                logger.debug(
                    f"Subprocess killed pid={pid} "
                    f"returncode={process.returncode}"
                )
            except subprocess.TimeoutExpired:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")

    def _posix_signal(self, signum: signal.Signals) -> None:
        """Signal the child's process group on POSIX systems."""
        process = self._process
        try:
            # Process group ID equals pid due to start_new_session
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signum)
            logger.debug(f"Sent {signum.name} to process group pgid={pgid}")
        except ProcessLookupError:
            pass
        except OSError as e:
            logger.debug(f"killpg failed, falling back to send_signal: {e}")
            process.send_signal(signum)

    def _windows_terminate(self) -> None:
        """Send CTRL_BREAK_EVENT on Windows."""
        process = self._process
        try:
            # Works because of CREATE_NEW_PROCESS_GROUP
            os.kill(process.pid, signal.CTRL_BREAK_EVENT)
            logger.debug(f"Sent CTRL_BREAK_EVENT to pid={process.pid}")
        except OSError as e:
            logger.debug(f"CTRL_BREAK_EVENT failed, falling back: {e}")
            process.terminate()


class ProcessLauncher:
    """Configures and starts child interpreters.

    Subclasses double as the child program: with no entry point set, the
    module that defines the launcher class is run with ``-m``.

    Example:
        launcher = ProcessLauncher()
        launcher.set_entry_point("my_tests.resuming_download")
        launcher.add_path_entry_for(ResumingDownload)
        launcher.add_path_entry_for(ProcessLauncher)
        launcher.set_sync_on("build/resume.sync")
        launcher.set_kill_after(3500)
        launcher.set_parameters(url, target)

        process = launcher.run()
        process.wait()
    """

    def __init__(
        self,
        *,
        executable: str | None = None,
        diagnostic_stream: BinaryIO | None = None,
        config: HarnessConfig | None = None,
        term_timeout: float = DEFAULT_TERM_TIMEOUT,
        kill_timeout: float = DEFAULT_KILL_TIMEOUT,
    ) -> None:
        self.spec = LaunchSpec()
        self.executable = executable or sys.executable
        self.diagnostic_stream = diagnostic_stream
        self.config = config
        self.term_timeout = term_timeout
        self.kill_timeout = kill_timeout

    # -- configuration --------------------------------------------------------

    def add_path_entry(self, path: str | os.PathLike[str] | None) -> None:
        """Append a PYTHONPATH entry; None is ignored.

        Path objects are made absolute, strings are used as given.
        """
        if path is None:
            return
        if isinstance(path, str):
            self.spec.path_entries.append(path)
        else:
            self.spec.path_entries.append(os.path.abspath(os.fspath(path)))

    def add_path_entry_for(self, obj: Any) -> None:
        """Append the directory or archive providing a class or module.

        Nothing is added when the location is unknown (built-ins, None).
        """
        self.add_path_entry(get_object_source(obj))

    def add_parameter(self, parameter: str) -> None:
        self.spec.parameters.append(parameter)

    def set_parameters(self, *parameters: str) -> None:
        self.spec.parameters = list(parameters)

    def set_working_directory(self, path: str | os.PathLike[str]) -> None:
        self.spec.working_directory = Path(path)

    def debug(self, port: int) -> None:
        """Start the child under debugpy, suspended until a client attaches."""
        self.spec.debug_port = port

    def set_sync_on(self, path: str | os.PathLike[str] | None) -> None:
        self.spec.sync_path = None if path is None else os.fspath(path)

    def set_kill_after(self, ms: int | None) -> None:
        self.spec.kill_after_ms = ms

    def set_entry_point(self, module: str | None) -> None:
        self.spec.entry_point = module

    # -- command construction -------------------------------------------------

    def default_entry_point(self) -> str:
        """Dotted name of the module that defines this launcher class."""
        module_name = type(self).__module__
        if module_name == "__main__":
            main_spec = getattr(sys.modules.get("__main__"), "__spec__", None)
            if main_spec is not None:
                return main_spec.name
        return module_name

    def build_command(self) -> list[str]:
        """Command line for the next run()."""
        self._ensure_path_entries()
        return self._command_for(self.spec)

    def build_environment(self) -> dict[str, str]:
        """Child environment for the next run()."""
        self._ensure_path_entries()
        return self._environment_for(self.spec)

    def _ensure_path_entries(self) -> None:
        if not self.spec.path_entries:
            self.add_path_entry_for(type(self))

    def _command_for(self, spec: LaunchSpec) -> list[str]:
        cmd = [self.executable]

        if spec.debug_port is not None:
            cmd += [
                "-m", "debugpy",
                "--listen", f"{DEBUG_HOST}:{spec.debug_port}",
                "--wait-for-client",
            ]

        cmd += ["-m", spec.entry_point or self.default_entry_point()]
        cmd += spec.parameters
        return cmd

    def _environment_for(self, spec: LaunchSpec) -> dict[str, str]:
        # a launcher running inside a forked child must not leak its own settings
        env = {
            key: value
            for key, value in os.environ.items()
            if key not in (ENV_SYNC_PATH, ENV_KILL_AFTER)
        }
        env["PYTHONPATH"] = os.pathsep.join(spec.path_entries)
        env["PYTHONUNBUFFERED"] = "1"

        marker = spec.marker_path()
        if marker is not None:
            env[ENV_SYNC_PATH] = str(marker)
        if spec.kill_after_ms is not None:
            env[ENV_KILL_AFTER] = str(spec.kill_after_ms)
        return env

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        """Platform-specific isolation kwargs for subprocess.Popen."""
        if IS_WINDOWS:
            return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
        return {"start_new_session": True}

    # -- launching ------------------------------------------------------------

    def run(self, *, ready_timeout: Any = USE_CONFIG) -> LaunchedProcess:
        """Start the child; block until it is ready if a sync path is set.

        Args:
            ready_timeout: Seconds to wait for the readiness marker,
                None waits forever, default from HarnessConfig

        Returns:
            The running child

        Raises:
            LaunchError: The OS could not start the process
            ReadinessError: The child exited or timed out before signalling
                readiness (the child is destroyed first)
        """
        launched, gate = self._start()
        if gate is not None:
            try:
                gate.wait(launched, self._ready_timeout(ready_timeout))
            except ReadinessError:
                launched.destroy()
                raise
        return launched

    async def run_async(self, *, ready_timeout: Any = USE_CONFIG) -> LaunchedProcess:
        """Async variant of run(); the readiness wait yields to the event loop."""
        launched, gate = self._start()
        if gate is not None:
            try:
                await gate.wait_async(launched, self._ready_timeout(ready_timeout))
            except ReadinessError:
                await anyio.to_thread.run_sync(launched.destroy)
                raise
        return launched

    def _ready_timeout(self, ready_timeout: Any) -> float | None:
        if ready_timeout is USE_CONFIG:
            return self._config().ready_timeout
        return ready_timeout

    def _config(self) -> HarnessConfig:
        return self.config if self.config is not None else get_config()

    def _start(self) -> tuple[LaunchedProcess, ReadinessGate | None]:
        self._ensure_path_entries()
        spec = self.spec.snapshot()
        config = self._config()

        argv = self._command_for(spec)
        env = self._environment_for(spec)
        logger.info(f"Forking: {shlex.join(argv)}")

        marker = spec.marker_path()
        if marker is not None:
            # a stale marker from an earlier run would release the wait at once
            marker.unlink(missing_ok=True)

        try:
            process = subprocess.Popen(
                argv,
                cwd=spec.working_directory,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                **self._build_subprocess_kwargs(),
            )
        except OSError as e:
            raise LaunchError(argv, e) from e

        logger.debug(f"Started subprocess pid={process.pid} cwd={spec.working_directory}")

        drainer = OutputDrainer(
            process, self.diagnostic_stream, interval=config.drain_interval
        )
        drainer.start()

        launched = LaunchedProcess(
            process,
            drainer,
            term_timeout=self.term_timeout,
            kill_timeout=self.kill_timeout,
        )

        gate = None
        if marker is not None:
            gate = ReadinessGate(marker, poll_interval=config.ready_poll_interval)
        return launched, gate
