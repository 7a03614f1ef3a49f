"""Background draining of a child's merged stdout/stderr pipe.

A child whose output pipe is never read blocks as soon as the pipe buffer
fills up. OutputDrainer keeps the pipe empty for the whole lifetime of the
child and forwards everything to a diagnostic stream (the parent's stderr by
default).

Key design points:
- Reads are non-blocking, so a quiet child never parks the thread
- The exit status is sampled before each pass and one last pass runs after
  exit was seen, so output written right before exit is not lost
- Read errors are logged and the loop keeps going while the child lives
- A failing diagnostic stream is logged once; the pipe is still drained and
  the output discarded
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
import time
from typing import BinaryIO

__all__ = [
    "DEFAULT_DRAIN_INTERVAL",
    "OutputDrainer",
]

logger = logging.getLogger(__name__)

DEFAULT_DRAIN_INTERVAL = 0.1  # seconds between passes
READ_CHUNK_SIZE = 64 * 1024


def default_diagnostic_stream() -> BinaryIO:
    """Binary view of the parent's current stderr."""
    return sys.stderr.buffer


class OutputDrainer(threading.Thread):
    """Daemon thread draining one child process until it exits.

    Example:
        process = subprocess.Popen(argv, stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        drainer = OutputDrainer(process)
        drainer.start()
        process.wait()
        drainer.join()
    """

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        out: BinaryIO | None = None,
        interval: float = DEFAULT_DRAIN_INTERVAL,
    ) -> None:
        if process.stdout is None:
            raise ValueError("process was started without stdout=PIPE")
        super().__init__(name=f"output-drainer-{process.pid}", daemon=True)
        self._process = process
        self._stream = process.stdout
        self._out = out if out is not None else default_diagnostic_stream()
        self._interval = interval
        self._eof = False
        self._sink_broken = False
        self.bytes_forwarded = 0
        self.bytes_discarded = 0
        os.set_blocking(self._stream.fileno(), False)

    def run(self) -> None:
        pid = self._process.pid
        logger.debug(f"Draining output of pid={pid}")
        try:
            while True:
                exited = self._process.poll() is not None

                try:
                    self._forward_available()
                except OSError:
                    logger.exception(f"Error reading from process streams pid={pid}")
                self._flush()

                if exited:
                    break
                time.sleep(self._interval)
        finally:
            self._stream.close()

        logger.debug(
            f"Drained pid={pid} returncode={self._process.returncode} "
            f"bytes={self.bytes_forwarded} discarded={self.bytes_discarded}"
        )

    def _forward_available(self) -> None:
        """Forward every byte currently sitting in the pipe."""
        if self._eof:
            return
        fd = self._stream.fileno()
        while True:
            try:
                chunk = os.read(fd, READ_CHUNK_SIZE)
            except BlockingIOError:
                return
            if not chunk:
                self._eof = True
                return
            self._emit(chunk)

    def _emit(self, chunk: bytes) -> None:
        # the pipe is read regardless; a dead sink only loses the copy
        if not self._sink_broken:
            try:
                self._out.write(chunk)
                self.bytes_forwarded += len(chunk)
                return
            except (OSError, ValueError) as e:
                self._sink_failed(e)
        self.bytes_discarded += len(chunk)

    def _flush(self) -> None:
        if self._sink_broken:
            return
        try:
            self._out.flush()
        except (OSError, ValueError) as e:
            self._sink_failed(e)

    def _sink_failed(self, error: Exception) -> None:
        self._sink_broken = True
        logger.warning(
            f"Diagnostic stream failed for pid={self._process.pid}, "
            f"discarding further output: {error!r}"
        )
