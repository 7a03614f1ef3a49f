"""fork-harness 命令行入口。

启动一个模块作为子进程，等待其退出，并以子进程的退出码退出。
子进程输出（stdout + stderr）转发到 stderr。
"""

from __future__ import annotations

import argparse
import logging

from . import __version__
from .config import get_config
from .errors import HarnessError
from .logs import configure_logging
from .runtime.launcher import USE_CONFIG, ProcessLauncher

__all__ = ["build_parser", "main"]

logger = logging.getLogger(__name__)

# 启动失败 / 就绪失败时的退出码
EXIT_HARNESS_ERROR = 2


def _parse_timeout(value: str) -> float | None:
    """解析 --ready-timeout，0 表示无限等待。"""
    timeout = float(value)
    return timeout if timeout > 0 else None


def build_parser() -> argparse.ArgumentParser:
    """构建参数解析器。"""
    parser = argparse.ArgumentParser(
        prog="fork-harness",
        description="Run a Python module in a forked interpreter.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--path", action="append", default=[], metavar="PATH",
        help="PYTHONPATH entry for the child (repeatable)",
    )
    parser.add_argument("--cwd", default=".", help="Working directory of the child")
    parser.add_argument("--sync-on", default=None, metavar="PATH", help="Readiness marker path")
    parser.add_argument(
        "--kill-after", type=int, default=None, metavar="MS",
        help="Self-destruct delay in milliseconds",
    )
    parser.add_argument(
        "--debug", type=int, default=None, metavar="PORT",
        help="Start the child under debugpy listening on PORT",
    )
    parser.add_argument(
        "--ready-timeout", type=_parse_timeout, default=USE_CONFIG, metavar="SECONDS",
        help="Seconds to wait for the readiness marker (0 = forever)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("module", help="Module to run with -m")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the module")
    return parser


def main(argv: list[str] | None = None) -> int:
    """主入口点。

    Returns:
        子进程退出码，或 EXIT_HARNESS_ERROR
    """
    args = build_parser().parse_args(argv)
    config = get_config()
    configure_logging(debug=args.verbose or config.log_debug)

    launcher = ProcessLauncher(config=config)
    for entry in args.path:
        launcher.add_path_entry(entry)
    launcher.set_working_directory(args.cwd)
    launcher.set_entry_point(args.module)
    launcher.set_parameters(*args.args)
    launcher.set_sync_on(args.sync_on)
    launcher.set_kill_after(args.kill_after)
    if args.debug is not None:
        launcher.debug(args.debug)

    try:
        process = launcher.run(ready_timeout=args.ready_timeout)
    except HarnessError as e:
        logger.error(f"{e}")
        return EXIT_HARNESS_ERROR

    try:
        returncode = process.wait()
    except KeyboardInterrupt:
        logger.warning(f"Interrupted, destroying pid={process.pid}")
        process.destroy()
        raise

    logger.info(f"Child pid={process.pid} exited with code {returncode}")
    return returncode
