"""日志配置。

父进程（CLI）和子进程（setup 之前）共用同一套格式，
子进程的 stderr 会被合并进父进程排空的输出流。
"""

from __future__ import annotations

import logging
import sys

__all__ = ["configure_logging", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(debug: bool = False) -> None:
    """配置日志输出到 stderr。

    Args:
        debug: True 时 fork_harness 命名空间使用 DEBUG 级别
    """
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=[stderr_handler],
    )
    # 只对 fork_harness 命名空间启用详细日志
    logging.getLogger("fork_harness").setLevel(logging.DEBUG if debug else logging.INFO)
