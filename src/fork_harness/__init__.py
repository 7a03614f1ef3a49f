"""fork-harness - 测试用的子进程启动器。

在独立的 Python 解释器中运行被测代码，排空其输出、
通过文件标记同步就绪状态，并用自毁看门狗限制其生命周期。

环境变量:
    FORK_HARNESS_READY_TIMEOUT: 就绪等待超时 (默认 60 秒)
    FORK_HARNESS_DRAIN_INTERVAL: 输出排空间隔 (默认 0.1 秒)
    FORK_HARNESS_LOG_DEBUG: 日志调试模式 (默认 false)

用法:
    fork-harness --sync-on build/x.sync --kill-after 3500 my_module arg1
"""

__version__ = "0.1.0"

from .errors import (
    ChildExitedError,
    HarnessError,
    LaunchError,
    ReadinessError,
    ReadinessTimeoutError,
)
from .runtime import LaunchedProcess, ProcessLauncher, setup

__all__ = [
    "__version__",
    "ChildExitedError",
    "HarnessError",
    "LaunchError",
    "LaunchedProcess",
    "ProcessLauncher",
    "ReadinessError",
    "ReadinessTimeoutError",
    "setup",
]
