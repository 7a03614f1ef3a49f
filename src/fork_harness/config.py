"""fork-harness 环境变量配置管理。

父进程（测试驱动）环境变量:
    FORK_HARNESS_DRAIN_INTERVAL: 输出排空线程的轮询间隔（秒）
        - 默认 0.1 秒
        - 限制在 0.01-5.0 秒范围

    FORK_HARNESS_READY_POLL_INTERVAL: 就绪标记的初始轮询间隔（秒）
        - 默认 0.01 秒，之后指数退避
        - 限制在 0.001-1.0 秒范围

    FORK_HARNESS_READY_TIMEOUT: 等待就绪标记的超时时间（秒）
        - 默认 60 秒
        - 0/none/off/never = 无限等待，负数回退到默认值

    FORK_HARNESS_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (fork_harness 日志级别为 DEBUG)
        - false/0/no = 关闭 (默认，INFO)

子进程环境变量（由 ProcessLauncher 设置，进程入口处读取一次）:
    FORK_HARNESS_SYNC_PATH: 就绪标记文件路径
        - 设置时，子进程在 setup() 中创建该文件

    FORK_HARNESS_KILL_AFTER: 自毁看门狗延迟（毫秒）
        - 设置时，子进程在 setup() 中启动看门狗
        - 负数 = 禁用
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import HarnessConfigError

__all__ = [
    "ChildConfig",
    "HarnessConfig",
    "ENV_SYNC_PATH",
    "ENV_KILL_AFTER",
    "get_config",
    "load_child_config",
    "load_config",
    "reload_config",
]

# 子进程配置（由父进程传递）
ENV_SYNC_PATH = "FORK_HARNESS_SYNC_PATH"
ENV_KILL_AFTER = "FORK_HARNESS_KILL_AFTER"

# 父进程配置
ENV_DRAIN_INTERVAL = "FORK_HARNESS_DRAIN_INTERVAL"
ENV_READY_POLL_INTERVAL = "FORK_HARNESS_READY_POLL_INTERVAL"
ENV_READY_TIMEOUT = "FORK_HARNESS_READY_TIMEOUT"
ENV_LOG_DEBUG = "FORK_HARNESS_LOG_DEBUG"

DEFAULT_DRAIN_INTERVAL = 0.1
DEFAULT_READY_POLL_INTERVAL = 0.01
DEFAULT_READY_TIMEOUT = 60.0

_UNBOUNDED = ("0", "none", "off", "never")


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(value: str | None, default: float, low: float, high: float) -> float:
    """解析秒数环境变量，无效值返回默认值，结果限制在 [low, high]。"""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return max(low, min(seconds, high))


def _parse_timeout(value: str | None) -> float | None:
    """解析超时环境变量。

    只有 0/none/off/never 表示无限等待；负数或无法解析的值回退到默认值。

    Returns:
        超时秒数；None 表示无限等待
    """
    if not value or not value.strip():
        return DEFAULT_READY_TIMEOUT
    value = value.strip().lower()
    if value in _UNBOUNDED:
        return None
    try:
        timeout = float(value)
    except ValueError:
        return DEFAULT_READY_TIMEOUT
    return timeout if timeout > 0 else DEFAULT_READY_TIMEOUT


@dataclass
class HarnessConfig:
    """父进程配置。

    Attributes:
        drain_interval: 输出排空轮询间隔（秒）
        ready_poll_interval: 就绪标记初始轮询间隔（秒）
        ready_timeout: 就绪等待超时（秒），None 表示无限等待
        log_debug: 日志调试模式
    """

    drain_interval: float = DEFAULT_DRAIN_INTERVAL
    ready_poll_interval: float = DEFAULT_READY_POLL_INTERVAL
    ready_timeout: float | None = DEFAULT_READY_TIMEOUT
    log_debug: bool = False


@dataclass(frozen=True)
class ChildConfig:
    """子进程配置，进程入口处读取一次。

    Attributes:
        sync_path: 就绪标记文件路径，None 表示不同步
        kill_after_ms: 看门狗延迟（毫秒），None 表示不启动看门狗
    """

    sync_path: str | None = None
    kill_after_ms: int | None = None


def load_config() -> HarnessConfig:
    """从环境变量加载父进程配置。"""
    return HarnessConfig(
        drain_interval=_parse_seconds(
            os.environ.get(ENV_DRAIN_INTERVAL), DEFAULT_DRAIN_INTERVAL, 0.01, 5.0
        ),
        ready_poll_interval=_parse_seconds(
            os.environ.get(ENV_READY_POLL_INTERVAL), DEFAULT_READY_POLL_INTERVAL, 0.001, 1.0
        ),
        ready_timeout=_parse_timeout(os.environ.get(ENV_READY_TIMEOUT)),
        log_debug=_parse_bool(os.environ.get(ENV_LOG_DEBUG), default=False),
    )


def load_child_config(environ: Mapping[str, str] | None = None) -> ChildConfig:
    """从环境变量加载子进程配置。

    Args:
        environ: 环境变量映射（默认 os.environ）

    Raises:
        HarnessConfigError: FORK_HARNESS_KILL_AFTER 不是整数
    """
    if environ is None:
        environ = os.environ

    sync_path = environ.get(ENV_SYNC_PATH) or None

    kill_after_ms: int | None = None
    raw = environ.get(ENV_KILL_AFTER)
    if raw is not None and raw.strip():
        try:
            kill_after_ms = int(raw)
        except ValueError as e:
            raise HarnessConfigError(f"{ENV_KILL_AFTER} must be an integer, got {raw!r}") from e
        if kill_after_ms < 0:
            kill_after_ms = None

    return ChildConfig(sync_path=sync_path, kill_after_ms=kill_after_ms)


# 全局配置实例（延迟加载）
_config: HarnessConfig | None = None


def get_config() -> HarnessConfig:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> HarnessConfig:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
