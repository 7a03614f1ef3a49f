"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import io
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 子进程程序目录（测试中也需要导入其中的 launcher 子类）
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
if str(FIXTURES_DIR) not in sys.path:
    sys.path.insert(0, str(FIXTURES_DIR))

from fork_harness.config import HarnessConfig  # noqa: E402
from fork_harness.runtime.launcher import ProcessLauncher  # noqa: E402


@pytest.fixture
def fixtures_dir() -> Path:
    """子进程程序目录。"""
    return FIXTURES_DIR


@pytest.fixture
def diagnostics() -> io.BytesIO:
    """收集子进程合并输出的诊断流。"""
    return io.BytesIO()


@pytest.fixture
def harness_config() -> HarnessConfig:
    """测试用配置：较短的排空间隔和就绪超时。"""
    return HarnessConfig(drain_interval=0.02, ready_poll_interval=0.005, ready_timeout=30.0)


@pytest.fixture
def make_launcher(
    tmp_path: Path, diagnostics: io.BytesIO, harness_config: HarnessConfig
) -> Callable[..., ProcessLauncher]:
    """创建运行 fixtures 目录中子进程程序的 launcher。"""

    def factory(entry_point: str | None = None, cls: type[ProcessLauncher] = ProcessLauncher) -> ProcessLauncher:
        launcher = cls(
            diagnostic_stream=diagnostics,
            config=harness_config,
            term_timeout=0.5,
            kill_timeout=0.3,
        )
        launcher.add_path_entry(FIXTURES_DIR)
        launcher.add_path_entry_for(ProcessLauncher)
        launcher.set_working_directory(tmp_path)
        if entry_point is not None:
            launcher.set_entry_point(entry_point)
        return launcher

    return factory
