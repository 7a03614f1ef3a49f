"""Child-side setup() tests.

The watchdog is patched out: arming the real one would end the test run.
"""

from __future__ import annotations

from pathlib import Path
from unittest import mock

import pytest

from fork_harness.config import ENV_KILL_AFTER, ENV_SYNC_PATH, ChildConfig
from fork_harness.errors import HarnessConfigError
from fork_harness.runtime.child import setup


@pytest.fixture
def kill_after():
    with mock.patch("fork_harness.runtime.child.kill_after") as patched:
        yield patched


class TestSetup:
    """setup() hook."""

    def test_nothing_configured(self, kill_after: mock.MagicMock):
        config = setup({})

        assert config == ChildConfig()
        kill_after.assert_not_called()

    def test_creates_marker(self, tmp_path: Path, kill_after: mock.MagicMock):
        marker = tmp_path / "target" / "test.sync"

        config = setup({ENV_SYNC_PATH: str(marker)})

        assert marker.is_file()
        assert config.sync_path == str(marker)
        kill_after.assert_not_called()

    def test_arms_watchdog(self, kill_after: mock.MagicMock):
        config = setup({ENV_KILL_AFTER: "3500"})

        assert config.kill_after_ms == 3500
        kill_after.assert_called_once_with(3500)

    def test_marker_created_before_watchdog(self, tmp_path: Path, kill_after: mock.MagicMock):
        marker = tmp_path / "order.sync"
        seen: list[bool] = []
        kill_after.side_effect = lambda ms: seen.append(marker.exists())

        setup({ENV_SYNC_PATH: str(marker), ENV_KILL_AFTER: "100"})

        assert seen == [True]

    def test_invalid_kill_after(self, kill_after: mock.MagicMock):
        with pytest.raises(HarnessConfigError):
            setup({ENV_KILL_AFTER: "later"})

    def test_announces_on_stdout(
        self, tmp_path: Path, kill_after: mock.MagicMock, capsys: pytest.CaptureFixture[str]
    ):
        marker = tmp_path / "announce.sync"

        setup({ENV_SYNC_PATH: str(marker)})

        assert f"forked: syncing on {marker}\n" in capsys.readouterr().out

