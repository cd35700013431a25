"""Tests for the live configuration manager."""

import asyncio
from unittest.mock import patch

import pytest

from vibecord.configuration.app_configuration import BuildInfo, ConfigOverrides
from vibecord.configuration.config_manager import (
    ConfigManager,
    FileChangeSource,
    PollingFileChangeSource,
)


class QueueChangeSource(FileChangeSource):
    """Change source driven by the test."""

    def __init__(self):
        self.changes = asyncio.Queue()

    async def wait_for_change(self):
        await self.changes.get()


def write_config(path, text):
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    write_config(path, "log_level: debug\nvibecheck:\n  trigger_pattern: vibe\n")
    return path


def make_manager(path, **overrides):
    return ConfigManager(ConfigOverrides(config_file=str(path), **overrides), BuildInfo(version="1.0.0"))


class TestInitialLoad:

    def test_reads_file(self, config_path):
        manager = make_manager(config_path)
        config = manager.get_config()
        assert config.log_level == "debug"
        assert config.version == "1.0.0"
        assert manager.config_path == config_path.resolve()

    def test_override_beats_file(self, config_path):
        manager = make_manager(config_path, log_level="error")
        assert manager.get_config().log_level == "error"

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = make_manager(tmp_path / "missing.yaml")
        assert manager.get_config().log_level == "info"

    def test_unparseable_file_uses_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        write_config(path, "log_level: [oops")
        manager = make_manager(path)
        assert manager.get_config().log_level == "info"

    def test_empty_path_disables_file(self):
        manager = ConfigManager(ConfigOverrides(config_file=""))
        assert manager.config_path is None
        assert manager.get_config().log_level == "info"


class TestReload:

    @pytest.mark.asyncio
    async def test_reload_publishes_new_snapshot(self, config_path):
        manager = make_manager(config_path)
        seen = []
        manager.subscribe(seen.append)

        write_config(config_path, "log_level: warn\n")
        assert await manager.reload() is True
        await manager.wait_for_subscribers()

        assert manager.get_config().log_level == "warn"
        assert [config.log_level for config in seen] == ["warn"]

    @pytest.mark.asyncio
    async def test_bad_file_keeps_previous_snapshot(self, config_path):
        manager = make_manager(config_path)
        before = manager.get_config()
        seen = []
        manager.subscribe(seen.append)

        write_config(config_path, "log_level: [oops")
        assert await manager.reload() is False
        await manager.wait_for_subscribers()

        assert manager.get_config() is before
        assert seen == []
        assert manager.consecutive_failures == 1

    @pytest.mark.asyncio
    async def test_repeated_failures_escalate_to_critical(self, config_path):
        manager = make_manager(config_path)
        write_config(config_path, "log_level: [oops")

        with patch("vibecord.configuration.config_manager.logger") as mock_logger:
            for _ in range(3):
                await manager.reload()

        assert mock_logger.error.call_count == 2
        mock_logger.critical.assert_called_once()

        write_config(config_path, "log_level: warn\n")
        assert await manager.reload() is True
        assert manager.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_block_others(self, config_path):
        manager = make_manager(config_path)
        seen = []

        def broken(config):
            raise RuntimeError("boom")

        async def async_subscriber(config):
            seen.append(config.log_level)

        manager.subscribe(broken)
        manager.subscribe(async_subscriber)

        write_config(config_path, "log_level: error\n")
        assert await manager.reload() is True
        await manager.wait_for_subscribers()

        assert seen == ["error"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self, config_path):
        manager = make_manager(config_path)
        seen = []
        unsubscribe = manager.subscribe(seen.append)
        assert manager.subscriber_count == 1

        unsubscribe()
        unsubscribe()
        assert manager.subscriber_count == 0

        await manager.reload()
        await manager.wait_for_subscribers()
        assert seen == []

    @pytest.mark.asyncio
    async def test_reload_without_file_is_noop(self):
        manager = ConfigManager(ConfigOverrides(config_file=""))
        assert await manager.reload() is False


class TestWatching:

    @pytest.mark.asyncio
    async def test_change_triggers_reload(self, config_path):
        source = QueueChangeSource()
        manager = ConfigManager(
            ConfigOverrides(config_file=str(config_path)),
            change_source=source,
            settle_delay=0,
        )
        reloaded = asyncio.Event()
        manager.subscribe(lambda config: reloaded.set())

        await manager.start()
        write_config(config_path, "log_level: error\n")
        source.changes.put_nowait(None)
        await asyncio.wait_for(reloaded.wait(), timeout=2)

        assert manager.get_config().log_level == "error"
        await manager.close()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, config_path):
        manager = ConfigManager(
            ConfigOverrides(config_file=str(config_path)),
            change_source=QueueChangeSource(),
        )
        await manager.start()
        await manager.close()
        await manager.close()

        # a closed manager does not start watching again
        await manager.start()
        assert manager._watch_task is None

    @pytest.mark.asyncio
    async def test_polling_source_detects_modification(self, config_path):
        source = PollingFileChangeSource(config_path, poll_interval=0.01)
        write_config(config_path, "log_level: error\nenvironment: development\n")
        await asyncio.wait_for(source.wait_for_change(), timeout=2)
        assert source.signature() == source._signature

    def test_polling_signature_of_missing_file(self, tmp_path):
        source = PollingFileChangeSource(tmp_path / "missing.yaml")
        assert source.signature() is None
