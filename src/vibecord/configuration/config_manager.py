"""
Owner of the live configuration snapshot.

:class:`ConfigManager` reads the configuration file once at construction,
builds the first :class:`AppConfig`, and (after :meth:`ConfigManager.start`)
watches the file through a :class:`FileChangeSource`. Each successful reload
replaces the snapshot and notifies subscribers; a failed reload keeps the
previous snapshot.
"""

from __future__ import annotations

import asyncio
import inspect
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple, Union

from vibecord.configuration.app_configuration import (
    DEFAULT_CONFIG_FILE,
    AppConfig,
    BuildInfo,
    ConfigOverrides,
    build_config,
)
from vibecord.configuration.config_file import ConfigError, ConfigFileError, FileConfig, load_file_config
from vibecord.util.logger import get_logger

logger = get_logger("config_manager")

ConfigSubscriber = Callable[[AppConfig], Union[None, Awaitable[None]]]

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_SETTLE_DELAY = 0.1
FAILURES_BEFORE_CRITICAL = 3


class FileChangeSource(ABC):
    """Something that can tell the manager the config file changed."""

    @abstractmethod
    async def wait_for_change(self) -> None:
        """Return once the watched file has changed since the last call."""


class PollingFileChangeSource(FileChangeSource):
    """Detects changes by comparing the file's (mtime, size) signature."""

    def __init__(self, path: Path, poll_interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.path = path
        self.poll_interval = poll_interval
        self._signature = self.signature()

    def signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = os.stat(self.path)
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    async def wait_for_change(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            current = self.signature()
            if current != self._signature:
                self._signature = current
                return


class ConfigManager:
    """
    Merges overrides, the watched file and defaults, and publishes snapshots.

    Args:
        overrides: Operator overrides (CLI and environment).
        build_info: Version information baked into every snapshot.
        change_source: Custom change source; a polling source is used by default.
        settle_delay: Seconds to wait after a change before reading the file.

    Raises:
        ConfigError: If the very first snapshot cannot be built.
    """

    def __init__(
        self,
        overrides: ConfigOverrides | None = None,
        build_info: BuildInfo | None = None,
        *,
        change_source: FileChangeSource | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
    ) -> None:
        self.overrides = overrides or ConfigOverrides()
        self.build_info = build_info or BuildInfo()
        self.settle_delay = settle_delay

        path = self.overrides.config_file
        if path is None:
            path = DEFAULT_CONFIG_FILE
        self.config_path: Optional[Path] = Path(path).expanduser().resolve() if path else None

        self._subscribers: Dict[int, ConfigSubscriber] = {}
        self._next_subscriber_id = 0
        self._pending: Set[asyncio.Task] = set()
        self._watch_task: asyncio.Task | None = None
        self._closed = False
        self.consecutive_failures = 0

        self._config: AppConfig = build_config(self.overrides, self._initial_file_config(), self.build_info)

        if change_source is None and self.config_path is not None:
            change_source = PollingFileChangeSource(self.config_path, poll_interval)
        self._change_source = change_source

        logger.info(
            "[CONFIG MANAGER] Loaded configuration version=%s environment=%s log_level=%s",
            self._config.version, self._config.environment, self._config.log_level,
        )

    def _initial_file_config(self) -> FileConfig:
        if self.config_path is None:
            return FileConfig()
        if not self.config_path.exists():
            logger.warning("[CONFIG MANAGER] Config file %s not found, using defaults", self.config_path)
            return FileConfig()
        try:
            return load_file_config(self.config_path)
        except ConfigFileError as exc:
            logger.error("[CONFIG MANAGER] Failed to load config file, using defaults: %s", exc)
            return FileConfig()

    # ------------------------------------------------------------------
    # Snapshot access
    # ------------------------------------------------------------------

    def get_config(self) -> AppConfig:
        return self._config

    def subscribe(self, callback: ConfigSubscriber) -> Callable[[], None]:
        """
        Register a callback invoked with every new snapshot.

        Callbacks may be plain functions or coroutine functions. Each runs in
        its own task; exceptions are logged and never reach the manager.

        Returns:
            Callable[[], None]: Removes the subscription. Calling it twice is harmless.
        """
        subscriber_id = self._next_subscriber_id
        self._next_subscriber_id += 1
        self._subscribers[subscriber_id] = callback

        def unsubscribe() -> None:
            self._subscribers.pop(subscriber_id, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ------------------------------------------------------------------
    # Reloading
    # ------------------------------------------------------------------

    async def reload(self) -> bool:
        """
        Re-read the file and publish a new snapshot.

        Returns:
            bool: True if a new snapshot was published, False if the previous one was kept.
        """
        if self.config_path is None:
            return False
        try:
            file_config = load_file_config(self.config_path)
            config = build_config(self.overrides, file_config, self.build_info)
        except ConfigError as exc:
            self.consecutive_failures += 1
            if self.consecutive_failures >= FAILURES_BEFORE_CRITICAL:
                logger.critical(
                    "[CONFIG MANAGER] Config reload failed %d times in a row, still using previous configuration: %s",
                    self.consecutive_failures, exc,
                )
            else:
                logger.error("[CONFIG MANAGER] Config reload failed, keeping previous configuration: %s", exc)
            return False

        self.consecutive_failures = 0
        self._config = config
        logger.info("[CONFIG MANAGER] Configuration reloaded from %s", self.config_path)
        self._notify(config)
        return True

    def _notify(self, config: AppConfig) -> None:
        for subscriber_id, callback in list(self._subscribers.items()):
            task = asyncio.create_task(
                self._run_subscriber(callback, config),
                name=f"vibecord-config-subscriber-{subscriber_id}",
            )
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _run_subscriber(self, callback: ConfigSubscriber, config: AppConfig) -> None:
        try:
            result: Any = callback(config)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[CONFIG MANAGER] Config subscriber %r failed", callback)

    async def wait_for_subscribers(self) -> None:
        """Wait until every in-flight subscriber notification has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Watching
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start watching the config file. No-op without a file or when already watching."""
        if self._closed or self._change_source is None:
            return
        if self._watch_task and not self._watch_task.done():
            logger.warning("[CONFIG MANAGER] Watcher already running")
            return
        self._watch_task = asyncio.create_task(self._watch_loop(), name="vibecord-config-watch")
        logger.debug("[CONFIG MANAGER] Watching %s", self.config_path)

    async def _watch_loop(self) -> None:
        assert self._change_source is not None
        while True:
            try:
                await self._change_source.wait_for_change()
                await asyncio.sleep(self.settle_delay)
                logger.info("[CONFIG MANAGER] Config file changed, reloading")
                await self.reload()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("[CONFIG MANAGER] Unexpected error in config watcher")
                await asyncio.sleep(self.settle_delay)

    async def close(self) -> None:
        """Stop watching and cancel outstanding notifications. Idempotent."""
        if self._closed:
            return
        self._closed = True
        tasks = list(self._pending)
        if self._watch_task is not None:
            tasks.append(self._watch_task)
            self._watch_task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.debug("[CONFIG MANAGER] Closed")
