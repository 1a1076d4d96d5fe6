# =============================================================================
# compliance_core/persistence/autosave.py
# Cooperative Auto-Save Timer
# =============================================================================
"""
AutoSaveScheduler - calls a save routine every ``auto_save_interval``.

Timers come from an injected Scheduler. The default one schedules callbacks
on the running asyncio event loop, so saves interleave with awaited sync
calls on one thread instead of racing them from a background thread.
Tests inject a manual scheduler and advance its clock explicitly.
"""

from __future__ import annotations
import asyncio
import functools
from abc import ABC, abstractmethod
from typing import Callable, Optional

from compliance_core.logging import get_logger
from compliance_core.persistence.config import PersistenceConfig

logger = get_logger(__name__)


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Safe to call twice."""


class Scheduler(ABC):
    """Schedules one-shot callbacks."""

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""


class AsyncioScheduler(Scheduler):
    """Schedules callbacks on an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class AutoSaveScheduler:
    """
    Usage:
        autosave = AutoSaveScheduler(config)
        autosave.start(lambda: store.save(current_state()))
        ...
        autosave.stop()
    """

    def __init__(self, config: PersistenceConfig, scheduler: Optional[Scheduler] = None):
        self.config = config
        self.scheduler = scheduler or AsyncioScheduler()
        self._handle = None
        self._save_fn: Optional[Callable[[], None]] = None
        # Bumped on every start/stop so a tick from a replaced timer is ignored
        self._generation = 0

    @property
    def is_running(self) -> bool:
        return self._save_fn is not None

    def start(self, save_fn: Callable[[], None]) -> None:
        """Start (or restart) periodic saving. No-op when auto-save is off."""
        if not self.config.auto_save:
            logger.debug("Auto-save disabled, not starting timer")
            return

        self.stop()
        self._save_fn = save_fn
        self._schedule(self._generation)
        logger.info(f"Auto-save started (every {self.config.auto_save_interval}s)")

    def stop(self) -> None:
        """Cancel the timer if one is active."""
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._save_fn is not None:
            self._save_fn = None
            logger.info("Auto-save stopped")

    def reconfigure(self, config: PersistenceConfig) -> None:
        """Apply new settings, restarting an active timer with them."""
        save_fn = self._save_fn
        self.stop()
        self.config = config
        if save_fn is not None:
            self.start(save_fn)

    def _schedule(self, generation: int) -> None:
        self._handle = self.scheduler.call_later(
            self.config.auto_save_interval,
            functools.partial(self._tick, generation),
        )

    def _tick(self, generation: int) -> None:
        if generation != self._generation or self._save_fn is None:
            return

        self._handle = None
        try:
            self._save_fn()
        except Exception as e:
            logger.error(f"Auto-save failed: {e}", exc_info=True)

        # save_fn may have stopped or restarted the timer itself
        if generation == self._generation and self._save_fn is not None:
            self._schedule(generation)
