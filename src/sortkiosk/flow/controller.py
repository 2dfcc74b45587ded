"""Kiosk screen sequencer.

Screens advance on user actions and fixed timers::

    WELCOME --start--> RECOGNITION --confirm--> SORTING --dwell, acknowledge--> REWARD_PENDING
       ^                                                                            |
       +-------------------------------- reset (from any screen) ------------------+

Entering REWARD_PENDING starts a countdown; when it reaches zero the reward
handoff fires once. Timers are asyncio tasks owned by the controller, so all
transitions must be triggered from the event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from sortkiosk.config import Settings

logger = logging.getLogger(__name__)


class Screen(StrEnum):
    WELCOME = "welcome"
    RECOGNITION = "recognition"
    SORTING = "sorting"
    REWARD_PENDING = "reward_pending"


@dataclass(frozen=True)
class RecognizedItem:
    name: str
    category: str


@dataclass(frozen=True)
class FlowTimings:
    """Durations of the simulated steps, in seconds."""

    sorting_dwell: float = 3.0
    countdown_start: int = 3
    countdown_tick: float = 1.0
    handoff_delay: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> FlowTimings:
        return cls(
            sorting_dwell=settings.sorting_dwell_seconds,
            countdown_start=settings.reward_countdown,
            countdown_tick=settings.countdown_tick_seconds,
            handoff_delay=settings.handoff_delay_seconds,
        )


@dataclass(frozen=True)
class FlowSnapshot:
    screen: Screen
    item: RecognizedItem | None
    sorting_complete: bool
    countdown: int | None
    handed_off: bool


class KioskFlow:
    """Finite-state screen sequencer holding the recognized item."""

    def __init__(self, timings: FlowTimings | None = None, on_handoff: Callable[[], None] | None = None) -> None:
        self._timings = timings or FlowTimings()
        self._on_handoff = on_handoff
        self._screen = Screen.WELCOME
        self._item: RecognizedItem | None = None
        self._sorting_complete = False
        self._countdown: int | None = None
        self._handed_off = False
        self._timer: asyncio.Task[None] | None = None

    @property
    def screen(self) -> Screen:
        return self._screen

    @property
    def item(self) -> RecognizedItem | None:
        return self._item

    @property
    def handed_off(self) -> bool:
        return self._handed_off

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            screen=self._screen,
            item=self._item,
            sorting_complete=self._sorting_complete,
            countdown=self._countdown,
            handed_off=self._handed_off,
        )

    # -- User actions -------------------------------------------------------

    def start(self) -> bool:
        if self._screen is not Screen.WELCOME:
            return False
        self._enter(Screen.RECOGNITION)
        return True

    def record_recognition(self, item: RecognizedItem) -> bool:
        """Replace the held item with a fresh recognition result."""
        if self._screen is not Screen.RECOGNITION:
            return False
        self._item = item
        return True

    def discard_recognition(self) -> None:
        if self._screen is Screen.RECOGNITION:
            self._item = None

    def confirm(self) -> bool:
        """Accept the held item and start sorting. No-op without an item."""
        if self._screen is not Screen.RECOGNITION or self._item is None:
            return False
        self._enter(Screen.SORTING)
        self._sorting_complete = False
        self._schedule(self._run_sorting())
        return True

    def acknowledge_sorting(self) -> bool:
        """User closes the completion dialog once sorting has finished."""
        if self._screen is not Screen.SORTING or not self._sorting_complete:
            return False
        self._enter(Screen.REWARD_PENDING)
        self._countdown = self._timings.countdown_start
        self._schedule(self._run_countdown())
        return True

    def reset(self) -> None:
        self._cancel_timer()
        self._item = None
        self._sorting_complete = False
        self._countdown = None
        self._handed_off = False
        self._enter(Screen.WELCOME)

    # -- Timers -------------------------------------------------------------

    async def wait_for_timers(self) -> None:
        """Wait for the pending timer, if any, to finish."""
        timer = self._timer
        if timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await timer

    def shutdown(self) -> None:
        self._cancel_timer()

    async def _run_sorting(self) -> None:
        await asyncio.sleep(self._timings.sorting_dwell)
        self._sorting_complete = True
        logger.info("Sorting complete for %s", self._item.category if self._item else "unknown item")

    async def _run_countdown(self) -> None:
        while self._countdown is not None and self._countdown > 0:
            await asyncio.sleep(self._timings.countdown_tick)
            self._countdown -= 1
        await asyncio.sleep(self._timings.handoff_delay)
        self._fire_handoff()

    def _fire_handoff(self) -> None:
        if self._handed_off:
            return
        self._handed_off = True
        logger.info("Reward handoff")
        if self._on_handoff is not None:
            self._on_handoff()

    def _schedule(self, coro: Coroutine[object, object, None]) -> None:
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().create_task(coro)

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _enter(self, screen: Screen) -> None:
        logger.info("Screen %s -> %s", self._screen, screen)
        self._screen = screen
