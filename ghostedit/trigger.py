"""Trigger controller — debounce state machine for one editing surface.

States: IDLE -> DEBOUNCING -> INVOKING -> (IDLE | SUPERSEDED)

SUPERSEDED means an event arrived while an invocation was still running.
It lasts until that task ends (then DEBOUNCING or IDLE) or until the new
window expires and the next invocation starts.

Every qualifying event cancels the pending timer and starts a new one, so
there is never more than one timer per surface. When the timer expires the
controller asks ``should_invoke`` (the mid-word guard) and either returns
to IDLE or runs ``on_fire`` as a task.
"""
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class TriggerState(Enum):
    IDLE = "idle"
    DEBOUNCING = "debouncing"
    INVOKING = "invoking"
    SUPERSEDED = "superseded"


class InteractionMode(Enum):
    TYPING = "typing"
    DRAGGING = "drag"
    SELECTION_GROWING = "selection_growing"
    SELECTION_SHRINKING = "selection_shrinking"
    SELECTION_STABLE = "selection_stable"


class InteractionTracker:
    """Derives the interaction mode from pointer and selection activity."""

    def __init__(self):
        self.pointer_held = False
        self._last_selection_len = 0

    def pointer(self, pressed: bool):
        self.pointer_held = pressed

    def classify(self, selection_len: int, typed: bool = False) -> InteractionMode:
        last = self._last_selection_len
        self._last_selection_len = selection_len

        if typed:
            return InteractionMode.TYPING
        if self.pointer_held:
            return InteractionMode.DRAGGING
        if selection_len > 0 and last and selection_len > last:
            return InteractionMode.SELECTION_GROWING
        if selection_len > 0 and last and selection_len < last:
            return InteractionMode.SELECTION_SHRINKING
        return InteractionMode.SELECTION_STABLE


class TriggerController:
    def __init__(self, config, on_fire: Callable[[], Awaitable[None]],
                 should_invoke: Optional[Callable[[], bool]] = None,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.config = config
        self._on_fire = on_fire
        self._should_invoke = should_invoke or (lambda: True)
        self._loop = loop
        self._state = TriggerState.IDLE
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self.fired = 0

    @property
    def state(self) -> TriggerState:
        return self._state

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def delay_for(self, mode: InteractionMode) -> float:
        return self.config.delay_ms(mode.value) / 1000.0

    def notify(self, mode: InteractionMode = InteractionMode.TYPING):
        """Restart the debounce window (cancel-then-restart)."""
        if self._closed or not self.config.enabled:
            return
        self._cancel_timer()
        delay = self.delay_for(mode)
        self._timer = self._get_loop().call_later(delay, self._expire)
        if self._state in (TriggerState.INVOKING, TriggerState.SUPERSEDED):
            self._state = TriggerState.SUPERSEDED
        else:
            self._state = TriggerState.DEBOUNCING

    def cancel(self):
        """Drop any pending timer; an in-flight invocation keeps running."""
        self._cancel_timer()
        if self._state is TriggerState.DEBOUNCING:
            self._state = TriggerState.IDLE

    def close(self):
        self._closed = True
        self._cancel_timer()
        if self._running():
            self._task.cancel()
        self._state = TriggerState.IDLE

    def _running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _expire(self):
        self._timer = None
        if self._state not in (TriggerState.DEBOUNCING, TriggerState.SUPERSEDED):
            return
        try:
            invoke = self._should_invoke()
        except Exception as e:
            logger.error("Trigger guard error: %s", e)
            invoke = False
        if not invoke:
            logger.debug("Skipping trigger — cursor in the middle of a word")
            self._state = TriggerState.SUPERSEDED if self._running() else TriggerState.IDLE
            return
        self.fire_now()

    def fire_now(self) -> bool:
        """Invoke immediately. A no-op while an invocation is running."""
        if self._closed or self._state is TriggerState.INVOKING:
            return False
        self._cancel_timer()
        self._state = TriggerState.INVOKING
        self.fired += 1
        self._task = self._get_loop().create_task(self._run())
        return True

    async def _run(self):
        task = asyncio.current_task()
        try:
            await self._on_fire()
        except asyncio.CancelledError:
            logger.debug("Trigger invocation cancelled")
        except Exception as e:
            logger.error("Completion trigger error: %s", e, exc_info=True)
        finally:
            if self._task is task:
                if self._state is TriggerState.INVOKING:
                    self._state = TriggerState.IDLE
                elif self._state is TriggerState.SUPERSEDED:
                    self._state = TriggerState.DEBOUNCING if self._timer is not None else TriggerState.IDLE
