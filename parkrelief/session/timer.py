"""Countdown timer driving the session lifecycle."""

import asyncio
import logging
from enum import Enum
from typing import Callable

from .state import (
    DEFAULT_DURATION_MINUTES,
    Phase,
    SessionState,
    TimerEffect,
    Transition,
    format_remaining,
    start_session,
    stop_session,
    tick_session,
)

logger = logging.getLogger(__name__)


class StopReason(Enum):
    """Why the timer left RUNNING."""

    USER = "user"
    AUTO = "auto"


TickCallback = Callable[[SessionState], None]
StopCallback = Callable[[SessionState, StopReason], None]


class TimerEngine:
    """Countdown state machine with a one-second asyncio cadence.

    The cadence task is the only thing that decrements the remaining time.
    ``start`` and ``stop`` are plain methods meant to be called from the
    event loop thread; ``stop`` cancels the cadence before it returns.
    """

    def __init__(
        self,
        tick_interval: float = 1.0,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
        on_tick: TickCallback | None = None,
        on_stop: StopCallback | None = None,
    ):
        """Initialize the timer.

        Args:
            tick_interval: Seconds between cadence ticks.
            default_duration_minutes: Duration shown before the first start.
            on_tick: Called with the new state after start and every tick.
            on_stop: Called with the new state and the stop reason.
        """
        self._interval = tick_interval
        self._on_tick = on_tick
        self._on_stop = on_stop
        self._state = SessionState(selected_duration_minutes=default_duration_minutes)
        self._task: asyncio.Task | None = None
        self.last_stop_reason: StopReason | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> Phase:
        return self._state.phase

    @property
    def is_running(self) -> bool:
        return self._state.is_running

    @property
    def remaining_seconds(self) -> int:
        return self._state.remaining_seconds

    @property
    def display(self) -> str:
        """Remaining time as MM:SS."""
        return format_remaining(self._state.remaining_seconds)

    def start(self, duration_minutes: int) -> bool:
        """Start the countdown.

        Must be called while an event loop is running.

        Returns:
            False if the timer was already running.
        """
        transition = start_session(self._state, duration_minutes)
        if not transition.changed:
            logger.warning("Timer already running, ignoring duplicate start")
            return False

        # Raises before any state change when no loop is running
        loop = asyncio.get_running_loop()
        self._apply(transition)
        self._task = loop.create_task(self._run_cadence())
        logger.info(
            f"Timer started for {self._state.selected_duration_minutes} min"
        )
        return True

    def stop(self) -> bool:
        """Stop the countdown, freezing the remaining time.

        Returns:
            False if the timer was not running.
        """
        transition = stop_session(self._state)
        if not transition.changed:
            logger.warning("Timer not running, ignoring duplicate stop")
            return False

        self._cancel_cadence()
        self._apply(transition)
        logger.info(f"Timer stopped with {self.display} remaining")
        return True

    def tick(self) -> Transition:
        """Advance the countdown by one second."""
        transition = tick_session(self._state)
        if transition.effect is TimerEffect.AUTO_STOPPED:
            self._cancel_cadence()
            logger.info("Time is up, timer stopped automatically")
        if transition.changed:
            self._apply(transition)
        return transition

    async def close(self) -> None:
        """Cancel the cadence task and wait for it to finish."""
        task, self._task = self._task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _apply(self, transition: Transition) -> None:
        self._state = transition.state

        if transition.effect is TimerEffect.STARTED:
            self.last_stop_reason = None

        if transition.effect in (TimerEffect.STARTED, TimerEffect.TICKED):
            if self._on_tick:
                self._on_tick(self._state)
        elif transition.effect is TimerEffect.STOPPED:
            self.last_stop_reason = StopReason.USER
            if self._on_stop:
                self._on_stop(self._state, StopReason.USER)
        elif transition.effect is TimerEffect.AUTO_STOPPED:
            self.last_stop_reason = StopReason.AUTO
            if self._on_tick:
                self._on_tick(self._state)
            if self._on_stop:
                self._on_stop(self._state, StopReason.AUTO)

    def _cancel_cadence(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # Auto stop runs inside the cadence task itself; it ends on its own.
        if task is not asyncio.current_task():
            task.cancel()

    async def _run_cadence(self) -> None:
        """Tick once per interval until the timer leaves RUNNING."""
        me = asyncio.current_task()
        while self.is_running and self._task is me:
            await asyncio.sleep(self._interval)
            if not self.is_running or self._task is not me:
                break
            self.tick()
