"""Session state and its pure transitions.

Each transition takes the current SessionState and returns a Transition
holding the next state and the effect the caller has to carry out. Nothing
here touches the event loop.
"""

from dataclasses import dataclass, replace
from enum import Enum

DEFAULT_DURATION_MINUTES = 15


class Phase(Enum):
    """Lifecycle phase of a massage session."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class TimerEffect(Enum):
    """What a transition asks the timer to do."""

    IGNORED = "ignored"
    STARTED = "started"  # schedule the cadence
    TICKED = "ticked"
    STOPPED = "stopped"  # cancel the cadence, user initiated
    AUTO_STOPPED = "auto_stopped"  # countdown reached zero


PHASE_LABELS = {
    Phase.IDLE: "未啟動",
    Phase.RUNNING: "按摩中",
    Phase.STOPPED: "已停止",
}


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the session timer."""

    phase: Phase = Phase.IDLE
    remaining_seconds: int = 0
    selected_duration_minutes: int = DEFAULT_DURATION_MINUTES

    @property
    def is_running(self) -> bool:
        return self.phase is Phase.RUNNING

    @property
    def label(self) -> str:
        return PHASE_LABELS[self.phase]


@dataclass(frozen=True)
class Transition:
    """Result of applying a command to a SessionState."""

    state: SessionState
    effect: TimerEffect

    @property
    def changed(self) -> bool:
        return self.effect is not TimerEffect.IGNORED


def start_session(state: SessionState, duration_minutes: int) -> Transition:
    """Enter RUNNING with a full countdown. Ignored while already running."""
    if state.is_running:
        return Transition(state, TimerEffect.IGNORED)

    duration_minutes = max(1, int(duration_minutes))
    return Transition(
        SessionState(
            phase=Phase.RUNNING,
            remaining_seconds=duration_minutes * 60,
            selected_duration_minutes=duration_minutes,
        ),
        TimerEffect.STARTED,
    )


def tick_session(state: SessionState) -> Transition:
    """Advance the countdown by one second."""
    if not state.is_running:
        return Transition(state, TimerEffect.IGNORED)

    remaining = max(0, state.remaining_seconds - 1)
    if remaining == 0:
        return Transition(
            replace(state, phase=Phase.STOPPED, remaining_seconds=0),
            TimerEffect.AUTO_STOPPED,
        )
    return Transition(replace(state, remaining_seconds=remaining), TimerEffect.TICKED)


def stop_session(state: SessionState) -> Transition:
    """Enter STOPPED, freezing the remaining time. Ignored unless running."""
    if not state.is_running:
        return Transition(state, TimerEffect.IGNORED)
    return Transition(replace(state, phase=Phase.STOPPED), TimerEffect.STOPPED)


def format_remaining(seconds: int) -> str:
    """Render seconds as MM:SS. Minutes are not capped at 59."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"
