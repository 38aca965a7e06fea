"""Massage session timing and orchestration."""

from .controller import FormDraft, SessionController
from .state import Phase, SessionState, TimerEffect, Transition, format_remaining
from .timer import StopReason, TimerEngine

__all__ = [
    "FormDraft",
    "Phase",
    "SessionController",
    "SessionState",
    "StopReason",
    "TimerEffect",
    "TimerEngine",
    "Transition",
    "format_remaining",
]
