"""Adaptive poll delay.

Each empty poll lengthens the sleep by one poll interval up to the maximum
sleep period; receiving a message drops it back to the poll interval.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

from sqsworker.main.models import PollState

if TYPE_CHECKING:
    from sqsworker.main.config import Settings


def initial_state(settings: Settings) -> PollState:
    return PollState(
        current_sleep=settings.poll_interval,
        poll_interval=settings.poll_interval,
        max_sleep_period=settings.max_sleep_period,
    )


def on_empty_poll(state: PollState) -> PollState:
    return replace(
        state,
        current_sleep=min(state.current_sleep + state.poll_interval, state.max_sleep_period),
    )


def on_message_received(state: PollState) -> PollState:
    return replace(state, current_sleep=state.poll_interval)


def rebase(state: PollState, settings: Settings) -> PollState:
    """Carry a state over to new interval settings, keeping the invariant."""
    current = min(max(state.current_sleep, settings.poll_interval), settings.max_sleep_period)
    return PollState(
        current_sleep=current,
        poll_interval=settings.poll_interval,
        max_sleep_period=settings.max_sleep_period,
    )
