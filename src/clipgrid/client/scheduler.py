"""
Activity Scheduler
==================

Single-threaded cooperative scheduler for the capture surface.

Live preview, recording and playback share one camera and one canvas, so
at most one of them runs at a time. Starting an activity cancels the
current one first; the scheduler enforces this, callers do not.

Design Rules:
    - No threads: the owner calls tick(now) from its clock
    - A step is never re-entered; the next due time is computed after the
      step returns
    - A cancelled token never runs again
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class Activity(str, Enum):
    """Mutually exclusive uses of the capture surface."""

    PREVIEW = "PREVIEW"
    RECORDING = "RECORDING"
    PLAYBACK = "PLAYBACK"


_token_ids = count(1)


@dataclass
class ActivityToken:
    """Handle of one scheduled activity."""

    activity: Activity
    interval: float
    step: Callable[[], None]
    next_due: float
    token_id: int = field(default_factory=lambda: next(_token_ids))
    cancelled: bool = False
    steps_run: int = 0


class ActivityScheduler:
    """
    Runs one periodic activity at a time.

    Example:
        scheduler = ActivityScheduler()
        scheduler.start(Activity.PREVIEW, interval=0.2, step=show_preview, now=0.0)
        scheduler.tick(0.2)
        scheduler.start(Activity.RECORDING, ...)   # preview is cancelled
    """

    def __init__(self) -> None:
        self._current: Optional[ActivityToken] = None
        self._in_step = False

    @property
    def current(self) -> Optional[Activity]:
        return self._current.activity if self._current else None

    @property
    def token(self) -> Optional[ActivityToken]:
        return self._current

    def is_active(self, activity: Activity) -> bool:
        return self._current is not None and self._current.activity is activity

    def start(
        self,
        activity: Activity,
        interval: float,
        step: Callable[[], None],
        now: float = 0.0,
    ) -> ActivityToken:
        """Cancel the running activity, then schedule `activity`."""
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.stop()
        token = ActivityToken(
            activity=activity,
            interval=interval,
            step=step,
            next_due=now + interval,
        )
        self._current = token
        logger.debug(f"Started {activity.value} (token={token.token_id}, every {interval:.3f}s)")
        return token

    def stop(self, activity: Optional[Activity] = None) -> bool:
        """
        Cancel the running activity.

        Args:
            activity: Only cancel if the running activity is this one

        Returns:
            True if something was cancelled
        """
        token = self._current
        if token is None:
            return False
        if activity is not None and token.activity is not activity:
            return False
        token.cancelled = True
        self._current = None
        logger.debug(f"Stopped {token.activity.value} (token={token.token_id})")
        return True

    def tick(self, now: float) -> bool:
        """
        Run the active step if it is due.

        Returns:
            True if a step ran
        """
        token = self._current
        if token is None or token.cancelled or self._in_step:
            return False
        if now < token.next_due:
            return False

        self._in_step = True
        try:
            token.step()
        finally:
            self._in_step = False
        token.steps_run += 1
        token.next_due = now + token.interval
        return True
