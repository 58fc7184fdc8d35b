"""Deadline-bounded status polling.

The poller waits for the next of three events: the poll tick, the
deadline, or the external stop event. Only a tick fetches status. A
fetch that raises is logged and counted as "not yet"; only the deadline
or the stop event end the loop without a verdict.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class PollState(str, Enum):
    """States of a single poll loop."""

    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not PollState.WAITING


@dataclass
class PollResult:
    """Outcome of a finished poll loop."""

    state: PollState
    value: Any = None
    elapsed: float = 0.0
    attempts: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state is PollState.SUCCEEDED

    @property
    def timed_out(self) -> bool:
        return self.state is PollState.TIMED_OUT

    @property
    def cancelled(self) -> bool:
        return self.state is PollState.CANCELLED


class DeadlinePoller:
    """Polls a status fetch on a fixed interval until a verdict or the deadline.

    Args:
        interval: Seconds between fetches.
        deadline: Seconds before the loop gives up with ``TIMED_OUT``.
        stop_event: Shared shutdown signal. Setting it makes the loop
            return ``CANCELLED`` without waiting out the deadline.
        clock: Monotonic clock, replaceable in tests.
    """

    def __init__(
        self,
        interval: float,
        deadline: float,
        stop_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {interval}")
        if deadline <= 0:
            raise ValueError(f"Deadline must be positive, got {deadline}")
        self.interval = interval
        self.deadline = deadline
        self.stop_event = stop_event or threading.Event()
        self._clock = clock

    def poll(
        self,
        fetch: Callable[[], Any],
        evaluate: Callable[[Any], PollState],
        description: str = "status",
    ) -> PollResult:
        """Run the poll loop.

        Args:
            fetch: Reads the current status. May raise on transient errors.
            evaluate: Maps a fetched value to ``WAITING``, ``SUCCEEDED``
                or ``FAILED``.
            description: Used in log messages.

        Returns:
            PollResult with the terminal state and the last fetched value.
        """
        start = self._clock()
        expires_at = start + self.deadline
        next_tick = start + self.interval
        state = PollState.WAITING
        value = None
        attempts = 0

        while state is PollState.WAITING:
            wake_at = min(next_tick, expires_at)
            if self.stop_event.wait(max(0.0, wake_at - self._clock())):
                logger.info("polling %s cancelled", description)
                state = PollState.CANCELLED
                break

            now = self._clock()
            # The deadline wins when it fires together with a tick.
            if now >= expires_at:
                logger.info("polling %s timed out after %.1fs", description, now - start)
                state = PollState.TIMED_OUT
                break
            if now < next_tick:
                continue

            next_tick = max(next_tick + self.interval, now)
            attempts += 1
            try:
                fetched = fetch()
            except Exception as e:
                logger.warning("failed to fetch %s (attempt %d): %s", description, attempts, e)
                continue

            value = fetched
            state = evaluate(fetched)
            if state in (PollState.TIMED_OUT, PollState.CANCELLED):
                raise ValueError(f"evaluate() returned non-verdict state {state}")

        return PollResult(
            state=state,
            value=value,
            elapsed=self._clock() - start,
            attempts=attempts,
        )
