"""
Bounded polling of asynchronous provider state.

EC2 offers no notification when an image's snapshots materialise or its
state changes, so the only option is to look again until a deadline.
"""

import logging
import threading
import time
from typing import Any, Callable, Optional, Tuple

from .config import DEFAULT_POLL_INTERVAL, DEFAULT_TIMEOUT, normalize_interval, normalize_timeout
from .errors import BackupCancelled
from .models import Converged, PollOutcome, TimedOut

logger = logging.getLogger(__name__)

Predicate = Callable[[], Tuple[bool, Any]]


def poll_until(
    predicate: Predicate,
    interval: float,
    timeout: float,
    sleep: Callable[[float], Any] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    cancel_event: Optional[threading.Event] = None,
    label: str = "condition",
) -> PollOutcome:
    """
    Evaluate ``predicate`` until it reports done or ``timeout`` seconds of waiting pass.
    
    The predicate is checked before the first sleep, and never slept after
    once it succeeds. The run times out right after the sleep that reaches
    the ceiling, so at most ceil(timeout / interval) checks are made.
    
    Args:
        predicate: Callable returning (done, observed value)
        interval: Seconds between checks
        timeout: Ceiling on cumulative wait, in seconds
        sleep: Sleep function
        clock: Monotonic clock
        cancel_event: Aborts the wait when set
        label: Name of what is polled, for logs
        
    Returns:
        Converged or TimedOut, both carrying the last observed value
        
    Raises:
        BackupCancelled: If ``cancel_event`` is set
    """
    start = clock()
    polls = 0
    
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise BackupCancelled(f"cancelled while waiting for {label}")
        
        done, observed = predicate()
        polls += 1
        elapsed = clock() - start
        
        if done:
            logger.debug(f"{label}: converged after {elapsed:.0f}s ({polls} polls), observed={observed!r}")
            return Converged(elapsed=elapsed, observed=observed, polls=polls)
        
        logger.debug(f"{label}: not yet ({observed!r}), next check in {interval}s")
        sleep(interval)
        elapsed = clock() - start
        
        if elapsed >= timeout:
            logger.debug(f"{label}: timed out after {elapsed:.0f}s ({polls} polls), last observed={observed!r}")
            return TimedOut(elapsed=elapsed, observed=observed, polls=polls)


class ConvergencePoller:
    """Polling policy shared by every wait of a run."""
    
    def __init__(
        self,
        interval: Optional[int] = DEFAULT_POLL_INTERVAL,
        timeout: Optional[int] = DEFAULT_TIMEOUT,
        sleep: Optional[Callable[[float], Any]] = None,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.interval = normalize_interval(interval)
        self.timeout = normalize_timeout(timeout)
        self.clock = clock
        self.cancel_event = cancel_event
        if sleep is not None:
            self.sleep = sleep
        elif cancel_event is not None:
            self.sleep = cancel_event.wait
        else:
            self.sleep = time.sleep
    
    def wait(self, predicate: Predicate, label: str = "condition") -> PollOutcome:
        return poll_until(
            predicate,
            interval=self.interval,
            timeout=self.timeout,
            sleep=self.sleep,
            clock=self.clock,
            cancel_event=self.cancel_event,
            label=label,
        )
