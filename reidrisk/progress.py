# =============================================================================
# progress.py
# =============================================================================
# Cooperative cancellation and progress reporting.
#
# Every long-running computation in the engine receives a CancellationToken
# and a ProgressPhase. The token is polled (never waited on) at each outer
# iteration; the phase maps the computation's local completion fraction onto
# a contiguous sub-range of the session-wide 0-100 progress integer.
#
# Only two pieces of state are shared across threads: the cancellation flag
# (a threading.Event) and the progress integer (guarded by a lock). A second
# thread may set the flag at any time; the worker notices at its own pace.
#
# Author: James Weatherhead
# Institution: University of Texas Medical Branch (UTMB)
# =============================================================================

import logging
import threading
from typing import Optional

from tqdm import tqdm

from .errors import ComputationInterrupted

# Configure logging
logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Thread-safe boolean flag polled by the engine.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()          # e.g. from a UI thread or a timer
        >>> token.check()           # raises ComputationInterrupted
    """

    def __init__(self):
        self._flag = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._flag.is_set()

    def cancel(self) -> None:
        """Request that the running computation stops."""
        self._flag.set()

    def reset(self) -> None:
        self._flag.clear()

    def check(self) -> None:
        """
        Raise ComputationInterrupted if cancellation was requested.

        Raises:
            ComputationInterrupted: If the flag is set
        """
        if self._flag.is_set():
            raise ComputationInterrupted()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


class ProgressReporter:
    """
    Session-wide progress integer in [0, 100].

    Optionally mirrors the value onto a tqdm bar, which is how the command line
    shows progress. Readers on other threads use the ``value`` property.

    Attributes:
        show_progress (bool): Whether a tqdm bar is drawn
        desc (str): Label of the tqdm bar
    """

    def __init__(self, show_progress: bool = False, desc: str = "Estimating risks"):
        self.show_progress = show_progress
        self.desc = desc
        self._value = 0
        self._lock = threading.Lock()
        self._bar: Optional[tqdm] = None

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def set(self, value: int) -> None:
        """Store a new value, clamped to [0, 100]."""
        value = max(0, min(100, int(value)))
        with self._lock:
            self._value = value
            if self.show_progress:
                if self._bar is None:
                    self._bar = tqdm(total=100, desc=self.desc, leave=False)
                self._bar.n = value
                self._bar.refresh()

    def reset(self) -> None:
        """Start a new query: value back to 0, any open bar closed."""
        with self._lock:
            self._value = 0
            if self._bar is not None:
                self._bar.close()
                self._bar = None

    def phase(self, start: float = 0.0, end: float = 100.0) -> "ProgressPhase":
        """
        Create a phase writing into the sub-range [start, end].

        Args:
            start: Lower bound of the sub-range (0-100 scale)
            end: Upper bound of the sub-range (0-100 scale)

        Returns:
            ProgressPhase bound to this reporter
        """
        return ProgressPhase(self, start, end)

    def __repr__(self) -> str:
        return f"ProgressReporter(value={self.value})"


class ProgressPhase:
    """
    A contiguous slice of a ProgressReporter's range.

    Computations report a local fraction in [0, 1]; the phase converts it to
    the global integer and writes it only when it grows, so values written by
    one phase are monotonically non-decreasing.

    Example:
        >>> reporter = ProgressReporter()
        >>> phase = reporter.phase(0, 80)
        >>> phase.update(0.5)
        >>> reporter.value
        40
    """

    def __init__(self, reporter: ProgressReporter, start: float, end: float):
        if end < start:
            raise ValueError(f"Progress phase end ({end}) precedes start ({start})")
        self.reporter = reporter
        self.start = float(start)
        self.end = float(end)
        self._last = -1

    def update(self, fraction: float) -> None:
        """Report local completion in [0, 1]."""
        fraction = max(0.0, min(1.0, fraction))
        value = int(round(self.start + fraction * (self.end - self.start)))
        if value > self._last:
            self._last = value
            self.reporter.set(value)

    def complete(self) -> None:
        self.update(1.0)

    def sub(self, start: float, end: float) -> "ProgressPhase":
        """
        Nested phase covering the local fractions [start, end] of this one.

        Args:
            start: Local start fraction in [0, 1]
            end: Local end fraction in [0, 1]
        """
        width = self.end - self.start
        return ProgressPhase(self.reporter, self.start + start * width, self.start + end * width)


def detached_phase() -> ProgressPhase:
    """Phase writing into a private reporter, for callers that do not track progress."""
    return ProgressReporter().phase()
