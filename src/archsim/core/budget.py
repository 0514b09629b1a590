"""Execution budget for the step interpreter.

Budgets bound the work one simulated request may do:
- Steps interpreted (including nested branch/call steps)
- Function-call nesting depth
- Wall-clock time

ResourceUsage tracks consumption against a Budget.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

DEFAULT_MAX_STEPS = 1000
DEFAULT_MAX_CALL_DEPTH = 16

# Hard limit on call_function nesting, enforced even when max_call_depth is None.
CALL_DEPTH_CEILING = 64


@dataclass(frozen=True)
class Budget:
    """Resource limits for interpreting one request.

    A limit set to None is not enforced, except that call depth never
    exceeds CALL_DEPTH_CEILING.

    Attributes:
        max_steps: Maximum number of steps interpreted.
        max_call_depth: Maximum nesting of call_function steps.
        max_time_seconds: Maximum wall-clock time in seconds.

    Example:
        # Tight budget for tests
        budget = Budget(max_steps=5, max_call_depth=2)
    """

    max_steps: int | None = DEFAULT_MAX_STEPS
    max_call_depth: int | None = DEFAULT_MAX_CALL_DEPTH
    max_time_seconds: float | None = None

    def is_limited(self) -> bool:
        """Check if any limits are set."""
        return any(
            [
                self.max_steps is not None,
                self.max_call_depth is not None,
                self.max_time_seconds is not None,
            ]
        )


@dataclass
class ResourceUsage:
    """Tracks interpreter consumption for one request.

    Uses a monotonic clock so elapsed time is immune to wall-clock changes.

    Attributes:
        steps_executed: Number of steps interpreted so far.
        call_depth: Current call_function nesting depth.
    """

    steps_executed: int = 0
    call_depth: int = 0
    _start_monotonic: float = field(default_factory=time.monotonic)

    @property
    def time_elapsed_seconds(self) -> float:
        return time.monotonic() - self._start_monotonic

    def exceeds(self, budget: Budget) -> tuple[bool, str | None]:
        """Check if usage exceeds budget.

        Args:
            budget: The budget limits to check against.

        Returns:
            Tuple of (exceeded, reason). reason explains which limit was hit.
        """
        if budget.max_steps is not None and self.steps_executed > budget.max_steps:
            return True, f"Step limit exceeded: {self.steps_executed}/{budget.max_steps}"

        if budget.max_call_depth is not None and self.call_depth > budget.max_call_depth:
            return True, f"Call depth limit exceeded: {self.call_depth}/{budget.max_call_depth}"

        if self.call_depth > CALL_DEPTH_CEILING:
            return True, f"Call depth limit exceeded: {self.call_depth}/{CALL_DEPTH_CEILING}"

        elapsed = self.time_elapsed_seconds
        if budget.max_time_seconds is not None and elapsed >= budget.max_time_seconds:
            return True, f"Time limit exceeded: {elapsed:.3f}s/{budget.max_time_seconds}s"

        return False, None
