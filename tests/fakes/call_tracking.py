# =============================================================================
# File: tests/fakes/call_tracking.py
# Description: Call recording and configurable failures shared by the fakes
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from titan.common.exceptions.exceptions import TransportError


@dataclass
class CallRecord:
    """Record of a method call for verification."""
    method: str
    args: tuple
    kwargs: Dict[str, Any]


@dataclass
class _FailurePlan:
    error: Exception
    remaining: Optional[int]  # None = fail forever


class CallTrackingFake:
    """
    Base for fakes: tracks calls and raises configured errors.

    Usage:
        fake.configure_failure("send_message")           # always fails
        fake.configure_failure("add_reaction", times=2)  # fails twice, then succeeds

        assert fake.was_called("send_message")
        assert fake.get_call_count("send_message") == 1
    """

    def __init__(self):
        self._calls: List[CallRecord] = []
        self._failures: Dict[str, _FailurePlan] = {}

    # =========================================================================
    # Test Setup Methods
    # =========================================================================

    def configure_failure(
        self,
        method: str,
        error: Optional[Exception] = None,
        times: Optional[int] = None,
    ) -> None:
        """Make a method raise (TransportError by default)."""
        self._failures[method] = _FailurePlan(
            error=error or TransportError(f"{method} failed"),
            remaining=times,
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    # =========================================================================
    # Test Verification Methods
    # =========================================================================

    def was_called(self, method: str) -> bool:
        """Check if a method was called."""
        return any(c.method == method for c in self._calls)

    def get_call_count(self, method: str) -> int:
        """Get number of times a method was called."""
        return sum(1 for c in self._calls if c.method == method)

    def get_calls(self, method: str) -> List[CallRecord]:
        """Get all calls to a specific method."""
        return [c for c in self._calls if c.method == method]

    def get_last_call(self, method: str) -> Optional[CallRecord]:
        """Get the last call to a specific method."""
        calls = self.get_calls(method)
        return calls[-1] if calls else None

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _record_call(self, method: str, *args, **kwargs) -> None:
        self._calls.append(CallRecord(method=method, args=args, kwargs=kwargs))

    def _check_failure(self, method: str) -> None:
        plan = self._failures.get(method)
        if plan is None:
            return
        if plan.remaining is not None:
            if plan.remaining <= 0:
                del self._failures[method]
                return
            plan.remaining -= 1
        raise plan.error
