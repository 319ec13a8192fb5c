# =============================================================================
# File: titan/messaging/failures.py
# Description: Records of remote operations that failed after the local
#              optimistic change was applied
# =============================================================================

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from titan.infra.metrics.messaging_metrics import operation_failures
from titan.utils.datetime_utils import utc_now

log = logging.getLogger("titan.messaging.failures")

FailureListener = Callable[["OperationFailure"], None]


class OperationFailure(BaseModel):
    """One remote failure, surfaced instead of being dropped silently"""
    model_config = ConfigDict(frozen=True)

    operation: str  # e.g. "send", "edit", "reaction", "boost.create_campaign"
    error: str
    error_type: str
    message_id: Optional[str] = None
    channel_id: Optional[str] = None
    actor_id: Optional[str] = None
    reverted: bool = False
    occurred_at: datetime = Field(default_factory=utc_now)


class FailureReporter:
    """Keeps recent failures and fans them out to listeners"""

    def __init__(self, history_size: int = 200):
        self._history_size = history_size
        self._history: List[OperationFailure] = []
        self._listeners: List[FailureListener] = []

    def add_listener(self, listener: FailureListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: FailureListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def history(self) -> List[OperationFailure]:
        return list(self._history)

    def report(
            self,
            operation: str,
            error: BaseException,
            *,
            message_id: Optional[str] = None,
            channel_id: Optional[str] = None,
            actor_id: Optional[str] = None,
            reverted: bool = False,
    ) -> OperationFailure:
        failure = OperationFailure(
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            message_id=message_id,
            channel_id=channel_id,
            actor_id=actor_id,
            reverted=reverted,
        )
        self._history.append(failure)
        operation_failures.labels(operation=operation).inc()
        del self._history[:-self._history_size]

        log.error(
            f"Operation '{operation}' failed: {failure.error_type}: {failure.error}",
            extra={
                "operation": operation,
                "message_id": message_id,
                "channel_id": channel_id,
                "actor_id": actor_id,
            },
        )
        for listener in list(self._listeners):
            try:
                listener(failure)
            except Exception as e:
                log.error(f"Failure listener raised: {e}", exc_info=True)
        return failure
