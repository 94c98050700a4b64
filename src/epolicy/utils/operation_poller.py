from __future__ import annotations

import logging
import time
from typing import Protocol

import httpx
from pydantic import ValidationError

from ..errors import HttpError
from ..models.admin import AsyncOperationStatus
from ..models.linkage import OperationStatus, PollResult

logger = logging.getLogger(__name__)


class OperationStatusSource(Protocol):
    def get_operation_status(self, operation_location: str) -> AsyncOperationStatus: ...


class OperationPoller:
    """Poll an ``operation-location`` URL until a terminal state or timeout.

    Each iteration sleeps ``interval_seconds`` and then issues one GET. Polling
    stops on Succeeded, Failed or Canceled (case-insensitive, ``Cancelled``
    accepted). Any other state, and any error from the status endpoint itself,
    keeps polling until ``timeout_seconds`` has elapsed, at which point
    ``TimedOut`` is returned instead of raising. Callers must treat
    ``TimedOut`` as unknown.
    """

    terminal_states = {
        "succeeded": OperationStatus.SUCCEEDED,
        "failed": OperationStatus.FAILED,
        "canceled": OperationStatus.CANCELED,
        "cancelled": OperationStatus.CANCELED,
    }

    def __init__(self, source: OperationStatusSource) -> None:
        self._source = source

    def poll(
        self,
        operation_location: str,
        timeout_seconds: float,
        interval_seconds: float,
    ) -> PollResult:
        start = time.time()
        iterations = 0
        while True:
            time.sleep(interval_seconds)
            iterations += 1
            try:
                status = self._source.get_operation_status(operation_location)
            except (HttpError, httpx.HTTPError, ValidationError) as exc:
                logger.warning(
                    "Polling %s failed (attempt %d): %s", operation_location, iterations, exc
                )
            else:
                state = status.value
                terminal = self.terminal_states.get(state.lower())
                if terminal is not None:
                    logger.info("Operation %s reached %s", operation_location, terminal.value)
                    return PollResult(terminal, iterations)
                logger.info("Operation still %s (poll %d)", state or "pending", iterations)
            if time.time() - start >= timeout_seconds:
                logger.warning(
                    "Operation %s did not finish within %ss", operation_location, timeout_seconds
                )
                return PollResult(OperationStatus.TIMED_OUT, iterations)


__all__ = ["OperationPoller", "OperationStatusSource"]
