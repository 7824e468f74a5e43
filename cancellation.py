"""Cooperative cancellation shared by every task of one pipeline run."""

import logging

from errors import PipelineCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Caller-owned flag checked at defined checkpoints.

    Firing the token never interrupts a call already in flight; whoever
    checks it next stops scheduling work and raises PipelineCancelledError.
    """

    def __init__(self):
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled by user") -> None:
        if not self._cancelled:
            logger.info(f"Cancellation requested: {reason}")
        self._cancelled = True
        self.reason = reason

    def raise_if_cancelled(self, stage: str | None = None) -> None:
        if self._cancelled:
            raise PipelineCancelledError(
                f"Card creation was {self.reason or 'cancelled'}", stage=stage
            )
