"""Progress tracking for the sub-requests of one pipeline invocation."""

from contextlib import asynccontextmanager
import itertools
import logging
import time
from typing import Callable

from models import ApiRequestRecord, ProgressUpdate

logger = logging.getLogger(__name__)


class ApiRequestTracker:
    """
    Registry of sub-requests made during a single run.

    Purely observational: callback failures are logged and never reach the
    pipeline. Build one per invocation and pass it down.
    """

    def __init__(self, on_progress: Callable[[ProgressUpdate], None] | None = None):
        self.on_progress = on_progress
        self._requests: dict[str, ApiRequestRecord] = {}
        self._counter = itertools.count(1)
        self._start_time = time.monotonic()

    def start_request(self, operation: str, description: str) -> str:
        request_id = f"request_{next(self._counter)}_{int(time.time() * 1000)}"
        self._requests[request_id] = ApiRequestRecord(
            id=request_id,
            operation=operation,
            description=description,
            start_time=time.time(),
        )
        self._notify()
        return request_id

    def set_in_progress(self, request_id: str) -> None:
        request = self._requests.get(request_id)
        if request and request.status == "pending":
            request.status = "in-progress"
            self._notify()

    def complete_request(self, request_id: str) -> None:
        self._finish(request_id, "completed")

    def error_request(self, request_id: str) -> None:
        self._finish(request_id, "error")

    def _finish(self, request_id: str, status: str) -> None:
        request = self._requests.get(request_id)
        if request and request.status in ("pending", "in-progress"):
            request.status = status
            request.end_time = time.time()
            self._notify()

    @asynccontextmanager
    async def track(self, operation: str, description: str):
        """Record one awaited call: in progress on entry, completed or error on exit."""
        request_id = self.start_request(operation, description)
        self.set_in_progress(request_id)
        try:
            yield request_id
        except BaseException:
            self.error_request(request_id)
            raise
        self.complete_request(request_id)

    def get_current_progress(self) -> ProgressUpdate:
        requests = list(self._requests.values())
        total = len(requests)
        completed = sum(1 for r in requests if r.status in ("completed", "error"))
        current = next((r for r in requests if r.status == "in-progress"), None)

        if total == 0:
            message = "Ready"
        elif completed == total:
            message = "Completed"
        else:
            message = f"Processing {completed} of {total}"

        return ProgressUpdate(
            completed=completed,
            total=total,
            current_request=current.model_copy() if current else None,
            progress=(completed / total) * 100 if total else 0.0,
            message=message,
        )

    def get_stats(self) -> dict:
        requests = list(self._requests.values())
        return {
            "total": len(requests),
            "completed": sum(1 for r in requests if r.status == "completed"),
            "pending": sum(1 for r in requests if r.status == "pending"),
            "in_progress": sum(1 for r in requests if r.status == "in-progress"),
            "errors": sum(1 for r in requests if r.status == "error"),
            "elapsed_time": time.monotonic() - self._start_time,
        }

    def reset(self) -> None:
        self._requests.clear()
        self._counter = itertools.count(1)
        self._start_time = time.monotonic()
        self._notify()

    def _notify(self) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(self.get_current_progress())
        except Exception as e:
            logger.error(f"Progress callback failed: {e}")
