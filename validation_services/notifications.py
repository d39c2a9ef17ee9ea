"""
validation_services.notifications -- Post-commit delivery of workflow transitions.

Responsibility:
    Collects the transitions produced inside a transaction and hands them
    to the registered sinks only once the transaction has committed.

Architecture position:
    Services -- implements the kernel's ``TransitionDispatcher`` protocol.

Invariants enforced:
    - Nothing is delivered before commit; a rollback discards the queue.
    - Delivery never blocks or fails the write: sinks run on a worker pool
      and their exceptions are logged, never raised.
    - Per session, notices are handed to the pool in transition order.

Failure modes:
    - ``notification_failed`` log record (with traceback) when a sink raises.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, wait

from sqlalchemy import event
from sqlalchemy.orm import Session

from validation_kernel.domain.capabilities import NotificationSink
from validation_kernel.domain.validation import Validation, ValidationRequest
from validation_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

_PENDING = "validation_services.pending_notices"
_LISTENERS = "validation_services.notice_listeners"

Notice = tuple[ValidationRequest, Validation | None]


class LoggingNotificationSink:
    """Writes every transition to the structured log."""

    def __call__(
        self,
        request: ValidationRequest,
        latest_validation: Validation | None,
    ) -> None:
        logger.info(
            "validation_transition",
            extra={
                "request_id": str(request.request_id),
                "workspace_id": request.workspace_id,
                "entity_type": request.entity_type,
                "entity_id": request.entity_id,
                "status": request.status.value,
                "current_level": request.current_level.value,
                "validated_by": latest_validation.validated_by if latest_validation else None,
            },
        )


class NotificationDispatcher:
    """
    Queues notices on the session and drains them after commit.

    Usage:
        dispatcher = NotificationDispatcher([LoggingNotificationSink()])
        workflow = ValidationWorkflowService(..., dispatcher=dispatcher)
        ...
        session.commit()   # sinks are called now, on the worker pool
    """

    def __init__(
        self,
        sinks: Iterable[NotificationSink] = (),
        *,
        max_workers: int = 2,
        enabled: bool = True,
    ):
        self._sinks: list[NotificationSink] = list(sinks)
        self._enabled = enabled
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="validation-notify",
        )
        self._lock = threading.Lock()
        self._inflight: set[Future] = set()

    def add_sink(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    @property
    def sinks(self) -> tuple[NotificationSink, ...]:
        return tuple(self._sinks)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def dispatch(
        self,
        session: Session,
        request: ValidationRequest,
        latest_validation: Validation | None,
    ) -> None:
        """Queue a transition for delivery once ``session`` commits."""
        if not self._enabled or not self._sinks:
            return
        self._ensure_listening(session)
        session.info.setdefault(self._pending_key(), []).append((request, latest_validation))

    def flush(self, timeout: float | None = 10.0) -> None:
        """Wait for deliveries already handed to the pool."""
        with self._lock:
            pending = list(self._inflight)
        wait(pending, timeout=timeout)

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    # ------------------------------------------------------------------
    # Session hooks
    # ------------------------------------------------------------------

    def _pending_key(self) -> str:
        return f"{_PENDING}.{id(self)}"

    def _ensure_listening(self, session: Session) -> None:
        listening = session.info.setdefault(_LISTENERS, set())
        if id(self) in listening:
            return
        listening.add(id(self))
        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_rollback", self._on_rollback)

    def _on_commit(self, session: Session) -> None:
        # Savepoint commits fire this event too
        if session.in_nested_transaction():
            return
        notices: list[Notice] = session.info.pop(self._pending_key(), [])
        if not notices:
            return
        future = self._executor.submit(self._deliver, notices)
        with self._lock:
            self._inflight.add(future)
        future.add_done_callback(self._forget)

    def _on_rollback(self, session: Session) -> None:
        if session.in_nested_transaction():
            return
        dropped = session.info.pop(self._pending_key(), [])
        if dropped:
            logger.debug("notifications_discarded", extra={"count": len(dropped)})

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._inflight.discard(future)

    def _deliver(self, notices: list[Notice]) -> None:
        for request, latest in notices:
            for sink in list(self._sinks):
                try:
                    sink(request, latest)
                except Exception:  # noqa: BLE001
                    logger.exception(
                        "notification_failed",
                        extra={
                            "request_id": str(request.request_id),
                            "status": request.status.value,
                            "sink": type(sink).__name__,
                        },
                    )
