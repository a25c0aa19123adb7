"""Side effects queued in ``outbox_tasks`` alongside the change that caused them.

Rows are written in the caller's transaction and executed after the
response (FastAPI background task) by ``OutboxWorker.run``. Anything still
pending after a crash is picked up again by ``OutboxWorker.drain``.
"""

import logging
import time
from datetime import timedelta
from typing import Callable

from sqlalchemy.orm import Session

from admission.config import settings
from admission.models.candidate import Candidate
from admission.models.outbox import OutboxTask
from admission.services.admission_export import copy_documents_to_candidate
from admission.services.notifications import (
    NotificationDispatcher,
    NotificationError,
    notify_hr_documents_complete,
)
from admission.utils.clock import utcnow

logger = logging.getLogger(__name__)

NOTIFY_HR_DOCUMENTS_COMPLETE = "notify_hr_documents_complete"
COPY_DOCUMENTS_FOR_ADMISSION = "copy_documents_for_admission"

PENDING = "pending"
RUNNING = "running"
DONE = "done"
FAILED = "failed"


def enqueue(db: Session, kind: str, payload: dict) -> OutboxTask:
    """Add a task to the current unit of work; the caller commits."""
    now = utcnow()
    task = OutboxTask(kind=kind, payload=payload, status=PENDING, attempts=0,
                      created_at=now, updated_at=now)
    db.add(task)
    db.flush()
    return task


class OutboxWorker:
    def __init__(self, session_factory: Callable[[], Session],
                 dispatcher: NotificationDispatcher,
                 max_attempts: int | None = None,
                 backoff_seconds: float | None = None):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.max_attempts = max_attempts if max_attempts is not None else settings.outbox_max_attempts
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.outbox_retry_backoff_seconds
        )
        self._handlers: dict[str, Callable[[Session, dict], None]] = {
            NOTIFY_HR_DOCUMENTS_COMPLETE: self._notify_hr,
            COPY_DOCUMENTS_FOR_ADMISSION: self._copy_documents,
        }

    def run(self, task_id: int) -> str:
        """Claim one pending task and execute it, retrying with linear backoff.

        Returns the final status, or the current one when another worker
        already holds the task.
        """
        with self.session_factory() as db:
            task = db.get(OutboxTask, task_id)
            if task is None:
                logger.warning("Outbox task %s not found", task_id)
                return FAILED
            if task.status != PENDING:
                return task.status

            handler = self._handlers.get(task.kind)
            if handler is None:
                error = f"unknown task kind: {task.kind}"
                if self._transition(db, task_id, {OutboxTask.status: FAILED, OutboxTask.last_error: error}):
                    logger.error("Outbox task %s has unknown kind %s", task_id, task.kind)
                db.refresh(task)
                return task.status

            if not self._transition(db, task_id, {
                OutboxTask.status: RUNNING,
                OutboxTask.attempts: OutboxTask.attempts + 1,
            }):
                db.refresh(task)
                logger.info("Outbox task %s already claimed (%s)", task_id, task.status)
                return task.status
            db.refresh(task)

            while True:
                try:
                    handler(db, dict(task.payload or {}))
                except Exception as exc:
                    db.rollback()
                    task.last_error = str(exc)
                    task.updated_at = utcnow()
                    db.commit()
                    logger.warning(
                        "Outbox task %s (%s) attempt %s/%s failed: %s",
                        task.id, task.kind, task.attempts, self.max_attempts, exc,
                    )
                    if task.attempts >= self.max_attempts:
                        break
                    if self.backoff_seconds > 0:
                        time.sleep(self.backoff_seconds * task.attempts)
                    task.attempts += 1
                    task.updated_at = utcnow()
                    db.commit()
                    continue
                self._finish(db, task, DONE, None)
                logger.info("Outbox task %s (%s) done", task.id, task.kind)
                return DONE

            self._finish(db, task, FAILED, task.last_error)
            logger.error("Outbox task %s (%s) gave up after %s attempts", task.id, task.kind, task.attempts)
            return FAILED

    def drain(self) -> int:
        """Run every pending task; returns how many were processed."""
        with self.session_factory() as db:
            self.release_stale(db)
            ids = [
                row.id for row in
                db.query(OutboxTask.id).filter(OutboxTask.status == PENDING).order_by(OutboxTask.id)
            ]
        for task_id in ids:
            self.run(task_id)
        if ids:
            logger.info("Outbox drained %s task(s)", len(ids))
        return len(ids)

    def release_stale(self, db: Session) -> int:
        """Put tasks whose claim outlived ``outbox_claim_timeout_seconds`` back in the queue."""
        cutoff = utcnow() - timedelta(seconds=settings.outbox_claim_timeout_seconds)
        released = (
            db.query(OutboxTask)
            .filter(OutboxTask.status == RUNNING, OutboxTask.updated_at < cutoff)
            .update({OutboxTask.status: PENDING, OutboxTask.updated_at: utcnow()},
                    synchronize_session=False)
        )
        db.commit()
        if released:
            logger.warning("Released %s stale outbox task(s)", released)
        return released

    def _transition(self, db: Session, task_id: int, values: dict) -> bool:
        # Conditional on the row still being pending: only one worker wins.
        values = {**values, OutboxTask.updated_at: utcnow()}
        changed = (
            db.query(OutboxTask)
            .filter(OutboxTask.id == task_id, OutboxTask.status == PENDING)
            .update(values, synchronize_session=False)
        )
        db.commit()
        return changed == 1

    def _finish(self, db: Session, task: OutboxTask, status: str, error: str | None):
        task.status = status
        task.last_error = error
        task.updated_at = utcnow()
        db.commit()

    # --- Handlers ---

    def _notify_hr(self, db: Session, payload: dict):
        candidate = db.get(Candidate, payload["candidate_id"])
        if candidate is None:
            logger.warning("Candidate %s vanished before HR could be notified", payload["candidate_id"])
            return
        results = notify_hr_documents_complete(
            self.dispatcher, candidate.nome, candidate.id, candidate.job_title,
        )
        if results and not any(r.delivered for r in results):
            raise NotificationError("nenhuma notificação ao RH foi entregue")

    def _copy_documents(self, db: Session, payload: dict):
        copy_documents_to_candidate(db, payload["candidate_id"])
        db.commit()


def drain_at_startup(session_factory: Callable[[], Session], dispatcher: NotificationDispatcher) -> int:
    """Drain leftovers from a previous process without backoff sleeps."""
    return OutboxWorker(session_factory, dispatcher, backoff_seconds=0).drain()
