"""
Print job scheduler: durable job rows, an in-memory priority ranking, and one
worker thread that owns the printer.

This module owns:
- The ranking (a PriorityQueue keyed by -priority, then enqueue order)
- The worker thread: claim -> encode -> send -> record the outcome
- Backoff timers for automatic redelivery after transient failures
- The operator surface: status counts, get/list, manual retry and delete

The job row in the store is the source of truth. The ranking only decides
what the worker looks at next; every transition is re-checked against the row
(claim only succeeds on a pending row, completion only on a processing row),
so stale ranking entries are harmless.

Lifecycle:
    pending -> processing -> completed
    processing -> pending   (transient failure, budget left, after backoff)
    processing -> failed    (budget spent, or a non-transient failure)
    failed -> pending       (manual retry)
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time
import uuid
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from print_bridge.core.config import SchedulerConfig, Settings, load_settings
from print_bridge.core.db import JOB_STATUSES, Store
from print_bridge.core.errors import (
    ExhaustedRetriesError,
    JobStateError,
    NotFoundError,
    PrintBridgeError,
    ValidationError,
)
from print_bridge.core.models import DocumentKind, JobStatus, Order, PrintJob

from . import transport
from .formatters import encode, format_test_page

logger = logging.getLogger(__name__)

Encoder = Callable[[Order, Settings, DocumentKind], bytes]
Sender = Callable[[str, int, bytes], transport.DeliveryResult]

# How long the idle worker blocks on the ranking before checking for stop/stale jobs.
IDLE_WAIT = 0.5


def backoff_delay(attempt: int, base: float) -> float:
    """
    Delay before redelivering after the `attempt`-th failed attempt (1-based):
    base, 2*base, 4*base, ...
    """
    return base * (2 ** (max(1, attempt) - 1))


class Scheduler:
    """
    Single-flight dispatcher for print jobs.

    Construct once, share by reference, and call start()/stop() around the
    process lifetime. enqueue() may be called before start(); ranked jobs are
    dispatched once the worker runs.
    """

    def __init__(
        self,
        store: Store,
        settings_provider: Callable[[], Settings] = load_settings,
        *,
        config: Optional[SchedulerConfig] = None,
        sender: Optional[Sender] = None,
        encoder: Encoder = encode,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.store = store
        self.settings_provider = settings_provider
        self.config = config or SchedulerConfig.from_env()
        self.sender: Sender = sender or transport.send
        self.encoder = encoder
        self._timer_factory = timer_factory

        self._ranking: "queue.PriorityQueue[Tuple[int, int, str]]" = queue.PriorityQueue()
        self._seq = itertools.count()
        self._ranked: Set[str] = set()  # in the ranking or waiting on a backoff timer
        self._timers: Dict[str, Any] = {}
        self._lock = threading.RLock()
        # Held for the whole duration of every send to the device.
        self._device_lock = threading.Lock()

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._current: Optional[str] = None
        self._last_stale_check = 0.0

    # ----- Lifecycle ---------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._thread) and self._thread.is_alive()  # type: ignore[union-attr]

    def start(self) -> None:
        """
        Recover stale processing rows, rank every pending job, start the worker (idempotent).
        """
        if self.running:
            return
        self._stop.clear()
        moved = self.store.requeue_stale_jobs(self.config.stale_after)
        if moved:
            logger.warning("Requeued %d print job(s) left in processing: %s", len(moved), ", ".join(moved))
        for job_id in self.store.pending_job_ids():
            job = self.store.get_job(job_id)
            if job is not None:
                self._rank(job.id, job.priority)
        self._last_stale_check = time.monotonic()
        t = threading.Thread(target=self._run, daemon=True, name="print-bridge-worker")
        t.start()
        self._thread = t
        logger.info("Print worker started (max_attempts=%d, backoff_base=%.1fs)",
                    self.config.max_attempts, self.config.backoff_base)

    def stop(self, timeout: float = 15.0) -> None:
        """
        Stop the worker after its current job and cancel pending backoff timers.
        Jobs stay pending in the store and are ranked again on the next start().
        """
        self._stop.set()
        with self._lock:
            for job_id, timer in list(self._timers.items()):
                timer.cancel()
                self._ranked.discard(job_id)
            self._timers.clear()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Print worker did not stop within %.1fs", timeout)
        self._thread = None
        logger.info("Print worker stopped")

    # ----- Ranking -----------------------------------------------------------

    def _rank(self, job_id: str, priority: int) -> bool:
        with self._lock:
            if job_id in self._ranked:
                return False
            self._ranked.add(job_id)
            self._ranking.put((-int(priority), next(self._seq), job_id))
        return True

    def enqueue(self, job_id: str) -> bool:
        """
        Submit a pending job for dispatch. Returns False when the job is already
        ranked or waiting for a retry, so repeated calls never double-dispatch.
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("Print job", job_id)
        if job.status is not JobStatus.PENDING:
            raise JobStateError(job_id, job.status.value, "enqueue")
        added = self._rank(job.id, job.priority)
        if added:
            logger.info("Enqueued print job %s (%s, priority=%d)", job.id, job.kind.value, job.priority)
        return added

    def _schedule_redelivery(self, job: PrintJob, delay: float) -> None:
        with self._lock:
            if self._stop.is_set():
                # stays pending in the store; start() ranks it again
                return
            self._ranked.add(job.id)
            timer = self._timer_factory(delay, self._redeliver, args=(job.id,))
            timer.daemon = True
            self._timers[job.id] = timer
        logger.info("Print job %s will be retried in %.1fs", job.id, delay)
        timer.start()

    def _redeliver(self, job_id: str) -> None:
        with self._lock:
            self._timers.pop(job_id, None)
            if job_id not in self._ranked:
                # removed or stopped while waiting
                return
            job = self.store.get_job(job_id)
            if job is None or job.status is not JobStatus.PENDING:
                self._ranked.discard(job_id)
                return
            self._ranking.put((-job.priority, next(self._seq), job_id))
        logger.info("Print job %s back in the queue after backoff", job_id)

    # ----- Worker ------------------------------------------------------------

    def _run(self) -> None:
        """
        Worker loop. Never raises; every outcome is written to the job row.
        """
        while not self._stop.is_set():
            try:
                _, _, job_id = self._ranking.get(timeout=IDLE_WAIT)
            except queue.Empty:
                self._maybe_recover_stale()
                continue
            with self._lock:
                self._ranked.discard(job_id)
            try:
                self._dispatch(job_id)
            except Exception as e:
                logger.exception(f"Dispatch of print job {job_id} crashed: {e}")
            finally:
                self._ranking.task_done()

    def _maybe_recover_stale(self) -> None:
        now = time.monotonic()
        if now - self._last_stale_check < self.config.stale_after:
            return
        self._last_stale_check = now
        exclude = [self._current] if self._current else []
        for job_id in self.store.requeue_stale_jobs(self.config.stale_after, exclude=exclude):
            job = self.store.get_job(job_id)
            if job is not None:
                logger.warning("Requeued stale print job %s", job_id)
                self._rank(job.id, job.priority)

    def _dispatch(self, job_id: str) -> None:
        dispatch_id = uuid.uuid4().hex
        job = self.store.claim_job(job_id, dispatch_id)
        if job is None:
            logger.info("Skipping print job %s: no longer pending", job_id)
            return

        self._current = job.id
        try:
            logger.info(
                "Processing print job %s (%s) attempt %d dispatch=%s",
                job.id, job.kind.value, job.attempts, dispatch_id,
            )
            order = self.store.get_order(job.order_id)
            if order is None:
                self._fail(job, NotFoundError("Order", job.order_id))
                return
            try:
                settings = self.settings_provider()
                payload = self.encoder(order, settings, job.kind)
            except PrintBridgeError as e:
                self._fail(job, e)
                return
            except Exception as e:
                self._fail(job, ValidationError(f"Could not format {job.kind.value}: {e}"))
                return

            with self._device_lock:
                result = self.sender(settings.printer_ip, settings.printer_port, payload)

            if result.ok:
                if self.store.complete_job(job.id):
                    logger.info(
                        "Print job %s (%s) completed for order %s",
                        job.id, job.kind.value, job.order_number,
                    )
                else:
                    logger.warning("Print job %s was removed while printing; result discarded", job.id)
            else:
                self._retry_or_fail(job, result.message or "delivery failed")
        finally:
            self._current = None

    def _retry_or_fail(self, job: PrintJob, message: str) -> None:
        used = job.budget_used
        if used < self.config.max_attempts:
            if not self.store.release_job(job.id, message):
                logger.warning("Print job %s was removed while printing; not retrying", job.id)
                return
            logger.warning("Print job %s attempt %d failed: %s", job.id, job.attempts, message)
            self._schedule_redelivery(job, backoff_delay(used, self.config.backoff_base))
            return
        exhausted = ExhaustedRetriesError(job.id, used, message)
        logger.error(str(exhausted))
        self.store.fail_job(job.id, str(exhausted))

    def _fail(self, job: PrintJob, error: PrintBridgeError) -> None:
        """Non-transient failure: straight to failed, no redelivery."""
        logger.error("Print job %s failed: %s", job.id, error)
        self.store.fail_job(job.id, str(error))

    # ----- Operator surface --------------------------------------------------

    def get(self, job_id: str) -> PrintJob:
        job = self.store.get_job(job_id)
        if job is None:
            raise NotFoundError("Print job", job_id)
        return job

    def list(self, status: Optional[str] = None, limit: int = 100) -> List[PrintJob]:
        if status and status not in JOB_STATUSES:
            raise ValidationError(f"Unknown job status: {status!r}")
        return self.store.list_jobs(status=status, limit=limit)

    def retry(self, job_id: str) -> PrintJob:
        """
        failed -> pending, error cleared, re-ranked. The attempts counter keeps
        counting; the automatic retry budget starts over from here.
        """
        job = self.get(job_id)
        if not self.store.reset_failed_job(job_id):
            current = self.store.get_job(job_id)
            raise JobStateError(job_id, current.status.value if current else job.status.value, "retry")
        self._rank(job.id, job.priority)
        logger.info("Print job %s manually retried", job_id)
        return self.get(job_id)

    def remove(self, job_id: str) -> None:
        """
        Delete a job in any state. If it is printing right now the send runs to
        completion and its outcome is dropped.
        """
        with self._lock:
            timer = self._timers.pop(job_id, None)
            if timer is not None:
                timer.cancel()
            self._ranked.discard(job_id)
        if not self.store.delete_job(job_id):
            raise NotFoundError("Print job", job_id)
        if job_id == self._current:
            logger.warning("Print job %s deleted while processing", job_id)
        else:
            logger.info("Print job %s deleted", job_id)

    def status(self) -> Dict[str, Any]:
        """
        Per-state job counts plus worker/queue health.
        """
        counts: Dict[str, Any] = dict(self.store.count_jobs_by_status())
        with self._lock:
            counts["queued"] = self._ranking.qsize()
            counts["scheduled_retries"] = len(self._timers)
        counts["worker_alive"] = self.running
        counts["current_job"] = self._current
        return counts

    def print_test_page(self) -> transport.DeliveryResult:
        """
        Send the test page now, sharing the device slot with the worker.
        """
        settings = self.settings_provider()
        payload = format_test_page(settings)
        with self._device_lock:
            return self.sender(settings.printer_ip, settings.printer_port, payload)

    def probe(self) -> bool:
        settings = self.settings_provider()
        return transport.probe(settings.printer_ip, settings.printer_port)


__all__ = ["IDLE_WAIT", "Scheduler", "backoff_delay"]
