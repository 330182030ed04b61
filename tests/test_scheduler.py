import threading
import time

import pytest

from print_bridge.core.config import SchedulerConfig
from print_bridge.core.errors import JobStateError, NotFoundError, ValidationError
from print_bridge.core.models import DocumentKind, JobStatus
from print_bridge.printing.scheduler import Scheduler, backoff_delay


def _kind_encoder(order, settings, kind):
    return f"{order.order_number}:{DocumentKind(kind).value}".encode()


@pytest.fixture
def make_scheduler(store, settings, printer, timer, scheduler_config):
    created = []

    def _make(**kwargs):
        kwargs.setdefault("config", scheduler_config)
        kwargs.setdefault("sender", printer)
        kwargs.setdefault("encoder", _kind_encoder)
        kwargs.setdefault("timer_factory", timer)
        s = Scheduler(store, lambda: settings, **kwargs)
        created.append(s)
        return s

    yield _make
    for s in created:
        s.stop(timeout=2)


def _status(store, job_id):
    job = store.get_job(job_id)
    return job.status if job else None


def test_backoff_delays_double():
    assert [backoff_delay(n, 5.0) for n in range(1, 6)] == [5.0, 10.0, 20.0, 40.0, 80.0]
    assert backoff_delay(0, 5.0) == 5.0


def test_kitchen_dispatched_before_receipt(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT, DocumentKind.KITCHEN))
    # receipt ranked first, kitchen still wins
    for job in jobs:
        assert scheduler.enqueue(job.id)
    scheduler.start()

    assert waiter(lambda: printer.calls == 2)
    assert printer.payloads == [b"1001:kitchen", b"1001:receipt"]
    assert waiter(lambda: store.count_jobs_by_status()["completed"] == 2)


def test_same_priority_is_fifo(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler()
    for n in (1, 2, 3):
        _, jobs = store.create_order(make_order(n), (DocumentKind.RECEIPT,))
        scheduler.enqueue(jobs[0].id)
    scheduler.start()

    assert waiter(lambda: printer.calls == 3)
    assert printer.payloads == [b"1:receipt", b"2:receipt", b"3:receipt"]


def test_start_ranks_pending_jobs_from_store(store, make_order, make_scheduler, printer, waiter):
    store.create_order(make_order(), (DocumentKind.RECEIPT, DocumentKind.KITCHEN))
    make_scheduler().start()

    assert waiter(lambda: printer.calls == 2)
    assert printer.payloads[0] == b"1001:kitchen"


def test_enqueue_is_idempotent(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    job_id = jobs[0].id

    assert scheduler.enqueue(job_id) is True
    assert scheduler.enqueue(job_id) is False
    scheduler.start()

    assert waiter(lambda: _status(store, job_id) is JobStatus.COMPLETED)
    threading.Event().wait(0.2)
    assert printer.calls == 1
    assert store.get_job(job_id).attempts == 1


def test_enqueue_rejects_missing_and_non_pending(store, make_order, make_scheduler):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    store.claim_job(jobs[0].id, "x")

    with pytest.raises(NotFoundError):
        scheduler.enqueue("nope")
    with pytest.raises(JobStateError):
        scheduler.enqueue(jobs[0].id)


def test_one_send_at_a_time(store, make_order, make_scheduler, printer, waiter):
    printer.delay = 0.03
    scheduler = make_scheduler()
    for n in range(1, 5):
        store.create_order(make_order(n), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    scheduler.start()

    assert waiter(lambda: printer.calls == 8)
    assert printer.max_in_flight == 1
    windows = sorted(printer.windows)
    for (_, end), (start, _) in zip(windows, windows[1:]):
        assert end <= start


def test_at_most_one_job_processing(store, make_order, make_scheduler, printer, waiter):
    seen = []

    def _sender(address, port, data):
        seen.append(store.count_jobs_by_status()["processing"])
        return printer(address, port, data)

    scheduler = make_scheduler(sender=_sender)
    for n in range(1, 4):
        store.create_order(make_order(n), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    scheduler.start()

    assert waiter(lambda: len(seen) == 6)
    assert seen == [1] * 6


def test_transient_failure_then_success(store, make_order, make_scheduler, printer, timer, waiter):
    printer.outcomes = [False, True]
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    scheduler.start()

    job_id = jobs[0].id
    assert waiter(lambda: _status(store, job_id) is JobStatus.COMPLETED)
    job = store.get_job(job_id)
    assert job.attempts == 2
    assert job.last_error is None
    assert timer.delays == [5.0]


def test_retry_cap(store, make_order, make_scheduler, printer, timer, waiter):
    printer.default = False
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    job_id = jobs[0].id
    scheduler.start()

    assert waiter(lambda: _status(store, job_id) is JobStatus.FAILED)
    job = store.get_job(job_id)
    assert job.attempts == 5
    assert "failed after 5 attempts" in job.last_error
    assert "Printer connection error" in job.last_error
    assert timer.delays == [5.0, 10.0, 20.0, 40.0]

    threading.Event().wait(0.3)
    assert printer.calls == 5


def test_failed_job_does_not_block_others(store, make_order, make_scheduler, printer, waiter):
    printer.outcomes = [False] * 5
    scheduler = make_scheduler()
    _, first = store.create_order(make_order(1), (DocumentKind.RECEIPT,))
    scheduler.start()
    assert waiter(lambda: _status(store, first[0].id) is JobStatus.FAILED)

    _, second = store.create_order(make_order(2), (DocumentKind.RECEIPT,))
    scheduler.enqueue(second[0].id)
    assert waiter(lambda: _status(store, second[0].id) is JobStatus.COMPLETED)


def test_manual_retry_grants_fresh_budget(store, make_order, make_scheduler, printer, timer, waiter):
    printer.outcomes = [False] * 5 + [False, True]
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    job_id = jobs[0].id
    scheduler.start()
    assert waiter(lambda: _status(store, job_id) is JobStatus.FAILED)
    scheduler.stop(timeout=2)

    job = scheduler.retry(job_id)
    assert job.status is JobStatus.PENDING
    assert job.last_error is None
    assert job.attempts == 5
    assert job.retry_base == 5

    scheduler.start()
    assert waiter(lambda: _status(store, job_id) is JobStatus.COMPLETED)
    job = store.get_job(job_id)
    assert job.attempts == 7
    # backoff restarts from the base after a manual retry
    assert timer.delays == [5.0, 10.0, 20.0, 40.0, 5.0]


def test_retry_only_failed_jobs(store, make_order, make_scheduler):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))

    with pytest.raises(JobStateError):
        scheduler.retry(jobs[0].id)
    with pytest.raises(NotFoundError):
        scheduler.retry("missing")


def test_encoding_error_fails_without_retry(store, make_order, make_scheduler, printer, timer, waiter):
    def _broken(order, settings, kind):
        raise RuntimeError("template exploded")

    scheduler = make_scheduler(encoder=_broken)
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    scheduler.start()

    job_id = jobs[0].id
    assert waiter(lambda: _status(store, job_id) is JobStatus.FAILED)
    job = store.get_job(job_id)
    assert job.attempts == 1
    assert "template exploded" in job.last_error
    assert printer.calls == 0
    assert timer.delays == []


def test_remove_pending_job(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    for job in jobs:
        scheduler.enqueue(job.id)
    scheduler.remove(jobs[0].id)
    scheduler.start()

    assert waiter(lambda: _status(store, jobs[1].id) is JobStatus.COMPLETED)
    assert printer.payloads == [b"1001:receipt"]
    assert store.get_job(jobs[0].id) is None

    with pytest.raises(NotFoundError):
        scheduler.remove(jobs[0].id)


def test_remove_while_processing_discards_result(store, make_order, make_scheduler, printer, waiter):
    printer.gate = threading.Event()
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    scheduler.start()

    assert printer.entered.wait(5)
    kitchen = jobs[0].id
    assert _status(store, kitchen) is JobStatus.PROCESSING
    scheduler.remove(kitchen)
    printer.gate.set()

    assert waiter(lambda: _status(store, jobs[1].id) is JobStatus.COMPLETED)
    assert store.get_job(kitchen) is None
    assert printer.calls == 2


def test_remove_while_processing_failure_is_not_retried(store, make_order, make_scheduler, printer, timer, waiter):
    printer.gate = threading.Event()
    printer.default = False
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.KITCHEN,))
    scheduler.start()

    assert printer.entered.wait(5)
    scheduler.remove(jobs[0].id)
    printer.gate.set()

    assert waiter(lambda: scheduler.status()["current_job"] is None)
    threading.Event().wait(0.2)
    assert timer.delays == []
    assert printer.calls == 1


def test_stale_processing_jobs_recovered_on_start(store, make_order, make_scheduler, printer, waiter):
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    job_id = jobs[0].id
    store.claim_job(job_id, "crashed-dispatch")
    store.conn.execute("UPDATE print_jobs SET updated_at = '2000-01-01T00:00:00.000000+00:00'")
    store.conn.commit()

    make_scheduler().start()

    assert waiter(lambda: _status(store, job_id) is JobStatus.COMPLETED)
    assert store.get_job(job_id).attempts == 2


def test_fresh_processing_jobs_left_alone_on_start(store, make_order, make_scheduler, printer):
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    store.claim_job(jobs[0].id, "in-flight")
    make_scheduler(config=SchedulerConfig(stale_after=3600)).start()

    threading.Event().wait(0.2)
    assert printer.calls == 0
    assert _status(store, jobs[0].id) is JobStatus.PROCESSING


def _backdate_processing(store):
    store.conn.execute(
        "UPDATE print_jobs SET updated_at = '2000-01-01T00:00:00.000000+00:00' WHERE status = 'processing'"
    )
    store.conn.commit()


def test_idle_worker_recovers_stale_jobs(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler(config=SchedulerConfig(stale_after=0.2))
    scheduler.start()
    assert scheduler.running

    # left in processing by a dispatch that never finished, after the worker is up
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    job_id = jobs[0].id
    store.claim_job(job_id, "lost-dispatch")
    _backdate_processing(store)

    assert waiter(lambda: _status(store, job_id) is JobStatus.COMPLETED)
    job = store.get_job(job_id)
    assert job.attempts == 2
    assert job.dispatch_id != "lost-dispatch"
    assert printer.payloads == [b"1001:receipt"]


def test_stale_check_skips_current_job(store, make_order, make_scheduler):
    scheduler = make_scheduler(config=SchedulerConfig(stale_after=0.2))
    _, jobs = store.create_order(make_order(), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    current, other = jobs[0].id, jobs[1].id
    store.claim_job(current, "d1")
    store.claim_job(other, "d2")
    _backdate_processing(store)

    scheduler._current = current
    scheduler._last_stale_check = 0.0
    scheduler._maybe_recover_stale()

    assert _status(store, current) is JobStatus.PROCESSING
    assert _status(store, other) is JobStatus.PENDING
    assert scheduler.status()["queued"] == 1


def test_stale_check_waits_for_interval(store, make_order, make_scheduler):
    scheduler = make_scheduler(config=SchedulerConfig(stale_after=3600))
    _, jobs = store.create_order(make_order(), (DocumentKind.RECEIPT,))
    store.claim_job(jobs[0].id, "d1")
    _backdate_processing(store)

    scheduler._last_stale_check = time.monotonic()
    scheduler._maybe_recover_stale()

    assert _status(store, jobs[0].id) is JobStatus.PROCESSING


def test_status_counts(store, make_order, make_scheduler, printer, waiter):
    def _sender(address, port, data):
        printer.default = not data.startswith(b"2:")
        return printer(address, port, data)

    scheduler = make_scheduler(sender=_sender)
    store.create_order(make_order(), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))
    store.create_order(make_order(2), (DocumentKind.RECEIPT,))
    scheduler.start()

    assert waiter(lambda: scheduler.status()["failed"] == 1)
    scheduler.stop(timeout=2)

    status = scheduler.status()
    assert status["completed"] == 2
    assert status["failed"] == 1
    assert status["pending"] == 0
    assert status["processing"] == 0
    assert status["worker_alive"] is False
    assert status["current_job"] is None
    assert status["scheduled_retries"] == 0


def test_list_and_get(store, make_order, make_scheduler):
    scheduler = make_scheduler()
    _, jobs = store.create_order(make_order(), (DocumentKind.KITCHEN, DocumentKind.RECEIPT))

    assert {j.id for j in scheduler.list()} == {j.id for j in jobs}
    assert scheduler.list(status="failed") == []
    assert scheduler.get(jobs[0].id).kind is DocumentKind.KITCHEN
    with pytest.raises(ValidationError):
        scheduler.list(status="bogus")
    with pytest.raises(NotFoundError):
        scheduler.get("missing")


def test_test_page_uses_sender(make_scheduler, printer, settings):
    scheduler = make_scheduler()
    result = scheduler.print_test_page()

    assert result.ok
    assert b"*** TEST PRINT ***" in printer.payloads[0]


def test_stop_is_clean_and_restartable(store, make_order, make_scheduler, printer, waiter):
    scheduler = make_scheduler()
    scheduler.start()
    assert scheduler.running
    scheduler.stop(timeout=2)
    assert not scheduler.running

    store.create_order(make_order(), (DocumentKind.RECEIPT,))
    scheduler.start()
    assert waiter(lambda: printer.calls == 1)
