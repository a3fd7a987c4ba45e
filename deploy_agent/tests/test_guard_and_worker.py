from __future__ import annotations

import threading

import pytest

from deploy_agent.core.guard import OperationGuard
from deploy_agent.core.worker import BackgroundWorker, WorkerUnavailableError


def test_guard_check_then_set_and_token_keyed_release():
    guard = OperationGuard("download")

    assert guard.try_acquire("https://x/pkg.dp", {"job": 1}) is True
    assert guard.try_acquire("https://y/pkg.dp") is False
    assert guard.release("https://y/pkg.dp") is False
    assert guard.snapshot().token == "https://x/pkg.dp"
    assert guard.descriptor == {"job": 1}

    assert guard.release("https://x/pkg.dp") is True
    assert guard.release("https://x/pkg.dp") is False
    assert guard.held is False
    assert guard.descriptor is None


def test_guard_rejects_empty_token():
    with pytest.raises(ValueError):
        OperationGuard("install").try_acquire("")


def test_guard_admits_exactly_one_concurrent_acquirer():
    guard = OperationGuard("install")
    barrier = threading.Barrier(8)
    winners = []

    def contend(idx: int) -> None:
        barrier.wait()
        if guard.try_acquire(f"token-{idx}"):
            winners.append(idx)

    threads = [threading.Thread(target=contend, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert len(winners) == 1
    assert guard.token == f"token-{winners[0]}"


def test_worker_runs_jobs_sequentially_and_contains_errors():
    worker = BackgroundWorker(capacity=2)
    order = []
    gate = threading.Event()

    def first():
        gate.wait(5)
        order.append("first")
        raise RuntimeError("boom")

    def second():
        order.append("second")

    try:
        failing = worker.submit("first", first)
        worker.submit("second", second)
        gate.set()
        assert worker.wait_idle(5)

        assert order == ["first", "second"]
        assert isinstance(failing.error, RuntimeError)
        assert failing.done() is True
    finally:
        worker.shutdown()


def test_worker_queue_is_bounded():
    worker = BackgroundWorker(capacity=1)
    gate = threading.Event()
    started = threading.Event()

    def blocking():
        started.set()
        gate.wait(5)

    try:
        worker.submit("running", blocking)
        assert started.wait(5)
        worker.submit("queued", lambda: None)
        with pytest.raises(WorkerUnavailableError):
            worker.submit("overflow", lambda: None)
    finally:
        gate.set()
        worker.shutdown()


def test_cancelled_job_is_skipped():
    worker = BackgroundWorker()
    gate = threading.Event()
    ran = []

    try:
        worker.submit("blocker", lambda: gate.wait(5))
        queued = worker.submit("queued", lambda: ran.append("queued"))
        assert queued.cancel() is True
        gate.set()
        assert worker.wait_idle(5)

        assert ran == []
        assert queued.started is False
        assert queued.done() is True
    finally:
        worker.shutdown()


def test_shutdown_refuses_new_jobs():
    worker = BackgroundWorker()
    worker.start()
    worker.shutdown()

    assert worker.is_running is False
    with pytest.raises(WorkerUnavailableError):
        worker.submit("late", lambda: None)


def test_skipped_job_runs_skip_callback():
    worker = BackgroundWorker()
    gate = threading.Event()
    skipped = []

    try:
        worker.submit("blocker", lambda: gate.wait(5))
        queued = worker.submit("queued", lambda: skipped.append("ran"), on_skip=lambda: skipped.append("skipped"))
        queued.cancel()
        gate.set()
        assert worker.wait_idle(5)

        assert skipped == ["skipped"]
    finally:
        worker.shutdown()


def test_shutdown_skips_queued_jobs():
    worker = BackgroundWorker()
    gate = threading.Event()
    started = threading.Event()
    skipped = []

    def blocking():
        started.set()
        gate.wait(5)

    worker.submit("running", blocking)
    assert started.wait(5)
    queued = worker.submit("queued", lambda: None, on_skip=lambda: skipped.append("queued"))
    threading.Timer(0.05, gate.set).start()

    worker.shutdown(timeout=5)

    assert skipped == ["queued"]
    assert queued.done() is True
    assert queued.started is False
