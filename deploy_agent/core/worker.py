"""Single dedicated background worker for long-running deployment jobs.

Jobs run strictly one at a time on one daemon thread fed by a bounded queue.
A job's exception is logged and contained so the next job still runs.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

DEFAULT_QUEUE_CAPACITY = 2


class WorkerUnavailableError(RuntimeError):
    """Raised when a job cannot be queued (worker stopped or queue full)."""


class JobHandle:
    """Cancellation-aware handle of one submitted job."""

    def __init__(self, name: str, fn: Callable[[], object], on_skip: Optional[Callable[[], object]] = None) -> None:
        self.name = name
        self._fn = fn
        self._on_skip = on_skip
        self._cancel_requested = threading.Event()
        self._started = threading.Event()
        self._done = threading.Event()
        self.error: Optional[BaseException] = None

    def cancel(self) -> bool:
        """Request cancellation; returns True if the job had not started yet.

        A job that is already running keeps running: cancelling in-flight work
        is up to the collaborator the job drives.
        """
        self._cancel_requested.set()
        return not self._started.is_set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested.is_set()

    @property
    def started(self) -> bool:
        return self._started.is_set()

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def __repr__(self) -> str:
        return f"JobHandle(name={self.name!r}, started={self.started}, done={self.done()})"


class BackgroundWorker:
    """Consume submitted jobs one at a time on a dedicated thread."""

    def __init__(
        self,
        *,
        name: str = "deploy-worker",
        capacity: int = DEFAULT_QUEUE_CAPACITY,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self._log = logger or logging.getLogger(__name__)
        self._queue: queue.Queue[Optional[JobHandle]] = queue.Queue(maxsize=max(1, int(capacity)))
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending: list[JobHandle] = []
        self._stopped = False
        self._thread: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start(self) -> None:
        with self._lock:
            if self._stopped:
                raise WorkerUnavailableError(f"Worker {self.name} has been shut down")
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def submit(
        self,
        name: str,
        fn: Callable[[], object],
        *,
        on_skip: Optional[Callable[[], object]] = None,
    ) -> JobHandle:
        """Queue ``fn`` for execution and return its handle.

        ``on_skip`` runs instead of ``fn`` when the job is cancelled before it
        starts, or is still queued when the worker stops.
        """
        self.start()
        handle = JobHandle(name, fn, on_skip)
        with self._lock:
            if self._stopped:
                raise WorkerUnavailableError(f"Worker {self.name} has been shut down")
            try:
                self._queue.put_nowait(handle)
            except queue.Full as exc:
                raise WorkerUnavailableError(f"Worker {self.name} queue is full") from exc
            self._pending.append(handle)
        self._log.debug("Queued job %s", name)
        return handle

    def pending_jobs(self) -> list[JobHandle]:
        """Return handles that are queued or running."""
        with self._lock:
            return list(self._pending)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no job is queued or running."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._pending, timeout=timeout)

    def shutdown(self, *, cancel_pending: bool = True, timeout: Optional[float] = 5.0) -> None:
        """Stop accepting jobs, optionally cancel queued ones, and join the thread."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            if cancel_pending:
                for handle in self._pending:
                    handle.cancel()
            thread = self._thread
        if thread is None:
            return
        try:
            self._queue.put(None, timeout=timeout)
        except queue.Full:
            self._log.warning("Worker %s did not drain its queue before shutdown", self.name)
            return
        thread.join(timeout=timeout)

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive() and not self._stopped

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------
    def _run(self) -> None:
        while True:
            handle = self._queue.get()
            if handle is None:
                break
            try:
                if handle.cancel_requested:
                    self._log.info("Skipping cancelled job %s", handle.name)
                    self._skip(handle)
                else:
                    handle._started.set()
                    handle._fn()
            except Exception as exc:
                handle.error = exc
                self._log.exception("Background job %s failed", handle.name)
            finally:
                handle._done.set()
                with self._idle:
                    if handle in self._pending:
                        self._pending.remove(handle)
                    self._idle.notify_all()
        with self._idle:
            leftovers = list(self._pending)
            self._pending.clear()
        for handle in leftovers:
            self._skip(handle)
            handle._done.set()
        with self._idle:
            self._idle.notify_all()

    def _skip(self, handle: JobHandle) -> None:
        if handle._on_skip is None:
            return
        try:
            handle._on_skip()
        except Exception:
            self._log.exception("Skip callback of job %s failed", handle.name)


__all__ = ["BackgroundWorker", "JobHandle", "WorkerUnavailableError", "DEFAULT_QUEUE_CAPACITY"]
