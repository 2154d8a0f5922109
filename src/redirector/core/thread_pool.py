"""
=============================================================================
WORKER POOL
=============================================================================

Each accepted connection becomes one Job. A fixed-size queue sits between
the accept loop and the workers:

    accept loop ──submit()──► [ Job | Job | Job | ... ] ──► worker threads
                                 bounded, never blocks       min..max, grows
                                 the accept loop             under load

    submit() returns False when the queue is full; the server answers 503.

A Job that sat in the queue past its max_wait is not run. Its on_expired
callback runs instead, so the connection still gets closed.

Shutdown pushes one None per thread onto the queue; a worker that takes a
None exits.

=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class Job:
    """A connection handler waiting for a free worker."""

    func: Callable[..., Any]
    args: tuple = ()
    max_wait: Optional[float] = None
    on_expired: Optional[Callable[[], Any]] = None
    enqueued_at: float = field(default_factory=time.monotonic)

    @property
    def waited(self) -> float:
        return time.monotonic() - self.enqueued_at

    @property
    def expired(self) -> bool:
        return self.max_wait is not None and self.waited > self.max_wait


class WorkerPool:
    """
    Threads that run connection handlers.

        pool = WorkerPool(min_workers=4, max_workers=16, queue_size=128)
        pool.start()
        if not pool.submit(handle, conn, max_wait=30.0, on_expired=conn.close):
            reject(conn)
        pool.shutdown()
    """

    def __init__(
        self,
        min_workers: int = 4,
        max_workers: int = 16,
        queue_size: int = 128,
        idle_timeout: float = 1.0,
    ):
        self.min_workers = min_workers
        self.max_workers = max_workers
        self.max_queue_size = queue_size
        self.idle_timeout = idle_timeout

        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue(maxsize=queue_size)
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._accepting = False

        # Counters, guarded by _lock
        self._busy = 0
        self._completed = 0
        self._failed = 0
        self._expired = 0

    @property
    def is_running(self) -> bool:
        return self._accepting

    def start(self):
        if self._accepting:
            return

        logger.info(f"Starting {self.min_workers} workers (max {self.max_workers})")
        self._accepting = True
        for _ in range(self.min_workers):
            self._spawn()

    def _spawn(self):
        with self._lock:
            thread = threading.Thread(
                target=self._work,
                name=f"redirector-worker-{len(self._threads)}",
                daemon=True,
            )
            self._threads.append(thread)
        thread.start()

    # =========================================================================
    # SUBMITTING
    # =========================================================================

    def submit(
        self,
        func: Callable[..., Any],
        *args: Any,
        max_wait: Optional[float] = None,
        on_expired: Optional[Callable[[], Any]] = None,
    ) -> bool:
        """
        Queue func(*args) for a worker. Never blocks.

        Args:
            max_wait: Seconds the job may wait in the queue before it is
                      dropped (None waits forever).
            on_expired: Called instead of func when the job is dropped.

        Returns:
            False if the queue is full.

        Raises:
            RuntimeError: If the pool hasn't been started or is shutting down.
        """
        if not self.is_running:
            raise RuntimeError("Worker pool is not running")

        try:
            self._jobs.put_nowait(Job(func, args, max_wait, on_expired))
        except queue.Full:
            return False

        self._grow_if_saturated()
        return True

    def _grow_if_saturated(self):
        """One more thread when every worker is busy and jobs are waiting."""
        with self._lock:
            saturated = self._busy >= self.worker_count and not self._jobs.empty()
            can_grow = self.worker_count < self.max_workers

        if saturated and can_grow:
            logger.debug(f"All {self.worker_count} workers busy, adding one")
            self._spawn()

    # =========================================================================
    # WORKER LOOP
    # =========================================================================

    def _work(self):
        name = threading.current_thread().name
        logger.debug(f"{name} started")

        while True:
            try:
                job = self._jobs.get(timeout=self.idle_timeout)
            except queue.Empty:
                if not self._accepting:
                    break
                continue

            try:
                if job is None:
                    break
                self._run(job)
            finally:
                self._jobs.task_done()

        logger.debug(f"{name} stopped")

    def _run(self, job: Job):
        if job.expired:
            logger.warning(f"Dropping connection after {job.waited:.2f}s in queue")
            with self._lock:
                self._expired += 1
            if job.on_expired is not None:
                self._call_quietly(job.on_expired)
            return

        with self._lock:
            self._busy += 1

        try:
            job.func(*job.args)
        except Exception as e:
            logger.exception(f"Connection handler failed: {e}")
            with self._lock:
                self._failed += 1
        else:
            with self._lock:
                self._completed += 1
        finally:
            with self._lock:
                self._busy -= 1

    @staticmethod
    def _call_quietly(callback: Callable[[], Any]):
        try:
            callback()
        except Exception as e:
            logger.exception(f"Expiry callback failed: {e}")

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop accepting jobs and stop the threads.

        Args:
            wait: Let queued jobs run first.
            timeout: Give up waiting for the queue after this many seconds.
        """
        if not self._accepting:
            return

        logger.info("Stopping workers...")
        self._accepting = False

        if wait:
            deadline = None if timeout is None else time.monotonic() + timeout
            while not self._jobs.empty():
                if deadline is not None and time.monotonic() > deadline:
                    logger.warning(f"{self._jobs.qsize()} queued connection(s) abandoned")
                    break
                time.sleep(0.05)

        with self._lock:
            threads = list(self._threads)
            self._threads.clear()

        for _ in threads:
            try:
                self._jobs.put(None, timeout=1.0)
            except queue.Full:
                break

        for thread in threads:
            thread.join(timeout=2.0)

        logger.info("Workers stopped")

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._threads)

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "workers": len(self._threads),
                "busy": self._busy,
                "queued": self._jobs.qsize(),
                "completed": self._completed,
                "failed": self._failed,
                "expired": self._expired,
            }
