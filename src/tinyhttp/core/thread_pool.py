"""
=============================================================================
WORKER POOL
=============================================================================

The accept loop must never block on a slow client, so every accepted
connection is handed to a worker thread. Each worker serves exactly one
connection at a time, start to close, then picks up the next.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Worker Pool                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept loop ── submit(conn) ──►  [conn] [conn] [conn] ...          │
    │   (main thread)                     queue.Queue                      │
    │                                          │                           │
    │                                          │ get()                     │
    │                                          ▼                           │
    │                     ┌──────────┐ ┌──────────┐ ┌──────────┐           │
    │                     │ worker-0 │ │ worker-1 │ │ worker-N │  ...      │
    │                     └──────────┘ └──────────┘ └──────────┘           │
    │                     handler(conn): read, lookup, write, close        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE WORKER PER IN-FLIGHT CONNECTION
=============================================================================

There is no worker cap and no queue limit. submit() either claims an idle
worker or starts a new one, so a connection never waits behind another
connection's slow client:

    submit(conn):
        idle worker available?  yes → claim it
                                no  → start a new worker
        queue.put(conn)

    worker finished a connection → becomes idle again
    idle for idle_timeout and more than min_workers alive → exits

The only backpressure is the kernel's accept backlog. min_workers threads
are started up front and always kept, so light traffic never pays for
thread creation.

Workers share nothing mutable: the handler only reads the frozen route
table. A handler that raises only ends its own connection; the worker
logs it and moves on.

Shutdown uses the "poison pill" pattern: one None per worker is put on
the queue, and a worker that receives None exits its loop.
=============================================================================
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..errors import DispatchError
from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]


class WorkerState(Enum):
    IDLE = "idle"
    BUSY = "busy"
    STOPPED = "stopped"


@dataclass
class Job:
    """One queued connection."""

    conn: Connection
    submitted_at: float = field(default_factory=time.time)


class Worker(threading.Thread):
    """Pulls connections off the queue and runs the handler on each."""

    def __init__(self, pool: "ThreadPool", worker_id: int):
        # daemon=True: a stuck client can't keep the process alive on exit.
        super().__init__(name=f"worker-{worker_id}", daemon=True)
        self.pool = pool
        self.worker_id = worker_id

        self.state = WorkerState.IDLE
        self._stop_event = threading.Event()

        self.jobs_completed = 0
        self.jobs_failed = 0

    def run(self):
        logger.debug(f"Worker {self.worker_id} started")
        job_queue = self.pool._job_queue

        while not self._stop_event.is_set():
            try:
                job = job_queue.get(timeout=self.pool.idle_timeout)
            except queue.Empty:
                if self.pool._retire_idle(self):
                    break
                continue

            if job is None:
                job_queue.task_done()
                break

            try:
                self._execute(job)
            finally:
                self.pool._mark_idle()
                self.state = WorkerState.IDLE
                job_queue.task_done()

        self.state = WorkerState.STOPPED
        logger.debug(f"Worker {self.worker_id} stopped")

    def _execute(self, job: Job):
        self.state = WorkerState.BUSY
        waited = time.time() - job.submitted_at
        try:
            self.pool.handler(job.conn)
            self.jobs_completed += 1
            logger.debug(
                f"Worker {self.worker_id} finished [{job.conn.id}] "
                f"(queued {waited * 1000:.1f}ms)"
            )
        except Exception as e:
            # The handler is the dispatch boundary and normally doesn't
            # raise; if it does, contain it to this connection.
            logger.exception(f"Worker {self.worker_id} handler crashed on [{job.conn.id}]: {e}")
            self.jobs_failed += 1
            job.conn.close()

    def stop(self):
        self._stop_event.set()


class ThreadPool:
    """
    Grow-on-demand pool of connection workers.

    Usage:
        pool = ThreadPool(handler=serve_one, min_workers=4)
        pool.start()
        pool.submit(conn)         # never blocks, never rejects
        pool.shutdown()
    """

    def __init__(self, handler: ConnectionHandler, min_workers: int = 4, idle_timeout: float = 1.0):
        self.handler = handler
        self.min_workers = min_workers
        self.idle_timeout = idle_timeout

        self._job_queue: "queue.Queue[Optional[Job]]" = queue.Queue()
        self._workers: List[Worker] = []
        self._lock = threading.Lock()
        self._idle = 0              # workers not yet claimed by a submit()
        self._started = False
        self._shutting_down = False
        self._next_worker_id = 0
        self._completed = 0
        self._failed = 0

    def start(self):
        """
        Start `min_workers` threads.

        Raises:
            DispatchError: If a worker thread cannot be started.
        """
        if self._started:
            return

        logger.info(f"Starting worker pool with {self.min_workers} warm workers")
        with self._lock:
            for _ in range(self.min_workers):
                self._add_worker()
                self._idle += 1
        self._started = True

    def _add_worker(self) -> Worker:
        """Start one worker. Caller holds the lock."""
        worker = Worker(self, self._next_worker_id)
        try:
            worker.start()
        except RuntimeError as e:
            raise DispatchError(f"could not start worker thread: {e}") from e
        self._next_worker_id += 1
        self._workers.append(worker)
        return worker

    def submit(self, conn: Connection) -> None:
        """
        Hand a connection to a worker without blocking.

        Raises:
            RuntimeError: If the pool isn't running.
            DispatchError: If no idle worker exists and a new one can't start.
        """
        if not self._started or self._shutting_down:
            raise RuntimeError("Worker pool is not running")

        with self._lock:
            if self._idle > 0:
                self._idle -= 1
            else:
                self._add_worker()
                logger.debug(f"Scaled up to {len(self._workers)} workers")
            self._job_queue.put(Job(conn=conn))

    def _mark_idle(self):
        with self._lock:
            self._idle += 1

    def _retire_idle(self, worker: Worker) -> bool:
        """Let an unclaimed worker above min_workers exit. Returns True if it should."""
        with self._lock:
            if self._shutting_down or self._idle == 0 or len(self._workers) <= self.min_workers:
                return False
            self._idle -= 1
            self._workers.remove(worker)
            self._completed += worker.jobs_completed
            self._failed += worker.jobs_failed
        logger.debug(f"Worker {worker.worker_id} retired, {len(self._workers)} left")
        return True

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Stop the pool.

        Args:
            wait: Let queued connections finish first.
            timeout: Give up waiting after this many seconds.
        """
        if not self._started:
            return

        logger.info("Shutting down worker pool...")
        self._shutting_down = True

        if wait:
            deadline = time.time() + timeout if timeout else None
            while self._job_queue.unfinished_tasks:
                if deadline and time.time() > deadline:
                    logger.warning("Worker pool shutdown timeout, abandoning queued connections")
                    break
                time.sleep(0.05)

        with self._lock:
            workers = list(self._workers)
        for _ in workers:
            self._job_queue.put(None)

        for worker in workers:
            worker.stop()
            worker.join(timeout=2.0)

        with self._lock:
            self._workers.clear()
            self._idle = 0
        self._started = False
        self._shutting_down = False
        logger.info("Worker pool stopped")

    # =========================================================================
    # MONITORING
    # =========================================================================

    @property
    def worker_count(self) -> int:
        return len(self._workers)

    @property
    def busy_workers(self) -> int:
        return sum(1 for w in list(self._workers) if w.state == WorkerState.BUSY)

    @property
    def queued(self) -> int:
        return self._job_queue.qsize()

    @property
    def stats(self) -> dict:
        workers = list(self._workers)
        return {
            "workers": {"total": len(workers), "busy": self.busy_workers},
            "connections": {
                "queued": self._job_queue.qsize(),
                "completed": self._completed + sum(w.jobs_completed for w in workers),
                "failed": self._failed + sum(w.jobs_failed for w in workers),
            },
        }
