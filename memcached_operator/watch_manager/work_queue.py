"""
The ReconcileWorkerPool pulls resource keys off a bounded, deduplicating queue
and reconciles them on a fixed set of worker threads. A key is never
reconciled by two workers at once. Keys whose reconcile asks for a requeue are
scheduled again on a timer with exponential backoff.
"""

# Standard
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set
import queue
import threading
import time

# First Party
import alog

# Local
from .. import config
from ..reconcile import ReconciliationResult, ResourceKey
from .timer import TimerThread

log = alog.use_channel("WRKPL")

# Seconds a worker waits on an empty queue before checking for shutdown
QUEUE_POLL_TIME = 0.2

ReconcileFn = Callable[[ResourceKey, threading.Event], ReconciliationResult]


def requeue_backoff(failures: int) -> timedelta:
    """The delay before retrying a key that has failed the given number of
    consecutive times. It doubles on every failure up to a ceiling.
    """
    base = float(config.requeue_after_seconds)
    ceiling = float(config.max_requeue_after_seconds)
    delay = base * (2 ** max(failures - 1, 0))
    return timedelta(seconds=min(delay, ceiling))


class ReconcileWorkerPool:  # pylint: disable=too-many-instance-attributes
    """A pool of reconcile workers fed by a deduplicating work queue"""

    def __init__(
        self,
        reconcile_fn: ReconcileFn,
        workers: Optional[int] = None,
        queue_size: Optional[int] = None,
        timer: Optional[TimerThread] = None,
    ):
        """
        Args:
            reconcile_fn:  ReconcileFn
                Function run for each key. It receives the key and the pool's
                cancel event.
            workers:  Optional[int]
                Number of worker threads (config.max_concurrent_reconciles)
            queue_size:  Optional[int]
                Capacity of the queue (config.work_queue_size)
            timer:  Optional[TimerThread]
                Timer used to schedule requeues. A private one is started if
                not given.
        """
        self.reconcile_fn = reconcile_fn
        self.num_workers = workers or config.max_concurrent_reconciles
        self.queue = queue.Queue(maxsize=queue_size or config.work_queue_size)
        self.timer = timer or TimerThread(name="requeue_timer")
        self.cancel = threading.Event()

        # Bookkeeping guarded by the lock. pending holds keys sitting in the
        # queue, in_flight keys being reconciled and dirty in-flight keys that
        # received another event meanwhile.
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self.pending: Set[ResourceKey] = set()
        self.in_flight: Set[ResourceKey] = set()
        self.dirty: Set[ResourceKey] = set()
        self.failures: Dict[ResourceKey, int] = {}

        self._workers: List[threading.Thread] = []

    ## Lifecycle ###############################################################

    def start(self):
        """Start the timer and the worker threads"""
        self.timer.start_thread()
        for idx in range(self.num_workers):
            worker = threading.Thread(
                target=self._worker_loop, name=f"reconcile_worker_{idx}", daemon=True
            )
            worker.start()
            self._workers.append(worker)
        log.info("Started %d reconcile workers", self.num_workers)

    def stop(self, timeout: Optional[float] = None):
        """Cancel in-flight reconciles and stop all threads"""
        log.info("Stopping reconcile workers")
        self.cancel.set()
        self.timer.stop_thread()
        for worker in self._workers:
            worker.join(timeout)
        self._workers = []

    @property
    def stopped(self) -> bool:
        return self.cancel.is_set()

    ## Public Interface ########################################################

    def enqueue(self, key: ResourceKey) -> bool:
        """Add a key to the queue unless it is already waiting. A key that is
        being reconciled is marked dirty and queued again once its reconcile
        finishes.

        Args:
            key:  ResourceKey
                The resource to reconcile

        Returns:
            queued:  bool
                True if the key was added to the queue by this call
        """
        if self.stopped:
            return False
        with self._lock:
            if key in self.pending:
                log.debug3("Key %s already pending", key)
                return False
            if key in self.in_flight:
                log.debug2("Key %s in flight. Marking dirty", key)
                self.dirty.add(key)
                return False
            try:
                self.queue.put_nowait(key)
            except queue.Full:
                log.warning("Work queue full. Delaying %s", key)
                self.enqueue_after(key, requeue_backoff(1))
                return False
            self.pending.add(key)
        log.debug2("Enqueued %s", key)
        return True

    def enqueue_after(self, key: ResourceKey, delay: timedelta):
        """Enqueue the key once the given delay has passed"""
        log.debug2("Scheduling %s in %s", key, delay)
        self.timer.put_event(datetime.now() + delay, self.enqueue, key)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no key is pending or in flight. Scheduled requeues are
        not waited for. Returns False on timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self.pending or self.in_flight:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    ## Implementation Details ##################################################

    def _worker_loop(self):
        while not self.stopped:
            try:
                key = self.queue.get(timeout=QUEUE_POLL_TIME)
            except queue.Empty:
                continue
            try:
                self._process(key)
            finally:
                self.queue.task_done()

    def _process(self, key: ResourceKey):
        with self._lock:
            self.pending.discard(key)
            self.in_flight.add(key)

        try:
            result = self.reconcile_fn(key, self.cancel)
        except Exception as err:  # pylint: disable=broad-except
            log.warning("Reconcile of %s raised: %s", key, err, exc_info=True)
            result = ReconciliationResult(requeue=True, exception=err)

        with self._lock:
            self.in_flight.discard(key)
            was_dirty = key in self.dirty
            self.dirty.discard(key)
            if result.requeue:
                failures = self.failures.get(key, 0) + 1
                self.failures[key] = failures
            else:
                self.failures.pop(key, None)

            # Requeue a dirty key before releasing the lock so that it is never
            # seen as idle in between
            if was_dirty and not self.stopped:
                try:
                    self.queue.put_nowait(key)
                    self.pending.add(key)
                except queue.Full:
                    log.warning("Work queue full. Delaying %s", key)
                    self.enqueue_after(key, requeue_backoff(1))
            self._idle.notify_all()

        if result.requeue and not self.stopped:
            delay = result.requeue_params.requeue_after or requeue_backoff(failures)
            log.debug("Requeuing %s after %s (failure %d)", key, delay, failures)
            self.enqueue_after(key, delay)
