"""
Threads that turn cluster events into reconciles
"""

# Local
from .manager import MemcachedWatchManager
from .timer import TimerEvent, TimerThread
from .watch import (
    MemcachedKeyMapper,
    ResourceWatcher,
    ResyncThread,
    SecretKeyMapper,
    owner_keys,
)
from .work_queue import ReconcileWorkerPool, requeue_backoff
