"""
The MemcachedWatchManager wires the worker pool, the resource watchers and the
resync ticks together around one reconciler
"""

# Standard
from typing import List, Optional

# First Party
import alog

# Local
from .. import config, constants
from ..api.registry import SchemeRegistry
from ..builders import CHILD_KINDS
from ..builders import secret as secret_builder
from ..deploy_manager import DeployManagerBase
from ..reconcile import MemcachedReconciler
from .base import ThreadBase
from .watch import (
    MemcachedKeyMapper,
    ResourceWatcher,
    ResyncThread,
    SecretKeyMapper,
    owner_keys,
)
from .work_queue import ReconcileWorkerPool

log = alog.use_channel("WTCHMGR")


class MemcachedWatchManager:
    """Owns every thread that drives reconciliation"""

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        registry: Optional[SchemeRegistry] = None,
        namespace: Optional[str] = None,
        resync_period_seconds: Optional[float] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The deploy manager used to watch, read and write
            registry:  Optional[SchemeRegistry]
                Registry used to parse Memcached documents
            namespace:  Optional[str]
                Namespace to watch (config.watch_namespace). None or "" watches
                every namespace.
            resync_period_seconds:  Optional[float]
                Period of the resync ticks (config.resync_period_seconds). 0
                disables them.
        """
        self.deploy_manager = deploy_manager
        self.reconciler = MemcachedReconciler(deploy_manager, registry)
        self.registry = self.reconciler.registry
        self.namespace = (
            namespace if namespace is not None else config.watch_namespace
        ) or None
        if resync_period_seconds is None:
            resync_period_seconds = float(config.resync_period_seconds)

        self.pool = ReconcileWorkerPool(self.reconciler.reconcile)
        self.watchers: List[ResourceWatcher] = self._make_watchers()
        self.resync: Optional[ResyncThread] = None
        if resync_period_seconds > 0:
            self.resync = ResyncThread(
                self.pool, deploy_manager, resync_period_seconds, self.namespace
            )

    @property
    def threads(self) -> List[ThreadBase]:
        threads = list(self.watchers)
        if self.resync is not None:
            threads.append(self.resync)
        return threads

    def start_all(self):
        """Start the workers, then the watches and the resync ticks"""
        log.info("Starting watches for %s", self.namespace or "all namespaces")
        self.pool.start()
        for thread in self.threads:
            thread.start_thread()

    def stop_all(self):
        """Stop the watches and cancel in-flight reconciles"""
        log.info("Stopping watches")
        for thread in self.threads:
            thread.stop_thread()
        self.pool.stop()

    def wait(self, timeout: Optional[float] = None):
        """Block until every watch thread exits"""
        for thread in self.threads:
            if thread.is_alive():
                thread.join(timeout)

    ## Implementation Details ##################################################

    def _make_watchers(self) -> List[ResourceWatcher]:
        watchers = [
            ResourceWatcher(
                self.pool,
                self.deploy_manager,
                constants.KIND,
                constants.HUB_API_VERSION,
                MemcachedKeyMapper(),
                self.namespace,
            )
        ]
        for child in CHILD_KINDS:
            watchers.append(
                ResourceWatcher(
                    self.pool,
                    self.deploy_manager,
                    child.kind,
                    child.api_version,
                    owner_keys,
                    self.namespace,
                )
            )
        watchers.append(
            ResourceWatcher(
                self.pool,
                self.deploy_manager,
                secret_builder.KIND,
                secret_builder.API_VERSION,
                SecretKeyMapper(self.deploy_manager, self.registry),
                self.namespace,
            )
        )
        return watchers
