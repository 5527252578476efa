"""
The ResourceWatcher threads turn the cluster's watch streams into reconcile
keys: Memcached events map to themselves, events on owned children map to
their controlling Memcached and Secret events map to every Memcached that
references the Secret. The ResyncThread periodically enqueues every Memcached.
"""

# Standard
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

# Third Party
from kubernetes import watch

# First Party
import alog

# Local
from .. import config, constants
from ..api.registry import SchemeRegistry
from ..builders.secret import secret_references_match
from ..deploy_manager import DeployManagerBase, KubeEventType, KubeWatchEvent
from ..exceptions import ConversionError
from ..managed_object import ManagedObject
from ..reconcile import ResourceKey
from .base import ThreadBase
from .work_queue import ReconcileWorkerPool

log = alog.use_channel("WTCHTHRD")

KeyMapper = Callable[[KubeWatchEvent], List[ResourceKey]]

## Key mappers #################################################################


class MemcachedKeyMapper:
    """Map Memcached events to their own key. Events that change neither the
    generation nor the annotations since the last one seen (status writes,
    relisting on a restarted watch) are dropped.
    """

    def __init__(self):
        self._seen: Dict[str, Tuple[int, dict]] = {}
        self._lock = Lock()

    def __call__(self, event: KubeWatchEvent) -> List[ResourceKey]:
        resource = event.resource
        key = ResourceKey(resource.namespace, resource.name)
        fingerprint = (
            resource.metadata.get("generation"),
            resource.metadata.get("annotations") or {},
        )
        with self._lock:
            if event.type == KubeEventType.DELETED:
                self._seen.pop(resource.uid, None)
                return []
            previous = self._seen.get(resource.uid)
            self._seen[resource.uid] = fingerprint
        if previous == fingerprint:
            log.debug3("Skipping unchanged %s", key)
            return []
        return [key]


def owner_keys(event: KubeWatchEvent) -> List[ResourceKey]:
    """Map a child event to the Memcached that controls it"""
    ref = event.resource.controller_reference()
    if (
        ref is None
        or ref.get("kind") != constants.KIND
        or not str(ref.get("apiVersion", "")).startswith(f"{constants.API_GROUP}/")
    ):
        return []
    return [ResourceKey(event.resource.namespace, ref.get("name"))]


class SecretKeyMapper:
    """Map a Secret event to every Memcached in its namespace that references
    it
    """

    def __init__(self, deploy_manager: DeployManagerBase, registry: SchemeRegistry):
        self.deploy_manager = deploy_manager
        self.registry = registry

    def __call__(self, event: KubeWatchEvent) -> List[ResourceKey]:
        secret = event.resource
        success, manifests = self.deploy_manager.filter_objects_current_state(
            kind=constants.KIND,
            namespace=secret.namespace,
            api_version=constants.HUB_API_VERSION,
        )
        if not success:
            log.warning("Unable to list Memcached in %s", secret.namespace)
            return []

        keys = []
        for manifest in manifests:
            try:
                mc = self.registry.to_hub(self.registry.parse(manifest))
            except ConversionError as err:
                log.debug("Skipping unparseable Memcached: %s", err)
                continue
            if secret_references_match(mc, secret.name):
                keys.append(ResourceKey(mc.namespace, mc.name))
        log.debug2("Secret %s is referenced by %s", secret, keys)
        return keys


## Threads #####################################################################


class ResourceWatcher(ThreadBase):
    """Watch one kind and enqueue the keys its events map to"""

    def __init__(  # pylint: disable=too-many-arguments
        self,
        pool: ReconcileWorkerPool,
        deploy_manager: DeployManagerBase,
        kind: str,
        api_version: str,
        key_mapper: KeyMapper,
        namespace: Optional[str] = None,
    ):
        """
        Args:
            pool:  ReconcileWorkerPool
                The pool keys are enqueued to
            deploy_manager:  DeployManagerBase
                The deploy manager to watch through
            kind:  str
                The kind to watch
            api_version:  str
                The api_version to watch
            key_mapper:  KeyMapper
                Function mapping an event to the keys to reconcile
            namespace:  Optional[str]
                The namespace to watch. If None then cluster-wide
        """
        self.pool = pool
        self.deploy_manager = deploy_manager
        self.kind = kind
        self.api_version = api_version
        self.key_mapper = key_mapper
        self.namespace = namespace

        name = f"watch_thread_{api_version}_{kind}"
        if namespace:
            name = name + f"_{namespace}"
        super().__init__(name=name, daemon=True)

        self.kubernetes_watch = watch.Watch()

    def run(self):
        """Watch until shutdown, restarting the stream when it ends or fails"""
        while not self.should_stop():
            try:
                for event in self.deploy_manager.watch_objects(
                    self.kind,
                    self.api_version,
                    namespace=self.namespace,
                    watch_manager=self.kubernetes_watch,
                ):
                    if self.should_stop():
                        return
                    self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-except
                log.info(
                    "Exception raised when attempting to watch %s/%s: %s",
                    self.api_version,
                    self.kind,
                    repr(exc),
                    exc_info=exc,
                )
                if not self.wait_on_shutdown(float(config.requeue_after_seconds)):
                    return

    def handle_event(self, event: KubeWatchEvent) -> List[ResourceKey]:
        """Enqueue the keys an event maps to"""
        keys = self.key_mapper(event)
        for key in keys:
            log.debug(
                "Requesting reconcile of %s for %s %s",
                key,
                event.type.value,
                event.resource,
            )
            self.pool.enqueue(key)
        return keys

    def stop_thread(self):
        """Override stop_thread to stop the kubernetes client's Watch as well"""
        super().stop_thread()
        self.kubernetes_watch.stop()


class ResyncThread(ThreadBase):
    """Enqueue every Memcached on a fixed period"""

    def __init__(
        self,
        pool: ReconcileWorkerPool,
        deploy_manager: DeployManagerBase,
        period_seconds: float,
        namespace: Optional[str] = None,
    ):
        self.pool = pool
        self.deploy_manager = deploy_manager
        self.period_seconds = period_seconds
        self.namespace = namespace
        super().__init__(name="resync_thread", daemon=True)

    def run(self):
        while self.wait_on_shutdown(self.period_seconds):
            self.resync()

    def resync(self) -> List[ResourceKey]:
        """List every Memcached and enqueue it"""
        success, manifests = self.deploy_manager.filter_objects_current_state(
            kind=constants.KIND,
            namespace=self.namespace,
            api_version=constants.HUB_API_VERSION,
        )
        if not success:
            log.warning("Unable to list Memcached for resync")
            return []
        keys = []
        for manifest in manifests:
            resource = ManagedObject(manifest)
            key = ResourceKey(resource.namespace, resource.name)
            self.pool.enqueue(key)
            keys.append(key)
        log.debug("Resync enqueued %d resources", len(keys))
        return keys
