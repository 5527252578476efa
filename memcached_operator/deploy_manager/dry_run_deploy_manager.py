"""
The DryRunDeployManager implements the DeployManager interface but does not
actually interact with the cluster and instead holds the state of the cluster in
a local map.
"""

# Standard
from datetime import datetime
from queue import Empty, Queue
from threading import RLock
from typing import Callable, Iterator, List, NamedTuple, Optional
import copy
import itertools
import time
import uuid

# First Party
import alog

# Local
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("DRY-RUN")

# Lock to ensure disable/deploys are thread safe
DRY_RUN_CLUSTER_LOCK = RLock()


class DryRunDeployManager(DeployManagerBase):
    """
    Deploy manager which doesn't actually deploy!
    """

    def __init__(
        self,
        resources: Optional[List[dict]] = None,
        strict_resource_version: bool = False,
    ):
        """Construct with an optional set of resources to seed the cluster

        Args:
            resources:  Optional[List[dict]]
                Objects present in the cluster before anything is deployed
            strict_resource_version:  bool
                If True, a deploy carrying a stale metadata.resourceVersion is
                rejected the way the platform rejects a conflicting write
        """
        self._cluster_content = {}
        self.strict_resource_version = strict_resource_version
        self._resource_versions = itertools.count(1)

        # Open watch_objects streams
        self._subscriptions = []

        # Deploy provided resources
        self._deploy(resources or [], notify=False)

    ## Interface ###############################################################

    def deploy(self, resource_definitions, **_):
        log.info("DRY RUN deploy")
        return self._deploy(resource_definitions)

    def disable(self, resource_definitions):
        log.info("DRY RUN disable")
        changed = False
        for resource in resource_definitions:
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            name = resource.get("metadata", {}).get("name")
            namespace = resource.get("metadata", {}).get("namespace")
            with DRY_RUN_CLUSTER_LOCK:
                current = (
                    self._cluster_content.get(namespace, {})
                    .get(kind, {})
                    .get(api_version, {})
                    .get(name)
                )
                if current is None:
                    continue
                changed = True
                self._delete_key(namespace, kind, api_version, name)

            self._notify(current, deleted=True)

        return True, changed

    def get_object_current_state(self, kind, name, namespace=None, api_version=None):
        log.info(
            "DRY RUN get_object_current_state of [%s/%s] in [%s]", kind, name, namespace
        )

        # Look in the cluster state
        matches = []
        with DRY_RUN_CLUSTER_LOCK:
            kind_entries = self._cluster_content.get(namespace, {}).get(kind, {})
            for api_ver, entries in kind_entries.items():
                log.debug3("Checking api_version [%s // %s]", api_ver, api_version)
                if name in entries and (api_ver == api_version or api_version is None):
                    matches.append(copy.deepcopy(entries[name]))
        log.debug(
            "Found %d matches for [%s/%s] in %s", len(matches), kind, name, namespace
        )
        if len(matches) == 1:
            return True, matches[0]
        return True, None

    def filter_objects_current_state(
        self,
        kind,
        namespace=None,
        api_version=None,
        label_selector=None,
        field_selector=None,
    ):  # pylint: disable=too-many-arguments
        log.info(
            "DRY RUN filter_objects_current_state of [%s] in [%s]", kind, namespace
        )
        matches = []
        with DRY_RUN_CLUSTER_LOCK:
            namespaces = (
                [namespace] if namespace is not None else list(self._cluster_content)
            )
            for ns in namespaces:
                kind_entries = self._cluster_content.get(ns, {}).get(kind, {})
                for api_ver, entries in kind_entries.items():
                    if api_ver != api_version and api_version is not None:
                        continue
                    for resource in entries.values():
                        labels = resource.get("metadata", {}).get("labels") or {}
                        if label_selector and not match_selector(labels, label_selector):
                            continue
                        if field_selector and not match_selector(
                            _flatten(resource), field_selector
                        ):
                            continue
                        matches.append(copy.deepcopy(resource))
        return True, matches

    def set_status(
        self,
        kind,
        name,
        namespace,
        status,
        api_version=None,
    ):  # pylint: disable=too-many-arguments
        log.info(
            "DRY RUN set_status of [%s.%s/%s] in %s: %s",
            api_version,
            kind,
            name,
            namespace,
            status,
        )
        with DRY_RUN_CLUSTER_LOCK:
            entries = (
                self._cluster_content.get(namespace, {})
                .get(kind, {})
                .get(api_version, {})
            )
            current = entries.get(name)
            if current is None:
                log.debug("Did not find [%s/%s] in %s", kind, name, namespace)
                return False, False
            changed = current.get("status") != status
            if changed:
                current["status"] = copy.deepcopy(status)
                current["metadata"]["resourceVersion"] = self._next_resource_version()
            updated = copy.deepcopy(current)

        if changed:
            self._notify(updated)
        return True, changed

    def watch_objects(  # pylint: disable=too-many-arguments,unused-argument
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        timeout: Optional[int] = 15,
        **kwargs,
    ) -> Iterator[KubeWatchEvent]:
        """Stream the stored objects as ADDED events followed by every later
        change. The stream ends after timeout seconds, or never if timeout is
        None.
        """
        event_queue = Queue()
        seen = set()

        def on_change(manifest: dict, deleted: bool):
            resource = ManagedObject(manifest)
            if deleted:
                event_type = KubeEventType.DELETED
                seen.discard(resource.uid)
            elif resource.uid in seen:
                event_type = KubeEventType.MODIFIED
            else:
                event_type = KubeEventType.ADDED
                seen.add(resource.uid)
            event_queue.put(KubeWatchEvent(type=event_type, resource=resource))

        # Subscribe before listing so that no change is missed
        subscription = _Subscription(api_version, kind, namespace, name, on_change)
        with DRY_RUN_CLUSTER_LOCK:
            self._subscriptions.append(subscription)

        try:
            _, manifests = self.filter_objects_current_state(
                kind=kind,
                api_version=api_version,
                namespace=namespace,
                label_selector=label_selector,
                field_selector=field_selector,
            )
            for manifest in manifests:
                if name and manifest.get("metadata", {}).get("name") != name:
                    continue
                resource = ManagedObject(manifest)
                seen.add(resource.uid)
                yield KubeWatchEvent(type=KubeEventType.ADDED, resource=resource)

            deadline = time.monotonic() + timeout if timeout else None
            while deadline is None or time.monotonic() < deadline:
                try:
                    event = event_queue.get(timeout=1)
                except Empty:
                    continue
                log.debug2("Yielding event %s", event)
                yield event
        finally:
            with DRY_RUN_CLUSTER_LOCK:
                self._subscriptions.remove(subscription)

    ## Implementation Details ##################################################

    def _notify(self, resource: dict, deleted: bool = False):
        """Hand a copy of a changed object to every matching subscription"""
        with DRY_RUN_CLUSTER_LOCK:
            subscriptions = [sub for sub in self._subscriptions if sub.matches(resource)]
        for subscription in subscriptions:
            subscription.callback(copy.deepcopy(resource), deleted)

    def _next_resource_version(self) -> str:
        return str(next(self._resource_versions))

    def _delete_key(self, namespace, kind, api_version, name):
        del self._cluster_content[namespace][kind][api_version][name]
        if not self._cluster_content[namespace][kind][api_version]:
            del self._cluster_content[namespace][kind][api_version]
        if not self._cluster_content[namespace][kind]:
            del self._cluster_content[namespace][kind]
        if not self._cluster_content[namespace]:
            del self._cluster_content[namespace]

    def _deploy(self, resource_definitions, notify=True):
        changes = False
        for resource in resource_definitions:
            resource = copy.deepcopy(resource)
            api_version = resource.get("apiVersion")
            kind = resource.get("kind")
            metadata = resource.setdefault("metadata", {})
            name = metadata.get("name")
            namespace = metadata.get("namespace")
            log.debug(
                "DRY RUN deploy [%s/%s/%s/%s]", namespace, kind, api_version, name
            )
            log.debug4(resource)

            with DRY_RUN_CLUSTER_LOCK:
                entries = (
                    self._cluster_content.setdefault(namespace, {})
                    .setdefault(kind, {})
                    .setdefault(api_version, {})
                )
                current = entries.get(name)
                current_metadata = (current or {}).get("metadata", {})
                old_resource_version = current_metadata.get("resourceVersion")
                new_resource_version = metadata.get("resourceVersion")

                if (
                    self.strict_resource_version
                    and current is not None
                    and new_resource_version
                    and new_resource_version != old_resource_version
                ):
                    log.warning(
                        "Unable to deploy resource. resourceVersion is out of date"
                    )
                    return False, False

                # Fields owned by the server are kept from the stored object
                metadata["uid"] = (
                    current_metadata.get("uid")
                    or metadata.get("uid")
                    or str(uuid.uuid4())
                )
                metadata["creationTimestamp"] = current_metadata.get(
                    "creationTimestamp", datetime.now().isoformat()
                )
                if current is not None and "status" not in resource:
                    if "status" in current:
                        resource["status"] = copy.deepcopy(current["status"])

                generation = current_metadata.get("generation", 0)
                if current is None or current.get("spec") != resource.get("spec"):
                    generation += 1
                metadata["generation"] = generation or 1

                if current is not None:
                    comparable = copy.deepcopy(current)
                    if new_resource_version is None:
                        comparable["metadata"].pop("resourceVersion", None)
                    else:
                        comparable["metadata"]["resourceVersion"] = new_resource_version
                    if comparable == resource:
                        log.debug2("No change to [%s/%s]", kind, name)
                        continue

                changes = True
                metadata["resourceVersion"] = self._next_resource_version()
                entries[name] = resource
                stored = copy.deepcopy(resource)

            if notify:
                self._notify(stored)

        return True, changes


def match_selector(values: dict, selector: str) -> bool:
    """Check a set of values against a comma separated selector supporting the
    key=value, key==value, key!=value, key and !key forms
    """
    for requirement in (req.strip() for req in selector.split(",")):
        if not requirement:
            continue
        if "!=" in requirement:
            key, expected = (part.strip() for part in requirement.split("!=", 1))
            if _as_str(values.get(key)) == expected:
                return False
        elif "=" in requirement:
            key, expected = (
                part.strip() for part in requirement.replace("==", "=").split("=", 1)
            )
            if _as_str(values.get(key)) != expected:
                return False
        elif requirement.startswith("!"):
            if values.get(requirement[1:].strip()) is not None:
                return False
        elif values.get(requirement) is None:
            return False
    return True


def _as_str(value) -> Optional[str]:
    return str(value).strip() if value is not None else None


def _flatten(dictionary, prefix=""):
    """Flatten a nested dict into dotted keys, for example {a:{b:1},c:2}
    becomes {a.b:1,c:2}
    """
    if not isinstance(dictionary, dict):
        return {prefix: dictionary}
    output = {}
    for key, val in dictionary.items():
        output.update(_flatten(val, key if not prefix else f"{prefix}.{key}"))
    return output


class _Subscription(NamedTuple):
    """A watch_objects stream waiting for changes. Unset fields match anything."""

    api_version: Optional[str]
    kind: str
    namespace: Optional[str]
    name: Optional[str]
    callback: Callable[[dict, bool], None]

    def matches(self, resource: dict) -> bool:
        metadata = resource.get("metadata", {})
        return (
            resource.get("kind") == self.kind
            and self.api_version in (None, resource.get("apiVersion"))
            and self.namespace in (None, "", metadata.get("namespace"))
            and self.name in (None, "", metadata.get("name"))
        )
