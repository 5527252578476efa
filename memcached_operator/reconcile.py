"""
The MemcachedReconciler runs a single reconciliation of one Memcached resource:
it builds the desired child objects, converges the live objects toward them
with as few writes as possible, removes the children of disabled features and
writes back the observed status.
"""

# Standard
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import base64
import copy
import datetime
import threading
import uuid

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from . import constants, status
from .api.registry import SchemeRegistry, build_registry
from .builders import CHILD_KINDS, ChildKind, compute_secret_hash, hpa_enabled
from .builders import deployment as deployment_builder
from .builders import referenced_secret_names
from .builders import secret as secret_builder
from .deploy_manager import DeployManagerBase
from .deploy_manager.owner_references import (
    is_controlled_by,
    merge_owner_references,
)
from .exceptions import (
    ConversionError,
    TerminalReconcileError,
    TransientReconcileError,
    assert_cluster,
)
from .utils import canonical_quantities, project_onto, sanitize_for_serialization

log = alog.use_channel("RECON")

## Data models #################################################################

# Outcomes recorded per child kind
OP_CREATED = "created"
OP_UPDATED = "updated"
OP_UNCHANGED = "unchanged"
OP_DELETED = "deleted"
OP_ABSENT = "absent"


@dataclass(frozen=True, order=True)
class ResourceKey:
    """The namespaced name identifying one Memcached resource"""

    namespace: Optional[str]
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}" if self.namespace else self.name


@dataclass
class RequeueParams:
    """RequeueParams holds parameters for requeue request. If requeue_after is
    None, the caller applies its own backoff.
    """

    requeue_after: Optional[datetime.timedelta] = None


@dataclass
class ReconciliationResult:
    """ReconciliationResult is the result of a reconciliation"""

    # Flag to control requeue of current reconcile request
    requeue: bool
    # Parameters for requeue request
    requeue_params: RequeueParams = field(default_factory=RequeueParams)
    # Flag to identify if the reconciliation raised an exception
    exception: Optional[Exception] = None
    # The outcome for each child kind
    operations: Dict[str, str] = field(default_factory=dict)
    # Whether the status subresource was written
    status_updated: bool = False


## MemcachedReconciler #########################################################


class MemcachedReconciler:
    """Reconciles Memcached resources through a DeployManager. One instance is
    shared by all workers. It holds no per-resource state.
    """

    def __init__(
        self,
        deploy_manager: DeployManagerBase,
        registry: Optional[SchemeRegistry] = None,
    ):
        """
        Args:
            deploy_manager:  DeployManagerBase
                The deploy manager used for every read and write
            registry:  Optional[SchemeRegistry]
                Registry used to parse stored documents. A new one is built if
                not given.
        """
        self.deploy_manager = deploy_manager
        self.registry = registry or build_registry()

    ## Public ##################################################################

    def reconcile(
        self,
        key: ResourceKey,
        cancel: Optional[threading.Event] = None,
    ) -> ReconciliationResult:
        """Run one reconciliation of the given resource. Errors never escape:
        they are classified and turned into a result.

        Args:
            key:  ResourceKey
                The resource to reconcile
            cancel:  Optional[threading.Event]
                When set, the reconcile is abandoned before its next store call

        Returns:
            result:  ReconciliationResult
                Whether to requeue and what happened to each child
        """
        reconcile_id = self.generate_id()
        log.info("Reconciling %s [%s]", key, reconcile_id)
        operations = {}
        manifest = None
        try:
            manifest = self._fetch_resource(key, cancel)
            if manifest is None:
                log.info("Memcached %s not found. Nothing to do", key)
                return ReconciliationResult(requeue=False)
            if manifest.get("metadata", {}).get("deletionTimestamp"):
                log.info("Memcached %s is being deleted. Nothing to do", key)
                return ReconciliationResult(requeue=False)

            try:
                mc = self.registry.to_hub(self.registry.parse(manifest))
            except ConversionError as err:
                raise TerminalReconcileError(str(err)) from err

            status_updated = self._reconcile_resource(
                mc, manifest, operations, cancel, reconcile_id
            )
            log.info(
                "Reconciled %s [%s]: %s",
                key,
                reconcile_id,
                operations,
                extra={"reconciliation_id": reconcile_id, "resource": manifest},
            )
            return ReconciliationResult(
                requeue=False, operations=operations, status_updated=status_updated
            )

        except TerminalReconcileError as err:
            log.warning("Terminal error reconciling %s: %s", key, err)
            status_updated = self._record_terminal_error(manifest, str(err))
            return ReconciliationResult(
                requeue=False,
                exception=err,
                operations=operations,
                status_updated=status_updated,
            )

        except TransientReconcileError as err:
            log.info("Transient error reconciling %s, requeuing: %s", key, err)
            return ReconciliationResult(
                requeue=True, exception=err, operations=operations
            )

        # Anything unclassified is retried like a transient error
        except Exception as err:  # pylint: disable=broad-except
            log.warning(
                "Unexpected error reconciling %s: %s", key, err, exc_info=True
            )
            return ReconciliationResult(
                requeue=True, exception=err, operations=operations
            )

    @classmethod
    def generate_id(cls) -> str:
        """Generates a unique human readable id for this reconciliation

        Returns:
            id: str
                A unique base32 encoded id
        """
        uuid4 = uuid.uuid4()
        base32_str = base64.b32encode(uuid4.bytes).decode("utf-8")
        return base32_str[:22]

    ## Reconciliation Stages ###################################################

    def _fetch_resource(
        self, key: ResourceKey, cancel: Optional[threading.Event]
    ) -> Optional[dict]:
        self._check_cancel(cancel, key)
        success, manifest = self.deploy_manager.get_object_current_state(
            kind=constants.KIND,
            name=key.name,
            namespace=key.namespace,
            api_version=constants.HUB_API_VERSION,
        )
        assert_cluster(success, f"Failed to fetch Memcached {key}")
        return manifest

    def _reconcile_resource(
        self,
        mc,
        manifest: dict,
        operations: Dict[str, str],
        cancel: Optional[threading.Event],
        reconcile_id: str,
    ) -> bool:
        key = ResourceKey(mc.namespace, mc.name)

        # Referenced secrets feed the pod template hash and the status
        secrets, missing_secrets = self._fetch_secrets(mc, cancel)
        if missing_secrets:
            log.warning("Memcached %s references missing Secrets %s", key, missing_secrets)
        secret_hash = compute_secret_hash(secrets)
        log.debug2("Secret hash for %s: %s", key, secret_hash)

        owner_uid = mc.metadata.get("uid")
        for child in CHILD_KINDS:
            self._check_cancel(cancel, key)
            if child.is_enabled(mc):
                desired = child.build(mc, secret_hash)
                operations[child.kind] = self._converge_child(desired, cancel)
            else:
                operations[child.kind] = self._remove_child(child, mc, owner_uid)
            log.debug(
                "[%s] %s %s",
                reconcile_id,
                child.kind,
                operations[child.kind],
            )

        return self._update_status(mc, manifest, missing_secrets, cancel)

    def _fetch_secrets(
        self, mc, cancel: Optional[threading.Event]
    ) -> Tuple[List[dict], List[str]]:
        found = []
        missing = []
        for name in referenced_secret_names(mc):
            self._check_cancel(cancel, name)
            success, secret = self.deploy_manager.get_object_current_state(
                kind=secret_builder.KIND,
                name=name,
                namespace=mc.namespace,
                api_version=secret_builder.API_VERSION,
            )
            assert_cluster(success, f"Failed to fetch Secret {mc.namespace}/{name}")
            if secret is None:
                missing.append(name)
            else:
                found.append(secret)
        return found, missing

    def _converge_child(
        self, desired: dict, cancel: Optional[threading.Event]
    ) -> str:
        """Create the child if absent, or update it if any tracked field
        differs from the live object
        """
        kind = desired["kind"]
        metadata = desired["metadata"]
        name = metadata["name"]
        namespace = metadata.get("namespace")

        success, live = self.deploy_manager.get_object_current_state(
            kind=kind,
            name=name,
            namespace=namespace,
            api_version=desired["apiVersion"],
        )
        assert_cluster(success, f"Failed to fetch {kind} {namespace}/{name}")

        if live is None:
            self._check_cancel(cancel, name)
            self._deploy(sanitize_for_serialization(desired))
            log.debug("Created %s %s/%s", kind, namespace, name)
            return OP_CREATED

        # References of other owners on the live object are kept
        live_metadata = live.get("metadata") or {}
        metadata["ownerReferences"] = merge_owner_references(
            live_metadata.get("ownerReferences") or [],
            metadata.get("ownerReferences") or [],
        )

        diff = DeepDiff(
            canonical_quantities(project_onto(live, desired)),
            canonical_quantities(desired),
        )
        if not diff:
            log.debug2("No drift for %s %s/%s", kind, namespace, name)
            return OP_UNCHANGED

        log.debug3("Drift for %s %s/%s: %s", kind, namespace, name, diff)
        update = sanitize_for_serialization(desired)
        update["metadata"]["resourceVersion"] = live_metadata.get("resourceVersion")
        self._check_cancel(cancel, name)
        self._deploy(update)
        log.debug("Updated %s %s/%s", kind, namespace, name)
        return OP_UPDATED

    def _remove_child(self, child: ChildKind, mc, owner_uid: Optional[str]) -> str:
        """Delete the child of a disabled feature if this resource controls it"""
        success, live = self.deploy_manager.get_object_current_state(
            kind=child.kind,
            name=mc.name,
            namespace=mc.namespace,
            api_version=child.api_version,
        )
        assert_cluster(success, f"Failed to fetch {child.kind} {mc.namespace}/{mc.name}")
        if live is None:
            return OP_ABSENT
        if not is_controlled_by(live, owner_uid):
            log.debug(
                "Leaving %s %s/%s which is not controlled by this resource",
                child.kind,
                mc.namespace,
                mc.name,
            )
            return OP_ABSENT

        success, _ = self.deploy_manager.disable(
            [
                {
                    "apiVersion": child.api_version,
                    "kind": child.kind,
                    "metadata": {"name": mc.name, "namespace": mc.namespace},
                }
            ]
        )
        assert_cluster(
            success, f"Failed to delete {child.kind} {mc.namespace}/{mc.name}"
        )
        log.debug("Deleted %s %s/%s", child.kind, mc.namespace, mc.name)
        return OP_DELETED

    def _update_status(
        self,
        mc,
        manifest: dict,
        missing_secrets: List[str],
        cancel: Optional[threading.Event],
    ) -> bool:
        """Recompute the status and write it only if it changed"""
        self._check_cancel(cancel, mc.name)
        success, deployment = self.deploy_manager.get_object_current_state(
            kind=deployment_builder.KIND,
            name=mc.name,
            namespace=mc.namespace,
            api_version=deployment_builder.API_VERSION,
        )
        assert_cluster(
            success, f"Failed to fetch Deployment {mc.namespace}/{mc.name}"
        )
        new_status = status.make_status(
            mc, deployment, missing_secrets, hpa_enabled(mc)
        ).to_dict()
        return self._write_status(mc.namespace, mc.name, manifest, new_status)

    def _record_terminal_error(self, manifest: Optional[dict], message: str) -> bool:
        """Record a terminal failure as the Degraded condition. A failure to
        write it is logged and otherwise ignored since nothing would retry it.
        """
        if manifest is None:
            return False
        try:
            mc = self.registry.to_hub(self.registry.parse(manifest))
        except ConversionError as err:
            log.warning("Unable to record error on unparseable resource: %s", err)
            return False
        new_status = status.make_error_status(mc, message).to_dict()
        try:
            return self._write_status(mc.namespace, mc.name, manifest, new_status)
        except Exception as err:  # pylint: disable=broad-except
            log.error("Failed to update status: %s", err, exc_info=True)
            return False

    def _write_status(
        self, namespace: str, name: str, manifest: dict, new_status: dict
    ) -> bool:
        current_status = copy.deepcopy(manifest.get("status") or {})
        if not status.status_changed(current_status, new_status):
            log.debug2("Status of %s/%s unchanged", namespace, name)
            return False
        success, _ = self.deploy_manager.set_status(
            kind=constants.KIND,
            name=name,
            namespace=namespace,
            status=new_status,
            api_version=constants.HUB_API_VERSION,
        )
        assert_cluster(success, f"Failed to update status of {namespace}/{name}")
        log.debug("Updated status of %s/%s", namespace, name)
        return True

    ## Implementation Details ##################################################

    def _deploy(self, resource: dict):
        success, _ = self.deploy_manager.deploy([resource])
        metadata = resource.get("metadata", {})
        assert_cluster(
            success,
            f"Failed to deploy {resource.get('kind')} "
            f"{metadata.get('namespace')}/{metadata.get('name')}",
        )

    @staticmethod
    def _check_cancel(cancel: Optional[threading.Event], what):
        if cancel is not None and cancel.is_set():
            raise TransientReconcileError(f"Reconcile cancelled at {what}")
