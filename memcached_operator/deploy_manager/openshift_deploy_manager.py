"""
This DeployManager is responsible for delegating cluster operations to the
openshift library. It is the one that will be used when the operator is running
in the cluster or outside the cluster making live changes.
"""

# Standard
from typing import Callable, Iterator, List, NamedTuple, Optional, Tuple
import copy
import threading
import time

# Third Party
from kubernetes import client
from kubernetes.watch import Watch
from openshift.dynamic import DynamicClient
from openshift.dynamic.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ResourceNotFoundError,
    ResourceNotUniqueError,
    UnprocessibleEntityError,
)
from openshift.dynamic.resource import Resource
import kubernetes
import urllib3

# First Party
import alog

# Local
from .. import config
from ..constants import FIELD_MANAGER
from ..exceptions import TerminalReconcileError, assert_cluster
from ..managed_object import ManagedObject
from .base import DeployManagerBase
from .kube_event import KubeEventType, KubeWatchEvent

log = alog.use_channel("OSFTD")

## Deploy Manager ##############################################################


# See this document for value reasonings
# https://github.com/kubernetes-client/python/blob/master/examples/watch/timeout-settings.md
SERVER_WATCH_TIMEOUT = 3600
CLIENT_WATCH_TIMEOUT = 30

# Prefix of the server message for a server-side apply field manager conflict
FIELD_MANAGER_CONFLICT_MESSAGE = "Apply failed with"


class ResourceId(NamedTuple):
    """The identifying parts of a manifest"""

    api_version: Optional[str]
    kind: str
    name: str
    namespace: Optional[str]

    @classmethod
    def of(cls, manifest: dict, require_api_version: bool = True) -> "ResourceId":
        metadata = manifest.get("metadata", {})
        res_id = cls(
            manifest.get("apiVersion"),
            manifest.get("kind"),
            metadata.get("name"),
            metadata.get("namespace"),
        )
        assert None not in [
            res_id.kind,
            res_id.name,
        ], "Cannot apply resource without kind or name"
        assert (
            not require_api_version or res_id.api_version is not None
        ), "Cannot apply resource without apiVersion"
        return res_id

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"


class OpenshiftDeployManager(DeployManagerBase):
    """This DeployManager uses the openshift DynamicClient to interact with the
    cluster
    """

    def __init__(self, dynamic_client: Optional[DynamicClient] = None):
        """
        Args:
            dynamic_client:  Optional[DynamicClient]
                A preconfigured client. If not given, one is created on first
                use from the in-cluster config or the local kubeconfig.
        """
        self._client = dynamic_client

        # Keep a threading lock for performing status updates. This is necessary
        # to avoid running into 409 Conflict errors if concurrent threads are
        # trying to perform status updates
        self._status_lock = threading.Lock()

    @property
    def client(self):
        """Lazy property access to the client"""
        if self._client is None:
            log.debug("Initializing openshift client")
            self._client = self._setup_client()
        return self._client

    @alog.logged_function(log.debug)
    def deploy(
        self,
        resource_definitions: List[dict],
        retry_operation: bool = True,
        **_,
    ) -> Tuple[bool, bool]:
        """Deploy using server-side apply

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to apply to the cluster
            retry_operation:  bool
                If False, a conflicting write is not retried

        Returns:
            success:  bool
                True if deploy succeeded, False otherwise
            changed:  bool
                Whether or not the deployment resulted in changes
        """
        return self._retried_operation(
            resource_definitions,
            self._apply,
            max_retries=config.deploy_retries if retry_operation else 0,
        )

    @alog.logged_function(log.debug)
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete each of the given resources if present

        Args:
            resource_definitions:  list(dict)
                List of resource object dicts to delete from the cluster

        Returns:
            success:  bool
                True if the delete succeeded, False otherwise
            changed:  bool
                Whether or not the delete resulted in changes
        """
        return self._retried_operation(
            resource_definitions,
            self._disable,
            max_retries=config.deploy_retries,
        )

    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Fetch the current state of a single object by name"""
        return self._read(kind, api_version, namespace, None, name=name)

    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """List the objects of a kind matching the label and field selectors"""
        success, content = self._read(
            kind,
            api_version,
            namespace,
            {"items": []},
            label_selector=label_selector,
            field_selector=field_selector,
        )
        return success, content.get("items", []) if content else []

    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
        watch_manager: Optional[Watch] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Stream events until the underlying Watch is stopped. Expired
        resource versions and dropped connections restart the stream.
        """
        watch_manager = watch_manager or Watch()
        resource_handle = self._get_resource_handle(kind, api_version)
        assert_cluster(
            resource_handle, f"Failed to fetch resource handle for {api_version}/{kind}"
        )
        stream_args = {
            "namespace": namespace,
            "name": name,
            "label_selector": label_selector,
            "field_selector": field_selector,
            "serialize": False,
            "timeout_seconds": SERVER_WATCH_TIMEOUT,
            "_request_timeout": CLIENT_WATCH_TIMEOUT,
        }
        resource_version = resource_version or 0

        while not watch_manager._stop:  # pylint: disable=protected-access
            try:
                for raw_event in watch_manager.stream(
                    resource_handle.get,
                    resource_version=resource_version,
                    **stream_args,
                ):
                    resource = ManagedObject(raw_event["object"])
                    resource_version = resource.resource_version
                    yield KubeWatchEvent(KubeEventType(raw_event["type"]), resource)
            except client.exceptions.ApiException as err:
                if err.status != 410:
                    log.info(
                        "Watch of %s/%s failed with %s", api_version, kind, err.status
                    )
                    raise
                log.debug2("Watch of %s/%s expired, relisting", api_version, kind)
                resource_version = None
            except (
                urllib3.exceptions.ReadTimeoutError,
                urllib3.exceptions.ProtocolError,
            ) as err:
                log.debug2("Restarting watch of %s/%s: %s", api_version, kind, err)
        log.debug("Watch of %s/%s stopped", api_version, kind)

    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """Write the status subresource of an object managed by this operator"""
        identity = {
            "kind": kind,
            "apiVersion": api_version,
            "metadata": {"name": name, "namespace": namespace},
        }
        return self._retried_operation(
            [identity],
            self._set_status,
            max_retries=config.deploy_retries,
            status=status,
        )

    ## Implementation Helpers ##################################################

    @staticmethod
    def _setup_client() -> DynamicClient:
        """Use the in-cluster service account if there is one and the local
        kubeconfig otherwise
        """
        try:
            kube_config = kubernetes.client.Configuration()
            kubernetes.config.load_incluster_config(client_configuration=kube_config)
            log.debug2("Using in-cluster config")
            return DynamicClient(kubernetes.client.ApiClient(kube_config))
        except kubernetes.config.ConfigException:
            log.debug2("Using kubeconfig")
            return DynamicClient(kubernetes.config.new_client_from_config())

    def _get_resource_handle(
        self, kind: str, api_version: Optional[str]
    ) -> Optional[Resource]:
        """Look up the API resource for a kind. None if the cluster does not
        serve exactly one match.
        """
        try:
            return self.client.resources.get(kind=kind, api_version=api_version)
        except (ResourceNotFoundError, ResourceNotUniqueError) as err:
            log.debug("No unique resource for %s/%s: %s", api_version, kind, err)
            return None

    def _read(
        self,
        kind: str,
        api_version: Optional[str],
        namespace: Optional[str],
        missing: Optional[dict],
        **get_args,
    ) -> Tuple[bool, Optional[dict]]:
        """Run a get against the resource handle. An unknown kind or object
        gives (True, missing) and a forbidden read gives (False, missing).
        """
        resource_handle = self._get_resource_handle(kind, api_version)
        if not resource_handle:
            return True, missing
        if not namespace:
            resource_handle.namespaced = False
        try:
            return True, resource_handle.get(namespace=namespace, **get_args).to_dict()
        except ForbiddenError:
            log.debug("Read of %s in namespace [%s] forbidden", kind, namespace)
            return False, missing
        except NotFoundError:
            log.debug("Nothing found for %s %s in [%s]", kind, get_args, namespace)
            return True, missing

    def _retried_operation(
        self,
        resource_definitions: List[dict],
        operation: Callable,
        max_retries: int,
        **kwargs,
    ) -> Tuple[bool, bool]:
        """Run the operation on each manifest in order, stopping at the first
        failure. A TerminalReconcileError is passed on to the caller.
        """
        assert isinstance(
            resource_definitions, list
        ), "Programming Error: resource_definitions is not a list"
        if not resource_definitions:
            log.debug("Nothing to do for an empty list of resources")
            return True, False

        changed = False
        for resource_definition in resource_definitions:
            try:
                changed = (
                    self._with_conflict_retries(
                        operation, resource_definition, max_retries, **kwargs
                    )
                    or changed
                )
            except TerminalReconcileError:
                raise
            except Exception as err:  # pylint: disable=broad-except
                log.warning(
                    "Operation [%s] failed on %s: %s",
                    operation.__name__,
                    ResourceId.of(resource_definition, require_api_version=False),
                    err,
                    exc_info=True,
                )
                return False, changed
        return True, changed

    def _with_conflict_retries(
        self,
        operation: Callable,
        resource_definition: dict,
        max_retries: int,
        **kwargs,
    ) -> bool:
        """Run a single operation. A conflict refreshes the manifest's
        resourceVersion from the cluster and tries again after a linearly
        growing pause, up to max_retries times.

        Returns:
            changed:  bool
                The operation's own changed flag
        """
        attempt = 0
        while True:
            try:
                return operation(resource_definition=resource_definition, **kwargs)
            except ConflictError as err:
                if attempt >= max_retries:
                    raise
                attempt += 1
                backoff = config.retry_backoff_base_seconds * attempt
                log.debug2(
                    "Conflict on attempt %d for %s. Retrying in %ss: %s",
                    attempt,
                    ResourceId.of(resource_definition, require_api_version=False),
                    backoff,
                    err,
                )
                time.sleep(backoff)
                self._refresh_resource_version(resource_definition)

    def _refresh_resource_version(self, resource_definition: dict):
        """Copy the stored resourceVersion onto the manifest"""
        res_id = ResourceId.of(resource_definition, require_api_version=False)
        success, content = self.get_object_current_state(
            kind=res_id.kind,
            name=res_id.name,
            namespace=res_id.namespace,
            api_version=res_id.api_version,
        )
        assert_cluster(
            success and content is not None,
            f"Failed to fetch updated resourceVersion for {res_id}",
        )
        resource_version = content.get("metadata", {}).get("resourceVersion")
        assert_cluster(
            resource_version is not None, f"No resourceVersion found for {res_id}"
        )
        log.debug3("Refreshed resourceVersion of %s to %s", res_id, resource_version)
        resource_definition.setdefault("metadata", {})[
            "resourceVersion"
        ] = resource_version

    ## Operations ##############################################################

    def _apply(self, resource_definition: dict) -> bool:
        """Server-side apply one manifest. Fields held by another field manager
        are taken over. Returns whether a new revision was stored.
        """
        res_id = ResourceId.of(resource_definition)
        resource_handle = self._get_resource_handle(res_id.kind, res_id.api_version)
        assert_cluster(resource_handle, f"Failed to fetch resource handle for {res_id}")
        previous_version = resource_definition.get("metadata", {}).get(
            "resourceVersion"
        )

        # managedFields belong to the server
        resource_definition.setdefault("metadata", {}).pop("managedFields", None)

        log.debug2("Applying %s", res_id)
        try:
            try:
                applied = resource_handle.server_side_apply(
                    resource_definition,
                    name=res_id.name,
                    namespace=res_id.namespace,
                    field_manager=FIELD_MANAGER,
                )
            except ConflictError as err:
                # A stale resourceVersion goes back to the caller for a retry
                if FIELD_MANAGER_CONFLICT_MESSAGE not in str(err):
                    raise
                log.debug("Forcing field manager conflict on %s: %s", res_id, err)
                applied = resource_handle.server_side_apply(
                    resource_definition,
                    name=res_id.name,
                    namespace=res_id.namespace,
                    field_manager=FIELD_MANAGER,
                    force_conflicts=True,
                )
        except UnprocessibleEntityError as err:
            log.debug3("Caught 422 error: %s", err, exc_info=True)
            raise TerminalReconcileError(
                f"{res_id.kind} {res_id.namespace}/{res_id.name} was rejected: {err}"
            ) from err

        new_version = applied.to_dict().get("metadata", {}).get("resourceVersion")
        changed = previous_version is None or new_version != previous_version
        log.debug2("Applied %s. Changed: %s", res_id, changed)
        return changed

    def _disable(self, resource_definition: dict) -> bool:
        """Delete one object. A missing kind or object is an unchanged success."""
        res_id = ResourceId.of(resource_definition)
        try:
            resource_handle = self.client.resources.get(
                api_version=res_id.api_version, kind=res_id.kind
            )
            if not res_id.namespace:
                resource_handle.namespaced = False
            log.debug2("Deleting %s", res_id)
            resource_handle.delete(name=res_id.name, namespace=res_id.namespace)
        except (ResourceNotFoundError, NotFoundError) as err:
            log.debug2("Nothing to delete for %s: %s", res_id, err)
            return False
        return True

    def _set_status(self, resource_definition: dict, status: dict) -> bool:
        """Replace the status of one object unless it already matches"""
        res_id = ResourceId.of(resource_definition, require_api_version=False)
        resource_handle = self.client.resources.get(
            api_version=res_id.api_version, kind=res_id.kind
        )
        if not res_id.namespace:
            resource_handle.namespaced = False

        # Serialize status writes from concurrent workers
        with self._status_lock:
            resource = resource_handle.get(
                name=res_id.name, namespace=res_id.namespace
            ).to_dict()
            if resource.get("status") == status:
                log.debug("Status of %s unchanged", res_id)
                return False
            body = {**resource, "status": copy.deepcopy(status)}
            resource_handle.status.replace(body=body)
            log.debug2(
                "Set status of %s at resourceVersion %s",
                res_id,
                body.get("metadata", {}).get("resourceVersion"),
            )
            return True
