"""
The DeployManagerBase is the reconciler's only view of the cluster. Every read
and write of Memcached resources, their children and their Secrets goes through
one of these methods so that a live cluster and the in-memory dry run are
interchangeable.
"""

# Standard
from typing import Iterator, List, Optional, Tuple
import abc

# Local
from .kube_event import KubeWatchEvent


class DeployManagerBase(abc.ABC):
    """Cluster access used by the reconciler, the watchers and the CLI"""

    @abc.abstractmethod
    def deploy(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Create or update each manifest. A manifest carrying
        metadata.resourceVersion is only written while the stored object is
        still at that version.

        Args:
            resource_definitions:  List[dict]
                Complete manifests to write

        Returns:
            success:  bool
                False if any write failed. Writes stop at the first failure.
            changed:  bool
                True if any stored object changed
        """

    @abc.abstractmethod
    def disable(self, resource_definitions: List[dict]) -> Tuple[bool, bool]:
        """Delete each object named by the given manifests. Objects that are
        already gone are not an error.

        Args:
            resource_definitions:  List[dict]
                Manifests holding at least apiVersion, kind and metadata.name

        Returns:
            success:  bool
                False if any delete failed
            changed:  bool
                True if anything was deleted
        """

    @abc.abstractmethod
    def get_object_current_state(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, Optional[dict]]:
        """Read one object by name

        Returns:
            success:  bool
                False if the read itself failed (e.g. forbidden)
            current_state:  Optional[dict]
                The stored manifest, or None if there is no such object
        """

    @abc.abstractmethod
    def watch_objects(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        api_version: Optional[str] = None,
        namespace: Optional[str] = None,
        name: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
        resource_version: Optional[str] = None,
    ) -> Iterator[KubeWatchEvent]:
        """Stream change events for a kind. Existing objects are reported as
        ADDED first. A namespace of None watches every namespace.
        """

    @abc.abstractmethod
    def filter_objects_current_state(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        namespace: Optional[str] = None,
        api_version: Optional[str] = None,
        label_selector: Optional[str] = None,
        field_selector: Optional[str] = None,
    ) -> Tuple[bool, List[dict]]:
        """List the objects of a kind matching both selectors. A namespace of
        None lists every namespace.

        Returns:
            success:  bool
                False if the list itself failed
            current_state:  List[dict]
                The matching manifests
        """

    @abc.abstractmethod
    def set_status(  # pylint: disable=too-many-arguments
        self,
        kind: str,
        name: str,
        namespace: Optional[str],
        status: dict,
        api_version: Optional[str] = None,
    ) -> Tuple[bool, bool]:
        """Replace the status subresource of an object, leaving its spec and
        generation alone

        Returns:
            success:  bool
                False if the object is missing or the write failed
            changed:  bool
                False when the stored status already matched
        """
