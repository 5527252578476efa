"""
Helper object to represent a kubernetes object seen by the operator
"""

# Standard
from typing import List, Optional

KUBE_LIST_IDENTIFIER = "List"


class ManagedObject:  # pylint: disable=too-many-instance-attributes
    """Basic struct to represent a kubernetes object read from the cluster"""

    def __init__(self, definition: dict):
        self.kind = definition.get("kind")
        self.metadata = definition.get("metadata") or {}
        self.name = self.metadata.get("name")
        self.namespace = self.metadata.get("namespace")
        self.uid = self.metadata.get("uid")
        self.resource_version = self.metadata.get("resourceVersion")
        self.api_version = definition.get("apiVersion")
        self.definition = definition

        assert self.kind is not None, "No kind found"
        assert self.api_version is not None, "No apiVersion found"

        # If resource is not list then check name
        if KUBE_LIST_IDENTIFIER not in self.kind:
            assert self.name is not None, "No name found"

    @property
    def owner_references(self) -> List[dict]:
        """The ownerReferences recorded on the object"""
        return self.metadata.get("ownerReferences") or []

    def controller_reference(self) -> Optional[dict]:
        """Return the ownerReference flagged as controller, if any"""
        for ref in self.owner_references:
            if ref.get("controller"):
                return ref
        return None

    def get(self, *args, **kwargs):
        """Pass get calls to the objects definition"""
        return self.definition.get(*args, **kwargs)

    def __str__(self):
        return f"{self.api_version}/{self.kind}/{self.namespace}/{self.name}"

    def __repr__(self):
        return str(self)

    def __hash__(self):
        """Hash excludes the definition so that the object's identifier in a map
        is based only on the unique identifier of the resource in the cluster.
        If the resource did not provide one, use apiVersion, kind, and name.
        """
        return hash(self.uid or str(self))

    def __eq__(self, other):
        return hash(self) == hash(other)
