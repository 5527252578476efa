"""
Shared pieces of the child object builders
"""

# Standard
from typing import Dict, Optional

# Local
from .. import constants
from ..api import v1beta1


def labels_for_memcached(name: str) -> Dict[str, str]:
    """The standard labels stamped on every child object. They also serve as
    the pod selector of the workload.
    """
    return {
        constants.LABEL_NAME: constants.APP_NAME,
        constants.LABEL_INSTANCE: name,
        constants.LABEL_MANAGED_BY: constants.MANAGED_BY,
    }


def make_owner_reference(owner: dict, controller: bool = True) -> dict:
    """Make an owner reference for the given resource so that the platform
    garbage collects the child object when the owner is deleted

    Args:
        owner:  dict
            The full manifest of the owning resource
        controller:  bool
            Whether the owner is the managing controller of the child

    Returns:
        owner_reference:  dict
            The entry for the child's metadata.ownerReferences
    """
    metadata = owner.get("metadata", {})
    return {
        "apiVersion": owner.get("apiVersion"),
        "kind": owner.get("kind"),
        "name": metadata.get("name"),
        "uid": metadata.get("uid"),
        "controller": controller,
        # The owner will not be deleted until this object completes its deletion
        "blockOwnerDeletion": True,
    }


def child_metadata(
    mc: v1beta1.Memcached,
    labels: Optional[Dict[str, str]] = None,
) -> dict:
    """Metadata for a child object named after its owner"""
    return {
        "name": mc.name,
        "namespace": mc.namespace,
        "labels": labels if labels is not None else labels_for_memcached(mc.name),
        "ownerReferences": [
            make_owner_reference(
                {
                    "apiVersion": mc.api_version,
                    "kind": mc.kind,
                    "metadata": mc.metadata,
                }
            )
        ],
    }


def hpa_enabled(mc: v1beta1.Memcached) -> bool:
    return mc.spec.autoscaling is not None and mc.spec.autoscaling.enabled


def monitoring_enabled(mc: v1beta1.Memcached) -> bool:
    return mc.spec.monitoring is not None and mc.spec.monitoring.enabled


def tls_enabled(mc: v1beta1.Memcached) -> bool:
    security = mc.spec.security
    return security is not None and security.tls is not None and security.tls.enabled


def sasl_enabled(mc: v1beta1.Memcached) -> bool:
    security = mc.spec.security
    return security is not None and security.sasl is not None and security.sasl.enabled
