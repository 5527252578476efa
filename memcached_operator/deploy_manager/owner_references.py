"""
This module holds the ownerReference handling shared by the reconciler and the
resource watchers
"""

# Standard
from typing import List, Optional

# First Party
import alog

log = alog.use_channel("OWNRF")


def controller_owner_uid(obj: dict) -> Optional[str]:
    """Get the uid of the owner flagged as controller of the given object"""
    for ref in (obj.get("metadata") or {}).get("ownerReferences") or []:
        if ref.get("controller"):
            return ref.get("uid")
    return None


def is_controlled_by(obj: dict, owner_uid: Optional[str]) -> bool:
    """Whether the given object is controlled by the owner with the given uid"""
    return owner_uid is not None and controller_owner_uid(obj) == owner_uid


def merge_owner_references(current_refs: List[dict], desired_refs: List[dict]):
    """Merge the desired ownerReferences into those currently present on an
    object. References from other owners are kept in their current order and a
    desired reference replaces a current one with the same uid.

    Args:
        current_refs:  List[dict]
            The ownerReferences read back from the cluster
        desired_refs:  List[dict]
            The ownerReferences the operator wants to be present

    Returns:
        owner_refs:  List[dict]
            The merged ownerReferences
    """
    desired_by_uid = {ref.get("uid"): ref for ref in desired_refs}
    merged = []
    for ref in current_refs or []:
        uid = ref.get("uid")
        if uid in desired_by_uid:
            merged.append(desired_by_uid.pop(uid))
        else:
            log.debug3("Keeping foreign owner reference %s", uid)
            merged.append(ref)
    merged.extend(
        ref for ref in desired_refs if ref.get("uid") in desired_by_uid
    )
    log.debug4("Final owner refs: %s", merged)
    return merged
