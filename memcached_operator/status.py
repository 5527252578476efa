"""
This module holds the status computation for Memcached resources.

Three conditions are reported:

* Available: True once at least one replica is ready
* Progressing: True while the Deployment is missing or rolling out
* Degraded: True while fewer replicas than desired are ready, or when a
    referenced Secret is missing

Conditions are merged by type. A condition's lastTransitionTime only moves when
its status changes.
"""

# Standard
from datetime import datetime, timezone
from typing import List, Optional
import copy

# Third Party
from deepdiff import DeepDiff

# First Party
import alog

# Local
from .api import v1beta1
from .utils import nested_get

log = alog.use_channel("STTUS")

## Public ######################################################################

# The "type" values of the conditions
AVAILABLE_CONDITION = "Available"
PROGRESSING_CONDITION = "Progressing"
DEGRADED_CONDITION = "Degraded"

# Condition statuses
STATUS_TRUE = "True"
STATUS_FALSE = "False"

# Condition reasons
REASON_AVAILABLE = "Available"
REASON_UNAVAILABLE = "Unavailable"
REASON_PROGRESSING = "Progressing"
REASON_PROGRESSING_COMPLETE = "ProgressingComplete"
REASON_DEGRADED = "Degraded"
REASON_NOT_DEGRADED = "NotDegraded"
REASON_SECRET_NOT_FOUND = "SecretNotFound"
REASON_RECONCILE_ERROR = "ReconcileError"

# The key in the condition used for the timestamp
TIMESTAMP_KEY = "lastTransitionTime"


def compute_conditions(
    mc: v1beta1.Memcached,
    deployment: Optional[dict],
    missing_secrets: Optional[List[str]] = None,
    hpa_active: bool = False,
    now: Optional[str] = None,
) -> List[v1beta1.Condition]:
    """Compute the Available, Progressing and Degraded conditions

    Args:
        mc:  v1beta1.Memcached
            The resource the conditions are computed for
        deployment:  Optional[dict]
            The live Deployment, or None if it does not exist
        missing_secrets:  Optional[List[str]]
            Names of referenced Secrets that could not be found
        hpa_active:  bool
            Whether the replica count is owned by an autoscaler
        now:  Optional[str]
            Timestamp to use as the transition time of new conditions

    Returns:
        conditions:  List[v1beta1.Condition]
            The three conditions, in order
    """
    now = now or timestamp()
    dep_status = (deployment or {}).get("status") or {}
    ready = dep_status.get("readyReplicas") or 0
    updated = dep_status.get("updatedReplicas") or 0
    total = dep_status.get("replicas") or 0

    if hpa_active and deployment is not None:
        desired = total
    else:
        desired = mc.spec.replicas if mc.spec.replicas is not None else 1

    # Available
    available_msg = f"{ready}/{desired} replicas are ready"
    if hpa_active:
        available_msg += " (HPA-managed)"
    available = _make_condition(
        mc,
        AVAILABLE_CONDITION,
        ready > 0,
        REASON_AVAILABLE if ready > 0 else REASON_UNAVAILABLE,
        available_msg,
        now,
    )

    # Progressing
    if deployment is None:
        progressing = _make_condition(
            mc,
            PROGRESSING_CONDITION,
            True,
            REASON_PROGRESSING,
            "Waiting for deployment to be created",
            now,
        )
    elif updated < desired or total != desired:
        progressing = _make_condition(
            mc,
            PROGRESSING_CONDITION,
            True,
            REASON_PROGRESSING,
            f"Rollout in progress: {updated}/{desired} replicas updated",
            now,
        )
    else:
        progressing = _make_condition(
            mc,
            PROGRESSING_CONDITION,
            False,
            REASON_PROGRESSING_COMPLETE,
            f"All {desired} replicas are updated",
            now,
        )

    # Degraded
    if missing_secrets:
        degraded = _make_condition(
            mc,
            DEGRADED_CONDITION,
            True,
            REASON_SECRET_NOT_FOUND,
            f"Referenced Secrets not found: {', '.join(missing_secrets)}",
            now,
        )
    elif desired > 0 and ready < desired:
        degraded = _make_condition(
            mc,
            DEGRADED_CONDITION,
            True,
            REASON_DEGRADED,
            "Waiting for deployment to be created"
            if deployment is None
            else f"Only {ready}/{desired} replicas are ready",
            now,
        )
    else:
        degraded = _make_condition(
            mc,
            DEGRADED_CONDITION,
            False,
            REASON_NOT_DEGRADED,
            f"All {desired} desired replicas are ready",
            now,
        )

    return [available, progressing, degraded]


def set_status_condition(
    conditions: List[v1beta1.Condition], new_condition: v1beta1.Condition
) -> bool:
    """Merge a condition into the list by type. The transition time of an
    existing condition only changes when its status changes.

    Args:
        conditions:  List[v1beta1.Condition]
            The conditions to update in place
        new_condition:  v1beta1.Condition
            The condition to set

    Returns:
        changed:  bool
            Whether the list was modified
    """
    for existing in conditions:
        if existing.type != new_condition.type:
            continue
        changed = False
        if existing.status != new_condition.status:
            existing.status = new_condition.status
            existing.last_transition_time = (
                new_condition.last_transition_time or timestamp()
            )
            changed = True
        for attr in ("reason", "message", "observed_generation"):
            if getattr(existing, attr) != getattr(new_condition, attr):
                setattr(existing, attr, getattr(new_condition, attr))
                changed = True
        return changed

    condition = copy.deepcopy(new_condition)
    if not condition.last_transition_time:
        condition.last_transition_time = timestamp()
    conditions.append(condition)
    return True


def make_status(
    mc: v1beta1.Memcached,
    deployment: Optional[dict],
    missing_secrets: Optional[List[str]] = None,
    hpa_active: bool = False,
    now: Optional[str] = None,
) -> v1beta1.MemcachedStatus:
    """Compute the full status for a resource, starting from its current
    conditions so that unchanged conditions keep their transition times
    """
    status = copy.deepcopy(mc.status)
    for condition in compute_conditions(
        mc, deployment, missing_secrets, hpa_active, now
    ):
        set_status_condition(status.conditions, condition)
    status.ready_replicas = nested_get(deployment or {}, "status.readyReplicas") or 0
    status.observed_generation = mc.generation
    log.debug3("Computed status for %s: %s", mc.name, status)
    return status


def make_error_status(
    mc: v1beta1.Memcached, message: str, now: Optional[str] = None
) -> v1beta1.MemcachedStatus:
    """Status recording a reconcile failure that will not be retried"""
    status = copy.deepcopy(mc.status)
    set_status_condition(
        status.conditions,
        _make_condition(
            mc,
            DEGRADED_CONDITION,
            True,
            REASON_RECONCILE_ERROR,
            message,
            now or timestamp(),
        ),
    )
    status.observed_generation = mc.generation
    return status


def status_changed(current_status: dict, new_status: dict) -> bool:
    """Compare two status objects to determine if there is a meaningful change
    between the current status and the proposed new status. A meaningful change
    is defined as any change besides a timestamp.

    Args:
        current_status:  dict
            The raw status dict from the current CR
        new_status:  dict
            The proposed new status

    Returns:
        status_changed:  bool
            True if there is a meaningful change between the current status and
            the new status
    """
    # Status objects must be dicts
    if not isinstance(current_status, dict) or not isinstance(new_status, dict):
        return True

    # Perform a deep diff, excluding timestamps
    return bool(
        DeepDiff(
            current_status,
            new_status,
            exclude_obj_callback=lambda _, path: path.endswith(f"{TIMESTAMP_KEY}']"),
        )
    )


def timestamp() -> str:
    """The current time in the platform's timestamp format"""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


## Implementation Details ######################################################


def _make_condition(
    mc: v1beta1.Memcached,
    type_name: str,
    status: bool,
    reason: str,
    message: str,
    last_transition_time: str,
) -> v1beta1.Condition:
    return v1beta1.Condition(
        type=type_name,
        status=STATUS_TRUE if status else STATUS_FALSE,
        reason=reason,
        message=message,
        last_transition_time=last_transition_time,
        observed_generation=mc.generation,
    )
