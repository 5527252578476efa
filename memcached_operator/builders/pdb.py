"""
Builder for the PodDisruptionBudget
"""

# Local
from ..api import v1beta1
from ..exceptions import assert_buildable
from .common import child_metadata, labels_for_memcached

KIND = "PodDisruptionBudget"
API_VERSION = "policy/v1"


def pdb_enabled(mc: v1beta1.Memcached) -> bool:
    high_availability = mc.spec.high_availability
    return (
        high_availability is not None
        and high_availability.pod_disruption_budget is not None
        and high_availability.pod_disruption_budget.enabled
    )


def build_pdb(mc: v1beta1.Memcached) -> dict:
    """Build the PodDisruptionBudget. minAvailable wins over maxUnavailable and
    minAvailable=1 is used when neither is set.
    """
    assert_buildable(pdb_enabled(mc), f"PodDisruptionBudget not enabled on {mc.name}")
    pdb_spec = mc.spec.high_availability.pod_disruption_budget
    labels = labels_for_memcached(mc.name)

    if pdb_spec.min_available is not None:
        min_available, max_unavailable = pdb_spec.min_available, None
    elif pdb_spec.max_unavailable is not None:
        min_available, max_unavailable = None, pdb_spec.max_unavailable
    else:
        min_available, max_unavailable = 1, None

    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": child_metadata(mc, labels),
        "spec": {
            "selector": {"matchLabels": labels},
            "minAvailable": min_available,
            "maxUnavailable": max_unavailable,
        },
    }
