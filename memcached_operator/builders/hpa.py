"""
Builder for the HorizontalPodAutoscaler
"""

# Standard
import copy

# Local
from ..api import v1beta1
from ..exceptions import assert_buildable
from . import deployment
from .common import child_metadata, hpa_enabled

KIND = "HorizontalPodAutoscaler"
API_VERSION = "autoscaling/v2"

# Values the platform writes when the spec leaves them unset
SERVER_DEFAULT_MIN_REPLICAS = 1
SERVER_DEFAULT_CPU_UTILIZATION = 80


def build_hpa(mc: v1beta1.Memcached) -> dict:
    """Build the autoscaler targeting the cache Deployment. Unset fields that
    the platform defaults carry the platform's value.
    """
    assert_buildable(hpa_enabled(mc), f"Autoscaling not enabled on {mc.name}")
    autoscaling = mc.spec.autoscaling
    min_replicas = autoscaling.min_replicas
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": child_metadata(mc),
        "spec": {
            "scaleTargetRef": {
                "apiVersion": deployment.API_VERSION,
                "kind": deployment.KIND,
                "name": mc.name,
            },
            "minReplicas": (
                min_replicas
                if min_replicas is not None
                else SERVER_DEFAULT_MIN_REPLICAS
            ),
            "maxReplicas": autoscaling.max_replicas,
            "metrics": copy.deepcopy(autoscaling.metrics) or [_cpu_metric()],
            "behavior": copy.deepcopy(autoscaling.behavior),
        },
    }


def _cpu_metric() -> dict:
    return {
        "type": "Resource",
        "resource": {
            "name": "cpu",
            "target": {
                "type": "Utilization",
                "averageUtilization": SERVER_DEFAULT_CPU_UTILIZATION,
            },
        },
    }
