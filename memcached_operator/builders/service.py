"""
Builder for the headless Service in front of the cache pods
"""

# Standard
import copy

# Local
from .. import constants
from ..api import v1beta1
from .common import child_metadata, labels_for_memcached, monitoring_enabled

KIND = "Service"
API_VERSION = "v1"


def build_service(mc: v1beta1.Memcached) -> dict:
    """Build the headless Service. The metrics port is only exposed when
    monitoring is enabled.
    """
    labels = labels_for_memcached(mc.name)
    metadata = child_metadata(mc, labels)
    annotations = mc.spec.service.annotations if mc.spec.service else None
    metadata["annotations"] = copy.deepcopy(annotations) if annotations else None

    ports = [
        {
            "name": constants.MEMCACHED_PORT_NAME,
            "port": constants.MEMCACHED_PORT,
            "targetPort": constants.MEMCACHED_PORT_NAME,
            "protocol": "TCP",
        }
    ]
    if monitoring_enabled(mc):
        ports.append(
            {
                "name": constants.METRICS_PORT_NAME,
                "port": constants.METRICS_PORT,
                "targetPort": constants.METRICS_PORT_NAME,
                "protocol": "TCP",
            }
        )

    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": metadata,
        "spec": {
            "clusterIP": "None",
            "selector": labels,
            "ports": ports,
        },
    }
