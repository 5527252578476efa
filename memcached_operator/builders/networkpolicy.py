"""
Builder for the NetworkPolicy restricting ingress to the cache pods
"""

# Standard
import copy

# Local
from .. import constants
from ..api import v1beta1
from .common import (
    child_metadata,
    labels_for_memcached,
    monitoring_enabled,
    tls_enabled,
)

KIND = "NetworkPolicy"
API_VERSION = "networking.k8s.io/v1"


def network_policy_enabled(mc: v1beta1.Memcached) -> bool:
    security = mc.spec.security
    return (
        security is not None
        and security.network_policy is not None
        and security.network_policy.enabled
    )


def build_network_policy(mc: v1beta1.Memcached) -> dict:
    """Build the ingress policy. Traffic is allowed on the cache port, the TLS
    port when TLS is on and the metrics port when monitoring is on. Sources are
    only restricted when allowedSources is non-empty.
    """
    labels = labels_for_memcached(mc.name)
    ports = [_tcp_port(constants.MEMCACHED_PORT)]
    if tls_enabled(mc):
        ports.append(_tcp_port(constants.TLS_PORT))
    if monitoring_enabled(mc):
        ports.append(_tcp_port(constants.METRICS_PORT))

    allowed_sources = None
    if network_policy_enabled(mc) and mc.spec.security.network_policy.allowed_sources:
        allowed_sources = copy.deepcopy(mc.spec.security.network_policy.allowed_sources)

    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": child_metadata(mc, labels),
        "spec": {
            "podSelector": {"matchLabels": labels},
            "policyTypes": ["Ingress"],
            "ingress": [{"ports": ports, "from": allowed_sources}],
        },
    }


def _tcp_port(port: int) -> dict:
    return {"protocol": "TCP", "port": port}
