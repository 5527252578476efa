"""
The v1beta1 revision of the Memcached API. This is the hub revision.
"""

# Local
from .types import (
    ANTI_AFFINITY_HARD,
    ANTI_AFFINITY_SOFT,
    API_VERSION,
    AutoscalingSpec,
    Condition,
    GracefulShutdownSpec,
    HighAvailabilitySpec,
    Memcached,
    MemcachedConfig,
    MemcachedSpec,
    MemcachedStatus,
    MonitoringSpec,
    NetworkPolicySpec,
    PDBSpec,
    SASLSpec,
    SecretReference,
    SecuritySpec,
    ServiceMonitorSpec,
    ServiceSpec,
    TLSSpec,
)
