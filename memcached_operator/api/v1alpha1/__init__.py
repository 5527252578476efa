"""
The v1alpha1 (spoke) revision of the Memcached API
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
from .conversion import convert_from_hub, convert_to_hub
