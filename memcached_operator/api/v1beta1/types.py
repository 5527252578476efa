"""
Schema types for the v1beta1 (hub) revision of the Memcached resource.

Configuration groups on the spec are Optional: None means the group is absent
and a model instance, even one holding only zero values, means the group is
present. Platform-native structures (resource requirements, security
contexts, topology spread constraints, network policy peers, autoscaler
metrics and behavior) are kept as opaque dicts in their wire form.
"""

# Standard
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

# Third Party
from pydantic import Field, StrictBool, StrictInt, StrictStr

# Local
from ... import constants
from ..base import WireModel

API_VERSION = constants.HUB_API_VERSION

# Anti-affinity presets
ANTI_AFFINITY_SOFT = "soft"
ANTI_AFFINITY_HARD = "hard"

IntOrString = Union[StrictInt, StrictStr]

## Cache process ###############################################################


class MemcachedConfig(WireModel):
    """Settings passed to the memcached process"""

    # Memory ceiling in MB, [16, 65536]
    max_memory_mb: StrictInt = Field(0, alias="maxMemoryMB")
    # Max simultaneous connections, [1, 65536]
    max_connections: StrictInt = 0
    # Worker threads, [1, 128]
    threads: StrictInt = 0
    # Max item size, ^[0-9]+(k|m)$
    max_item_size: StrictStr = ""
    # Verbosity, [0, 2]
    verbosity: StrictInt = 0
    extra_args: List[StrictStr] = Field(default_factory=list)


## High availability ###########################################################


class PDBSpec(WireModel):
    """PodDisruptionBudget settings. minAvailable and maxUnavailable are each
    an absolute count or a percentage string.
    """

    enabled: StrictBool = False
    min_available: Optional[IntOrString] = None
    max_unavailable: Optional[IntOrString] = None


class GracefulShutdownSpec(WireModel):
    """preStop sleep and termination grace period for the cache pods"""

    enabled: StrictBool = False
    pre_stop_delay_seconds: StrictInt = 0
    termination_grace_period_seconds: StrictInt = 0


class HighAvailabilitySpec(WireModel):
    """Scheduling and disruption settings"""

    anti_affinity_preset: Optional[StrictStr] = None
    topology_spread_constraints: List[Dict[str, Any]] = Field(default_factory=list)
    pod_disruption_budget: Optional[PDBSpec] = None
    graceful_shutdown: Optional[GracefulShutdownSpec] = None


## Monitoring ##################################################################


class ServiceMonitorSpec(WireModel):
    """Scrape target settings"""

    additional_labels: Dict[str, StrictStr] = Field(default_factory=dict)
    interval: StrictStr = ""
    scrape_timeout: StrictStr = ""


class MonitoringSpec(WireModel):
    """Exporter sidecar and scrape target settings"""

    enabled: StrictBool = False
    exporter_image: Optional[StrictStr] = None
    exporter_resources: Optional[Dict[str, Any]] = None
    service_monitor: Optional[ServiceMonitorSpec] = None


## Security ####################################################################


class SecretReference(WireModel):
    """Reference to a Secret in the resource's namespace"""

    name: StrictStr = ""


class SASLSpec(WireModel):
    enabled: StrictBool = False
    credentials_secret_ref: SecretReference = Field(default_factory=SecretReference)


class TLSSpec(WireModel):
    enabled: StrictBool = False
    certificate_secret_ref: SecretReference = Field(default_factory=SecretReference)
    enable_client_cert: StrictBool = False


class NetworkPolicySpec(WireModel):
    enabled: StrictBool = False
    allowed_sources: List[Dict[str, Any]] = Field(default_factory=list)


class SecuritySpec(WireModel):
    """Security contexts, authentication, encryption and network policy"""

    pod_security_context: Optional[Dict[str, Any]] = None
    container_security_context: Optional[Dict[str, Any]] = None
    sasl: Optional[SASLSpec] = None
    tls: Optional[TLSSpec] = None
    network_policy: Optional[NetworkPolicySpec] = None


## Autoscaling #################################################################


class AutoscalingSpec(WireModel):
    """HorizontalPodAutoscaler settings"""

    enabled: StrictBool = False
    min_replicas: Optional[StrictInt] = None
    max_replicas: StrictInt = 0
    metrics: List[Dict[str, Any]] = Field(default_factory=list)
    behavior: Optional[Dict[str, Any]] = None


## Service #####################################################################


class ServiceSpec(WireModel):
    annotations: Dict[str, StrictStr] = Field(default_factory=dict)


## Top level ###################################################################


class MemcachedSpec(WireModel):
    """Desired state of a Memcached cluster"""

    # [0, 64]
    replicas: Optional[StrictInt] = None
    image: Optional[StrictStr] = None
    resources: Optional[Dict[str, Any]] = None
    memcached: Optional[MemcachedConfig] = None
    high_availability: Optional[HighAvailabilitySpec] = None
    monitoring: Optional[MonitoringSpec] = None
    security: Optional[SecuritySpec] = None
    autoscaling: Optional[AutoscalingSpec] = None
    service: Optional[ServiceSpec] = None


class Condition(WireModel):
    """A single status condition"""

    ALWAYS_WRITTEN: ClassVar[Tuple[str, ...]] = (
        "type",
        "status",
        "reason",
        "message",
        "last_transition_time",
    )

    type: StrictStr = ""
    status: StrictStr = ""
    reason: StrictStr = ""
    message: StrictStr = ""
    last_transition_time: StrictStr = ""
    observed_generation: StrictInt = 0


class MemcachedStatus(WireModel):
    """Observed state of a Memcached cluster"""

    conditions: List[Condition] = Field(default_factory=list)
    ready_replicas: StrictInt = 0
    observed_generation: StrictInt = 0


class Memcached(WireModel):
    """The Memcached resource"""

    ALWAYS_WRITTEN: ClassVar[Tuple[str, ...]] = (
        "api_version",
        "kind",
        "metadata",
        "spec",
        "status",
    )

    api_version: StrictStr = API_VERSION
    kind: StrictStr = constants.KIND
    metadata: Dict[str, Any] = Field(default_factory=dict)
    spec: MemcachedSpec = Field(default_factory=MemcachedSpec)
    status: MemcachedStatus = Field(default_factory=MemcachedStatus)

    @property
    def name(self) -> Optional[str]:
        return self.metadata.get("name")

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.get("namespace")

    @property
    def generation(self) -> int:
        return self.metadata.get("generation") or 0
