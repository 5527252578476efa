"""
Defaulting applied to Memcached documents on admission.

Top level scalars default only when absent. The memcached group is always
materialized since its values are needed to run the cache at all. Every other
group is opt-in: its inner fields are defaulted only when the group itself is
already present so that defaulting never creates a child object on its own.
"""

# First Party
import alog

# Local
from ..api import v1beta1

log = alog.use_channel("DFLT")

## Defaults ####################################################################

DEFAULT_REPLICAS = 1
DEFAULT_IMAGE = "memcached:1.6"
DEFAULT_MAX_MEMORY_MB = 64
DEFAULT_MAX_CONNECTIONS = 1024
DEFAULT_THREADS = 4
DEFAULT_MAX_ITEM_SIZE = "1m"
DEFAULT_EXPORTER_IMAGE = "prom/memcached-exporter:v0.15.4"
DEFAULT_SERVICE_MONITOR_INTERVAL = "30s"
DEFAULT_SERVICE_MONITOR_SCRAPE_TIMEOUT = "10s"
DEFAULT_AUTOSCALING_CPU_UTILIZATION = 80
DEFAULT_SCALE_DOWN_STABILIZATION_SECONDS = 300

## Public ######################################################################


def default_memcached(mc: v1beta1.Memcached) -> v1beta1.Memcached:
    """Fill omitted fields of the given document in place. Applying this twice
    yields the same document as applying it once.

    Args:
        mc:  v1beta1.Memcached
            The document to default

    Returns:
        mc:  v1beta1.Memcached
            The same document, for convenience
    """
    log.debug("Defaulting %s", mc.name)
    spec = mc.spec
    autoscaling_enabled = spec.autoscaling is not None and spec.autoscaling.enabled

    if spec.replicas is None and not autoscaling_enabled:
        spec.replicas = DEFAULT_REPLICAS
    if spec.image is None:
        spec.image = DEFAULT_IMAGE

    _default_memcached_config(spec)
    _default_monitoring(spec)

    if spec.high_availability is not None:
        if spec.high_availability.anti_affinity_preset is None:
            spec.high_availability.anti_affinity_preset = v1beta1.ANTI_AFFINITY_SOFT

    if autoscaling_enabled:
        _default_autoscaling(spec)

    return mc


## Implementation Details ######################################################


def _default_memcached_config(spec: v1beta1.MemcachedSpec):
    if spec.memcached is None:
        spec.memcached = v1beta1.MemcachedConfig()
    config = spec.memcached
    if not config.max_memory_mb:
        config.max_memory_mb = DEFAULT_MAX_MEMORY_MB
    if not config.max_connections:
        config.max_connections = DEFAULT_MAX_CONNECTIONS
    if not config.threads:
        config.threads = DEFAULT_THREADS
    if not config.max_item_size:
        config.max_item_size = DEFAULT_MAX_ITEM_SIZE


def _default_monitoring(spec: v1beta1.MemcachedSpec):
    monitoring = spec.monitoring
    if monitoring is None:
        return
    if monitoring.exporter_image is None:
        monitoring.exporter_image = DEFAULT_EXPORTER_IMAGE
    if monitoring.service_monitor is not None:
        if not monitoring.service_monitor.interval:
            monitoring.service_monitor.interval = DEFAULT_SERVICE_MONITOR_INTERVAL
        if not monitoring.service_monitor.scrape_timeout:
            monitoring.service_monitor.scrape_timeout = (
                DEFAULT_SERVICE_MONITOR_SCRAPE_TIMEOUT
            )


def _default_autoscaling(spec: v1beta1.MemcachedSpec):
    """Only called with autoscaling enabled. The replica count is cleared since
    a schema-level default may have filled it before this ran.
    """
    spec.replicas = None
    autoscaling = spec.autoscaling
    if not autoscaling.metrics:
        autoscaling.metrics = [
            {
                "type": "Resource",
                "resource": {
                    "name": "cpu",
                    "target": {
                        "type": "Utilization",
                        "averageUtilization": DEFAULT_AUTOSCALING_CPU_UTILIZATION,
                    },
                },
            }
        ]
    if autoscaling.behavior is None:
        autoscaling.behavior = {
            "scaleDown": {
                "stabilizationWindowSeconds": DEFAULT_SCALE_DOWN_STABILIZATION_SECONDS,
            }
        }
