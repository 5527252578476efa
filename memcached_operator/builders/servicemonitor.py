"""
Builder for the prometheus-operator ServiceMonitor
"""

# Local
from .. import constants
from ..api import v1beta1
from .common import child_metadata, labels_for_memcached, monitoring_enabled

KIND = "ServiceMonitor"
API_VERSION = "monitoring.coreos.com/v1"

_DEFAULT_INTERVAL = "30s"
_DEFAULT_SCRAPE_TIMEOUT = "10s"


def service_monitor_enabled(mc: v1beta1.Memcached) -> bool:
    return monitoring_enabled(mc) and mc.spec.monitoring.service_monitor is not None


def build_service_monitor(mc: v1beta1.Memcached) -> dict:
    """Build the ServiceMonitor scraping the exporter port. The standard labels
    take precedence over any additional label with the same key.
    """
    sm_spec = mc.spec.monitoring.service_monitor if mc.spec.monitoring else None

    labels = dict(sm_spec.additional_labels) if sm_spec else {}
    labels.update(labels_for_memcached(mc.name))

    interval = (sm_spec.interval if sm_spec else "") or _DEFAULT_INTERVAL
    scrape_timeout = (
        sm_spec.scrape_timeout if sm_spec else ""
    ) or _DEFAULT_SCRAPE_TIMEOUT

    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": child_metadata(mc, labels),
        "spec": {
            "selector": {"matchLabels": labels_for_memcached(mc.name)},
            "namespaceSelector": {"matchNames": [mc.namespace]},
            "endpoints": [
                {
                    "port": constants.METRICS_PORT_NAME,
                    "interval": interval,
                    "scrapeTimeout": scrape_timeout,
                }
            ],
        },
    }
