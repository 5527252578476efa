"""
Tests for admission defaulting
"""

# Standard
import copy

# Local
from memcached_operator.admission.defaulter import (
    DEFAULT_AUTOSCALING_CPU_UTILIZATION,
    DEFAULT_EXPORTER_IMAGE,
    DEFAULT_IMAGE,
    default_memcached,
)
from memcached_operator.test_helpers.helpers import setup_cr, setup_memcached


def test_empty_spec_defaults():
    """An empty spec gets the top level defaults and the memcached group"""
    mc = default_memcached(setup_memcached())
    assert mc.spec.replicas == 1
    assert mc.spec.image == DEFAULT_IMAGE
    assert mc.spec.memcached.max_memory_mb == 64
    assert mc.spec.memcached.max_connections == 1024
    assert mc.spec.memcached.threads == 4
    assert mc.spec.memcached.max_item_size == "1m"
    assert mc.spec.memcached.verbosity == 0


def test_empty_spec_does_not_create_groups():
    """Defaulting never creates an opt-in group"""
    mc = default_memcached(setup_memcached())
    assert mc.spec.high_availability is None
    assert mc.spec.monitoring is None
    assert mc.spec.security is None
    assert mc.spec.autoscaling is None
    assert mc.spec.service is None
    assert mc.spec.resources is None


def test_explicit_values_kept():
    """Values set by the user are never overwritten"""
    mc = default_memcached(
        setup_memcached(
            {
                "replicas": 0,
                "image": "memcached:1.6.29",
                "memcached": {"maxMemoryMB": 256, "threads": 2},
            }
        )
    )
    assert mc.spec.replicas == 0
    assert mc.spec.image == "memcached:1.6.29"
    assert mc.spec.memcached.max_memory_mb == 256
    assert mc.spec.memcached.threads == 2
    assert mc.spec.memcached.max_connections == 1024


def test_ha_scenario():
    """A present highAvailability group gets the soft preset and its absent
    sub-groups stay absent
    """
    mc = default_memcached(setup_memcached({"highAvailability": {}}))
    assert mc.spec.high_availability.anti_affinity_preset == "soft"
    assert mc.spec.high_availability.pod_disruption_budget is None
    assert mc.spec.high_availability.graceful_shutdown is None

    mc = default_memcached(
        setup_memcached({"highAvailability": {"antiAffinityPreset": "hard"}})
    )
    assert mc.spec.high_availability.anti_affinity_preset == "hard"


def test_monitoring_defaults():
    """The exporter image is defaulted and the scrape settings only when the
    serviceMonitor group is present
    """
    mc = default_memcached(setup_memcached({"monitoring": {"enabled": True}}))
    assert mc.spec.monitoring.exporter_image == DEFAULT_EXPORTER_IMAGE
    assert mc.spec.monitoring.service_monitor is None

    mc = default_memcached(
        setup_memcached({"monitoring": {"enabled": True, "serviceMonitor": {}}})
    )
    assert mc.spec.monitoring.service_monitor.interval == "30s"
    assert mc.spec.monitoring.service_monitor.scrape_timeout == "10s"


def test_autoscaling_defaults():
    """Enabled autoscaling gets a cpu metric and a scale down window and
    leaves replicas unset
    """
    mc = default_memcached(
        setup_memcached({"autoscaling": {"enabled": True, "maxReplicas": 5}})
    )
    assert mc.spec.replicas is None
    metric = mc.spec.autoscaling.metrics[0]
    assert metric["resource"]["name"] == "cpu"
    assert (
        metric["resource"]["target"]["averageUtilization"]
        == DEFAULT_AUTOSCALING_CPU_UTILIZATION
    )
    assert (
        mc.spec.autoscaling.behavior["scaleDown"]["stabilizationWindowSeconds"]
        == 300
    )


def test_autoscaling_keeps_explicit_metrics():
    metrics = [
        {
            "type": "Resource",
            "resource": {
                "name": "memory",
                "target": {"type": "AverageValue", "averageValue": "100Mi"},
            },
        }
    ]
    mc = default_memcached(
        setup_memcached(
            {"autoscaling": {"enabled": True, "maxReplicas": 5, "metrics": metrics}}
        )
    )
    assert mc.spec.autoscaling.metrics == metrics


def test_disabled_autoscaling_not_defaulted():
    """A disabled autoscaling group is left as is and replicas are defaulted"""
    mc = default_memcached(setup_memcached({"autoscaling": {"maxReplicas": 5}}))
    assert mc.spec.replicas == 1
    assert mc.spec.autoscaling.metrics == []
    assert mc.spec.autoscaling.behavior is None


def test_idempotent():
    """Defaulting a defaulted document changes nothing"""
    for spec in [
        {},
        {"highAvailability": {"podDisruptionBudget": {"enabled": True}}},
        {"monitoring": {"enabled": True, "serviceMonitor": {}}},
        {"autoscaling": {"enabled": True, "maxReplicas": 3}},
    ]:
        once = default_memcached(setup_memcached(spec)).to_dict()
        twice = default_memcached(setup_memcached(**copy.deepcopy(once))).to_dict()
        assert once == twice


def test_defaulted_setup_cr():
    """The test helper produces the same result as defaulting directly"""
    assert setup_cr(defaulted=True) == default_memcached(setup_memcached()).to_dict()
