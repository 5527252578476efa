"""
Tests for admission validation
"""

# Third Party
import pytest

# Local
from memcached_operator.admission.defaulter import default_memcached
from memcached_operator.admission.validator import (
    FIELD_VALUE_INVALID,
    FIELD_VALUE_REQUIRED,
    FieldViolation,
    has_cpu_utilization_metric,
    validate_memcached,
)
from memcached_operator.exceptions import ValidationError
from memcached_operator.test_helpers.helpers import setup_memcached

## Helpers #####################################################################


def validate(spec):
    return validate_memcached(default_memcached(setup_memcached(spec)))


def fields(violations):
    return [violation.field for violation in violations]


CPU_METRIC = {
    "type": "Resource",
    "resource": {
        "name": "cpu",
        "target": {"type": "Utilization", "averageUtilization": 70},
    },
}

## Memory limit ################################################################


def test_memory_limit_exact_boundary():
    """64MB of cache plus the 32Mi overhead fits exactly in 96Mi"""
    assert not validate(
        {"memcached": {"maxMemoryMB": 64}, "resources": {"limits": {"memory": "96Mi"}}}
    )


def test_memory_limit_too_small():
    """One Mi short of the requirement is rejected naming the requirement"""
    violations = validate(
        {"memcached": {"maxMemoryMB": 64}, "resources": {"limits": {"memory": "95Mi"}}}
    )
    assert fields(violations) == ["spec.resources.limits.memory"]
    assert violations[0].type == FIELD_VALUE_INVALID
    assert "96Mi" in violations[0].detail
    assert 'Invalid value: "95Mi"' in str(violations[0])


def test_memory_limit_other_units():
    """Quantities in other units are compared by value"""
    assert not validate({"resources": {"limits": {"memory": "1Gi"}}})
    assert validate({"resources": {"limits": {"memory": "100M"}}})
    assert not validate({"resources": {"limits": {"memory": "100663296"}}})


def test_memory_limit_not_set():
    """No memory limit means nothing to check"""
    assert not validate({"resources": {"requests": {"memory": "1Mi"}}})


def test_memory_limit_unparseable():
    violations = validate({"resources": {"limits": {"memory": "lots"}}})
    assert fields(violations) == ["spec.resources.limits.memory"]
    assert "invalid quantity" in str(violations[0])


## Disruption budget ###########################################################


def test_pdb_both_bounds():
    violations = validate(
        {
            "replicas": 3,
            "highAvailability": {
                "podDisruptionBudget": {
                    "enabled": True,
                    "minAvailable": 1,
                    "maxUnavailable": 1,
                }
            },
        }
    )
    assert fields(violations) == ["spec.highAvailability.podDisruptionBudget"]
    assert "mutually exclusive" in violations[0].detail


def test_pdb_no_bounds():
    violations = validate(
        {"highAvailability": {"podDisruptionBudget": {"enabled": True}}}
    )
    assert fields(violations) == ["spec.highAvailability.podDisruptionBudget"]
    assert violations[0].type == FIELD_VALUE_REQUIRED


@pytest.mark.parametrize(
    ["min_available", "replicas", "valid"],
    [
        (3, 3, False),
        (4, 3, False),
        (2, 3, True),
        ("100%", 3, True),
        (3, None, True),
    ],
)
def test_pdb_min_available_bounds(min_available, replicas, valid):
    """An absolute minAvailable must be below a known replica count"""
    spec = {
        "highAvailability": {
            "podDisruptionBudget": {"enabled": True, "minAvailable": min_available}
        },
    }
    if replicas is not None:
        spec["replicas"] = replicas
    else:
        spec["autoscaling"] = {
            "enabled": True,
            "maxReplicas": 5,
            "metrics": [
                {
                    "type": "Resource",
                    "resource": {
                        "name": "memory",
                        "target": {"type": "AverageValue", "averageValue": "50Mi"},
                    },
                }
            ],
        }
    violations = validate(spec)
    if valid:
        assert not violations
    else:
        assert fields(violations) == [
            "spec.highAvailability.podDisruptionBudget.minAvailable"
        ]
        assert f"replicas ({replicas})" in violations[0].detail


def test_pdb_disabled_not_checked():
    assert not validate(
        {
            "highAvailability": {
                "podDisruptionBudget": {"minAvailable": 1, "maxUnavailable": 1}
            }
        }
    )


## Graceful shutdown ###########################################################


@pytest.mark.parametrize(
    ["delay", "grace", "valid"],
    [(10, 30, True), (10, 10, False), (20, 10, False)],
)
def test_graceful_shutdown(delay, grace, valid):
    violations = validate(
        {
            "highAvailability": {
                "gracefulShutdown": {
                    "enabled": True,
                    "preStopDelaySeconds": delay,
                    "terminationGracePeriodSeconds": grace,
                }
            }
        }
    )
    assert (not violations) == valid


## Secret references ###########################################################


def test_sasl_requires_secret_name():
    """SASL without a secret name is rejected, and accepted once named"""
    violations = validate({"security": {"sasl": {"enabled": True}}})
    assert fields(violations) == ["spec.security.sasl.credentialsSecretRef.name"]
    assert not validate(
        {
            "security": {
                "sasl": {"enabled": True, "credentialsSecretRef": {"name": "creds"}}
            }
        }
    )


def test_null_secret_reference_is_required_name():
    """A null secret reference is rejected like a missing one"""
    violations = validate(
        {"security": {"sasl": {"enabled": True, "credentialsSecretRef": None}}}
    )
    assert fields(violations) == ["spec.security.sasl.credentialsSecretRef.name"]


def test_null_grace_period_rejected():
    """A null grace period reads as zero and fails the preStop comparison"""
    violations = validate(
        {
            "highAvailability": {
                "gracefulShutdown": {
                    "enabled": True,
                    "preStopDelaySeconds": 5,
                    "terminationGracePeriodSeconds": None,
                }
            }
        }
    )
    assert fields(violations) == [
        "spec.highAvailability.gracefulShutdown.terminationGracePeriodSeconds"
    ]


def test_tls_requires_secret_name():
    violations = validate({"security": {"tls": {"enabled": True}}})
    assert fields(violations) == ["spec.security.tls.certificateSecretRef.name"]


def test_disabled_security_not_checked():
    assert not validate({"security": {"sasl": {}, "tls": {"enabled": False}}})


## Autoscaling #################################################################


def test_autoscaling_with_replicas():
    """Replicas conflict with autoscaling whatever their value, even 0"""
    for replicas in (0, 3):
        mc = setup_memcached(
            {
                "replicas": replicas,
                "autoscaling": {"enabled": True, "maxReplicas": 5},
                "resources": {"requests": {"cpu": "100m"}},
            }
        )
        violations = validate_memcached(mc)
        assert fields(violations) == ["spec.replicas"]
        assert "mutually exclusive" in violations[0].detail


def test_autoscaling_min_above_max():
    violations = validate(
        {
            "autoscaling": {"enabled": True, "minReplicas": 5, "maxReplicas": 3},
            "resources": {"requests": {"cpu": "100m"}},
        }
    )
    assert fields(violations) == ["spec.autoscaling.minReplicas"]
    assert "minReplicas (5)" in violations[0].detail
    assert "maxReplicas (3)" in violations[0].detail


def test_autoscaling_cpu_metric_needs_request():
    """The defaulted cpu utilization metric needs a cpu request"""
    violations = validate({"autoscaling": {"enabled": True, "maxReplicas": 3}})
    assert fields(violations) == ["spec.resources.requests.cpu"]
    assert not validate(
        {
            "autoscaling": {"enabled": True, "maxReplicas": 3},
            "resources": {"requests": {"cpu": "100m"}},
        }
    )


def test_has_cpu_utilization_metric():
    assert has_cpu_utilization_metric([CPU_METRIC])
    assert not has_cpu_utilization_metric([])
    assert not has_cpu_utilization_metric(
        [{"type": "Pods", "pods": {"metric": {"name": "x"}}}]
    )


## Aggregation #################################################################


def test_violations_accumulate():
    """Every rule runs so all violations are reported together"""
    mc = setup_memcached(
        {
            "replicas": 2,
            "memcached": {"maxMemoryMB": 64},
            "resources": {"limits": {"memory": "64Mi"}},
            "highAvailability": {
                "podDisruptionBudget": {
                    "enabled": True,
                    "minAvailable": 1,
                    "maxUnavailable": 1,
                },
                "gracefulShutdown": {
                    "enabled": True,
                    "preStopDelaySeconds": 30,
                    "terminationGracePeriodSeconds": 10,
                },
            },
            "security": {"sasl": {"enabled": True}},
            "autoscaling": {
                "enabled": True,
                "minReplicas": 4,
                "maxReplicas": 2,
                "metrics": [CPU_METRIC],
            },
        }
    )
    violations = validate_memcached(mc)
    assert fields(violations) == [
        "spec.resources.limits.memory",
        "spec.highAvailability.podDisruptionBudget",
        "spec.highAvailability.gracefulShutdown.terminationGracePeriodSeconds",
        "spec.security.sasl.credentialsSecretRef.name",
        "spec.replicas",
        "spec.autoscaling.minReplicas",
        "spec.resources.requests.cpu",
    ]


def test_validation_error_message():
    """The aggregated error renders like the platform's invalid message"""
    single = ValidationError(
        "cache", [FieldViolation.required("spec.x", "x is required")]
    )
    assert str(single) == (
        'Memcached.memcached.c5c3.io "cache" is invalid: '
        "spec.x: Required value: x is required"
    )
    multiple = ValidationError(
        "cache",
        [
            FieldViolation.required("spec.x", "x is required"),
            FieldViolation.invalid("spec.y", 3, "too big"),
        ],
    )
    assert str(multiple) == (
        'Memcached.memcached.c5c3.io "cache" is invalid: '
        "[spec.x: Required value: x is required, spec.y: Invalid value: 3: too big]"
    )


def test_violation_to_cause():
    cause = FieldViolation.invalid("spec.replicas", 3, "bad").to_cause()
    assert cause == {
        "type": FIELD_VALUE_INVALID,
        "message": "Invalid value: 3: bad",
        "field": "spec.replicas",
    }
