"""
Cross-field validation of Memcached documents on admission.

Each rule is evaluated independently against an already defaulted document and
returns the violations it finds. All rules always run so that a rejected write
reports every problem at once.
"""

# Standard
from dataclasses import dataclass
from typing import Any, Callable, List
import json

# First Party
import alog

# Local
from ..api import v1beta1
from ..constants import MEMORY_OVERHEAD_MB
from ..utils import format_binary_quantity, to_quantity

log = alog.use_channel("VALID")

MIB = 1024 * 1024

# Violation types as reported in admission status causes
FIELD_VALUE_INVALID = "FieldValueInvalid"
FIELD_VALUE_REQUIRED = "FieldValueRequired"

_TYPE_DESCRIPTIONS = {
    FIELD_VALUE_INVALID: "Invalid value",
    FIELD_VALUE_REQUIRED: "Required value",
}

## FieldViolation ##############################################################


@dataclass
class FieldViolation:
    """A single violated invariant, naming the offending field"""

    type: str
    field: str
    detail: str
    bad_value: Any = None

    @classmethod
    def invalid(cls, field: str, bad_value: Any, detail: str) -> "FieldViolation":
        return cls(FIELD_VALUE_INVALID, field, detail, bad_value)

    @classmethod
    def required(cls, field: str, detail: str) -> "FieldViolation":
        return cls(FIELD_VALUE_REQUIRED, field, detail)

    def body(self) -> str:
        """The message without the field path"""
        desc = _TYPE_DESCRIPTIONS.get(self.type, self.type)
        if self.type == FIELD_VALUE_INVALID:
            value = (
                json.dumps(self.bad_value)
                if isinstance(self.bad_value, str)
                else self.bad_value
            )
            desc = f"{desc}: {value}"
        return f"{desc}: {self.detail}" if self.detail else desc

    def to_cause(self) -> dict:
        return {"type": self.type, "message": self.body(), "field": self.field}

    def __str__(self):
        return f"{self.field}: {self.body()}"


## Public ######################################################################


def validate_memcached(mc: v1beta1.Memcached) -> List[FieldViolation]:
    """Run every validation rule and collect the violations

    Args:
        mc:  v1beta1.Memcached
            The (defaulted) document to validate

    Returns:
        violations:  List[FieldViolation]
            All violations found. Empty means the document is accepted.
    """
    violations = []
    for rule in _RULES:
        violations.extend(rule(mc.spec))
    log.debug("Validated %s with %d violation(s)", mc.name, len(violations))
    return violations


## Rules #######################################################################


def validate_memory_limit(spec: v1beta1.MemcachedSpec) -> List[FieldViolation]:
    """The memory limit must cover the cache ceiling plus a fixed overhead"""
    if spec.resources is None or spec.memcached is None:
        return []
    limit = (spec.resources.get("limits") or {}).get("memory")
    if limit is None:
        return []
    required = (spec.memcached.max_memory_mb + MEMORY_OVERHEAD_MB) * MIB
    try:
        limit_bytes = to_quantity(limit)
    except ValueError:
        return [
            FieldViolation.invalid(
                "spec.resources.limits.memory", str(limit), "invalid quantity"
            )
        ]
    if limit_bytes < required:
        return [
            FieldViolation.invalid(
                "spec.resources.limits.memory",
                str(limit),
                f"memory limit must be at least {format_binary_quantity(required)} "
                f"(maxMemoryMB={spec.memcached.max_memory_mb}Mi + "
                f"{MEMORY_OVERHEAD_MB}Mi overhead)",
            )
        ]
    return []


def validate_pdb(spec: v1beta1.MemcachedSpec) -> List[FieldViolation]:
    """An enabled disruption budget needs exactly one bound, and an absolute
    minAvailable must stay below a known replica count
    """
    if spec.high_availability is None:
        return []
    pdb = spec.high_availability.pod_disruption_budget
    if pdb is None or not pdb.enabled:
        return []

    path = "spec.highAvailability.podDisruptionBudget"
    has_min = pdb.min_available is not None
    has_max = pdb.max_unavailable is not None
    violations = []

    if has_min and has_max:
        violations.append(
            FieldViolation.invalid(
                path,
                "",
                "minAvailable and maxUnavailable are mutually exclusive, "
                "specify only one",
            )
        )
    if not has_min and not has_max:
        violations.append(
            FieldViolation.required(
                path,
                "one of minAvailable or maxUnavailable must be set when PDB is enabled",
            )
        )

    # Percentages and an unknown replica count skip the bounds check
    if (
        has_min
        and not has_max
        and _is_int(pdb.min_available)
        and spec.replicas is not None
        and pdb.min_available >= spec.replicas
    ):
        violations.append(
            FieldViolation.invalid(
                f"{path}.minAvailable",
                pdb.min_available,
                f"minAvailable ({pdb.min_available}) must be less than "
                f"replicas ({spec.replicas})",
            )
        )
    return violations


def validate_graceful_shutdown(spec: v1beta1.MemcachedSpec) -> List[FieldViolation]:
    """The grace period must strictly exceed the preStop delay"""
    if spec.high_availability is None:
        return []
    graceful = spec.high_availability.graceful_shutdown
    if graceful is None or not graceful.enabled:
        return []
    grace = graceful.termination_grace_period_seconds
    delay = graceful.pre_stop_delay_seconds
    if grace <= delay:
        return [
            FieldViolation.invalid(
                "spec.highAvailability.gracefulShutdown.terminationGracePeriodSeconds",
                grace,
                f"terminationGracePeriodSeconds ({grace}) must exceed "
                f"preStopDelaySeconds ({delay})",
            )
        ]
    return []


def validate_security_secret_refs(
    spec: v1beta1.MemcachedSpec,
) -> List[FieldViolation]:
    """Enabled SASL and TLS each need a named secret"""
    security = spec.security
    if security is None:
        return []
    violations = []
    if (
        security.sasl is not None
        and security.sasl.enabled
        and not security.sasl.credentials_secret_ref.name
    ):
        violations.append(
            FieldViolation.required(
                "spec.security.sasl.credentialsSecretRef.name",
                "credentialsSecretRef.name is required when SASL is enabled",
            )
        )
    if (
        security.tls is not None
        and security.tls.enabled
        and not security.tls.certificate_secret_ref.name
    ):
        violations.append(
            FieldViolation.required(
                "spec.security.tls.certificateSecretRef.name",
                "certificateSecretRef.name is required when TLS is enabled",
            )
        )
    return violations


def validate_autoscaling(spec: v1beta1.MemcachedSpec) -> List[FieldViolation]:
    """Replica exclusivity, replica bounds and the cpu request requirement of
    utilization metrics
    """
    autoscaling = spec.autoscaling
    if autoscaling is None or not autoscaling.enabled:
        return []
    violations = []

    # The presence of replicas, not its value, is what conflicts
    if spec.replicas is not None:
        violations.append(
            FieldViolation.invalid(
                "spec.replicas",
                spec.replicas,
                "spec.replicas and spec.autoscaling.enabled are mutually exclusive",
            )
        )

    if (
        autoscaling.min_replicas is not None
        and autoscaling.min_replicas > autoscaling.max_replicas
    ):
        violations.append(
            FieldViolation.invalid(
                "spec.autoscaling.minReplicas",
                autoscaling.min_replicas,
                f"minReplicas ({autoscaling.min_replicas}) must not exceed "
                f"maxReplicas ({autoscaling.max_replicas})",
            )
        )

    if has_cpu_utilization_metric(autoscaling.metrics):
        cpu_request = ((spec.resources or {}).get("requests") or {}).get("cpu")
        if cpu_request is None:
            violations.append(
                FieldViolation.required(
                    "spec.resources.requests.cpu",
                    "resources.requests.cpu is required when using CPU "
                    "utilization metrics",
                )
            )
    return violations


def has_cpu_utilization_metric(metrics: List[dict]) -> bool:
    """True if any metric is a cpu Resource metric with a Utilization target"""
    for metric in metrics:
        resource = metric.get("resource") or {}
        if (
            metric.get("type") == "Resource"
            and resource.get("name") == "cpu"
            and (resource.get("target") or {}).get("type") == "Utilization"
        ):
            return True
    return False


## Implementation Details ######################################################


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


_RULES: List[Callable[[v1beta1.MemcachedSpec], List[FieldViolation]]] = [
    validate_memory_limit,
    validate_pdb,
    validate_graceful_shutdown,
    validate_security_secret_refs,
    validate_autoscaling,
]
