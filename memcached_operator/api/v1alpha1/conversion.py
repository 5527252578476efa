"""
Conversion between the v1alpha1 spoke and the v1beta1 hub.

Both directions copy field by field. Optional groups are only allocated on the
destination when present on the source so that an absent group stays absent.
Opaque platform structures are deep copied so the two documents never share
mutable state.
"""

# Standard
from typing import Optional
import copy

# First Party
import alog

# Local
from ...exceptions import ConversionError
from .. import v1beta1
from . import types as v1alpha1

log = alog.use_channel("CONVT")


## Public ######################################################################


def convert_to_hub(src: v1alpha1.Memcached) -> v1beta1.Memcached:
    """Convert a v1alpha1 Memcached to the hub revision

    Args:
        src:  v1alpha1.Memcached
            The spoke document

    Returns:
        dst:  v1beta1.Memcached
            A new hub document holding the same content
    """
    if not isinstance(src, v1alpha1.Memcached):
        raise ConversionError(
            f"expected v1alpha1.Memcached but got {_type_name(src)}"
        )
    log.debug2("Converting %s to %s", src.name, v1beta1.API_VERSION)
    dst = v1beta1.Memcached(metadata=copy.deepcopy(src.metadata))
    dst.spec = _convert_spec(src.spec, v1beta1)
    dst.status = _convert_status(src.status, v1beta1)
    return dst


def convert_from_hub(src: v1beta1.Memcached) -> v1alpha1.Memcached:
    """Convert a hub Memcached to the v1alpha1 revision

    Args:
        src:  v1beta1.Memcached
            The hub document

    Returns:
        dst:  v1alpha1.Memcached
            A new spoke document holding the same content
    """
    if not isinstance(src, v1beta1.Memcached):
        raise ConversionError(f"expected v1beta1.Memcached but got {_type_name(src)}")
    log.debug2("Converting %s to %s", src.name, v1alpha1.API_VERSION)
    dst = v1alpha1.Memcached(metadata=copy.deepcopy(src.metadata))
    dst.spec = _convert_spec(src.spec, v1alpha1)
    dst.status = _convert_status(src.status, v1alpha1)
    return dst


## Implementation Details ######################################################


def _type_name(obj) -> str:
    """Name a type as <revision>.<Class> for the api types, plain name else"""
    obj_type = type(obj)
    api_package = __package__.rsplit(".", 1)[0]
    if obj_type.__module__.startswith(api_package + "."):
        revision = obj_type.__module__[len(api_package) + 1 :].split(".")[0]
        return f"{revision}.{obj_type.__name__}"
    return obj_type.__name__


def _convert_spec(src, dst_types):
    return dst_types.MemcachedSpec(
        replicas=src.replicas,
        image=src.image,
        resources=copy.deepcopy(src.resources),
        memcached=_convert_memcached_config(src.memcached, dst_types),
        high_availability=_convert_high_availability(
            src.high_availability, dst_types
        ),
        monitoring=_convert_monitoring(src.monitoring, dst_types),
        security=_convert_security(src.security, dst_types),
        autoscaling=_convert_autoscaling(src.autoscaling, dst_types),
        service=_convert_service(src.service, dst_types),
    )


def _convert_memcached_config(src, dst_types):
    if src is None:
        return None
    return dst_types.MemcachedConfig(
        max_memory_mb=src.max_memory_mb,
        max_connections=src.max_connections,
        threads=src.threads,
        max_item_size=src.max_item_size,
        verbosity=src.verbosity,
        extra_args=list(src.extra_args),
    )


def _convert_high_availability(src, dst_types):
    if src is None:
        return None
    dst = dst_types.HighAvailabilitySpec(
        anti_affinity_preset=src.anti_affinity_preset,
        topology_spread_constraints=copy.deepcopy(src.topology_spread_constraints),
    )
    if src.pod_disruption_budget is not None:
        pdb = src.pod_disruption_budget
        dst.pod_disruption_budget = dst_types.PDBSpec(
            enabled=pdb.enabled,
            min_available=pdb.min_available,
            max_unavailable=pdb.max_unavailable,
        )
    if src.graceful_shutdown is not None:
        grace = src.graceful_shutdown
        dst.graceful_shutdown = dst_types.GracefulShutdownSpec(
            enabled=grace.enabled,
            pre_stop_delay_seconds=grace.pre_stop_delay_seconds,
            termination_grace_period_seconds=grace.termination_grace_period_seconds,
        )
    return dst


def _convert_monitoring(src, dst_types):
    if src is None:
        return None
    dst = dst_types.MonitoringSpec(
        enabled=src.enabled,
        exporter_image=src.exporter_image,
        exporter_resources=copy.deepcopy(src.exporter_resources),
    )
    if src.service_monitor is not None:
        dst.service_monitor = dst_types.ServiceMonitorSpec(
            additional_labels=dict(src.service_monitor.additional_labels),
            interval=src.service_monitor.interval,
            scrape_timeout=src.service_monitor.scrape_timeout,
        )
    return dst


def _convert_security(src, dst_types):
    if src is None:
        return None
    dst = dst_types.SecuritySpec(
        pod_security_context=copy.deepcopy(src.pod_security_context),
        container_security_context=copy.deepcopy(src.container_security_context),
    )
    if src.sasl is not None:
        dst.sasl = dst_types.SASLSpec(
            enabled=src.sasl.enabled,
            credentials_secret_ref=_convert_secret_ref(
                src.sasl.credentials_secret_ref, dst_types
            ),
        )
    if src.tls is not None:
        dst.tls = dst_types.TLSSpec(
            enabled=src.tls.enabled,
            certificate_secret_ref=_convert_secret_ref(
                src.tls.certificate_secret_ref, dst_types
            ),
            enable_client_cert=src.tls.enable_client_cert,
        )
    if src.network_policy is not None:
        dst.network_policy = dst_types.NetworkPolicySpec(
            enabled=src.network_policy.enabled,
            allowed_sources=copy.deepcopy(src.network_policy.allowed_sources),
        )
    return dst


def _convert_secret_ref(src, dst_types):
    return dst_types.SecretReference(name=src.name)


def _convert_autoscaling(src, dst_types):
    if src is None:
        return None
    return dst_types.AutoscalingSpec(
        enabled=src.enabled,
        min_replicas=src.min_replicas,
        max_replicas=src.max_replicas,
        metrics=copy.deepcopy(src.metrics),
        behavior=copy.deepcopy(src.behavior),
    )


def _convert_service(src, dst_types) -> Optional[object]:
    if src is None:
        return None
    return dst_types.ServiceSpec(annotations=dict(src.annotations))


def _convert_status(src, dst_types):
    return dst_types.MemcachedStatus(
        conditions=[
            dst_types.Condition(
                type=cond.type,
                status=cond.status,
                reason=cond.reason,
                message=cond.message,
                last_transition_time=cond.last_transition_time,
                observed_generation=cond.observed_generation,
            )
            for cond in src.conditions
        ],
        ready_replicas=src.ready_replicas,
        observed_generation=src.observed_generation,
    )
