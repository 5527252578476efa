"""
Builder for the Deployment that runs the cache pods
"""

# Standard
from typing import List, Optional
import copy

# First Party
import alog

# Local
from .. import constants
from ..api import v1beta1
from .common import (
    child_metadata,
    hpa_enabled,
    labels_for_memcached,
    monitoring_enabled,
    sasl_enabled,
    tls_enabled,
)

log = alog.use_channel("BLDEP")

KIND = "Deployment"
API_VERSION = "apps/v1"

# Fallbacks for fields that defaulting normally fills
_DEFAULT_IMAGE = "memcached:1.6"
_DEFAULT_EXPORTER_IMAGE = "prom/memcached-exporter:v0.15.4"
_DEFAULT_PRE_STOP_DELAY_SECONDS = 10

# The platform writes this on every pod spec that leaves it unset
POD_TERMINATION_GRACE_PERIOD_SECONDS = 30

_HOSTNAME_TOPOLOGY_KEY = "kubernetes.io/hostname"


def build_deployment(
    mc: v1beta1.Memcached,
    secret_hash: str = "",
) -> dict:
    """Build the full desired Deployment for the given Memcached. Fields that
    are switched off by the spec are present with a None value so that a live
    value left over from a previous spec is detected as drift. Fields the
    platform always fills carry the platform default instead.

    Args:
        mc:  v1beta1.Memcached
            The owning resource
        secret_hash:  str
            Hash of the referenced secrets' data, stamped on the pod template

    Returns:
        deployment:  dict
            The Deployment manifest
    """
    labels = labels_for_memcached(mc.name)
    restart_trigger = (mc.metadata.get("annotations") or {}).get(
        constants.RESTART_TRIGGER_ANNOTATION_NAME, ""
    )
    pre_stop, grace_period = _graceful_shutdown(mc)
    container_security_context = copy.deepcopy(
        mc.spec.security.container_security_context if mc.spec.security else None
    )

    containers = [
        _memcached_container(mc, pre_stop, container_security_context),
    ]
    if monitoring_enabled(mc):
        containers.append(_exporter_container(mc, container_security_context))

    spec = {
        "selector": {"matchLabels": labels},
        "strategy": {
            "type": "RollingUpdate",
            "rollingUpdate": {"maxSurge": 1, "maxUnavailable": 0},
        },
        "template": {
            "metadata": {
                "labels": labels,
                "annotations": _pod_annotations(secret_hash, restart_trigger),
            },
            "spec": {
                "affinity": _anti_affinity(mc),
                "topologySpreadConstraints": _topology_spread_constraints(mc),
                "terminationGracePeriodSeconds": grace_period,
                "securityContext": copy.deepcopy(
                    mc.spec.security.pod_security_context
                    if mc.spec.security
                    else None
                ),
                "containers": containers,
                "volumes": _volumes(mc),
            },
        },
    }

    # The autoscaler owns the replica count when enabled, so it is left
    # untracked rather than marked for removal
    if not hpa_enabled(mc):
        spec["replicas"] = mc.spec.replicas if mc.spec.replicas is not None else 1

    log.debug3("Built Deployment for %s", mc.name)
    return {
        "apiVersion": API_VERSION,
        "kind": KIND,
        "metadata": child_metadata(mc, labels),
        "spec": spec,
    }


def build_memcached_args(
    config: Optional[v1beta1.MemcachedConfig],
    sasl: Optional[v1beta1.SASLSpec] = None,
    tls: Optional[v1beta1.TLSSpec] = None,
) -> List[str]:
    """Build the memcached process arguments. Zero values fall back to the
    defaults so that an undefaulted document still yields a runnable process.
    """
    config = config or v1beta1.MemcachedConfig()
    args = [
        "-m",
        str(config.max_memory_mb or 64),
        "-c",
        str(config.max_connections or 1024),
        "-t",
        str(config.threads or 4),
        "-I",
        config.max_item_size or "1m",
    ]
    if config.verbosity == 1:
        args.append("-v")
    elif config.verbosity == 2:
        args.append("-vv")

    if sasl is not None and sasl.enabled:
        args.extend(
            ["-Y", f"{constants.SASL_MOUNT_PATH}/{constants.SASL_PASSWORD_FILE_KEY}"]
        )

    if tls is not None and tls.enabled:
        args.extend(
            [
                "-Z",
                "-o",
                f"ssl_chain_cert={constants.TLS_MOUNT_PATH}/tls.crt",
                "-o",
                f"ssl_key={constants.TLS_MOUNT_PATH}/tls.key",
            ]
        )
        if tls.enable_client_cert:
            args.extend(["-o", f"ssl_ca_cert={constants.TLS_MOUNT_PATH}/ca.crt"])

    args.extend(config.extra_args)
    return args


## Implementation Details ######################################################


def _memcached_container(
    mc: v1beta1.Memcached,
    pre_stop: Optional[dict],
    security_context: Optional[dict],
) -> dict:
    security = mc.spec.security
    ports = [
        {
            "name": constants.MEMCACHED_PORT_NAME,
            "containerPort": constants.MEMCACHED_PORT,
            "protocol": "TCP",
        }
    ]
    if tls_enabled(mc):
        ports.append(
            {
                "name": constants.TLS_PORT_NAME,
                "containerPort": constants.TLS_PORT,
                "protocol": "TCP",
            }
        )

    volume_mounts = []
    if sasl_enabled(mc):
        volume_mounts.append(
            {
                "name": constants.SASL_VOLUME_NAME,
                "mountPath": constants.SASL_MOUNT_PATH,
                "readOnly": True,
            }
        )
    if tls_enabled(mc):
        volume_mounts.append(
            {
                "name": constants.TLS_VOLUME_NAME,
                "mountPath": constants.TLS_MOUNT_PATH,
                "readOnly": True,
            }
        )

    return {
        "name": "memcached",
        "image": mc.spec.image or _DEFAULT_IMAGE,
        "args": build_memcached_args(
            mc.spec.memcached,
            security.sasl if security else None,
            security.tls if security else None,
        ),
        "resources": copy.deepcopy(mc.spec.resources or {}),
        "lifecycle": pre_stop,
        "securityContext": security_context,
        "volumeMounts": volume_mounts or None,
        "ports": ports,
        "livenessProbe": _tcp_probe(initial_delay_seconds=10, period_seconds=10),
        "readinessProbe": _tcp_probe(initial_delay_seconds=5, period_seconds=5),
    }


def _exporter_container(
    mc: v1beta1.Memcached, security_context: Optional[dict]
) -> dict:
    monitoring = mc.spec.monitoring
    return {
        "name": "exporter",
        "image": monitoring.exporter_image or _DEFAULT_EXPORTER_IMAGE,
        "resources": copy.deepcopy(monitoring.exporter_resources or {}),
        "securityContext": copy.deepcopy(security_context),
        "ports": [
            {
                "name": constants.METRICS_PORT_NAME,
                "containerPort": constants.METRICS_PORT,
                "protocol": "TCP",
            }
        ],
    }


def _tcp_probe(initial_delay_seconds: int, period_seconds: int) -> dict:
    return {
        "tcpSocket": {"port": constants.MEMCACHED_PORT_NAME},
        "initialDelaySeconds": initial_delay_seconds,
        "periodSeconds": period_seconds,
    }


def _anti_affinity(mc: v1beta1.Memcached) -> Optional[dict]:
    high_availability = mc.spec.high_availability
    if high_availability is None or high_availability.anti_affinity_preset is None:
        return None

    term = {
        "topologyKey": _HOSTNAME_TOPOLOGY_KEY,
        "labelSelector": {
            "matchLabels": {
                constants.LABEL_NAME: constants.APP_NAME,
                constants.LABEL_INSTANCE: mc.name,
            }
        },
    }
    preset = high_availability.anti_affinity_preset
    if preset == v1beta1.ANTI_AFFINITY_SOFT:
        return {
            "podAntiAffinity": {
                "preferredDuringSchedulingIgnoredDuringExecution": [
                    {"weight": 100, "podAffinityTerm": term}
                ]
            }
        }
    if preset == v1beta1.ANTI_AFFINITY_HARD:
        return {
            "podAntiAffinity": {
                "requiredDuringSchedulingIgnoredDuringExecution": [term]
            }
        }
    log.warning("Unknown anti-affinity preset %s on %s", preset, mc.name)
    return None


def _topology_spread_constraints(mc: v1beta1.Memcached) -> Optional[List[dict]]:
    high_availability = mc.spec.high_availability
    if high_availability is None or not high_availability.topology_spread_constraints:
        return None
    return copy.deepcopy(high_availability.topology_spread_constraints)


def _graceful_shutdown(mc: v1beta1.Memcached):
    """Get the preStop lifecycle hook and the termination grace period. When
    graceful shutdown is off there is no hook and the grace period is the
    platform default.
    """
    high_availability = mc.spec.high_availability
    if (
        high_availability is None
        or high_availability.graceful_shutdown is None
        or not high_availability.graceful_shutdown.enabled
    ):
        return None, POD_TERMINATION_GRACE_PERIOD_SECONDS
    graceful = high_availability.graceful_shutdown
    delay = graceful.pre_stop_delay_seconds or _DEFAULT_PRE_STOP_DELAY_SECONDS
    grace = (
        graceful.termination_grace_period_seconds
        or POD_TERMINATION_GRACE_PERIOD_SECONDS
    )
    lifecycle = {"preStop": {"exec": {"command": ["sleep", str(delay)]}}}
    return lifecycle, grace


def _volumes(mc: v1beta1.Memcached) -> Optional[List[dict]]:
    volumes = []
    if sasl_enabled(mc):
        volumes.append(
            {
                "name": constants.SASL_VOLUME_NAME,
                "secret": {
                    "secretName": mc.spec.security.sasl.credentials_secret_ref.name,
                    "items": [
                        {
                            "key": constants.SASL_PASSWORD_FILE_KEY,
                            "path": constants.SASL_PASSWORD_FILE_KEY,
                        }
                    ],
                },
            }
        )
    if tls_enabled(mc):
        tls = mc.spec.security.tls
        items = [
            {"key": "tls.crt", "path": "tls.crt"},
            {"key": "tls.key", "path": "tls.key"},
        ]
        if tls.enable_client_cert:
            items.append({"key": "ca.crt", "path": "ca.crt"})
        volumes.append(
            {
                "name": constants.TLS_VOLUME_NAME,
                "secret": {
                    "secretName": tls.certificate_secret_ref.name,
                    "items": items,
                },
            }
        )
    return volumes or None


def _pod_annotations(secret_hash: str, restart_trigger: str) -> Optional[dict]:
    if not secret_hash and not restart_trigger:
        return None
    annotations = {}
    if secret_hash:
        annotations[constants.SECRET_HASH_ANNOTATION_NAME] = secret_hash
    if restart_trigger:
        annotations[constants.RESTART_TRIGGER_ANNOTATION_NAME] = restart_trigger
    return annotations
