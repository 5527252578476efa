"""
Pure builders mapping a Memcached to the full desired form of each child
object kind
"""

# Standard
from dataclasses import dataclass
from typing import Callable

# Local
from ..api import v1beta1
from . import deployment, hpa, networkpolicy, pdb, service, servicemonitor
from .common import hpa_enabled, labels_for_memcached, make_owner_reference
from .deployment import build_deployment, build_memcached_args
from .hpa import build_hpa
from .networkpolicy import build_network_policy, network_policy_enabled
from .pdb import build_pdb, pdb_enabled
from .secret import compute_secret_hash, referenced_secret_names
from .service import build_service
from .servicemonitor import build_service_monitor, service_monitor_enabled


@dataclass(frozen=True)
class ChildKind:
    """A kind of child object along with when it exists and how it is built.
    The build function receives the owner and the hash of its secrets.
    """

    kind: str
    api_version: str
    is_enabled: Callable[[v1beta1.Memcached], bool]
    build: Callable[[v1beta1.Memcached, str], dict]


def _always(_: v1beta1.Memcached) -> bool:
    return True


# Children in the order they are reconciled
CHILD_KINDS = [
    ChildKind(deployment.KIND, deployment.API_VERSION, _always, build_deployment),
    ChildKind(
        service.KIND, service.API_VERSION, _always, lambda mc, _: build_service(mc)
    ),
    ChildKind(pdb.KIND, pdb.API_VERSION, pdb_enabled, lambda mc, _: build_pdb(mc)),
    ChildKind(hpa.KIND, hpa.API_VERSION, hpa_enabled, lambda mc, _: build_hpa(mc)),
    ChildKind(
        servicemonitor.KIND,
        servicemonitor.API_VERSION,
        service_monitor_enabled,
        lambda mc, _: build_service_monitor(mc),
    ),
    ChildKind(
        networkpolicy.KIND,
        networkpolicy.API_VERSION,
        network_policy_enabled,
        lambda mc, _: build_network_policy(mc),
    ),
]
