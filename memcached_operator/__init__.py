"""
Package exports
"""

# Local
from . import api, config, reconcile, status, watch_manager
from .admission import FieldViolation, default_memcached, validate_memcached
from .api.registry import SchemeRegistry, build_registry
from .deploy_manager import DeployManagerBase
from .exceptions import assert_buildable, assert_cluster, assert_config
from .reconcile import MemcachedReconciler, ReconciliationResult, ResourceKey
