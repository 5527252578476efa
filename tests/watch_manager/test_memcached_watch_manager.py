"""
Tests for the MemcachedWatchManager
"""
# Standard
import time

# Third Party
import pytest

# Local
from memcached_operator import constants
from memcached_operator.builders import CHILD_KINDS
from memcached_operator.deploy_manager import DryRunDeployManager
from memcached_operator.test_helpers.helpers import (
    TEST_INSTANCE_NAME,
    TEST_NAMESPACE,
    library_config,
    setup_cr,
)
from memcached_operator.watch_manager import MemcachedWatchManager

## Helpers #####################################################################


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.05)
    return condition()


## Tests #######################################################################


def test_watchers_cover_every_kind():
    """One watch for Memcached, one per child kind and one for Secrets"""
    manager = MemcachedWatchManager(DryRunDeployManager(), namespace=TEST_NAMESPACE)
    watched = [(w.api_version, w.kind) for w in manager.watchers]
    assert watched[0] == (constants.HUB_API_VERSION, constants.KIND)
    for child in CHILD_KINDS:
        assert (child.api_version, child.kind) in watched
    assert ("v1", "Secret") in watched
    assert len(watched) == len(CHILD_KINDS) + 2
    assert all(w.namespace == TEST_NAMESPACE for w in manager.watchers)


def test_namespace_from_config():
    with library_config(watch_namespace=""):
        assert MemcachedWatchManager(DryRunDeployManager()).namespace is None
    with library_config(watch_namespace="ns"):
        assert MemcachedWatchManager(DryRunDeployManager()).namespace == "ns"


def test_resync_disabled():
    manager = MemcachedWatchManager(DryRunDeployManager(), resync_period_seconds=0)
    assert manager.resync is None
    assert manager.threads == manager.watchers

    manager = MemcachedWatchManager(DryRunDeployManager(), resync_period_seconds=5)
    assert manager.resync is not None
    assert manager.threads[-1] is manager.resync


@pytest.mark.timeout(20)
def test_start_reconciles_existing_resources():
    """Starting the manager converges a resource that already exists"""
    dm = DryRunDeployManager([setup_cr(defaulted=True)])
    manager = MemcachedWatchManager(
        dm, namespace=TEST_NAMESPACE, resync_period_seconds=0
    )
    manager.start_all()
    try:
        assert wait_for(
            lambda: dm.get_object_current_state(
                "Deployment", TEST_INSTANCE_NAME, TEST_NAMESPACE, "apps/v1"
            )[1]
            is not None
        )
        assert wait_for(
            lambda: dm.get_object_current_state(
                constants.KIND,
                TEST_INSTANCE_NAME,
                TEST_NAMESPACE,
                constants.HUB_API_VERSION,
            )[1].get("status")
        )
    finally:
        manager.stop_all()
    assert manager.pool.stopped
    assert all(thread.should_stop() for thread in manager.threads)
