"""
This module holds common helper functions for making testing easy
"""

# Standard
from contextlib import contextmanager
from unittest import mock
import base64
import copy
import json
import os

# First Party
import alog

# Local
from memcached_operator import constants
from memcached_operator.admission.defaulter import default_memcached
from memcached_operator.api import v1beta1
from memcached_operator.config import library_config as config_detail_dict
from memcached_operator.deploy_manager.dry_run_deploy_manager import (
    DryRunDeployManager,
)

log = alog.use_channel("TEST")


def configure_logging():
    alog.configure(
        os.environ.get("LOG_LEVEL", "off"),
        os.environ.get("LOG_FILTERS", ""),
        formatter="json"
        if os.environ.get("LOG_JSON", "").lower() == "true"
        else "pretty",
        thread_id=os.environ.get("LOG_THREAD_ID", "").lower() == "true",
    )


configure_logging()

TEST_INSTANCE_NAME = "test-instance"
TEST_INSTANCE_UID = "12345678-1234-1234-1234-123456789012"
TEST_NAMESPACE = "test"
SOME_OTHER_NAMESPACE = "somewhere"


def setup_cr(
    spec=None,
    api_version=constants.HUB_API_VERSION,
    name=TEST_INSTANCE_NAME,
    namespace=TEST_NAMESPACE,
    defaulted=False,
    **kwargs,
) -> dict:
    """Build a Memcached manifest. If defaulted, the spec is run through the
    defaulting callback the way admission would.
    """
    cr_dict = kwargs or {}
    cr_dict.setdefault("kind", constants.KIND)
    cr_dict.setdefault("apiVersion", api_version)
    cr_dict.setdefault("metadata", {}).setdefault("name", name)
    cr_dict.setdefault("metadata", {}).setdefault("namespace", namespace)
    cr_dict.setdefault("metadata", {}).setdefault("uid", TEST_INSTANCE_UID)
    cr_dict.setdefault("spec", {}).update(copy.deepcopy(spec or {}))
    if defaulted:
        assert api_version == constants.HUB_API_VERSION, "Can only default the hub"
        cr_dict = default_memcached(v1beta1.Memcached.from_dict(cr_dict)).to_dict()
    return cr_dict


def setup_memcached(spec=None, **kwargs) -> v1beta1.Memcached:
    """Build a typed hub Memcached"""
    return v1beta1.Memcached.from_dict(setup_cr(spec=spec, **kwargs))


def make_secret(name, data=None, namespace=TEST_NAMESPACE) -> dict:
    """Build a Secret manifest whose data values are base64 encoded from the
    given plain strings
    """
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "data": {
            key: base64.b64encode(val.encode("utf-8")).decode("utf-8")
            for key, val in (data or {}).items()
        },
    }


_UNSET = object()


@contextmanager
def library_config(**config_overrides):
    """Temporarily set top level library config values"""
    previous = {
        key: config_detail_dict.get(key, _UNSET) for key in config_overrides
    }
    for key, val in config_overrides.items():
        config_detail_dict[key] = val
    try:
        yield
    finally:
        for key, val in previous.items():
            if val is _UNSET:
                config_detail_dict.pop(key, None)
            else:
                config_detail_dict[key] = val


class FailOnce:
    """Failure flag that triggers only on the N'th call. Exception types are
    raised and anything else is returned as the failure value.
    """

    def __init__(self, fail_val, fail_number=1):
        self.fail_val = fail_val
        self.fail_number = fail_number
        self.call_count = 0

    def __call__(self):
        self.call_count += 1
        if self.call_count != self.fail_number:
            return None
        log.debug("Injecting failure on call %d", self.call_count)
        if isinstance(self.fail_val, type) and issubclass(self.fail_val, Exception):
            raise self.fail_val("Injected failure")
        return self.fail_val


def _inject_failure(method, fail, failure_return):
    """Wrap a deploy manager operation in a mock that fails according to the
    flag. The flag may be falsy (pass through), "assert" (raise
    AssertionError), a callable (its non-None result is the return value) or
    any other truthy value (return failure_return).
    """

    def side_effect(*args, **kwargs):
        if fail == "assert":
            raise AssertionError(f"Injected failure in {method.__name__}")
        if callable(fail):
            result = fail()
            if result is not None:
                return result
        elif fail:
            return failure_return
        return method(*args, **kwargs)

    return mock.Mock(side_effect=side_effect)


def get_condition(type_name: str, current_status: dict) -> dict:
    """Find a condition by type in a wire status. Empty dict if it is not set."""
    matches = [
        cond
        for cond in (current_status or {}).get("conditions", [])
        if cond.get("type") == type_name
    ]
    assert len(matches) <= 1, f"Found multiple condition entries for {type_name}"
    return matches[0] if matches else {}


def decode_patch(review: dict) -> list:
    """Decode the JSONPatch carried by a mutating admission response"""
    patch = review.get("response", {}).get("patch")
    if not patch:
        return []
    return json.loads(base64.b64decode(patch))


class MockDeployManager(DryRunDeployManager):
    """A DryRunDeployManager whose write and read operations are mocks, so
    tests can count calls and inject failures per operation
    """

    def __init__(
        self,
        resources=None,
        deploy_fail=False,
        deploy_raise=False,
        get_state_fail=False,
        set_status_fail=False,
        **kwargs,
    ):
        super().__init__(resources, **kwargs)
        self.deploy = _inject_failure(
            super().deploy, "assert" if deploy_raise else deploy_fail, (False, False)
        )
        self.disable = _inject_failure(super().disable, False, (False, False))
        self.get_object_current_state = _inject_failure(
            super().get_object_current_state, get_state_fail, (False, None)
        )
        self.set_status = _inject_failure(
            super().set_status, set_status_fail, (False, False)
        )

    ## Helpers for Tests #######################################################

    def _mocks(self):
        return [
            self.deploy,
            self.disable,
            self.get_object_current_state,
            self.set_status,
        ]

    def reset_call_counts(self):
        for method in self._mocks():
            method.reset_mock()

    def write_count(self) -> int:
        """Number of deploy, disable and set_status calls so far"""
        return sum(
            method.call_count
            for method in (self.deploy, self.disable, self.set_status)
        )

    def get_obj(self, kind, name, namespace=TEST_NAMESPACE, api_version=None):
        """Read straight from the in-memory store without counting a call"""
        return DryRunDeployManager.get_object_current_state(
            self, kind, name, namespace, api_version
        )[1]

    def has_obj(self, *args, **kwargs):
        return self.get_obj(*args, **kwargs) is not None

    def set_deployment_ready(
        self, name=TEST_INSTANCE_NAME, ready=1, namespace=TEST_NAMESPACE, total=None
    ):
        """Report replica counts on a Deployment as its controller would"""
        total = ready if total is None else total
        return DryRunDeployManager.set_status(
            self,
            kind="Deployment",
            name=name,
            namespace=namespace,
            status={
                "replicas": total,
                "updatedReplicas": total,
                "readyReplicas": ready,
            },
            api_version="apps/v1",
        )
