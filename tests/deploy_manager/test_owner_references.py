"""
Tests for the ownerReference helpers
"""

# Local
from memcached_operator.builders.common import make_owner_reference
from memcached_operator.deploy_manager.owner_references import (
    controller_owner_uid,
    is_controlled_by,
    merge_owner_references,
)
from memcached_operator.test_helpers.helpers import TEST_INSTANCE_UID, setup_cr

## Helpers #####################################################################


def ref(uid, controller=False, name="owner"):
    return {
        "apiVersion": "v1",
        "kind": "Thing",
        "name": name,
        "uid": uid,
        "controller": controller,
    }


def obj_with_refs(*refs):
    return {"metadata": {"ownerReferences": list(refs)}}


## Tests #######################################################################


def test_make_owner_reference():
    owner_ref = make_owner_reference(setup_cr())
    assert owner_ref == {
        "apiVersion": "memcached.c5c3.io/v1beta1",
        "kind": "Memcached",
        "name": "test-instance",
        "uid": TEST_INSTANCE_UID,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def test_controller_owner_uid():
    assert controller_owner_uid(obj_with_refs(ref("a"), ref("b", True))) == "b"
    assert controller_owner_uid(obj_with_refs(ref("a"))) is None
    assert controller_owner_uid({}) is None


def test_is_controlled_by():
    obj = obj_with_refs(ref("a", True))
    assert is_controlled_by(obj, "a")
    assert not is_controlled_by(obj, "b")
    assert not is_controlled_by(obj, None)
    assert not is_controlled_by(obj_with_refs(ref("a")), "a")


def test_merge_keeps_foreign_refs():
    """Foreign references keep their place and ours is appended"""
    merged = merge_owner_references([ref("x"), ref("y")], [ref("ours", True)])
    assert [r["uid"] for r in merged] == ["x", "y", "ours"]


def test_merge_replaces_matching_ref():
    """A desired reference replaces the current one with the same uid in place"""
    merged = merge_owner_references(
        [ref("ours", False, name="old"), ref("x")],
        [ref("ours", True, name="new")],
    )
    assert [r["uid"] for r in merged] == ["ours", "x"]
    assert merged[0]["name"] == "new"
    assert merged[0]["controller"]


def test_merge_empty_current():
    assert merge_owner_references([], [ref("ours", True)]) == [ref("ours", True)]
    assert merge_owner_references(None, []) == []
