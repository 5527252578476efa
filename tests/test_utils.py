"""
Tests for functions in memcached_operator.utils
"""

# Standard
from decimal import Decimal
import datetime

# Third Party
import pytest

# Local
from memcached_operator import utils

## nested_get ##################################################################


def test_nested_get():
    """Make sure that nested_get works as expected"""
    dct = {"foo": {"bar": {"baz": 1}}, "top": "level"}
    assert utils.nested_get(dct, "foo.bar.baz") == 1
    assert utils.nested_get(dct, "top") == "level"
    assert utils.nested_get(dct, "foo.bar") == {"baz": 1}
    assert utils.nested_get(dct, "foo.missing") is None
    assert utils.nested_get(dct, "missing.bar.baz", "dflt") == "dflt"


def test_nested_get_intermediate_not_dict():
    with pytest.raises(TypeError):
        utils.nested_get({"foo": "bar"}, "foo.bar.baz")


## sanitize_for_serialization ##################################################


class AttributeMapped:
    """Minimal stand in for a kubernetes client model"""

    attribute_map = {"api_version": "apiVersion", "kind": "kind"}

    def __init__(self, api_version, kind=None):
        self.api_version = api_version
        self.kind = kind


def test_sanitize_for_serialization_types():
    """None values are pruned and every other type is made JSON-ready"""
    output_dict = utils.sanitize_for_serialization(
        {
            "kind": "Foo",
            "metadata": {"name": "test"},
            "spec": {
                "none": None,
                "should_be_empty": {
                    "null": None,
                },
                "list": ["listitem", None],
                "tuple": ("tupleitem",),
                "date": datetime.datetime(2020, 1, 1),
                "decimal": Decimal("1.5"),
                "model": AttributeMapped("v1"),
                "emptyList": [],
            },
        },
    )
    assert output_dict == {
        "kind": "Foo",
        "metadata": {"name": "test"},
        "spec": {
            "should_be_empty": {},
            "list": ["listitem", None],
            "tuple": ("tupleitem",),
            "date": "2020-01-01T00:00:00",
            "decimal": "1.5",
            "model": {"apiVersion": "v1"},
            "emptyList": [],
        },
    }


def test_sanitize_for_serialization_does_not_mutate():
    obj = {"a": {"b": None}}
    utils.sanitize_for_serialization(obj)
    assert obj == {"a": {"b": None}}


## project_onto ################################################################


def test_project_onto_drops_untracked_keys():
    """Fields the desired value does not name are ignored"""
    live = {"spec": {"replicas": 3, "progressDeadlineSeconds": 600}, "status": {}}
    desired = {"spec": {"replicas": 3}}
    assert utils.project_onto(live, desired) == {"spec": {"replicas": 3}}


def test_project_onto_missing_keys_become_none():
    live = {"spec": {}}
    desired = {"spec": {"replicas": 3, "paused": None}}
    assert utils.project_onto(live, desired) == {
        "spec": {"replicas": None, "paused": None}
    }


def test_project_onto_lists():
    """Equal length lists are projected element-wise, others are kept as is"""
    live = [{"name": "a", "extra": 1}, {"name": "b", "extra": 2}]
    desired = [{"name": "a"}, {"name": "b"}]
    assert utils.project_onto(live, desired) == desired
    assert utils.project_onto(live, [{"name": "a"}]) == live


def test_project_onto_empty_live_counts_as_absent():
    """An empty structure written back by the platform matches a None marker,
    a populated one does not
    """
    desired = {"securityContext": None, "volumes": None}
    assert utils.project_onto({"securityContext": {}, "volumes": []}, desired) == {
        "securityContext": None,
        "volumes": None,
    }
    assert utils.project_onto({"securityContext": {"runAsUser": 1}}, desired) == {
        "securityContext": {"runAsUser": 1},
        "volumes": None,
    }


def test_project_onto_type_mismatch():
    assert utils.project_onto("scalar", {"a": 1}) == "scalar"
    assert utils.project_onto({"a": 1}, "scalar") == {"a": 1}
    assert utils.project_onto(None, {"a": 1}) is None


## Quantities ##################################################################


@pytest.mark.parametrize(
    ["quantity", "expected"],
    [
        ("96Mi", Decimal(96 * 1024**2)),
        ("1Gi", Decimal(1024**3)),
        ("100M", Decimal(100 * 1000**2)),
        ("512", Decimal(512)),
        (1024, Decimal(1024)),
    ],
)
def test_to_quantity(quantity, expected):
    assert utils.to_quantity(quantity) == expected


def test_to_quantity_invalid():
    with pytest.raises(ValueError):
        utils.to_quantity("lots")


@pytest.mark.parametrize(
    ["value", "expected"],
    [
        (0, "0"),
        (1024, "1Ki"),
        (96 * 1024**2, "96Mi"),
        (1536 * 1024**2, "1536Mi"),
        (2 * 1024**3, "2Gi"),
        (1000, "1000"),
        (Decimal(1024**4), "1Ti"),
    ],
)
def test_format_binary_quantity(value, expected):
    assert utils.format_binary_quantity(value) == expected


def test_canonical_quantities():
    """Equal amounts written differently compare equal once canonical"""
    desired = {
        "resources": {"requests": {"cpu": "0.5", "memory": "1024Mi"}},
        "target": {"type": "AverageValue", "averageValue": "1"},
    }
    live = {
        "resources": {"requests": {"cpu": "500m", "memory": "1Gi"}},
        "target": {"type": "AverageValue", "averageValue": "1000m"},
    }
    assert utils.canonical_quantities(desired) == utils.canonical_quantities(live)


def test_canonical_quantities_leaves_other_values():
    """Only quantity positions are parsed, and unparseable values are kept"""
    obj = {
        "args": ["-m", "64"],
        "limits": {"memory": "lots", "cpu": None},
        "target": {"type": "Utilization", "averageUtilization": 80},
    }
    assert utils.canonical_quantities(obj) == obj
