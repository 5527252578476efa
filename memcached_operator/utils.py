"""
Common utilities shared across the library
"""

# Standard
from decimal import Decimal
from typing import Any, Union
import datetime

# Third Party
from kubernetes.utils.quantity import parse_quantity

# First Party
import alog

# Local
from . import constants

log = alog.use_channel("OPUTL")

# Sentinel for missing dict values
__MISSING__ = "__MISSING__"

## Dicts #######################################################################


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Helper to get values from a dict using 'foo.bar' key notation

    Args:
        dct:  dict
            The dict to read from
        key:  str
            Key that may contain '.' notation indicating dict nesting

    Returns:
        val:  Any
            Whatever is found at the given key or dflt if the key is not found.
            This includes missing intermediate dicts.
    """
    parts = key.split(constants.NESTED_DICT_DELIM)
    for i, part in enumerate(parts[:-1]):
        dct = dct.get(part, __MISSING__)
        if dct is __MISSING__:
            return dflt
        if not isinstance(dct, dict):
            raise TypeError(
                f"Intermediate key {constants.NESTED_DICT_DELIM.join(parts[:i])} is not a dict"
            )
    return dct.get(parts[-1], dflt)


# Adapted from kubernetes but modified for None pruning
# https://github.com/kubernetes-client/python/blob/d67bc8c2bdb89b29c17c1ba0edb03a48d977c0e2/kubernetes/client/api_client.py#L202
def sanitize_for_serialization(obj):  # pylint: disable=too-many-return-statements
    """Builds a JSON-ready object.
    If obj is None, return None.
    If obj is str, int, float, bool, return directly.
    If obj is datetime.datetime, datetime.date
        convert to string in iso8601 format.
    If obj is list, sanitize each element in the list.
    If obj is dict, return the dict with None values pruned.
    If obj is OpenAPI model, return the properties dict.
    :param obj: The data to serialize.
    :return: The serialized form of data.
    """
    if obj is None:  # pylint: disable=no-else-return
        return None
    elif isinstance(obj, (float, bool, bytes, str, int)):
        return obj
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, list):
        return [sanitize_for_serialization(sub_obj) for sub_obj in obj]
    elif isinstance(obj, tuple):
        return tuple(sanitize_for_serialization(sub_obj) for sub_obj in obj)
    elif isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()

    if isinstance(obj, dict):
        obj_dict = obj
    elif hasattr(obj, "attribute_map"):
        obj_dict = {}
        for attr, name in obj.attribute_map.items():
            if hasattr(obj, attr):
                obj_dict[name] = getattr(obj, attr)
    else:
        obj_dict = dict(obj)

    # Prune fields which are None but keep empty arrays or dictionaries
    return_dict = {}
    for key, val in obj_dict.items():
        updated_obj = sanitize_for_serialization(val)
        if updated_obj is not None:
            return_dict[key] = updated_obj
    return return_dict


def project_onto(live: Any, desired: Any) -> Any:
    """Project a live value onto the shape of a desired value. Dict keys that
    the desired value does not name are dropped from the live value, and keys
    that the desired value names but the live value lacks become None. Lists of
    equal length are projected element-wise. An empty live dict or list where
    None is desired counts as absent, since the platform writes some absent
    structures back empty.

    Args:
        live:  Any
            The value read back from the cluster
        desired:  Any
            The value that the operator wants to be present

    Returns:
        projected:  Any
            The live value restricted to the fields the desired value tracks
    """
    if desired is None and isinstance(live, (dict, list)) and not live:
        return None
    if isinstance(desired, dict):
        if not isinstance(live, dict):
            return live
        return {key: project_onto(live.get(key), val) for key, val in desired.items()}
    if isinstance(desired, list):
        if not isinstance(live, list) or len(live) != len(desired):
            return live
        return [project_onto(l_val, d_val) for l_val, d_val in zip(live, desired)]
    return live


## Quantities ##################################################################

_BINARY_SUFFIXES = ["Ei", "Pi", "Ti", "Gi", "Mi", "Ki"]


def to_quantity(value: Union[str, int, float]) -> Decimal:
    """Parse a kubernetes resource quantity into a Decimal count of base units"""
    return parse_quantity(value)


def format_binary_quantity(value: Union[int, Decimal]) -> str:
    """Render a byte count with the largest binary suffix that represents it
    exactly (e.g. 100663296 -> "96Mi")
    """
    value = int(value)
    if value == 0:
        return "0"
    for power, suffix in zip(range(6, 0, -1), _BINARY_SUFFIXES):
        unit = 1024**power
        if value % unit == 0:
            return f"{value // unit}{suffix}"
    return str(value)


# Maps whose values are all quantities, and the quantity keys of a metric target
_QUANTITY_MAPS = ("limits", "requests")
_TARGET_QUANTITY_KEYS = ("value", "averageValue")


def canonical_quantities(obj: Any, parent_key: str = "") -> Any:
    """Copy obj with every resource quantity parsed to a Decimal, so that the
    same amount written two ways ("0.5" and "500m") compares equal. Values
    that do not parse are kept as written.
    """
    if isinstance(obj, dict):
        out = {}
        for key, val in obj.items():
            if parent_key in _QUANTITY_MAPS or (
                parent_key == "target" and key in _TARGET_QUANTITY_KEYS
            ):
                out[key] = _parse_if_quantity(val)
            else:
                out[key] = canonical_quantities(val, key)
        return out
    if isinstance(obj, list):
        return [canonical_quantities(item) for item in obj]
    return obj


def _parse_if_quantity(value: Any) -> Any:
    if not isinstance(value, (str, int, float, Decimal)) or isinstance(value, bool):
        return value
    try:
        return to_quantity(value)
    except ValueError:
        return value
