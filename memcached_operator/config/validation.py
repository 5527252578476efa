"""
Checks the loaded library config against the typed declarations in
config_validation.yaml. A declaration is any mapping with a "type" key naming
one of the registered parameter types. Anything else is a nesting level.
"""

# Standard
from typing import Any, Dict, List, Optional, Type
import abc

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get

log = alog.use_channel("CONFG")

## Parameter types #############################################################

PARAM_TYPES: Dict[str, Type["ConfigParam"]] = {}


def param_type(type_name: str):
    """Register a ConfigParam subclass under the name used in the yaml"""

    def decorator(cls):
        PARAM_TYPES[type_name] = cls
        return cls

    return decorator


class ConfigParam(abc.ABC):
    """One declared config value. Subclasses set the accepted python types and
    implement the range check.
    """

    accepts: tuple = ()

    def __init__(self, optional: bool = False):
        self.optional = optional

    def check(self, value: Any) -> bool:
        if value is None and self.optional:
            return True
        if not self._accepts_type(value):
            log.warning("Unexpected type <%s>", type(value).__name__)
            return False
        if not self._in_range(value):
            log.warning("Out of range value [%s]", value)
            return False
        return True

    def _accepts_type(self, value: Any) -> bool:
        return isinstance(value, self.accepts)

    @abc.abstractmethod
    def _in_range(self, value: Any) -> bool:
        """Value checks beyond the type"""


@param_type("number")
class NumberParam(ConfigParam):
    """int or float with optional inclusive bounds"""

    accepts = (int, float)

    # pylint: disable=redefined-builtin
    def __init__(self, *, min=None, max=None, **kwargs):
        super().__init__(**kwargs)
        self.lower = min
        self.upper = max

    def _accepts_type(self, value: Any) -> bool:
        return not isinstance(value, bool) and super()._accepts_type(value)

    def _in_range(self, value: Any) -> bool:
        if self.lower is not None and value < self.lower:
            return False
        return self.upper is None or value <= self.upper


@param_type("int")
class IntParam(NumberParam):
    accepts = (int,)


@param_type("str")
class StrParam(ConfigParam):
    """str with optional length bounds"""

    accepts = (str,)

    def __init__(
        self,
        *,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.min_len = min_len
        self.max_len = max_len

    def _in_range(self, value: str) -> bool:
        if self.min_len is not None and len(value) < self.min_len:
            return False
        return self.max_len is None or len(value) <= self.max_len


@param_type("bool")
class BoolParam(ConfigParam):
    accepts = (bool,)

    def _in_range(self, value: bool) -> bool:
        return True


@param_type("enum")
class EnumParam(ConfigParam):
    """One of a fixed list of str, int or null values"""

    accepts = (str, int, type(None))

    def __init__(self, *, values: list, **kwargs):
        super().__init__(**kwargs)
        assert (
            isinstance(values, list) and values
        ), "An enum needs a non-empty list of values"
        self.values = values

    def _in_range(self, value: Any) -> bool:
        return value in self.values


## Parsing #####################################################################


def build_param(declaration: dict) -> Optional[ConfigParam]:
    """Instantiate the parameter for a declaration. None if the type name is
    not registered. Unknown or missing arguments raise TypeError.
    """
    kwargs = dict(declaration)
    param_class = PARAM_TYPES.get(str(kwargs.pop("type")))
    if param_class is None:
        return None
    return param_class(**kwargs)


def flatten_declarations(
    validation_config: dict, parents: Optional[List[str]] = None
) -> Dict[str, ConfigParam]:
    """Map each dotted key in the validation config to its parameter"""
    parents = parents or []
    params = {}
    for key, val in validation_config.items():
        if not isinstance(val, dict):
            continue
        path = parents + [key]
        param = build_param(val) if "type" in val else None
        if param is not None:
            params[constants.NESTED_DICT_DELIM.join(path)] = param
        else:
            params.update(flatten_declarations(val, path))
    return params


## Public ######################################################################


def get_invalid_params(
    config: aconfig.Config,
    validation_config: aconfig.Config,
) -> List[str]:
    """Get the dotted keys of every config value failing its declaration

    Args:
        config:  aconfig.Config
            The loaded config with any overrides applied
        validation_config:  aconfig.Config
            The parsed config_validation.yaml

    Returns:
        invalid_params:  List[str]
            Dotted keys in declaration order
    """
    invalid_params = []
    for key, param in flatten_declarations(validation_config).items():
        if not param.check(nested_get(config, key)):
            log.warning("Invalid config value for [%s]", key)
            invalid_params.append(key)
    return invalid_params
