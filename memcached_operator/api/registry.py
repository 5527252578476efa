"""
The SchemeRegistry resolves documents to their typed classes and routes
conversion and admission callbacks by schema revision. One registry is built at
process start by build_registry and handed to whatever needs type resolution.
"""

# Standard
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

# First Party
import alog

# Local
from .. import constants
from ..admission.defaulter import default_memcached
from ..admission.validator import FieldViolation, validate_memcached
from ..exceptions import ConversionError
from . import v1alpha1, v1beta1

log = alog.use_channel("SCHEM")

## Types #######################################################################

DefaultFn = Callable[[Any], Any]
ValidateFn = Callable[[Any], List[FieldViolation]]
ConvertFn = Callable[[Any], Any]


@dataclass(frozen=True)
class AdmissionCallbacks:
    """The defaulting and validation callbacks for one schema revision"""

    default_fn: DefaultFn
    validate_fn: ValidateFn


@dataclass(frozen=True)
class ConversionPair:
    """The conversion functions between one spoke revision and the hub"""

    to_hub: ConvertFn
    from_hub: ConvertFn


## SchemeRegistry ##############################################################


class SchemeRegistry:
    """Registry of document types, their conversions and admission callbacks"""

    def __init__(self):
        self._types: Dict[Tuple[str, str], type] = {}
        self._conversions: Dict[str, ConversionPair] = {}
        self._admission: Dict[str, AdmissionCallbacks] = {}
        self._hub_api_version: Optional[str] = None

    ## Registration ##

    def register_type(
        self, api_version: str, kind: str, cls: type, hub: bool = False
    ):
        """Register the class for a given apiVersion and kind. Exactly one
        revision may be registered as the hub.
        """
        self._types[(api_version, kind)] = cls
        if hub:
            if self._hub_api_version not in (None, api_version):
                raise ConversionError(
                    f"hub revision already registered as {self._hub_api_version}"
                )
            self._hub_api_version = api_version
        log.debug2("Registered %s/%s", api_version, kind)

    def register_conversion(
        self, api_version: str, to_hub: ConvertFn, from_hub: ConvertFn
    ):
        self._conversions[api_version] = ConversionPair(to_hub, from_hub)

    def register_admission(self, api_version: str, callbacks: AdmissionCallbacks):
        self._admission[api_version] = callbacks

    ## Lookup ##

    @property
    def hub_api_version(self) -> str:
        return self._hub_api_version

    @property
    def api_versions(self) -> List[str]:
        return sorted({api_version for api_version, _ in self._types})

    def lookup(self, api_version: str, kind: str) -> type:
        """Get the class registered for the given apiVersion and kind"""
        cls = self._types.get((api_version, kind))
        if cls is None:
            raise ConversionError(f"no type registered for {api_version}/{kind}")
        return cls

    def parse(self, data: dict) -> Any:
        """Parse a wire document into the class registered for its apiVersion
        and kind
        """
        if not isinstance(data, dict):
            raise ConversionError(
                f"malformed document: expected an object but got {type(data).__name__}"
            )
        cls = self.lookup(data.get("apiVersion"), data.get("kind"))
        return cls.from_dict(data)

    def admission_callbacks(self, api_version: str) -> AdmissionCallbacks:
        callbacks = self._admission.get(api_version)
        if callbacks is None:
            raise ConversionError(f"no admission callbacks for {api_version}")
        return callbacks

    ## Conversion ##

    def to_hub(self, doc: Any) -> Any:
        """Convert a typed document of any registered revision to the hub"""
        if doc.api_version == self._hub_api_version:
            return doc
        return self._conversion(doc.api_version).to_hub(doc)

    def from_hub(self, hub: Any, api_version: str) -> Any:
        """Convert a hub document to the given revision"""
        if api_version == self._hub_api_version:
            return hub
        return self._conversion(api_version).from_hub(hub)

    def convert(self, doc: Any, desired_api_version: str) -> Any:
        """Convert a typed document to the desired revision through the hub"""
        if doc.api_version == desired_api_version:
            return doc
        return self.from_hub(self.to_hub(doc), desired_api_version)

    ## Implementation Details ##

    def _conversion(self, api_version: str) -> ConversionPair:
        pair = self._conversions.get(api_version)
        if pair is None:
            raise ConversionError(f"no conversion registered for {api_version}")
        return pair


## Construction ################################################################


def spoke_admission_callbacks(
    to_hub: ConvertFn,
    from_hub: ConvertFn,
    hub_callbacks: AdmissionCallbacks,
) -> AdmissionCallbacks:
    """Wrap the hub callbacks so that a spoke revision is defaulted and
    validated by converting it to the hub and back
    """

    def default_fn(doc):
        return from_hub(hub_callbacks.default_fn(to_hub(doc)))

    def validate_fn(doc):
        return hub_callbacks.validate_fn(to_hub(doc))

    return AdmissionCallbacks(default_fn=default_fn, validate_fn=validate_fn)


def build_registry() -> SchemeRegistry:
    """Construct the registry for every revision of the Memcached API"""
    registry = SchemeRegistry()
    registry.register_type(
        v1beta1.API_VERSION, constants.KIND, v1beta1.Memcached, hub=True
    )
    registry.register_type(v1alpha1.API_VERSION, constants.KIND, v1alpha1.Memcached)
    registry.register_conversion(
        v1alpha1.API_VERSION, v1alpha1.convert_to_hub, v1alpha1.convert_from_hub
    )

    hub_callbacks = AdmissionCallbacks(
        default_fn=default_memcached, validate_fn=validate_memcached
    )
    registry.register_admission(v1beta1.API_VERSION, hub_callbacks)
    registry.register_admission(
        v1alpha1.API_VERSION,
        spoke_admission_callbacks(
            v1alpha1.convert_to_hub, v1alpha1.convert_from_hub, hub_callbacks
        ),
    )
    return registry
