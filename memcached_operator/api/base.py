"""
Shared pydantic base for the typed Memcached documents.

Wire keys are the camelCase aliases of the field names. Fields defaulting to
None are pointers: None means absent and is never written, while any other
value, even an empty group, is written. Every other field behaves as a value:
its zero value is dropped on the wire unless the model lists it in
ALWAYS_WRITTEN, and a missing or null key reads back as the default.
"""

# Standard
from typing import Any, ClassVar, Tuple, Type, TypeVar
import copy

# Third Party
from pydantic import (
    BaseModel,
    ConfigDict,
    SerializationInfo,
    SerializerFunctionWrapHandler,
    ValidationError,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Local
from ..exceptions import ConversionError

T = TypeVar("T", bound="WireModel")


class WireModel(BaseModel):
    """Base for every document and configuration group"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    # Value fields written even when they hold their zero value
    ALWAYS_WRITTEN: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def drop_null_values(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: val for key, val in data.items() if val is not None}
        return data

    @model_serializer(mode="wrap")
    def omit_empty_values(
        self, handler: SerializerFunctionWrapHandler, info: SerializationInfo
    ) -> dict:
        data = handler(self)
        for name, field_info in type(self).model_fields.items():
            key = field_info.alias if info.by_alias and field_info.alias else name
            if key not in data:
                continue
            val = data[key]
            is_pointer = field_info.default is None
            if val is None or (
                not val and not is_pointer and name not in self.ALWAYS_WRITTEN
            ):
                del data[key]
        return data

    @classmethod
    def from_dict(cls: Type[T], data: Any) -> T:
        """Parse the wire form. Keys the model does not declare are dropped.

        Raises:
            ConversionError: if any value has the wrong shape
        """
        try:
            return cls.model_validate(copy.deepcopy(data))
        except ValidationError as err:
            raise ConversionError(describe_validation_error(err)) from err

    def to_dict(self) -> dict:
        """Serialize to the wire form. The result shares nothing with the model."""
        return copy.deepcopy(self.model_dump(by_alias=True))


def describe_validation_error(err: ValidationError) -> str:
    """Render every error in a pydantic ValidationError with its dotted path"""
    problems = []
    for detail in err.errors():
        path = ""
        for part in detail["loc"]:
            path += f"[{part}]" if isinstance(part, int) else f".{part}"
        problems.append(
            f"malformed document at {path.lstrip('.') or '<root>'}: {detail['msg']}"
        )
    return "; ".join(problems)
