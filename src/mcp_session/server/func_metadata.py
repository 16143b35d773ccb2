import inspect
import json
from collections.abc import Callable
from typing import Annotated, Any, get_type_hints

from pydantic import BaseModel, ConfigDict, Field, WithJsonSchema, create_model
from pydantic.fields import FieldInfo
from pydantic_core import PydanticUndefined


class InvalidSignature(Exception):
    """The function cannot be exposed as a tool."""


class ArgModelBase(BaseModel):
    """A model representing the arguments to a function."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_dump_one_level(self) -> dict[str, Any]:
        """Return a dict of the model's fields, one level deep.

        That is, sub-models etc are not dumped - they are kept as pydantic models.
        """
        return {field_name: getattr(self, field_name) for field_name in self.__class__.model_fields}


class FuncMetadata(BaseModel):
    arg_model: Annotated[type[ArgModelBase], WithJsonSchema(None)]
    context_kwarg: str | None = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def input_schema(self) -> dict[str, Any]:
        schema = self.arg_model.model_json_schema()
        schema.setdefault("properties", {})
        return schema

    def validate_arguments(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Validate raw arguments. Raises pydantic.ValidationError."""
        parsed = self.arg_model.model_validate(self.pre_parse_json(arguments))
        return parsed.model_dump_one_level()

    def pre_parse_json(self, data: dict[str, Any]) -> dict[str, Any]:
        """Parse string values that hold JSON objects or arrays.

        Clients regularly send structured arguments (``base_params`` and the
        like) as JSON text rather than as objects. Fields typed ``str`` are
        left alone; a SQL query may well look like JSON.
        """
        new_data = data.copy()
        for field_name, field_info in self.arg_model.model_fields.items():
            value = data.get(field_name)
            if not isinstance(value, str) or field_info.annotation is str:
                continue
            try:
                pre_parsed = json.loads(value)
            except json.JSONDecodeError:
                continue
            if isinstance(pre_parsed, dict | list):
                new_data[field_name] = pre_parsed
        return new_data


def func_metadata(func: Callable[..., Any], context_type: type | None = None) -> FuncMetadata:
    """Build a pydantic argument model from ``func``'s signature.

    A parameter annotated with ``context_type`` is left out of the model and
    reported as ``context_kwarg`` so the caller can inject it.
    """
    sig = inspect.signature(func)
    try:
        hints = get_type_hints(func, include_extras=True)
    except NameError as exc:
        raise InvalidSignature(f"Unresolvable annotation on {func.__name__}: {exc}") from exc

    fields: dict[str, Any] = {}
    context_kwarg: str | None = None
    for param in sig.parameters.values():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            raise InvalidSignature(f"{func.__name__} cannot take *args or **kwargs")
        if param.name.startswith("_"):
            raise InvalidSignature(f"Parameter {param.name} of {func.__name__} cannot start with '_'")

        annotation = hints.get(param.name, inspect.Parameter.empty)
        if context_type is not None and annotation is context_type:
            context_kwarg = param.name
            continue

        if annotation is inspect.Parameter.empty:
            annotation = Annotated[Any, Field(), WithJsonSchema({"title": param.name, "type": "string"})]

        default = param.default if param.default is not inspect.Parameter.empty else PydanticUndefined
        field_info = FieldInfo.from_annotated_attribute(annotation, default)
        fields[param.name] = (field_info.annotation, field_info)

    arguments_model = create_model(f"{func.__name__}Arguments", __base__=ArgModelBase, **fields)
    return FuncMetadata(arg_model=arguments_model, context_kwarg=context_kwarg)
