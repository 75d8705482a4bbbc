"""Typed schema layer — pydantic models as tool request/response shapes.

Each tool declares a :class:`ToolModel` subclass whose field descriptions are
surfaced to protocol clients through the generated JSON Schema.  Incoming
argument objects are validated in strict JSON mode: a missing or mistyped
required field rejects the whole request.
"""

from __future__ import annotations

import json
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from mcpbridge.protocols.errors import InvalidArgumentsError, RegistrationError

ModelT = TypeVar("ModelT", bound=BaseModel)

ROOT_FIELD = "<root>"


class ToolModel(BaseModel):
    """Base class for tool request and response models."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Generate the JSON Schema advertised for *model*."""
    try:
        schema = model.model_json_schema()
    except Exception as exc:
        msg = f"Cannot generate schema for {model.__name__}: {exc}"
        raise RegistrationError(msg) from exc
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


def validate_arguments(tool: str, model: type[ModelT], arguments: Any) -> ModelT:
    """Deserialize *arguments* into *model* or raise :class:`InvalidArgumentsError`."""
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise InvalidArgumentsError(tool, ROOT_FIELD, "arguments must be a JSON object")
    try:
        return model.model_validate_json(json.dumps(arguments), strict=True)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or ROOT_FIELD
        raise InvalidArgumentsError(tool, field, first["msg"]) from exc
    except (TypeError, ValueError) as exc:
        raise InvalidArgumentsError(tool, ROOT_FIELD, str(exc)) from exc


def dump_arguments(request: BaseModel | dict[str, Any] | None) -> dict[str, Any]:
    """Return the untyped JSON object form of a request."""
    if request is None:
        return {}
    if isinstance(request, BaseModel):
        return request.model_dump(mode="json", exclude_none=True)
    return dict(request)
