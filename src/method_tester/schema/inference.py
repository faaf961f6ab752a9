"""Structural schema inference from a sample JSON response.

The schema is derived from a single sample:

- arrays are described by their first element only (an empty array gets an
  empty object schema for ``items``);
- an object key is ``required`` when its value was not null in this sample.

Both are heuristics, not JSON Schema semantics. Heterogeneous arrays are
described by whatever their first element looks like.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class NullSchema(BaseModel):
    kind: Literal["null"] = "null"


class PrimitiveSchema(BaseModel):
    kind: Literal["primitive"] = "primitive"
    primitive_type: str  # string / number / boolean


class ArraySchema(BaseModel):
    kind: Literal["array"] = "array"
    items: "InferredSchema"


class ObjectSchema(BaseModel):
    kind: Literal["object"] = "object"
    properties: dict[str, "InferredSchema"] = Field(default_factory=dict)
    required: set[str] = Field(default_factory=set)


InferredSchema = Annotated[
    Union[NullSchema, PrimitiveSchema, ArraySchema, ObjectSchema],
    Field(discriminator="kind"),
]

ArraySchema.model_rebuild()
ObjectSchema.model_rebuild()


def infer(value: Any) -> InferredSchema:
    """Infer the structural schema of a JSON value. Does not modify ``value``."""
    if value is None:
        return NullSchema()

    if isinstance(value, (list, tuple)):
        items = infer(value[0]) if len(value) > 0 else ObjectSchema()
        return ArraySchema(items=items)

    if isinstance(value, dict):
        properties = {}
        required = set()
        for key, item in value.items():
            properties[key] = infer(item)
            if item is not None:
                required.add(key)
        return ObjectSchema(properties=properties, required=required)

    return PrimitiveSchema(primitive_type=_type_name(value))


def _type_name(value: Any) -> str:
    # bool is a subclass of int, so it has to be checked first
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def to_document(schema: InferredSchema) -> dict:
    """Render a schema as the ``{"type": ...}`` document stored by the platform.

    ``required`` is listed in property order.
    """
    if isinstance(schema, NullSchema):
        return {"type": "null"}
    if isinstance(schema, PrimitiveSchema):
        return {"type": schema.primitive_type}
    if isinstance(schema, ArraySchema):
        return {"type": "array", "items": to_document(schema.items)}
    return {
        "type": "object",
        "properties": {key: to_document(prop) for key, prop in schema.properties.items()},
        "required": [key for key in schema.properties if key in schema.required],
    }


def first_array_field(body: Any) -> tuple[str, list] | None:
    """Find the first list-valued field of a response body.

    Responses wrapped as ``{"body": {...}}`` are searched inside the wrapper.
    """
    if isinstance(body, dict) and isinstance(body.get("body"), dict):
        body = body["body"]
    if not isinstance(body, dict):
        return None

    for key, value in body.items():
        if isinstance(value, list):
            return key, value
    return None


def infer_array_item_schema(body: Any) -> InferredSchema | None:
    """Schema of the first element of the body's first array field, if there is one."""
    found = first_array_field(body)
    if found is None:
        return None
    _, items = found
    if not items:
        return None
    return infer(items[0])
