"""Validate tool arguments against generated input schemas.

Checks run in three layers, cheapest first: required parameters, primitive
types, then the full JSON Schema. The first layer that fails raises
``ValidationFailed`` and the remaining layers are skipped.

Only declared types are enforced. A property whose ``string`` type was filled
in by the builder accepts any value, which the invoker string-coerces. An
explicit ``null`` for an optional property is sent upstream as an empty value
and is not type-checked.
"""

from __future__ import annotations

from typing import Any, Dict, List

from jsonschema import Draft7Validator

from .errors import ValidationFailed
from .models import SchemaType, Tool


def _typed_args(tool: Tool, args: Dict[str, Any]) -> Dict[str, Any]:
    required = set(tool.required)
    return {name: value for name, value in args.items() if value is not None or name in required}


def _declared_schema(tool: Tool) -> Dict[str, Any]:
    inferred = set(tool.metadata.inferred_types)
    if not inferred:
        return tool.input_schema
    properties = {
        name: {key: value for key, value in prop.items() if key != "type"}
        if name in inferred
        else prop
        for name, prop in tool.properties.items()
    }
    return {**tool.input_schema, "properties": properties}


def validate_required_params(tool: Tool, args: Dict[str, Any]) -> None:
    for name in tool.required:
        if name not in args:
            raise ValidationFailed(f"Missing required parameter: {name}")


def validate_parameter_types(tool: Tool, args: Dict[str, Any]) -> None:
    properties = tool.properties
    for name, value in _typed_args(tool, args).items():
        prop = properties.get(name)
        if prop is None or "type" not in prop or not tool.has_declared_type(name):
            continue
        schema_type = SchemaType.parse(prop["type"])
        if not schema_type.accepts(value):
            article = "an" if schema_type.value[0] in "aeiou" else "a"
            raise ValidationFailed(f"Parameter {name} must be {article} {schema_type.value}")


def validate_tool_input(tool: Tool, args: Dict[str, Any]) -> None:
    if not tool.input_schema:
        return

    validator = Draft7Validator(_declared_schema(tool))
    errors: List[Dict[str, Any]] = []
    checked = _typed_args(tool, args)
    for error in sorted(validator.iter_errors(checked), key=lambda e: [str(p) for p in e.absolute_path]):
        errors.append(
            {
                "path": "/" + "/".join(str(part) for part in error.absolute_path),
                "message": error.message,
                "keyword": error.validator,
                "params": {"expected": error.validator_value},
            }
        )

    if errors:
        raise ValidationFailed("Validation failed", errors)


def validate_all(tool: Tool, args: Dict[str, Any]) -> None:
    validate_required_params(tool, args)
    validate_parameter_types(tool, args)
    validate_tool_input(tool, args)
