"""Internal models for tool definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SchemaType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"

    @classmethod
    def parse(cls, value: Any) -> "SchemaType":
        """Unknown or missing type names fall back to ``string``."""
        try:
            return cls(value)
        except ValueError:
            return cls.STRING

    @classmethod
    def of(cls, schema: Optional[Dict[str, Any]]) -> "SchemaType":
        return cls.parse((schema or {}).get("type"))

    @property
    def python_type(self) -> Any:
        return _PYTHON_TYPES[self]

    def accepts(self, value: Any) -> bool:
        if self is SchemaType.STRING:
            return isinstance(value, str)
        if self is SchemaType.BOOLEAN:
            return isinstance(value, bool)
        if isinstance(value, bool):
            # bool is an int subclass but never a number here
            return False
        if self is SchemaType.NUMBER:
            return isinstance(value, (int, float))
        if self is SchemaType.INTEGER:
            return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
        if self is SchemaType.ARRAY:
            return isinstance(value, list)
        return isinstance(value, dict)

    @staticmethod
    def to_query(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


_PYTHON_TYPES: Dict[SchemaType, Any] = {
    SchemaType.STRING: str,
    SchemaType.NUMBER: float,
    SchemaType.INTEGER: int,
    SchemaType.BOOLEAN: bool,
    SchemaType.ARRAY: List[Any],
    SchemaType.OBJECT: Dict[str, Any],
}


@dataclass(frozen=True)
class ToolMetadata:
    path: Optional[str]
    method: Optional[str]
    tags: Tuple[str, ...] = ()
    # properties whose "string" type was defaulted, not declared
    inferred_types: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "method": self.method, "tags": list(self.tags)}


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: Dict[str, Any]
    metadata: ToolMetadata = field(default_factory=lambda: ToolMetadata(None, None))

    @property
    def properties(self) -> Dict[str, Dict[str, Any]]:
        return self.input_schema.get("properties") or {}

    @property
    def required(self) -> List[str]:
        return list(self.input_schema.get("required") or [])

    def has_declared_type(self, name: str) -> bool:
        return name in self.properties and name not in self.metadata.inferred_types

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "metadata": self.metadata.to_dict(),
        }
