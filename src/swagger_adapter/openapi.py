"""OpenAPI spec loader and tool builder."""

from __future__ import annotations

import keyword
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field, create_model

from .cache import ResponseCache
from .errors import SpecificationInvalid
from .models import SchemaType, Tool, ToolMetadata


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "post", "put", "delete", "patch")
SPEC_CACHE_KEY = "swagger_spec"
_KNOWN_TYPES = frozenset(item.value for item in SchemaType)


class OpenAPILoader:
    def __init__(
        self,
        cache: ResponseCache,
        cache_seconds: float = 3600,
        timeout_seconds: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.cache = cache
        self.cache_seconds = cache_seconds
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def load_spec(self, url: str) -> Dict[str, Any]:
        logger.info("Fetching Swagger specification from: %s", url)

        async def fetch() -> Dict[str, Any]:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
            if response.status_code != 200:
                raise SpecificationInvalid(
                    f"Failed to fetch OpenAPI spec: {url} ({response.status_code})"
                )
            return response.json()

        try:
            spec = await self.cache.get_or_fetch(SPEC_CACHE_KEY, fetch, self.cache_seconds)
        except (httpx.HTTPError, ValueError) as exc:
            raise SpecificationInvalid(f"Failed to fetch OpenAPI spec: {url} ({exc})") from exc

        if not isinstance(spec, dict) or not isinstance(spec.get("paths"), dict):
            raise SpecificationInvalid("Invalid Swagger specification")
        return spec


class ToolBuilder:
    """Turn the ``paths`` tree of a spec into tool descriptors.

    Building is a pure transform: no I/O, and the same input always yields
    the same tools. ``schemas`` are the spec's ``components.schemas`` and
    are only used to resolve ``$ref`` request bodies.
    """

    def __init__(
        self, schemas: Optional[Dict[str, Any]] = None, strict_names: bool = False
    ) -> None:
        self.schemas = schemas or {}
        self.strict_names = strict_names

    def build(self, paths: Dict[str, Any]) -> List[Tool]:
        tools: Dict[str, Tool] = {}

        for path, path_item in (paths or {}).items():
            for method, operation in self._operations(path_item):
                tool = self.build_tool(path, method, operation)
                if tool.name in tools:
                    previous = tools[tool.name].metadata
                    if self.strict_names:
                        raise SpecificationInvalid(
                            f"Duplicate tool name {tool.name!r}: "
                            f"{previous.method} {previous.path} and {method} {path}"
                        )
                    logger.warning(
                        "Duplicate tool name %s: %s %s replaces %s %s",
                        tool.name,
                        method.upper(),
                        path,
                        (previous.method or "").upper(),
                        previous.path,
                    )
                tools[tool.name] = tool

        logger.info("Created %s tools from Swagger specification", len(tools))
        return list(tools.values())

    def build_tool(self, path: str, method: str, operation: Dict[str, Any]) -> Tool:
        properties: Dict[str, Dict[str, Any]] = {}
        required: List[str] = []
        inferred: set[str] = set()

        for parameter in operation.get("parameters") or []:
            location = parameter.get("in")
            name = parameter.get("name")
            if location not in ("path", "query") or not name:
                continue
            suffix = "parameter" if location == "path" else "query parameter"
            self._track_inferred(inferred, name, parameter.get("schema"))
            properties[name] = {
                "type": SchemaType.of(parameter.get("schema")).value,
                "description": parameter.get("description") or f"{name} {suffix}",
            }
            if parameter.get("required") and name not in required:
                required.append(name)

        body_schema = self._extract_body_schema(operation.get("requestBody") or {})
        if body_schema and isinstance(body_schema.get("properties"), dict):
            for prop_name, prop_schema in body_schema["properties"].items():
                prop_schema = self._resolve(prop_schema or {})
                self._track_inferred(inferred, prop_name, prop_schema)
                properties[prop_name] = {
                    "type": SchemaType.of(prop_schema).value,
                    "description": prop_schema.get("description") or prop_name,
                }
            for name in body_schema.get("required") or []:
                if name not in required:
                    required.append(name)

        input_schema: Dict[str, Any] = {"type": "object", "properties": properties}
        if required:
            input_schema["required"] = required

        return Tool(
            name=operation.get("operationId") or self.fallback_name(method, path),
            description=operation.get("summary")
            or operation.get("description")
            or f"{method.upper()} {path}",
            input_schema=input_schema,
            metadata=ToolMetadata(
                path=path,
                method=method.lower(),
                tags=tuple(operation.get("tags") or ()),
                inferred_types=tuple(name for name in properties if name in inferred),
            ),
        )

    @staticmethod
    def _track_inferred(inferred: set[str], name: str, schema: Any) -> None:
        if isinstance(schema, dict) and schema.get("type") in _KNOWN_TYPES:
            inferred.discard(name)
        else:
            inferred.add(name)

    @staticmethod
    def fallback_name(method: str, path: str) -> str:
        return f"{method.lower()}_{path.replace('/', '_').replace('{', '').replace('}', '')}"

    def _operations(self, path_item: Any) -> List[Tuple[str, Dict[str, Any]]]:
        if not isinstance(path_item, dict):
            return []
        return [
            (method, operation)
            for method, operation in path_item.items()
            if method.lower() in HTTP_METHODS and isinstance(operation, dict)
        ]

    def _extract_body_schema(self, request_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        content = request_body.get("content") or {}
        json_body = content.get("application/json") or {}
        schema = json_body.get("schema")
        if not schema:
            return None
        return self._resolve(schema)

    def _resolve(self, schema: Dict[str, Any]) -> Dict[str, Any]:
        ref = schema.get("$ref")
        if not isinstance(ref, str) or not ref.startswith("#/components/schemas/"):
            return schema
        resolved = self.schemas.get(ref.rsplit("/", 1)[-1])
        if resolved is None:
            logger.warning("Unresolvable schema reference: %s", ref)
            return {}
        return resolved

    # Documentation

    def describe_endpoints(self, paths: Dict[str, Any], title: str = "API") -> str:
        sections = []
        for path, path_item in (paths or {}).items():
            lines = [
                f"  - {method.upper()}: "
                f"{op.get('summary') or op.get('description') or 'No description'}"
                for method, op in self._operations(path_item)
            ]
            sections.append(f"- {path}\n" + "\n".join(lines))

        return (
            f"# {title} Documentation\n\n"
            "This server provides access to the API through tools generated from "
            "its Swagger specification.\n\n"
            "## Available Endpoints\n\n" + "\n\n".join(sections)
        )

    def describe_path(self, paths: Dict[str, Any], path: str) -> str:
        if "/" in path.strip("/"):
            path_item = paths.get("/" + path.lstrip("/"))
        else:
            segment = path.strip("/")
            path_item = next(
                (item for key, item in paths.items() if key.split("/")[1:2] == [segment]),
                None,
            )

        if not path_item:
            return f"# Unknown Path\n\nNo information available for path: {path}"

        blocks = []
        for method, op in self._operations(path_item):
            params = op.get("parameters") or []
            params_text = ""
            if params:
                params_text = "\n\n### Parameters\n" + "\n".join(
                    f"- `{p.get('name')}` ({p.get('in')})"
                    f"{' (required)' if p.get('required') else ''}: "
                    f"{p.get('description') or 'No description'}"
                    for p in params
                )
            blocks.append(
                f"## {method.upper()}\n\n{op.get('summary') or ''}\n\n"
                f"{op.get('description') or 'No detailed description available.'}{params_text}"
            )
        return f"# Path: {path}\n\n" + "\n\n---\n\n".join(blocks)


def build_input_model(tool: Tool) -> type[BaseModel]:
    """Pydantic model mirroring a tool's input schema, keyed by original names via aliases."""
    fields: Dict[str, Tuple[Any, Any]] = {}
    required = set(tool.required)

    for name, prop in tool.properties.items():
        if tool.has_declared_type(name):
            field_type = SchemaType.parse(prop.get("type")).python_type
        else:
            field_type = Any
        if name in required:
            default = Field(..., alias=name, description=prop.get("description"))
        else:
            field_type = Optional[field_type]
            default = Field(None, alias=name, description=prop.get("description"))
        fields[_field_name(name, fields)] = (field_type, default)

    model_config = ConfigDict(extra="allow", populate_by_name=True)
    model_name = f"{_sanitize_name(tool.name)}Input"
    return create_model(model_name, __config__=model_config, **fields)


def _sanitize_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name)


def _field_name(name: str, taken: Dict[str, Any]) -> str:
    candidate = _sanitize_name(name)
    if (
        not candidate
        or candidate[0].isdigit()
        or candidate.startswith("_")
        or candidate.startswith("model_")
        or keyword.iskeyword(candidate)
        or hasattr(BaseModel, candidate)
    ):
        candidate = f"f_{candidate}"
    while candidate in taken:
        candidate = f"{candidate}_"
    return candidate
