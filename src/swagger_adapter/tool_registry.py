"""Tool registry for the Swagger adapter."""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping

from .errors import ToolMetadataInvalid, ToolNotFound
from .models import Tool


class ToolRegistry:
    """Read-only name -> Tool mapping, built once per loaded specification."""

    def __init__(self, tools: Iterable[Tool]) -> None:
        entries: Dict[str, Tool] = {}
        for tool in tools:
            entries[tool.name] = tool
        self._tools: Mapping[str, Tool] = MappingProxyType(entries)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Tool:
        tool = self._tools.get(name)
        if tool is None:
            raise ToolNotFound(name)
        return tool

    def resolve(self, name: str) -> Tool:
        """Like ``get`` but also requires the metadata needed to build a request."""
        tool = self.get(name)
        if not tool.metadata.path or not tool.metadata.method:
            raise ToolMetadataInvalid(name)
        return tool

    def to_list(self) -> List[Dict[str, Any]]:
        return [tool.to_dict() for tool in self._tools.values()]
