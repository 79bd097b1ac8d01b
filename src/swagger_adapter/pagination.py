"""Detect and normalise the pagination conventions of arbitrary JSON responses.

Upstream APIs disagree on how they describe pages. Each known convention is
a ``PaginationStrategy``: a predicate over the response body plus an
extractor that turns it into a ``PaginationInfo``. Strategies are tried in a
fixed priority order and the first match wins.
"""

from __future__ import annotations

import inspect
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union


DATA_PROPERTIES = ("data", "items", "results", "records", "content")

PAGE_LIMIT = "page-limit"
OFFSET_LIMIT = "offset-limit"
PAGE_PER_PAGE = "page-per_page"

_PAGING_KEYS = ("page", "offset", "limit", "per_page")


@dataclass(frozen=True)
class PaginationInfo:
    current_page: int
    page_size: int
    total_items: Optional[int]
    total_pages: Optional[int]
    has_more: bool
    offset: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "pageSize": self.page_size,
            "totalItems": self.total_items,
            "totalPages": self.total_pages,
            "hasMore": self.has_more,
        }


@dataclass(frozen=True)
class PaginationStrategy:
    name: str
    matches: Callable[[Dict[str, Any]], bool]
    extract: Callable[[Dict[str, Any]], PaginationInfo]


def has_properties(obj: Any, props: Sequence[str]) -> bool:
    if not isinstance(obj, dict):
        return False
    return all(obj.get(prop) is not None for prop in props)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def has_numbers(obj: Any, props: Sequence[str]) -> bool:
    """Like ``has_properties`` but every field must also be numeric."""
    return has_properties(obj, props) and all(_is_number(obj[prop]) for prop in props)


def _number(value: Any) -> Optional[Any]:
    return value if _is_number(value) else None


def _page_count(total: Any, size: Any) -> Optional[int]:
    if not _is_number(total) or not _is_number(size) or not size:
        return None
    return math.ceil(total / size)


def _page_limit_matches(body: Dict[str, Any]) -> bool:
    return has_numbers(body, ("page", "limit", "totalItems")) or has_numbers(
        body, ("page", "limit", "total")
    )


def _page_limit_extract(body: Dict[str, Any]) -> PaginationInfo:
    total = body["totalItems"] if _is_number(body.get("totalItems")) else body["total"]
    total_pages = _number(body.get("totalPages")) or _page_count(total, body["limit"])
    return PaginationInfo(
        current_page=body["page"],
        page_size=body["limit"],
        total_items=total,
        total_pages=total_pages,
        has_more=total_pages is not None and body["page"] < total_pages,
    )


def _per_page_matches(body: Dict[str, Any]) -> bool:
    return has_numbers(body, ("current_page", "per_page", "total"))


def _per_page_extract(body: Dict[str, Any]) -> PaginationInfo:
    total_pages = _number(body.get("last_page")) or _page_count(body["total"], body["per_page"])
    return PaginationInfo(
        current_page=body["current_page"],
        page_size=body["per_page"],
        total_items=body["total"],
        total_pages=total_pages,
        has_more=total_pages is not None and body["current_page"] < total_pages,
    )


def _offset_limit_matches(body: Dict[str, Any]) -> bool:
    return has_numbers(body, ("offset", "limit", "count")) and bool(body["limit"])


def _offset_limit_extract(body: Dict[str, Any]) -> PaginationInfo:
    limit = body["limit"]
    current_page = body["offset"] // limit + 1
    total_pages = math.ceil(body["count"] / limit)
    return PaginationInfo(
        current_page=current_page,
        page_size=limit,
        total_items=body["count"],
        total_pages=total_pages,
        has_more=current_page < total_pages,
        offset=body["offset"],
    )


def _meta_matches(body: Dict[str, Any]) -> bool:
    meta = body.get("meta")
    return isinstance(meta, dict) and has_numbers(meta.get("pagination"), ("page", "pageSize"))


def _meta_extract(body: Dict[str, Any]) -> PaginationInfo:
    pagination = body["meta"]["pagination"]
    page_count = _number(pagination.get("pageCount"))
    return PaginationInfo(
        current_page=pagination["page"],
        page_size=pagination["pageSize"],
        total_items=_number(pagination.get("total")),
        total_pages=page_count,
        has_more=page_count is not None and pagination["page"] < page_count,
    )


STRATEGIES: List[PaginationStrategy] = [
    PaginationStrategy("page-limit", _page_limit_matches, _page_limit_extract),
    PaginationStrategy("current_page-per_page", _per_page_matches, _per_page_extract),
    PaginationStrategy("offset-limit", _offset_limit_matches, _offset_limit_extract),
    PaginationStrategy("meta.pagination", _meta_matches, _meta_extract),
]


def extract_pagination_info(response: Any) -> Optional[PaginationInfo]:
    if not isinstance(response, dict):
        return None
    for strategy in STRATEGIES:
        if strategy.matches(response):
            return strategy.extract(response)
    return None


def extract_data(response: Any) -> Optional[List[Any]]:
    """Locate the payload list of a response, or None when it is missing or ambiguous."""
    if isinstance(response, list):
        return response
    if not isinstance(response, dict):
        return None

    for prop in DATA_PROPERTIES:
        if isinstance(response.get(prop), list):
            return response[prop]

    candidates = [key for key, value in response.items() if isinstance(value, list)]
    if len(candidates) == 1:
        return response[candidates[0]]
    return None


def get_next_page_params(info: Optional[PaginationInfo]) -> Optional[Dict[str, int]]:
    if info is None or not info.has_more:
        return None
    if info.offset is not None:
        return {"offset": info.offset + info.page_size, "limit": info.page_size}
    return {"page": info.current_page + 1, "limit": info.page_size}


def transform_pagination_params(
    params: Optional[Dict[str, Any]], target_style: str
) -> Dict[str, Any]:
    if not params:
        return {}

    result = dict(params)
    if target_style == PAGE_LIMIT:
        if result.get("offset") is not None and result.get("limit"):
            result["page"] = result.pop("offset") // result["limit"] + 1
        elif result.get("per_page"):
            result["limit"] = result.pop("per_page")
    elif target_style == OFFSET_LIMIT:
        if result.get("page") is not None and result.get("limit"):
            result["offset"] = (result.pop("page") - 1) * result["limit"]
        elif result.get("page") is not None and result.get("per_page"):
            per_page = result.pop("per_page")
            result["offset"] = (result.pop("page") - 1) * per_page
            result["limit"] = per_page
    elif target_style == PAGE_PER_PAGE:
        if result.get("offset") is not None and result.get("limit"):
            limit = result.pop("limit")
            result["page"] = result.pop("offset") // limit + 1
            result["per_page"] = limit
        elif result.get("limit"):
            result["per_page"] = result.pop("limit")
    return result


def format_paginated_response(response: Any) -> Dict[str, Any]:
    info = extract_pagination_info(response)
    data = extract_data(response)
    return {
        "data": response if data is None else data,
        "pagination": info.to_dict() if info else None,
    }


PageFetcher = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


async def auto_paginate(
    fetch_page: PageFetcher,
    initial_params: Optional[Dict[str, Any]] = None,
    max_pages: int = 10,
    max_items: int = 1000,
    target_style: str = PAGE_LIMIT,
) -> List[Any]:
    """Follow next-page links until the upstream runs out or a limit is hit."""
    results: List[Any] = []
    params = dict(initial_params or {})
    pages = 0

    while pages < max_pages and len(results) < max_items:
        response = fetch_page(dict(params))
        if inspect.isawaitable(response):
            response = await response
        pages += 1

        data = extract_data(response)
        if data is None and isinstance(response, list):
            data = response
        if data:
            results.extend(data)

        next_params = get_next_page_params(extract_pagination_info(response))
        if next_params is None:
            break
        for key in _PAGING_KEYS:
            params.pop(key, None)
        params.update(transform_pagination_params(next_params, target_style))

    return results[:max_items]
