from __future__ import annotations

import logging
from typing import Any

_LOG = logging.getLogger("app.query")

MAX_INT32 = 2_147_483_647
MIN_INT32 = -2_147_483_648
DEFAULT_MAX_INCLUDE_DEPTH = 1
DEFAULT_MAX_TAKE = 100
DEFAULT_TAKE = 10
DEFAULT_ORDER_BY = {"created_at": "desc"}


def sanitize_include(include: Any, max_depth: int = DEFAULT_MAX_INCLUDE_DEPTH, _depth: int = 0) -> Any:
    """Bound the nesting of an include tree.

    A node that would sit at ``max_depth`` or deeper collapses to ``True``: the
    relation is still fetched, its own relations are not. Directives next to a
    nested include (``select``, ``where``, ``orderBy``, ``take``) are kept as sent.

        >>> sanitize_include({"applications": {"include": {"user": True}}}, 1)
        {'applications': True}

    With ``max_depth=0`` no relation is included at all.
    """
    max_depth = max(0, int(max_depth))
    if isinstance(include, bool) or include is None:
        return include
    if max_depth == 0:
        return {} if isinstance(include, dict) else include
    if _depth >= max_depth:
        return True
    if not isinstance(include, dict):
        return include

    sanitized: dict[str, Any] = {}
    for key, value in include.items():
        if not isinstance(value, dict) or "include" not in value:
            sanitized[key] = value
            continue
        nested = sanitize_include(value["include"], max_depth, _depth + 1)
        if nested is True and _depth + 1 >= max_depth:
            rest = {k: v for k, v in value.items() if k != "include"}
            _LOG.debug("include collapsed relation=%s depth=%s max_depth=%s", key, _depth + 1, max_depth)
            sanitized[key] = rest or True
        else:
            sanitized[key] = {**value, "include": nested}
    return sanitized


def include_depth(include: Any) -> int:
    if not isinstance(include, dict) or not include:
        return 0
    deepest = 0
    for value in include.values():
        if isinstance(value, dict) and isinstance(value.get("include"), dict):
            deepest = max(deepest, include_depth(value["include"]))
    return deepest + 1


def clamp_query(query: dict[str, Any], max_take: int = DEFAULT_MAX_TAKE) -> dict[str, Any]:
    clamped = dict(query)
    take = clamped.get("take")
    if take is not None and take > max_take:
        _LOG.debug("take clamped requested=%s max_take=%s", take, max_take)
        clamped["take"] = max_take
    return clamped


def clamp_include_takes(include: Any, max_take: int = DEFAULT_MAX_TAKE) -> Any:
    """Apply the page-size bound to every ``take`` inside an include tree."""
    if not isinstance(include, dict):
        return include
    clamped: dict[str, Any] = {}
    for key, value in include.items():
        if isinstance(value, dict):
            take = value.get("take")
            # non-integer takes are rejected later by the executor
            value = clamp_query(value, max_take) if isinstance(take, int) and not isinstance(take, bool) else dict(value)
            if "include" in value:
                value["include"] = clamp_include_takes(value["include"], max_take)
        clamped[key] = value
    return clamped


def sanitize_integers(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return min(max(value, MIN_INT32), MAX_INT32)
    if isinstance(value, list):
        return [sanitize_integers(item) for item in value]
    if isinstance(value, dict):
        return {key: sanitize_integers(item) for key, item in value.items()}
    return value


def sanitize_query(
    query: dict[str, Any],
    *,
    max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
    max_take: int = DEFAULT_MAX_TAKE,
) -> dict[str, Any]:
    sanitized = dict(query)
    if sanitized.get("include"):
        include = sanitize_include(sanitized["include"], max_include_depth)
        if include:
            sanitized["include"] = clamp_include_takes(include, max_take)
        else:
            sanitized.pop("include")
    sanitized = clamp_query(sanitized, max_take)
    return sanitize_integers(sanitized)


def set_query_defaults(
    query: dict[str, Any],
    *,
    skip: int = 0,
    take: int = DEFAULT_TAKE,
    order_by: Any = None,
) -> dict[str, Any]:
    resolved = dict(query)
    if resolved.get("skip") is None:
        resolved["skip"] = skip
    if resolved.get("take") is None:
        resolved["take"] = take
    if not resolved.get("orderBy"):
        resolved["orderBy"] = dict(order_by or DEFAULT_ORDER_BY)
    return resolved
