from __future__ import annotations

from typing import Any, Literal

Query = dict[str, Any]
Mode = Literal["merge", "replace"]

EMPTY_FILTER_VALUES = ("", "all")


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value in EMPTY_FILTER_VALUES)


def _without(mapping: dict[str, Any], key: str) -> dict[str, Any] | None:
    rest = {k: v for k, v in mapping.items() if k != key}
    return rest or None


def _store_where(query: Query, where: dict[str, Any] | None) -> Query:
    if where:
        query["where"] = where
    else:
        query.pop("where", None)
    return query


def set_where_filter(
    query: Query | None,
    field: str,
    value: Any,
    operator: str | None = None,
    mode: Mode = "merge",
) -> Query:
    """Set or clear one ``where`` entry the way UI filter controls need it.

    ``None``, ``""`` and ``"all"`` clear the filter. With an operator in merge
    mode only that operator is touched and the field's other operators stay.
    """
    result = dict(query or {})
    where = dict(result.get("where") or {})
    current = where.get(field)
    by_operator = operator is not None and operator != "equals"

    if _is_empty(value):
        if field not in where:
            return result
        if by_operator and mode == "merge" and isinstance(current, dict):
            remaining = {k: v for k, v in current.items() if k != operator and k != "mode"}
            if remaining:
                where[field] = {k: v for k, v in current.items() if k != operator}
                return _store_where(result, where)
        return _store_where(result, _without(where, field))

    if by_operator:
        if mode == "merge" and isinstance(current, dict):
            value = {**current, operator: value}
        else:
            value = {operator: value}
    where[field] = value
    return _store_where(result, where)


def _order_entries(order_by: Any) -> list[dict[str, Any]]:
    if not order_by:
        return []
    if isinstance(order_by, list):
        return [dict(entry) for entry in order_by]
    return [dict(order_by)]


def set_order_by(query: Query | None, field: str, direction: str | None, mode: Mode = "merge") -> Query:
    result = dict(query or {})
    entries = _order_entries(result.get("orderBy"))

    if _is_empty(direction):
        kept = [rest for rest in (_without(entry, field) for entry in entries) if rest]
        if kept:
            result["orderBy"] = kept
        else:
            result.pop("orderBy", None)
        return result

    if mode == "replace":
        result["orderBy"] = [{field: direction}]
        return result
    for entry in entries:
        if field in entry:
            entry[field] = direction
            break
    else:
        entries.append({field: direction})
    result["orderBy"] = entries
    return result
