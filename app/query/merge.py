from __future__ import annotations

from typing import Any, Iterable

Where = dict[str, Any]


def _non_empty(clauses: Iterable[Where | None]) -> list[Where]:
    return [clause for clause in clauses if clause]


def merge_where_and(clauses: Iterable[Where | None]) -> Where | None:
    kept = _non_empty(clauses)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return {"AND": kept}


def merge_where_or(clauses: Iterable[Where | None]) -> Where | None:
    kept = _non_empty(clauses)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return {"OR": kept}


def add_or_constraints(where: Where | None, or_constraints: list[Where]) -> Where:
    """Require at least one of ``or_constraints`` on top of ``where``.

    ``where`` is never merged key-by-key: a caller-supplied top-level ``OR``
    must not become an alternative to the constraints, so a non-empty
    ``where`` is always AND-ed with the constraint group as a whole.
    """
    or_clause = {"OR": list(or_constraints)}
    if not where:
        return or_clause
    return {"AND": [where, or_clause]}


def remove_restricted_fields(where: Where | None, field_names: Iterable[str]) -> Where | None:
    if not where:
        return None
    restricted = set(field_names)
    result = {key: value for key, value in where.items() if key not in restricted}
    return result or None


def clean_empty_nested(where: Where | None) -> Where | None:
    if not isinstance(where, dict):
        return where
    cleaned: Where = {}
    for key, value in where.items():
        if value is None and key in {"AND", "OR", "NOT"}:
            continue
        if isinstance(value, dict) and not value:
            continue
        cleaned[key] = value
    return cleaned or None
