from __future__ import annotations

from typing import Any, Iterable

Query = dict[str, Any]


def _search_branch(path: str, term: str, operator: str, case_sensitive: bool) -> dict[str, Any]:
    condition: dict[str, Any] = {operator: term}
    if not case_sensitive:
        condition["mode"] = "insensitive"
    for key in reversed(path.split(".")):
        condition = {key: condition}
    return condition


def compile_search(
    fields: Iterable[str],
    search_text: str | None,
    operator: str = "contains",
    case_sensitive: bool = False,
) -> list[dict[str, Any]]:
    """Free text -> OR branches over ``fields``.

    One term gives one branch per field. Several terms must each match some
    field, so they compile to a single ``{"AND": [{"OR": ...}, ...]}`` branch.
    """
    fields = list(fields)
    terms = (search_text or "").split()
    if not terms or not fields:
        return []
    if len(terms) == 1:
        return [_search_branch(field, terms[0], operator, case_sensitive) for field in fields]
    return [
        {
            "AND": [
                {"OR": [_search_branch(field, term, operator, case_sensitive) for field in fields]}
                for term in terms
            ]
        }
    ]


def _contains_path(condition: Any, path: str) -> bool:
    current = condition
    for key in path.split("."):
        if not isinstance(current, dict) or key not in current:
            return False
        current = current[key]
    return True


def _references_any(condition: Any, fields: list[str]) -> bool:
    return any(_contains_path(condition, field) for field in fields)


def _is_search_branch(condition: Any, fields: list[str]) -> bool:
    if _references_any(condition, fields):
        return True
    and_items = condition.get("AND") if isinstance(condition, dict) else None
    if not isinstance(and_items, list):
        return False
    for item in and_items:
        or_items = item.get("OR") if isinstance(item, dict) else None
        if isinstance(or_items, list):
            if any(_references_any(branch, fields) for branch in or_items):
                return True
        elif _references_any(item, fields):
            return True
    return False


def remove_search_conditions(query: Query | None, fields: Iterable[str]) -> Query:
    result = dict(query or {})
    where = result.get("where")
    if not isinstance(where, dict) or not isinstance(where.get("OR"), list):
        return result
    fields = list(fields)
    kept = [condition for condition in where["OR"] if not _is_search_branch(condition, fields)]
    new_where = {key: value for key, value in where.items() if key != "OR"}
    if kept:
        new_where["OR"] = kept
    if new_where:
        result["where"] = new_where
    else:
        result.pop("where", None)
    return result


def update_search_conditions(
    query: Query | None,
    fields: Iterable[str],
    search_text: str | None,
    operator: str = "contains",
    case_sensitive: bool = False,
) -> Query:
    fields = list(fields)
    result = remove_search_conditions(query, fields)
    branches = compile_search(fields, search_text, operator, case_sensitive)
    if not branches:
        return result
    where = dict(result.get("where") or {})
    where["OR"] = [*where.get("OR", []), *branches]
    result["where"] = where
    return result
