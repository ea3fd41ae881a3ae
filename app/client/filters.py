from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.query.builders import set_order_by, set_where_filter
from app.query.merge import clean_empty_nested
from app.query.search import update_search_conditions

JOB_SEARCH_FIELDS = ("title", "description", "location")
APPLICATION_SEARCH_FIELDS = ("job.title",)


@dataclass
class JobFilters:
    search_term: str | None = None
    salary_min: int | None = None
    salary_max: int | None = None
    order_by: str | None = None  # "<field>-<asc|desc>" or "none"


@dataclass
class ApplicationFilters:
    search_term: str | None = None
    status_filter: str | None = None  # all | pending | HIRED | REJECTED
    workflow_status: str | None = None
    order_by: str | None = None
    job_id: str | None = None


def _apply_order(query: dict[str, Any], order_by: str | None) -> dict[str, Any]:
    if order_by is None:
        return query
    if order_by == "none":
        result = dict(query)
        result.pop("orderBy", None)
        return result
    field, _, direction = order_by.rpartition("-")
    if not field or direction not in {"asc", "desc"}:
        raise ValueError(f"Invalid order option: {order_by}")
    return set_order_by(query, field, direction, mode="replace")


def _cleaned(query: dict[str, Any]) -> dict[str, Any]:
    result = dict(query)
    where = clean_empty_nested(result.get("where"))
    if where:
        result["where"] = where
    else:
        result.pop("where", None)
    return result


def apply_job_filters(base: dict[str, Any] | None, filters: JobFilters) -> dict[str, Any]:
    result = dict(base or {})
    if filters.search_term is not None:
        result = update_search_conditions(result, JOB_SEARCH_FIELDS, filters.search_term)
    result = set_where_filter(result, "salary_min", filters.salary_min, "gte")
    result = set_where_filter(result, "salary_max", filters.salary_max, "lte")
    result = _apply_order(result, filters.order_by)
    return _cleaned(result)


def apply_application_filters(base: dict[str, Any] | None, filters: ApplicationFilters) -> dict[str, Any]:
    result = dict(base or {})
    if filters.search_term is not None:
        result = update_search_conditions(result, APPLICATION_SEARCH_FIELDS, filters.search_term)
    if filters.job_id:
        result = set_where_filter(result, "job_id", filters.job_id)
    if filters.status_filter == "pending":
        result["where"] = {**(result.get("where") or {}), "final_decision": None}
    else:
        result = set_where_filter(result, "final_decision", filters.status_filter)
    result = set_where_filter(result, "workflow_status", filters.workflow_status)
    result = _apply_order(result, filters.order_by)
    return _cleaned(result)
