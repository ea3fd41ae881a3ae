"""Role-scoped rewriting of list descriptors.

Every list request passes through :func:`apply_role_constraints` after shape
sanitizing. The rewritten ``where`` always keeps the caller's filter and adds
the role's visibility constraint on top, so the caller can narrow results but
never widen them. Filters that walk into a list relation (``applications``,
``jobs``) get the same visibility constraint inside the relation, so they only
ever test rows the caller could list directly. Authorization failures of the
list pipeline are raised here and nowhere else.
"""

import logging
import uuid
from dataclasses import replace
from typing import Any

from fastapi import HTTPException
from sqlalchemy import inspect as sa_inspect, select
from sqlalchemy.orm import Session

from app.models.application import Application
from app.models.job import Job
from app.query.merge import add_or_constraints, merge_where_and, remove_restricted_fields
from app.query.predicates import (
    And,
    Equals,
    Not,
    Operator,
    Or,
    Predicate,
    Relation,
    TO_MANY_QUANTIFIERS,
    parse_where,
    referenced_fields,
)

_LOG = logging.getLogger("app.query_scope")

CANDIDATE_RESTRICTED_APPLICATION_FIELDS = ("score", "notes", "workflow_status")


def _forbidden(caller: dict, entity: str, reason: str) -> HTTPException:
    _LOG.warning("list denied entity=%s role=%s sub=%s reason=%s", entity, caller.get("role"), caller.get("sub"), reason)
    return HTTPException(status_code=403, detail=reason)


def _caller_id(caller: dict) -> str:
    return str(caller.get("sub") or "")


def job_visibility(caller: dict) -> dict[str, Any]:
    if caller["role"] == "RECRUITER":
        return {"OR": [{"status": "PUBLISHED"}, {"created_by_id": _caller_id(caller)}]}
    return {"status": "PUBLISHED"}


def application_visibility(caller: dict) -> dict[str, Any]:
    if caller["role"] == "RECRUITER":
        return {"job": {"created_by_id": _caller_id(caller)}}
    return {"user_id": _caller_id(caller)}


_VISIBILITY = {Job: job_visibility, Application: application_visibility}


def _check_candidate_fields(node: Predicate | None, caller: dict, entity: str) -> None:
    if caller["role"] != "CANDIDATE":
        return
    used = referenced_fields(node) & set(CANDIDATE_RESTRICTED_APPLICATION_FIELDS)
    if used:
        raise _forbidden(caller, entity, f"Filtering on {', '.join(sorted(used))} is not allowed")


def _scope_relations(model: type, node: Predicate | None, caller: dict, entity: str) -> Predicate | None:
    """Constrain every list relation in ``node`` to the rows the caller may see."""
    if node is None or isinstance(node, (Equals, Operator)):
        return node
    if isinstance(node, (And, Or, Not)):
        return replace(node, items=tuple(_scope_relations(model, item, caller, entity) for item in node.items))

    rel = sa_inspect(model).relationships.get(node.field)
    if rel is None:
        return node
    target = rel.mapper.class_
    inner = _scope_relations(target, node.where, caller, entity)
    visibility = _VISIBILITY.get(target)
    if not rel.uselist or visibility is None or node.quantifier not in TO_MANY_QUANTIFIERS | {None}:
        return replace(node, where=inner)

    if target is Application:
        _check_candidate_fields(inner, caller, entity)
    constraint = parse_where(visibility(caller))
    if node.quantifier == "every":
        if inner is None:
            return node
        # every visible row matches == no visible row fails
        return Relation(node.field, "none", And((constraint, Not((inner,)))))
    scoped = constraint if inner is None else And((inner, constraint))
    return Relation(node.field, node.quantifier, scoped)


def _scoped_where(model: type, where: dict[str, Any] | None, caller: dict, entity: str) -> dict[str, Any] | None:
    node = parse_where(where)
    scoped = _scope_relations(model, node, caller, entity)
    if scoped == node:
        return where
    return scoped.to_wire()


def _supplied_job_ids(node: Predicate | None, field: str = "job_id") -> list[Any]:
    """Every job key the caller names, at any depth of ``AND``/``OR``/``NOT``."""
    if node is None:
        return []
    if isinstance(node, Relation):
        if field == "job_id" and node.field == "job" and not node.null:
            return _supplied_job_ids(node.where, "id")
        return []
    if isinstance(node, Equals):
        return [node.value] if node.field == field and node.value is not None else []
    if isinstance(node, Operator):
        if node.field != field:
            return []
        values: list[Any] = []
        for op, expected in node.ops:
            if op == "equals":
                values.append(expected)
            elif op == "in":
                values.extend(expected)
        return values
    return [value for item in node.items for value in _supplied_job_ids(item, field)]


def _all_jobs_owned_by(db: Session, job_ids: list[Any], user_id: str) -> bool:
    keys = set()
    for job_id in job_ids:
        try:
            keys.add(uuid.UUID(str(job_id)))
        except ValueError:
            return False
    owners = dict(db.execute(select(Job.id, Job.created_by_id).where(Job.id.in_(keys))).all())
    return all(key in owners and str(owners[key]) == user_id for key in keys)


def _scope_related_applications(include: Any, caller: dict) -> Any:
    if not isinstance(include, dict) or include.get("applications") in (None, False):
        return include
    spec = include["applications"]
    spec = dict(spec) if isinstance(spec, dict) else {}
    where = spec.get("where")
    _check_candidate_fields(parse_where(where), caller, "jobs")
    where = _scoped_where(Application, where, caller, "jobs")
    spec["where"] = merge_where_and([where, application_visibility(caller)])
    return {**include, "applications": spec}


def _scope_jobs(query: dict[str, Any], caller: dict) -> dict[str, Any]:
    where = _scoped_where(Job, query.get("where"), caller, "jobs")
    if caller["role"] == "RECRUITER":
        query["where"] = add_or_constraints(where, job_visibility(caller)["OR"])
    else:
        query["where"] = {**(where or {}), **job_visibility(caller)}
    query["include"] = _scope_related_applications(query.get("include"), caller)
    if query["include"] is None:
        query.pop("include")
    return query


def _scope_applications(db: Session, query: dict[str, Any], caller: dict) -> dict[str, Any]:
    where = query.get("where") or {}
    if caller["role"] == "RECRUITER":
        job_ids = _supplied_job_ids(parse_where(where))
        if job_ids and not _all_jobs_owned_by(db, job_ids, _caller_id(caller)):
            raise _forbidden(caller, "applications", "You can only view applications for your jobs")
        where = _scoped_where(Application, where, caller, "applications") or {}
        constraint = application_visibility(caller)
        if "job" in where:
            query["where"] = merge_where_and([where, constraint])
        else:
            query["where"] = {**where, **constraint}
        return query

    stripped = remove_restricted_fields(where, CANDIDATE_RESTRICTED_APPLICATION_FIELDS) or {}
    _check_candidate_fields(parse_where(stripped), caller, "applications")
    stripped = _scoped_where(Application, stripped, caller, "applications") or {}
    query["where"] = {**stripped, **application_visibility(caller)}
    return query


def apply_role_constraints(db: Session, entity: str, query: dict[str, Any], caller: dict) -> dict[str, Any]:
    role = caller.get("role")
    scoped = dict(query)
    if role == "ADMIN":
        return scoped
    if role not in {"RECRUITER", "CANDIDATE"}:
        raise _forbidden(caller, entity, "Insufficient permissions")
    if entity == "jobs":
        return _scope_jobs(scoped, caller)
    if entity == "applications":
        return _scope_applications(db, scoped, caller)
    raise _forbidden(caller, entity, "Insufficient permissions")
