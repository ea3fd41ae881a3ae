import logging
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.core.config import settings
from app.query.sanitize import sanitize_query, set_query_defaults
from app.schemas.query import QueryDescriptor
from app.services.query_executor import ENTITY_MODELS, execute_query
from app.services.query_scope import apply_role_constraints

_LOG = logging.getLogger("app.query")


def resolve_query(db: Session, entity: str, descriptor: QueryDescriptor, caller: dict) -> dict[str, Any]:
    query = sanitize_query(
        descriptor.to_query(),
        max_include_depth=settings.QUERY_MAX_INCLUDE_DEPTH,
        max_take=settings.QUERY_MAX_TAKE,
    )
    query = set_query_defaults(query, take=min(settings.QUERY_DEFAULT_TAKE, settings.QUERY_MAX_TAKE))
    return apply_role_constraints(db, entity, query, caller)


def list_entities(db: Session, entity: str, descriptor: QueryDescriptor, caller: dict) -> dict[str, Any]:
    model = ENTITY_MODELS.get(entity)
    if model is None:
        raise HTTPException(status_code=404, detail="Unknown entity")
    query = resolve_query(db, entity, descriptor, caller)
    rows, count = execute_query(db, model, query)
    _LOG.info("list entity=%s role=%s count=%s returned=%s", entity, caller.get("role"), count, len(rows))
    return {"data": rows, "count": count, "query": query}
