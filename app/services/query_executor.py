import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from fastapi import HTTPException
from sqlalchemy import and_, asc, desc, false, func, not_, or_, select, true
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session, selectinload

from app.models.application import Application
from app.models.job import Job
from app.models.user import User
from app.query.predicates import (
    And,
    Equals,
    Not,
    Operator,
    Or,
    Predicate,
    PredicateShapeError,
    Relation,
    TO_MANY_QUANTIFIERS,
    TO_ONE_QUANTIFIERS,
    parse_where,
)

_LOG = logging.getLogger("app.query")

ENTITY_MODELS: dict[str, type] = {
    "jobs": Job,
    "applications": Application,
    "users": User,
}

HIDDEN_FIELDS: dict[type, set[str]] = {
    User: {"password_hash"},
}


def _bad_query(detail: str) -> HTTPException:
    return HTTPException(status_code=400, detail=detail)


def _bad_filter_value(column_key: str, kind: str) -> HTTPException:
    return _bad_query(f'Invalid filter value for field "{column_key}" ({kind})')


def _hidden_fields(model: type) -> set[str]:
    return HIDDEN_FIELDS.get(model, set())


def _column_or_400(model: type, field: str):
    mapper = sa_inspect(model)
    if field in _hidden_fields(model) or field not in mapper.columns:
        raise _bad_query(f'Unknown field "{field}" on {model.__tablename__}')
    return getattr(model, field)


def _relationship_or_400(model: type, field: str):
    mapper = sa_inspect(model)
    if field not in mapper.relationships:
        raise _bad_query(f'Unknown relation "{field}" on {model.__tablename__}')
    return mapper.relationships[field]


def _column_python_type(column):
    try:
        return column.property.columns[0].type.python_type
    except NotImplementedError:
        return None


def _coerce_bool_filter_value(column_key: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes"}:
        return True
    if text in {"0", "false", "no"}:
        return False
    raise _bad_filter_value(column_key, "boolean")


def _coerce_number_filter_value(column_key: str, value, python_type):
    if isinstance(value, bool):
        raise _bad_filter_value(column_key, "number")
    if python_type in {int, float} and isinstance(value, (int, float)):
        if python_type is int and isinstance(value, float) and not value.is_integer():
            raise _bad_filter_value(column_key, "number")
        return python_type(value)
    if python_type is Decimal and isinstance(value, (int, Decimal)):
        return Decimal(value)
    text = str(value).strip()
    if not text:
        raise _bad_filter_value(column_key, "number")
    try:
        if python_type is int:
            return int(text)
        if python_type is float:
            return float(text)
        return Decimal(text)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(column_key, "number")


def _coerce_datetime_filter_value(column_key: str, value):
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text:
            raise _bad_filter_value(column_key, "datetime")
        try:
            if "T" not in text and " " not in text and len(text) == 10:
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_filter_value(column_key, "datetime")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_filter_value(column, value):
    if value is None:
        return None
    python_type = _column_python_type(column)
    if python_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value).strip())
        except ValueError:
            raise _bad_query(f'Invalid UUID in filter for field "{column.key}"')
    if python_type is bool:
        return _coerce_bool_filter_value(column.key, value)
    if python_type in {int, float, Decimal}:
        return _coerce_number_filter_value(column.key, value, python_type)
    if python_type is datetime:
        return _coerce_datetime_filter_value(column.key, value)
    if python_type is str and not isinstance(value, str):
        raise _bad_filter_value(column.key, "text")
    return value


def _lower(value):
    return value.lower() if isinstance(value, str) else value


def _compile_operator(model: type, node: Operator):
    column = _column_or_400(model, node.field)
    text_column = _column_python_type(column) is str
    insensitive = node.insensitive and text_column
    target = func.lower(column) if insensitive else column
    clauses = []
    for op, raw in node.ops:
        if op == "not":
            if isinstance(raw, Operator):
                clauses.append(not_(_compile_operator(model, raw)))
            elif raw is None:
                clauses.append(column.is_not(None))
            else:
                value = _coerce_filter_value(column, raw)
                clauses.append(target != (_lower(value) if insensitive else value))
        elif op == "equals":
            if raw is None:
                clauses.append(column.is_(None))
            else:
                value = _coerce_filter_value(column, raw)
                clauses.append(target == (_lower(value) if insensitive else value))
        elif op in {"in", "notIn"}:
            values = [_coerce_filter_value(column, item) for item in raw]
            if insensitive:
                values = [_lower(item) for item in values]
            clauses.append(target.in_(values) if op == "in" else target.not_in(values))
        elif op in {"contains", "startsWith", "endsWith"}:
            if not text_column:
                raise _bad_query(f'"{op}" is only valid on text fields, not "{node.field}"')
            if op == "contains":
                method = column.icontains if insensitive else column.contains
            elif op == "startsWith":
                method = column.istartswith if insensitive else column.startswith
            else:
                method = column.iendswith if insensitive else column.endswith
            clauses.append(method(raw, autoescape=True))
        else:
            value = _coerce_filter_value(column, raw)
            if op == "lt":
                clauses.append(column < value)
            elif op == "lte":
                clauses.append(column <= value)
            elif op == "gt":
                clauses.append(column > value)
            else:
                clauses.append(column >= value)
    return and_(*clauses)


def _compile_relation(model: type, node: Relation):
    rel = _relationship_or_400(model, node.field)
    attr = getattr(model, node.field)
    target = rel.mapper.class_
    inner = compile_predicate(target, node.where) if node.where is not None else None

    if rel.uselist:
        quantifier = node.quantifier or "some"
        if quantifier not in TO_MANY_QUANTIFIERS:
            raise _bad_query(f'Relation "{node.field}" is a list, use some/every/none')
        if quantifier == "some":
            return attr.any(inner) if inner is not None else attr.any()
        if quantifier == "none":
            return not_(attr.any(inner) if inner is not None else attr.any())
        if inner is None:
            return true()
        return not_(attr.any(not_(inner)))

    quantifier = node.quantifier or "is"
    if quantifier not in TO_ONE_QUANTIFIERS:
        raise _bad_query(f'Relation "{node.field}" is a single record, use is/isNot')
    if node.null:
        exists = attr.has()
        return not_(exists) if quantifier == "is" else exists
    matched = attr.has(inner) if inner is not None else attr.has()
    return not_(matched) if quantifier == "isNot" else matched


def compile_predicate(model: type, node: Predicate | None):
    """Turn a parsed predicate into a SQL expression against ``model``.

    Unknown or hidden fields, relation misuse and values that cannot be
    coerced to the column type raise a 400.
    """
    if node is None:
        return true()
    if isinstance(node, Equals):
        if node.field in sa_inspect(model).relationships:
            raise _bad_query(f'Relation "{node.field}" needs a nested filter object')
        column = _column_or_400(model, node.field)
        if node.value is None:
            return column.is_(None)
        return column == _coerce_filter_value(column, node.value)
    if isinstance(node, Operator):
        return _compile_operator(model, node)
    if isinstance(node, Relation):
        return _compile_relation(model, node)
    if isinstance(node, And):
        if not node.items:
            return true()
        return and_(*[compile_predicate(model, item) for item in node.items])
    if isinstance(node, Or):
        if not node.items:
            return false()
        return or_(*[compile_predicate(model, item) for item in node.items])
    if isinstance(node, Not):
        if not node.items:
            return true()
        return and_(*[not_(compile_predicate(model, item)) for item in node.items])
    raise _bad_query("Unsupported filter node")


def _parse_where_or_400(where: Any) -> Predicate | None:
    try:
        return parse_where(where)
    except PredicateShapeError as exc:
        raise _bad_query(str(exc))


def _order_entries(order_by: Any) -> list[tuple[str, str]]:
    if not order_by:
        return []
    entries = order_by if isinstance(order_by, list) else [order_by]
    result: list[tuple[str, str]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise _bad_query("orderBy entries must be objects")
        for field, direction in entry.items():
            if direction not in {"asc", "desc"}:
                raise _bad_query(f'Invalid sort direction for "{field}"')
            result.append((field, direction))
    return result


def _order_clauses(model: type, order_by: Any) -> list[Any]:
    clauses = []
    for field, direction in _order_entries(order_by):
        column = _column_or_400(model, field)
        clauses.append(asc(column) if direction == "asc" else desc(column))
    return clauses


def _loader_options(model: type, include: Any) -> list[Any]:
    options = []
    if not isinstance(include, dict):
        return options
    for key, spec in include.items():
        if spec is False:
            continue
        rel = _relationship_or_400(model, key)
        target = rel.mapper.class_
        attr = getattr(model, key)
        if isinstance(spec, dict):
            _validate_related_spec(target, spec)
            where = _parse_where_or_400(spec.get("where"))
            if where is not None:
                if not rel.uselist:
                    raise _bad_query(f'"where" is only valid on list relations, not "{key}"')
                attr = attr.and_(compile_predicate(target, where))
            loader = selectinload(attr)
            nested = _loader_options(target, spec.get("include"))
            if nested:
                loader = loader.options(*nested)
        else:
            loader = selectinload(attr)
        options.append(loader)
    return options


def _validate_related_spec(model: type, spec: dict[str, Any]) -> None:
    unknown = set(spec) - {"include", "select", "where", "orderBy", "take"}
    if unknown:
        raise _bad_query(f"Unsupported include directives: {', '.join(sorted(unknown))}")
    take = spec.get("take")
    if take is not None and (isinstance(take, bool) or not isinstance(take, int) or take < 0):
        raise _bad_query('"take" must be a non-negative integer')
    _selected_columns(model, spec.get("select"))
    _order_clauses(model, spec.get("orderBy"))


def _selected_columns(model: type, select_spec: Any) -> list[str] | None:
    if select_spec is None:
        return None
    if not isinstance(select_spec, dict):
        raise _bad_query('"select" must be an object')
    fields = []
    for field, enabled in select_spec.items():
        if enabled is not True and enabled is not False:
            raise _bad_query(f'"select.{field}" must be true or false')
        _column_or_400(model, field)
        if enabled:
            fields.append(field)
    if not fields:
        raise _bad_query('"select" must name at least one field')
    return fields


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def _row_to_dict(row: Any, fields: list[str] | None = None) -> dict[str, Any]:
    model = type(row)
    hidden = _hidden_fields(model)
    keys = fields if fields is not None else [column.key for column in sa_inspect(model).columns]
    return {key: _serialize_value(getattr(row, key)) for key in keys if key not in hidden}


def _sort_key(value: Any):
    return (value is not None, value)


def _ordered_related(rows: list[Any], order_by: Any) -> list[Any]:
    ordered = list(rows)
    for field, direction in reversed(_order_entries(order_by)):
        ordered.sort(key=lambda row: _sort_key(getattr(row, field)), reverse=direction == "desc")
    return ordered


def _serialize_related(value: Any, spec: Any) -> Any:
    spec = spec if isinstance(spec, dict) else {}
    if value is None:
        return None
    if isinstance(value, list):
        rows = _ordered_related(value, spec.get("orderBy"))
        if spec.get("take") is not None:
            rows = rows[: spec["take"]]
        return [serialize_row(row, spec.get("select"), spec.get("include")) for row in rows]
    return serialize_row(value, spec.get("select"), spec.get("include"))


def serialize_row(row: Any, select_spec: Any = None, include: Any = None) -> dict[str, Any]:
    payload = _row_to_dict(row, _selected_columns(type(row), select_spec))
    if isinstance(include, dict):
        for key, spec in include.items():
            if spec is False:
                continue
            payload[key] = _serialize_related(getattr(row, key), spec)
    return payload


def execute_query(db: Session, model: type, query: dict[str, Any]) -> tuple[list[dict[str, Any]], int]:
    """Run a resolved descriptor and return ``(rows, total_count)``.

    ``total_count`` ignores ``skip`` and ``take``.
    """
    where = _parse_where_or_400(query.get("where"))
    criterion = compile_predicate(model, where)
    select_spec = query.get("select")
    include = query.get("include")
    if include is not None and not isinstance(include, dict):
        raise _bad_query('"include" must be an object')
    _selected_columns(model, select_spec)

    order_clauses = _order_clauses(model, query.get("orderBy"))
    order_clauses.append(asc(model.id))

    stmt = select(model).where(criterion).order_by(*order_clauses)
    stmt = stmt.options(*_loader_options(model, include))
    if query.get("skip"):
        stmt = stmt.offset(query["skip"])
    if query.get("take") is not None:
        stmt = stmt.limit(query["take"])

    total = db.execute(select(func.count()).select_from(model).where(criterion)).scalar_one()
    rows = db.execute(stmt).scalars().all()
    _LOG.debug("query executed table=%s returned=%s total=%s", model.__tablename__, len(rows), total)
    return [serialize_row(row, select_spec, include) for row in rows], int(total)
