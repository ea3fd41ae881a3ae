"""Typed predicate tree behind the JSON ``where`` clause.

The wire form stays a plain JSON object; :func:`parse_where` turns it into the
nodes below and rejects malformed shapes before anything reaches storage.
``to_wire`` gives the JSON form back, so parsing is lossless.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

STRING_OPERATORS = {"contains", "startsWith", "endsWith"}
COMPARISON_OPERATORS = {"lt", "lte", "gt", "gte"}
LIST_OPERATORS = {"in", "notIn"}
FIELD_OPERATORS = {"equals", "not"} | STRING_OPERATORS | COMPARISON_OPERATORS | LIST_OPERATORS
MODE_VALUES = {"insensitive", "default"}
TO_MANY_QUANTIFIERS = {"some", "every", "none"}
TO_ONE_QUANTIFIERS = {"is", "isNot"}
RELATION_QUANTIFIERS = TO_MANY_QUANTIFIERS | TO_ONE_QUANTIFIERS
COMPOSITE_KEYS = {"AND", "OR", "NOT"}


class PredicateShapeError(ValueError):
    pass


def _fold(value: Any, insensitive: bool) -> Any:
    if insensitive and isinstance(value, str):
        return value.casefold()
    return value


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def to_wire(self) -> dict[str, Any]:
        return {self.field: self.value}

    def matches(self, record: Mapping[str, Any]) -> bool:
        return record.get(self.field) == self.value


@dataclass(frozen=True)
class Operator:
    field: str
    ops: tuple[tuple[str, Any], ...]
    mode: str | None = None

    @property
    def insensitive(self) -> bool:
        return self.mode == "insensitive"

    def to_wire(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        for op, value in self.ops:
            body[op] = value.to_wire()[self.field] if isinstance(value, Operator) else value
        if self.mode is not None:
            body["mode"] = self.mode
        return {self.field: body}

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.field)
        return all(self._check(op, actual, expected, record) for op, expected in self.ops)

    def _check(self, op: str, actual: Any, expected: Any, record: Mapping[str, Any]) -> bool:
        if op == "not":
            if isinstance(expected, Operator):
                return not expected.matches(record)
            return _fold(actual, self.insensitive) != _fold(expected, self.insensitive)
        if op == "equals":
            return _fold(actual, self.insensitive) == _fold(expected, self.insensitive)
        if op in LIST_OPERATORS:
            folded = [_fold(item, self.insensitive) for item in expected]
            found = _fold(actual, self.insensitive) in folded
            return found if op == "in" else not found
        if op in STRING_OPERATORS:
            if not isinstance(actual, str):
                return False
            haystack = _fold(actual, self.insensitive)
            needle = _fold(str(expected), self.insensitive)
            if op == "contains":
                return needle in haystack
            if op == "startsWith":
                return haystack.startswith(needle)
            return haystack.endswith(needle)
        if actual is None or expected is None:
            return False
        if op == "lt":
            return actual < expected
        if op == "lte":
            return actual <= expected
        if op == "gt":
            return actual > expected
        return actual >= expected


@dataclass(frozen=True)
class Relation:
    field: str
    quantifier: str | None
    where: Predicate | None
    null: bool = False

    def to_wire(self) -> dict[str, Any]:
        if self.null:
            return {self.field: {self.quantifier: None}}
        inner = self.where.to_wire() if self.where is not None else {}
        if self.quantifier is None:
            return {self.field: inner}
        return {self.field: {self.quantifier: inner}}

    def matches(self, record: Mapping[str, Any]) -> bool:
        related = record.get(self.field)
        if self.quantifier in TO_MANY_QUANTIFIERS or isinstance(related, (list, tuple)):
            rows = list(related or [])
            hits = [self.where is None or self.where.matches(row) for row in rows]
            if self.quantifier == "every":
                return all(hits)
            if self.quantifier == "none":
                return not any(hits)
            return any(hits)
        if self.null:
            return (related is None) == (self.quantifier == "is")
        found = related is not None and (self.where is None or self.where.matches(related))
        return not found if self.quantifier == "isNot" else found


@dataclass(frozen=True)
class And:
    items: tuple[Predicate, ...]
    # flat: several keys of one JSON object, implicitly AND-ed
    flat: bool = False
    as_list: bool = True

    def to_wire(self) -> dict[str, Any]:
        if self.flat:
            merged: dict[str, Any] = {}
            for item in self.items:
                merged.update(item.to_wire())
            return merged
        if not self.as_list and len(self.items) == 1:
            return {"AND": self.items[0].to_wire()}
        return {"AND": [item.to_wire() for item in self.items]}

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(item.matches(record) for item in self.items)


@dataclass(frozen=True)
class Or:
    items: tuple[Predicate, ...]

    def to_wire(self) -> dict[str, Any]:
        return {"OR": [item.to_wire() for item in self.items]}

    def matches(self, record: Mapping[str, Any]) -> bool:
        return any(item.matches(record) for item in self.items)


@dataclass(frozen=True)
class Not:
    items: tuple[Predicate, ...]
    as_list: bool = True

    def to_wire(self) -> dict[str, Any]:
        if not self.as_list and len(self.items) == 1:
            return {"NOT": self.items[0].to_wire()}
        return {"NOT": [item.to_wire() for item in self.items]}

    def matches(self, record: Mapping[str, Any]) -> bool:
        # every listed condition must fail
        return not any(item.matches(record) for item in self.items)


Predicate = Union[Equals, Operator, Relation, And, Or, Not]


def parse_where(where: Mapping[str, Any] | None) -> Predicate | None:
    if where is None:
        return None
    if not isinstance(where, Mapping):
        raise PredicateShapeError("where must be an object")
    nodes = [_parse_entry(str(key), value) for key, value in where.items()]
    if not nodes:
        return None
    if len(nodes) == 1:
        return nodes[0]
    return And(tuple(nodes), flat=True)


def _parse_node(value: Any) -> Predicate:
    if not isinstance(value, Mapping):
        raise PredicateShapeError("AND/OR/NOT items must be objects")
    return parse_where(value) or And((), flat=True)


def _parse_entry(key: str, value: Any) -> Predicate:
    if key == "AND":
        if isinstance(value, list):
            return And(tuple(_parse_node(item) for item in value))
        if isinstance(value, Mapping):
            return And((_parse_node(value),), as_list=False)
        raise PredicateShapeError("AND must be an object or a list")
    if key == "OR":
        if not isinstance(value, list):
            raise PredicateShapeError("OR must be a list")
        return Or(tuple(_parse_node(item) for item in value))
    if key == "NOT":
        if isinstance(value, list):
            return Not(tuple(_parse_node(item) for item in value))
        if isinstance(value, Mapping):
            return Not((_parse_node(value),), as_list=False)
        raise PredicateShapeError("NOT must be an object or a list")
    if not key:
        raise PredicateShapeError("Empty field name")
    return _parse_field(key, value)


def _parse_field(field: str, value: Any) -> Predicate:
    if isinstance(value, list):
        raise PredicateShapeError(f'Field "{field}": use "in" to match a list of values')
    if not isinstance(value, Mapping):
        return Equals(field, value)
    keys = set(value)
    operator_keys = keys & (FIELD_OPERATORS | {"mode"})
    quantifier_keys = keys & RELATION_QUANTIFIERS
    if operator_keys and keys <= FIELD_OPERATORS | {"mode"}:
        return _parse_operator(field, value)
    if quantifier_keys and keys == quantifier_keys:
        if len(keys) != 1:
            raise PredicateShapeError(f'Field "{field}": only one relation quantifier is allowed')
        quantifier = next(iter(keys))
        inner = value[quantifier]
        if inner is None:
            if quantifier not in TO_ONE_QUANTIFIERS:
                raise PredicateShapeError(f'Field "{field}": "{quantifier}" requires an object')
            return Relation(field, quantifier, None, null=True)
        if not isinstance(inner, Mapping):
            raise PredicateShapeError(f'Field "{field}": "{quantifier}" requires an object')
        return Relation(field, quantifier, parse_where(inner))
    if operator_keys or quantifier_keys:
        raise PredicateShapeError(f'Field "{field}": operators cannot be mixed with nested fields')
    return Relation(field, None, parse_where(value))


def _parse_operator(field: str, body: Mapping[str, Any]) -> Operator:
    mode = body.get("mode")
    ops: list[tuple[str, Any]] = []
    for op, expected in body.items():
        if op == "mode":
            continue
        if op in LIST_OPERATORS:
            if not isinstance(expected, list):
                raise PredicateShapeError(f'Field "{field}": "{op}" requires a list')
            if any(isinstance(item, (Mapping, list)) for item in expected):
                raise PredicateShapeError(f'Field "{field}": "{op}" accepts scalar values only')
        elif op == "not" and isinstance(expected, Mapping):
            nested = _parse_field(field, expected)
            if not isinstance(nested, Operator):
                raise PredicateShapeError(f'Field "{field}": "not" accepts a value or operators')
            expected = nested
        elif isinstance(expected, (Mapping, list)):
            raise PredicateShapeError(f'Field "{field}": "{op}" accepts a scalar value')
        elif op in STRING_OPERATORS and not isinstance(expected, str):
            raise PredicateShapeError(f'Field "{field}": "{op}" requires a string')
        ops.append((op, expected))
    if not ops:
        raise PredicateShapeError(f'Field "{field}": "mode" needs an operator')
    if mode is not None:
        if mode not in MODE_VALUES:
            raise PredicateShapeError(f'Field "{field}": unknown mode "{mode}"')
        if not {op for op, _ in ops} & (STRING_OPERATORS | {"equals", "in", "notIn"}):
            raise PredicateShapeError(f'Field "{field}": "mode" applies to text operators only')
    return Operator(field, tuple(ops), mode)


def evaluate(predicate: Predicate | None, record: Mapping[str, Any]) -> bool:
    if predicate is None:
        return True
    return predicate.matches(record)


def referenced_fields(predicate: Predicate | None) -> set[str]:
    """Field names of the filtered entity used anywhere in the tree.

    Relations contribute their own name only; fields of the related entity
    are not listed.
    """
    if predicate is None:
        return set()
    if isinstance(predicate, (Equals, Operator, Relation)):
        return {predicate.field}
    fields: set[str] = set()
    for item in predicate.items:
        fields |= referenced_fields(item)
    return fields
