"""Translate filter documents into SQLAlchemy WHERE clauses."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import Boolean, ColumnElement, Select, and_, false, func, literal, or_, true
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.functions import FunctionElement

from sqla_abac.exceptions import InvalidInput
from sqla_abac.resources._registry import ResourceDescriptor

if TYPE_CHECKING:
    from sqla_abac.engine._models import DataScope

__all__ = ["apply_data_scope", "compile_filter"]


def _resolve_model(model: type[Any] | ResourceDescriptor) -> type[Any]:
    if isinstance(model, ResourceDescriptor):
        if model.model is None:
            raise InvalidInput(f"Resource {model.name!r} has no mapped model to filter on")
        return model.model
    return model


def compile_filter(
    document: Mapping[str, Any], model: type[Any] | ResourceDescriptor
) -> ColumnElement[bool]:
    """Compile a filter document into a ``ColumnElement[bool]`` for *model*.

    ``{}`` compiles to ``true()`` and ``{"$or": []}`` to ``false()``.
    Inequality (``$ne``, ``$nin``) also matches NULL columns, ``None`` in
    an ``$in`` / ``$nin`` list stands for NULL, ``$nor`` treats NULL
    comparisons as non-matches, and substring operators compare case
    sensitively, so SQL results agree with
    :func:`~sqla_abac.filters.matches_filter`.

    Raises:
        InvalidInput: On unknown fields or operators.

    Example::

        stmt = select(College).where(compile_filter({"owner_id": 42}, College))
    """
    mapped = _resolve_model(model)
    try:
        mapper = sa_inspect(mapped)
    except NoInspectionAvailable as exc:
        raise InvalidInput(f"{mapped!r} is not a mapped class") from exc
    columns = {prop.key for prop in mapper.column_attrs}
    return _compile(document, mapped, columns)


def _compile(
    document: Mapping[str, Any], model: type[Any], columns: set[str]
) -> ColumnElement[bool]:
    clauses: list[ColumnElement[bool]] = []
    for key, expected in document.items():
        if key in ("$and", "$or", "$nor"):
            parts = [_compile(d, model, columns) for d in expected]
            if key == "$and":
                clauses.append(and_(true(), *parts))
            elif key == "$or":
                clauses.append(or_(false(), *parts))
            else:
                clauses.append(or_(false(), *parts).is_not(true()))
        elif key.startswith("$"):
            raise InvalidInput(f"Unknown filter operator {key!r}")
        else:
            if key not in columns:
                raise InvalidInput(f"{model.__name__} has no column attribute {key!r}")
            clauses.append(_compile_field(getattr(model, key), expected))
    if not clauses:
        return true()
    if len(clauses) == 1:
        return clauses[0]
    return and_(*clauses)


def _compile_field(column: Any, expected: Any) -> ColumnElement[bool]:
    is_operators = isinstance(expected, Mapping) and all(k.startswith("$") for k in expected)
    if not (expected and is_operators):
        return _compile_op(column, "$eq", expected)
    clauses = [_compile_op(column, op, operand) for op, operand in expected.items()]
    return clauses[0] if len(clauses) == 1 else and_(*clauses)


_LIKE_ESCAPE = "/"


def _like_pattern(mode: str, value: str) -> str:
    escaped = (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )
    if mode == "contains":
        return f"%{escaped}%"
    if mode == "startswith":
        return f"{escaped}%"
    return f"%{escaped}"


class _CaseSensitiveMatch(FunctionElement[bool]):
    """Case-sensitive substring test, compiled per dialect.

    Clauses are ``(column, value, like_pattern)``. ``LIKE`` ignores case on
    SQLite and under MySQL's default collations, so those dialects get
    their own renderings.
    """

    type = Boolean()
    inherit_cache = True
    mode = ""

    def __init__(self, column: Any, value: str) -> None:
        super().__init__(column, literal(value), literal(_like_pattern(self.mode, value)))


class _Contains(_CaseSensitiveMatch):
    name = "abac_contains"
    inherit_cache = True
    mode = "contains"


class _StartsWith(_CaseSensitiveMatch):
    name = "abac_startswith"
    inherit_cache = True
    mode = "startswith"


class _EndsWith(_CaseSensitiveMatch):
    name = "abac_endswith"
    inherit_cache = True
    mode = "endswith"


@compiles(_Contains)
@compiles(_StartsWith)
@compiles(_EndsWith)
def _compile_like(element: _CaseSensitiveMatch, compiler: Any, **kw: Any) -> str:
    column, _value, pattern = element.clauses.clauses
    return compiler.process(column.like(pattern, escape=_LIKE_ESCAPE), **kw)


@compiles(_Contains, "mysql")
@compiles(_StartsWith, "mysql")
@compiles(_EndsWith, "mysql")
def _compile_like_binary(element: _CaseSensitiveMatch, compiler: Any, **kw: Any) -> str:
    column, _value, pattern = element.clauses.clauses
    return (
        f"{compiler.process(column, **kw)} LIKE BINARY {compiler.process(pattern, **kw)} "
        f"ESCAPE '{_LIKE_ESCAPE}'"
    )


@compiles(_Contains, "sqlite")
@compiles(_StartsWith, "sqlite")
@compiles(_EndsWith, "sqlite")
def _compile_sqlite(element: _CaseSensitiveMatch, compiler: Any, **kw: Any) -> str:
    column, value, _pattern = element.clauses.clauses
    if element.mode == "contains":
        expr = func.instr(column, value) > 0
    elif element.mode == "startswith":
        expr = func.substr(column, 1, func.length(value)) == value
    else:
        expr = func.substr(column, -func.length(value)) == value
    return compiler.process(expr, **kw)


_STRING_MATCHES: dict[str, type[_CaseSensitiveMatch]] = {
    "$contains": _Contains,
    "$startswith": _StartsWith,
    "$endswith": _EndsWith,
}


def _compile_string_match(column: Any, op: str, value: Any) -> ColumnElement[bool]:
    if not isinstance(value, str):
        return false()
    if not value:
        return column.is_not(None)
    return _STRING_MATCHES[op](column, value)


def _compile_membership(column: Any, op: str, value: Any) -> ColumnElement[bool]:
    values = list(value)
    present = [v for v in values if v is not None]
    with_null = len(present) != len(values)
    if op == "$in":
        clause = column.in_(present)
        return or_(clause, column.is_(None)) if with_null else clause
    clause = column.not_in(present)
    return and_(clause, column.is_not(None)) if with_null else or_(clause, column.is_(None))


def _compile_op(column: Any, op: str, value: Any) -> ColumnElement[bool]:
    if op == "$eq":
        return column.is_(None) if value is None else column == value
    if op == "$ne":
        return column.is_not(None) if value is None else or_(column != value, column.is_(None))
    if op in ("$in", "$nin"):
        return _compile_membership(column, op, value)
    if op == "$gt":
        return column > value
    if op == "$gte":
        return column >= value
    if op == "$lt":
        return column < value
    if op == "$lte":
        return column <= value
    if op in _STRING_MATCHES:
        return _compile_string_match(column, op, value)
    raise InvalidInput(f"Unknown filter operator {op!r}")


def apply_data_scope(
    stmt: Select[Any], scope: DataScope, model: type[Any] | ResourceDescriptor
) -> Select[Any]:
    """AND a data scope into a SELECT statement.

    A scope without access yields ``WHERE false`` (deny by default); an
    unrestricted scope leaves the statement unchanged.

    Example::

        scope = get_data_scope(principal, "colleges", "read")
        stmt = apply_data_scope(select(College), scope, College)
    """
    if not scope.has_access:
        return stmt.where(false())
    if not scope.filter:
        return stmt
    return stmt.where(compile_filter(scope.filter, model))
