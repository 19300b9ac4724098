"""Turns URL query strings into filter, sort, projection and pagination on an
unexecuted SQLAlchemy query.

    features = (
        QueryFeatures(db.query(Tour), Tour, parse_query_params(request.query_params.multi_items()))
        .filter()
        .sort()
        .limit_fields()
        .paginate()
    )
    rows = features.query.all()

Nothing here executes the query. Field names arrive in the API's camelCase
and are resolved against the mapped attributes; names that do not resolve
are ignored.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic.alias_generators import to_snake
from sqlalchemy import asc, desc, inspect
from sqlalchemy.orm import ColumnProperty, Query, defer, load_only

from tours_api.core.config import settings
from tours_api.core.errors import ValidationError
from tours_api.schemas.query import FilterClause, Page, Projection, QueryDescriptor, SortClause

logger = logging.getLogger(__name__)

RESERVED_KEYS = frozenset({"page", "sort", "limit", "fields"})
# Only these nested keys ever reach the query; everything else is dropped.
COMPARISON_OPERATORS = {"gte": ">=", "gt": ">", "lte": "<=", "lt": "<"}

_BRACKET_KEY_RE = re.compile(r"^([^\[\]]+)\[([^\[\]]+)\]$")


def _append_value(container: dict, key: str, value) -> None:
    if key not in container:
        container[key] = value
        return
    existing = container[key]
    if isinstance(existing, list):
        existing.append(value)
    else:
        container[key] = [existing, value]


def parse_query_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """Nest ``field[op]=value`` pairs the way the qs parser does.

    ``price[lte]=500&difficulty=easy`` gives
    ``{"price": {"lte": "500"}, "difficulty": "easy"}``. Repeated keys
    collect into a list.
    """
    parsed: dict[str, Any] = {}
    for raw_key, value in items:
        key = str(raw_key or "").strip()
        if not key:
            continue
        match = _BRACKET_KEY_RE.fullmatch(key)
        if match is None:
            if isinstance(parsed.get(key), dict):
                continue
            _append_value(parsed, key, value)
            continue
        field, nested_key = match.group(1).strip(), match.group(2).strip()
        bucket = parsed.get(field)
        if not isinstance(bucket, dict):
            bucket = {}
            parsed[field] = bucket
        _append_value(bucket, nested_key, value)
    return parsed


def _last(value):
    if isinstance(value, list):
        return value[-1] if value else None
    return value


def _split_csv(raw) -> list[str]:
    if isinstance(raw, list):
        raw = ",".join(str(item) for item in raw)
    return [token.strip() for token in str(raw or "").split(",") if token.strip()]


def safe_positive_int(raw, default: int) -> int:
    raw = _last(raw)
    if isinstance(raw, bool) or raw is None:
        return default
    if isinstance(raw, int):
        return raw if raw > 0 else default
    text = str(raw).strip()
    if not text or not text.isascii() or not text.isdigit():
        return default
    value = int(text)
    return value if value > 0 else default


def build_filter_clauses(query_params: Mapping[str, Any]) -> list[FilterClause]:
    clauses: list[FilterClause] = []
    for field, value in query_params.items():
        if field in RESERVED_KEYS:
            continue
        if isinstance(value, Mapping):
            for op_key, operand in value.items():
                op = COMPARISON_OPERATORS.get(str(op_key))
                if op is None:
                    logger.debug("Dropping unsupported filter operator %r on %s", op_key, field)
                    continue
                clauses.append(FilterClause(field=field, op=op, value=_last(operand)))
        elif isinstance(value, list):
            clauses.append(FilterClause(field=field, op="in", value=list(value)))
        else:
            clauses.append(FilterClause(field=field, op="=", value=value))
    return clauses


def build_sort_clauses(raw_sort) -> list[SortClause]:
    clauses: list[SortClause] = []
    for token in _split_csv(raw_sort):
        if token.startswith("-"):
            field = token[1:].strip()
            direction = "desc"
        else:
            field = token.lstrip("+").strip()
            direction = "asc"
        if field:
            clauses.append(SortClause(field=field, dir=direction))
    return clauses


def build_projection(raw_fields) -> Projection:
    include: list[str] = []
    exclude: list[str] = []
    for token in _split_csv(raw_fields):
        if token.startswith("-"):
            if token[1:].strip():
                exclude.append(token[1:].strip())
        else:
            include.append(token)
    return Projection(include=include, exclude=exclude)


def _bad_filter_value(field: str, value) -> ValidationError:
    return ValidationError(f"Invalid {field}: {value}.")


def _coerce_bool_filter_value(field: str, value):
    if isinstance(value, bool):
        return value
    text = str(value or "").strip().lower()
    if text in {"1", "true", "yes", "y"}:
        return True
    if text in {"0", "false", "no", "n"}:
        return False
    raise _bad_filter_value(field, value)


def _coerce_number_filter_value(field: str, value, python_type):
    if python_type in {int, float} and isinstance(value, (int, float)) and not isinstance(value, bool):
        return python_type(value)
    if python_type is Decimal and isinstance(value, Decimal):
        return value
    text = str(value if value is not None else "").strip()
    if not text:
        raise _bad_filter_value(field, value)
    try:
        if python_type is int:
            return int(text)
        if python_type is float:
            parsed = float(text)
            if parsed != parsed or parsed in {float("inf"), float("-inf")}:
                raise ValueError(text)
            return parsed
        if python_type is Decimal:
            return Decimal(text)
        return python_type(text)
    except (ValueError, TypeError, InvalidOperation):
        raise _bad_filter_value(field, value)


def _coerce_date_filter_value(field: str, value):
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    text = str(value or "").strip()
    try:
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError:
        raise _bad_filter_value(field, value)


def _coerce_datetime_filter_value(field: str, value):
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value or "").strip()
        try:
            if "T" not in text and " " not in text and len(text) == 10:
                # Date-only literal on a timestamp column -> start of that day.
                parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise _bad_filter_value(field, value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _column_python_type(column):
    try:
        return column.property.columns[0].type.python_type
    except Exception:
        return None


def coerce_filter_value(column, field: str, value):
    if isinstance(value, (dict, list)):
        raise _bad_filter_value(field, value)
    python_type = _column_python_type(column)
    if python_type is None:
        return value
    if python_type in {dict, list}:
        raise _bad_filter_value(field, value)
    if python_type is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value or "").strip())
        except ValueError:
            raise _bad_filter_value(field, value)
    if python_type is bool:
        return _coerce_bool_filter_value(field, value)
    if python_type in {int, float, Decimal}:
        return _coerce_number_filter_value(field, value, python_type)
    if python_type is datetime:
        return _coerce_datetime_filter_value(field, value)
    if python_type is date:
        return _coerce_date_filter_value(field, value)
    if python_type is str:
        return str(value)
    return value


def _is_date_only_literal(raw_value) -> bool:
    if not isinstance(raw_value, str):
        return False
    text = raw_value.strip()
    if not text or "T" in text or " " in text:
        return False
    try:
        date.fromisoformat(text)
        return True
    except ValueError:
        return False


class QueryFeatures:
    """Chainable filter / sort / field-limit / paginate builder.

    Each stage only records its part; ``query`` composes them onto the base
    query in a fixed order (filter, sort, projection, pagination), so the
    order the stages are called in never changes the result.

    ``protected_fields`` are attribute keys that can never be filtered,
    sorted on or selected (credential material, soft-delete flags).
    ``hidden_fields`` are left out of the output unless ``fields`` asks for
    them explicitly.
    """

    def __init__(
        self,
        query: Query,
        model,
        query_params: Mapping[str, Any] | None,
        *,
        protected_fields: Iterable[str] = (),
        hidden_fields: Iterable[str] = ("version",),
        default_sort: str = "-createdAt",
        default_limit: int | None = None,
        max_limit: int | None = None,
    ):
        self.base_query = query
        self.model = model
        self.query_params = dict(query_params or {})
        self.protected_fields = frozenset(protected_fields)
        self.hidden_fields = frozenset(hidden_fields) - self.protected_fields
        self.default_sort = default_sort
        self.default_limit = default_limit or settings.QUERY_DEFAULT_LIMIT
        self.max_limit = settings.QUERY_MAX_LIMIT if max_limit is None else max_limit

        self._props = {prop.key: prop for prop in inspect(model).attrs if prop.key not in self.protected_fields}
        self._criteria: list = []
        self._order_by: list = []
        self._load_options: list = []
        self._paginated = False

        self.filters: list[FilterClause] = []
        self.sort_clauses: list[SortClause] = []
        self.projection: Projection | None = None
        self.page = Page(page=settings.QUERY_DEFAULT_PAGE, limit=self.default_limit)
        self.output_fields: list[str] = [key for key in self._props if key not in self.hidden_fields]
        self._applied: set[str] = set()

    @property
    def query(self) -> Query:
        query = self.base_query
        if self._criteria:
            query = query.filter(*self._criteria)
        if self._order_by:
            query = query.order_by(*self._order_by)
        if self._load_options:
            query = query.options(*self._load_options)
        if self._paginated:
            query = query.offset(self.page.offset).limit(self.page.limit)
        return query

    def resolve_field(self, field: str, *, columns_only: bool = False) -> str | None:
        name = str(field or "").strip()
        if not name:
            return None
        for candidate in (name, to_snake(name)):
            if candidate in self.protected_fields:
                return None
            prop = self._props.get(candidate)
            if prop is None:
                continue
            if columns_only and not isinstance(prop, ColumnProperty):
                return None
            return candidate
        return None

    def _is_column(self, key: str) -> bool:
        return isinstance(self._props.get(key), ColumnProperty)

    def filter(self) -> "QueryFeatures":
        if "filter" in self._applied:
            return self
        self._applied.add("filter")
        self.filters = build_filter_clauses(self.query_params)
        for clause in self.filters:
            key = self.resolve_field(clause.field, columns_only=True)
            if key is None:
                continue
            self._criteria.append(self._filter_expression(key, clause))
        return self

    def _filter_expression(self, key: str, clause: FilterClause):
        col = getattr(self.model, key)
        if clause.op == "in":
            return col.in_([coerce_filter_value(col, clause.field, item) for item in clause.value])
        value = coerce_filter_value(col, clause.field, clause.value)
        if _column_python_type(col) is datetime and clause.op == "=" and _is_date_only_literal(clause.value):
            return (col >= value) & (col < value + timedelta(days=1))
        if clause.op == ">":
            return col > value
        if clause.op == ">=":
            return col >= value
        if clause.op == "<":
            return col < value
        if clause.op == "<=":
            return col <= value
        return col == value

    def sort(self) -> "QueryFeatures":
        if "sort" in self._applied:
            return self
        self._applied.add("sort")
        resolved: list[tuple[str, str]] = []
        if "sort" in self.query_params:
            self.sort_clauses = build_sort_clauses(self.query_params.get("sort"))
            for clause in self.sort_clauses:
                key = self.resolve_field(clause.field, columns_only=True)
                if key is not None and key not in {k for k, _ in resolved}:
                    resolved.append((key, clause.dir))
        if not resolved:
            for clause in build_sort_clauses(self.default_sort):
                key = self.resolve_field(clause.field, columns_only=True)
                if key is not None:
                    resolved.append((key, clause.dir))
        # Rows with equal sort keys keep a stable order across pages.
        if "id" in self._props and "id" not in {k for k, _ in resolved}:
            resolved.append(("id", "asc"))
        self._order_by = [
            asc(getattr(self.model, key)) if direction == "asc" else desc(getattr(self.model, key))
            for key, direction in resolved
        ]
        return self

    def limit_fields(self) -> "QueryFeatures":
        if "limit_fields" in self._applied:
            return self
        self._applied.add("limit_fields")
        if "fields" in self.query_params:
            self.projection = build_projection(self.query_params.get("fields"))
        if self.projection is not None and self.projection.include:
            keys = ["id"]
            for field in self.projection.include:
                key = self.resolve_field(field)
                if key is not None and key not in keys:
                    keys.append(key)
            self.output_fields = keys
            self._load_options = [load_only(*[getattr(self.model, key) for key in keys if self._is_column(key)])]
            return self
        excluded = set(self.hidden_fields)
        if self.projection is not None and self.projection.exclude:
            excluded = {
                key
                for key in (self.resolve_field(field) for field in self.projection.exclude)
                if key is not None and key != "id"
            }
        self.output_fields = [key for key in self._props if key not in excluded]
        self._load_options = [defer(getattr(self.model, key)) for key in sorted(excluded) if self._is_column(key)]
        return self

    def paginate(self) -> "QueryFeatures":
        if "paginate" in self._applied:
            return self
        self._applied.add("paginate")
        page = safe_positive_int(self.query_params.get("page"), settings.QUERY_DEFAULT_PAGE)
        limit = safe_positive_int(self.query_params.get("limit"), self.default_limit)
        if self.max_limit and limit > self.max_limit:
            logger.info("Clamping requested limit=%s to max_limit=%s", limit, self.max_limit)
            limit = self.max_limit
        self.page = Page(page=page, limit=limit)
        self._paginated = True
        return self

    @property
    def descriptor(self) -> QueryDescriptor:
        return QueryDescriptor(
            filters=self.filters,
            sort=self.sort_clauses,
            projection=self.projection,
            page=self.page,
        )
