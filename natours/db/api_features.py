"""
Query-string driven SELECT builder: filter, sort, field selection, pagination.

Column names taken from the request are only used after they have matched
COLUMN_WHITELIST for the table; values always travel as bound parameters.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import operator
import re

from sqlalchemy import Float, Integer, Numeric, and_, select
from sqlalchemy.sql import Select

from natours.core.config import settings
from natours.core.errors import AppError
from natours.db.models import TABLES

RESERVED_PARAMS = ("page", "sort", "limit", "fields")

# keeps OFFSET = (page - 1) * limit inside a signed 64-bit integer
MAX_PAGINATION_VALUE = 2**31 - 1

OPERATORS = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

# Columns a client may filter, sort or select by
COLUMN_WHITELIST: Dict[str, Tuple[str, ...]] = {
    "tours": (
        "id",
        "name",
        "duration",
        "max_group_size",
        "difficulty",
        "rating",
        "ratings_quantity",
        "price",
    ),
    "users": ("id", "name", "email", "role"),
    "reviews": ("id", "rating", "created_at", "tour_id", "user_id"),
}

_BRACKET_KEY = re.compile(r"^([^\[\]]+)\[([^\[\]]+)\]$")


def parse_query_string(items: Iterable[Tuple[str, str]]) -> Dict[str, Any]:
    """
    Fold raw query pairs into a nested mapping.

    ``price[gte]=500&difficulty=easy`` becomes
    ``{"price": {"gte": "500"}, "difficulty": "easy"}``. A repeated key keeps
    its last value.
    """
    parsed: Dict[str, Any] = {}
    for key, value in items:
        match = _BRACKET_KEY.match(key)
        if match is None:
            parsed[key] = value
            continue
        field, op = match.groups()
        operators = parsed.get(field)
        if not isinstance(operators, dict):
            operators = {}
            parsed[field] = operators
        operators[op] = value
    return parsed


def _positive_int(raw: Any, default: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value == 0:
        return default
    return min(max(1, value), MAX_PAGINATION_VALUE)


class APIFeatures:
    """
    Build a SELECT for ``table`` out of request query parameters.

    Usage mirrors a chained builder::

        features = APIFeatures("tours", query).filter().sort().limit_fields().paginate()
        rows = db.execute(features.statement).mappings().all()

    ``select_columns`` restricts the output projection; ``where`` adds fixed
    equality conditions chosen by the caller (never by the client).
    """

    def __init__(
        self,
        table: str,
        query_string: Mapping[str, Any],
        select_columns: Optional[Sequence[str]] = None,
        where: Optional[Mapping[str, Any]] = None,
    ):
        if table not in COLUMN_WHITELIST:
            raise AppError("Invalid table name", 400)
        self.table_name = table
        self.table = TABLES[table]
        self.query_string = dict(query_string)
        self.allowed = COLUMN_WHITELIST[table]

        if select_columns:
            self.columns = [self.table.c[name] for name in select_columns]
        else:
            self.columns = list(self.table.c)

        self.conditions: List[Any] = []
        self.order_by: List[Any] = []
        self.values: List[Any] = []
        self.page = 1
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

        for name, value in (where or {}).items():
            self._add_condition(self.table.c[name] == value, value)

    def _add_condition(self, clause, value) -> None:
        self.conditions.append(clause)
        self.values.append(value)

    def _coerce(self, column, raw: Any) -> Any:
        if not isinstance(raw, str):
            return raw
        if isinstance(column.type, Integer):
            cast = int
        elif isinstance(column.type, (Float, Numeric)):
            cast = float
        else:
            return raw
        try:
            value = cast(raw)
        except ValueError:
            raise AppError(f"Invalid value for {column.name}: {raw}", 400) from None
        if cast is int and not -(2**63) <= value < 2**63:
            raise AppError(f"Invalid value for {column.name}: {raw}", 400)
        return value

    def filter(self) -> "APIFeatures":
        for field, value in self.query_string.items():
            if field in RESERVED_PARAMS or field not in self.allowed:
                continue
            column = self.table.c[field]

            if isinstance(value, Mapping):
                for op, operand in value.items():
                    compare = OPERATORS.get(op)
                    if compare is None:
                        continue
                    operand = self._coerce(column, operand)
                    self._add_condition(compare(column, operand), operand)
            else:
                value = self._coerce(column, value)
                self._add_condition(column == value, value)

        return self

    def sort(self) -> "APIFeatures":
        raw = self.query_string.get("sort")
        if not raw:
            return self

        for entry in str(raw).split(","):
            entry = entry.strip()
            if not entry:
                continue
            descending = entry.startswith("-")
            field = entry[1:] if descending else entry
            if field not in self.allowed:
                raise AppError(f"Invalid sort field: {field}", 400)
            column = self.table.c[field]
            self.order_by.append(column.desc() if descending else column.asc())
        return self

    def limit_fields(self) -> "APIFeatures":
        raw = self.query_string.get("fields")
        if not raw:
            return self

        available = {column.name for column in self.columns}
        selected: List[str] = []
        for field in str(raw).split(","):
            field = field.strip()
            if field in self.allowed and field in available and field not in selected:
                selected.append(field)

        if selected:
            if "id" not in selected:
                selected.append("id")
            self.columns = [self.table.c[name] for name in selected]
        return self

    def paginate(self) -> "APIFeatures":
        self.page = _positive_int(self.query_string.get("page"), 1)
        limit = _positive_int(self.query_string.get("limit"), settings.default_page_limit)
        offset = (self.page - 1) * limit

        self._limit = limit
        self._offset = offset
        self.values.extend([limit, offset])
        return self

    @property
    def statement(self) -> Select:
        stmt = select(*self.columns)
        if self.conditions:
            stmt = stmt.where(and_(*self.conditions))
        # stable order keeps LIMIT/OFFSET pages disjoint
        stmt = stmt.order_by(*(self.order_by or [self.table.c.id.asc()]))
        if self._limit is not None:
            stmt = stmt.limit(self._limit).offset(self._offset)
        return stmt

    @property
    def sql(self) -> str:
        return str(self.statement)
