"""
Typed query predicates.

List endpoints describe their filters as a list of predicates instead of
building SQLAlchemy clauses inline:

    >>> predicates = [
    ...     Equals(FreshdeskTicket.status, 5),
    ...     Contains((FreshdeskTicket.subject, TicketOrg.name), "printer"),
    ... ]
    >>> query = select(FreshdeskTicket).where(*compile_predicates(predicates))
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class Equals:
    column: Any
    value: Any


@dataclass(frozen=True)
class Contains:
    """Case-insensitive substring match against one or more columns (OR-ed)."""
    columns: Union[Any, Tuple[Any, ...]]
    text: str


@dataclass(frozen=True)
class InSet:
    column: Any
    values: Sequence[Any]


@dataclass(frozen=True)
class DateRange:
    """Half-open range: ``start <= column < end``. Either bound may be None."""
    column: Any
    start: Optional[datetime] = None
    end: Optional[datetime] = None


Predicate = Union[Equals, Contains, InSet, DateRange]


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_predicate(predicate: Predicate) -> Optional[ColumnElement]:
    """Translate one predicate into a SQLAlchemy clause (None if it is a no-op)."""
    if isinstance(predicate, Equals):
        return predicate.column == predicate.value

    if isinstance(predicate, Contains):
        text = predicate.text.strip()
        if not text:
            return None
        columns = predicate.columns if isinstance(predicate.columns, tuple) else (predicate.columns,)
        pattern = f"%{_escape_like(text)}%"
        return or_(*(column.ilike(pattern, escape="\\") for column in columns))

    if isinstance(predicate, InSet):
        return predicate.column.in_(list(predicate.values))

    if isinstance(predicate, DateRange):
        bounds = []
        if predicate.start is not None:
            bounds.append(predicate.column >= predicate.start)
        if predicate.end is not None:
            bounds.append(predicate.column < predicate.end)
        return and_(*bounds) if bounds else None

    raise TypeError(f"Unsupported predicate: {predicate!r}")


def compile_predicates(predicates: Iterable[Predicate]) -> List[ColumnElement]:
    clauses = []
    for predicate in predicates:
        clause = compile_predicate(predicate)
        if clause is not None:
            clauses.append(clause)
    return clauses


def month_range(year: int, month: Optional[int] = None) -> Tuple[datetime, datetime]:
    """
    ``[start, end)`` for a calendar year, or for one month of it.

    Raises:
        ValueError: If the year or month is out of range
    """
    if not 1970 <= year <= 2100:
        raise ValueError("year must be between 1970 and 2100")
    if month is None:
        return datetime(year, 1, 1), datetime(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    if month == 12:
        return datetime(year, 12, 1), datetime(year + 1, 1, 1)
    return datetime(year, month, 1), datetime(year, month + 1, 1)
