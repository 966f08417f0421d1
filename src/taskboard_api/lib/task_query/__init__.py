"""Task filter library: turns a loose filter mapping into query predicates.

Public API:
    - build_task_predicate: Translate filters into SQLAlchemy conditions
    - validate_filters: Check filter values without building a query
    - parse_filter_date: Parse a single date-valued filter
    - InvalidFilterError: Raised for malformed filter values
    - FILTER_KEYS: Filter names that have an effect
"""

from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import ColumnElement, or_

from taskboard_api.models.task import Task

FILTER_KEYS = (
    "status",
    "priority",
    "search",
    "dateFrom",
    "dateTo",
    "completedDateFrom",
    "completedDateTo",
)

# Filter name -> (column, is_upper_bound)
_DATE_FILTERS = {
    "dateFrom": (Task.created_at, False),
    "dateTo": (Task.created_at, True),
    "completedDateFrom": (Task.completed_at, False),
    "completedDateTo": (Task.completed_at, True),
}

# Enum filters where "all" means "no constraint"
_ALL_VALUE = "all"

_datetime_adapter = TypeAdapter(datetime)


class InvalidFilterError(ValueError):
    """A filter value could not be interpreted."""

    def __init__(self, name: str, value: object, reason: str) -> None:
        self.name = name
        self.value = value
        super().__init__(f"Invalid value for filter '{name}': {value!r} ({reason})")


def _is_absent(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_filter_date(name: str, value: object) -> datetime:
    """Parse a date filter value into an aware UTC datetime.

    Accepts ``datetime``/``date`` objects, ISO-8601 strings (date-only
    strings resolve to midnight) and Unix timestamps. Naive values are
    interpreted as UTC.

    Raises:
        InvalidFilterError: If the value cannot be parsed.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        try:
            parsed = _datetime_adapter.validate_python(value.strip() if isinstance(value, str) else value)
        except ValidationError as exc:
            raise InvalidFilterError(name, value, "not a valid date") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _enum_value(filters: Mapping[str, Any], name: str) -> str | None:
    value = filters.get(name)
    if _is_absent(value):
        return None
    text = str(value).strip()
    if text.lower() == _ALL_VALUE:
        return None
    return text


def validate_filters(filters: Mapping[str, Any]) -> None:
    """Validate filter values without building a predicate.

    Raises:
        InvalidFilterError: If a date-valued filter is malformed.
    """
    for name in _DATE_FILTERS:
        value = filters.get(name)
        if not _is_absent(value):
            parse_filter_date(name, value)


def build_task_predicate(filters: Mapping[str, Any]) -> list[ColumnElement[bool]]:
    """Translate a filter mapping into conditions on the tasks table.

    Unrecognized keys are ignored. An empty list means "all tasks".

    Args:
        filters: Mapping of filter names (see ``FILTER_KEYS``) to raw values.

    Returns:
        List of conditions to AND together.

    Raises:
        InvalidFilterError: If a date-valued filter is malformed.
    """
    conditions: list[ColumnElement[bool]] = []

    status = _enum_value(filters, "status")
    if status is not None:
        conditions.append(Task.status == status)

    priority = _enum_value(filters, "priority")
    if priority is not None:
        conditions.append(Task.priority == priority)

    search = filters.get("search")
    if not _is_absent(search):
        term = str(search).strip()
        conditions.append(
            or_(
                Task.title.icontains(term, autoescape=True),
                Task.description.icontains(term, autoescape=True),
            )
        )

    for name, (column, is_upper) in _DATE_FILTERS.items():
        value = filters.get(name)
        if _is_absent(value):
            continue
        bound = parse_filter_date(name, value)
        conditions.append(column <= bound if is_upper else column >= bound)

    return conditions


__all__ = [
    "FILTER_KEYS",
    "InvalidFilterError",
    "build_task_predicate",
    "parse_filter_date",
    "validate_filters",
]
