"""Compile flat filter parameters into native clauses and residual predicates."""

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, func, or_
from sqlalchemy.sql.elements import ColumnElement

from app.config import settings
from app.services.field_catalog import (
    FieldCatalog,
    FieldDescriptor,
    FieldKind,
    Match,
    Path,
    ValueType,
    as_utc,
)

logger = logging.getLogger(__name__)

_END_OF_DAY = {"hour": 23, "minute": 59, "second": 59, "microsecond": 999000}

DATE_WINDOW_SEPARATOR = "–"


# ── Value coercion ────────────────────────────────────────────────────


def parse_date(value: Any) -> datetime | None:
    """Parse ISO dates and datetimes, accepting ``YYYY_MM_DD``. Returns UTC or None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip().replace("_", "-")
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def day_bounds(value: Any) -> tuple[datetime, datetime] | None:
    """Expand a date into the first and last millisecond of its UTC day."""
    parsed = parse_date(value)
    if parsed is None:
        return None
    start = parsed.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start.replace(**_END_OF_DAY)


def to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    return None if math.isnan(number) else number


def parse_coordinates(value: Any) -> tuple[float, float] | None:
    parts = str(value).split(",")
    if len(parts) != 2:
        return None
    lat, lng = to_number(parts[0]), to_number(parts[1])
    if lat is None or lng is None:
        return None
    return lat, lng


def parse_date_window(value: Any) -> tuple[datetime, datetime] | None:
    """``2024-02-01 – 2024-03-31`` to the start of the first day and the end of the last."""
    parts = [p.strip() for p in str(value).split(DATE_WINDOW_SEPARATOR)]
    if len(parts) != 2:
        return None
    first, last = day_bounds(parts[0]), day_bounds(parts[1])
    if first is None or last is None:
        return None
    return first[0], last[1]


def is_blank(value: Any) -> bool:
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set)):
        return all(is_blank(v) for v in value)
    return not value


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ── Residual predicates ───────────────────────────────────────────────


@dataclass(frozen=True)
class ResidualPredicate:
    """A filter evaluated against projected records after the fetch."""

    key: str
    field: str
    test: Callable[[Any], bool]

    def __call__(self, record: Mapping[str, Any]) -> bool:
        return self.test(record.get(self.field))


@dataclass
class CompiledFilters:
    native: list[ColumnElement] = field(default_factory=list)
    residual: list[ResidualPredicate] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)

    @property
    def is_native(self) -> bool:
        return not self.residual


class FilterCompiler:
    """Turns a FilterRequest into native clauses plus residual predicates.

    Unknown keys and blank values are dropped. Each key yields one predicate;
    list values OR their alternatives. All predicates are ANDed.
    """

    def __init__(self, catalog: FieldCatalog, *, tolerance: float | None = None) -> None:
        self.catalog = catalog
        self.tolerance = settings.GPS_TOLERANCE if tolerance is None else tolerance

    def compile(self, filters: Mapping[str, Any]) -> CompiledFilters:
        compiled = CompiledFilters()
        for key, raw in filters.items():
            descriptor = self.catalog.resolve(key)
            if descriptor is None or is_blank(raw):
                continue
            values = [
                v for v in (raw if isinstance(raw, (list, tuple, set)) else [raw])
                if not is_blank(v) and str(v).strip() not in descriptor.ignore_values
            ]
            if not values:
                continue
            if descriptor.kind is FieldKind.NATIVE and descriptor.targets:
                clause = self._native(descriptor, values)
                if clause is not None:
                    compiled.native.append(clause)
                    compiled.keys.append(descriptor.key)
            else:
                predicate = self._residual(descriptor, values)
                if predicate is not None:
                    compiled.residual.append(predicate)
                    compiled.keys.append(descriptor.key)
        return compiled

    # ── Native ────────────────────────────────────────────────────────

    def _native(self, descriptor: FieldDescriptor, values: list) -> ColumnElement | None:
        alternatives = []
        for value in values:
            if descriptor.match is Match.COORDINATES:
                clause = self._coordinates(descriptor, value)
            elif descriptor.match is Match.DATE_WINDOW:
                clause = self._date_window(descriptor, value)
            else:
                clauses = [
                    c for c in (
                        self._on_path(self.catalog.model, path, descriptor, value)
                        for path in descriptor.targets
                    )
                    if c is not None
                ]
                clause = or_(*clauses) if len(clauses) > 1 else (clauses[0] if clauses else None)
            if clause is not None:
                alternatives.append(clause)
        if not alternatives:
            logger.debug("Filter %s.%s had no usable value", self.catalog.name, descriptor.key)
            return None
        return alternatives[0] if len(alternatives) == 1 else or_(*alternatives)

    def _coordinates(self, descriptor: FieldDescriptor, value: Any) -> ColumnElement | None:
        pair = parse_coordinates(value)
        if pair is None or len(descriptor.targets) != 2:
            return None
        clauses = [
            self._on_path(self.catalog.model, path, descriptor, coordinate, match=Match.NEAR)
            for path, coordinate in zip(descriptor.targets, pair)
        ]
        return and_(*clauses)

    def _date_window(self, descriptor: FieldDescriptor, value: Any) -> ColumnElement | None:
        window = parse_date_window(value)
        if window is None:
            return None
        start_path, end_path = descriptor.targets
        return and_(
            self._on_path(self.catalog.model, start_path, descriptor, window[0], match=Match.DAY_FROM),
            self._on_path(self.catalog.model, end_path, descriptor, window[1], match=Match.DAY_TO),
        )

    def _on_path(
        self,
        model: type,
        path: Path,
        descriptor: FieldDescriptor,
        value: Any,
        *,
        match: Match | None = None,
    ) -> ColumnElement | None:
        attribute = getattr(model, path[0])
        if len(path) == 1:
            return self._condition(attribute, descriptor, value, match or descriptor.match)
        inner = self._on_path(
            attribute.property.mapper.class_, path[1:], descriptor, value, match=match
        )
        if inner is None:
            return None
        if attribute.property.uselist:
            return attribute.any(inner)
        return attribute.has(inner)

    def _condition(
        self, column, descriptor: FieldDescriptor, value: Any, match: Match
    ) -> ColumnElement | None:
        if match is Match.CONTAINS:
            return column.ilike(f"%{escape_like(str(value).strip())}%", escape="\\")
        if match is Match.EQUALS:
            if descriptor.value_type is ValueType.NUMBER:
                number = to_number(value)
                return None if number is None else column == number
            return func.lower(column) == str(value).strip().lower()
        if match is Match.NEAR:
            number = to_number(value)
            if number is None:
                return None
            return column.between(number - self.tolerance, number + self.tolerance)
        bounds = day_bounds(value)
        if bounds is None:
            return None
        start, end = bounds
        if match is Match.DAY_FROM:
            return column >= start
        if match is Match.DAY_TO:
            return column <= end
        return column.between(start, end)

    # ── Residual ──────────────────────────────────────────────────────

    def _residual(self, descriptor: FieldDescriptor, values: list) -> ResidualPredicate | None:
        tests = [t for t in (self._record_test(descriptor, v) for v in values) if t is not None]
        if not tests:
            return None
        if len(tests) == 1:
            test = tests[0]
        else:
            def test(candidate, _tests=tuple(tests)):
                return any(t(candidate) for t in _tests)
        return ResidualPredicate(descriptor.key, descriptor.record_field, test)

    def _record_test(self, descriptor: FieldDescriptor, value: Any) -> Callable[[Any], bool] | None:
        match = descriptor.match
        if match is Match.CONTAINS:
            needle = str(value).strip().lower()
            return lambda v: v is not None and needle in str(v).lower()
        if match is Match.EQUALS:
            if descriptor.value_type is ValueType.NUMBER:
                number = to_number(value)
                if number is None:
                    return None
                return lambda v: to_number(v) == number
            expected = str(value).strip().lower()
            return lambda v: v is not None and str(v).strip().lower() == expected
        if match is Match.NEAR:
            number = to_number(value)
            if number is None:
                return None
            tolerance = self.tolerance

            def near(v):
                candidate = to_number(v)
                return candidate is not None and abs(candidate - number) <= tolerance
            return near
        if match is Match.COORDINATES:
            pair = parse_coordinates(value)
            if pair is None:
                return None
            tolerance = self.tolerance

            def near_pair(v):
                candidate = parse_coordinates(v) if v is not None else None
                return candidate is not None and all(
                    abs(c - p) <= tolerance for c, p in zip(candidate, pair)
                )
            return near_pair
        bounds = day_bounds(value)
        if bounds is None:
            return None
        start, end = bounds

        def in_range(v):
            moment = parse_date(v)
            if moment is None:
                return False
            if match is Match.DAY_FROM:
                return moment >= start
            if match is Match.DAY_TO:
                return moment <= end
            return start <= moment <= end
        return in_range


def compile_filters(catalog: FieldCatalog, filters: Mapping[str, Any]) -> CompiledFilters:
    return FilterCompiler(catalog).compile(filters)
