"""Static field catalogs for the hybrid listing engine.

A catalog maps every logical listing key (as used in ``sort`` strings, filter
parameters and export columns) to a :class:`FieldDescriptor`. Native descriptors
name a path of relationship hops ending in a column, so the store can filter and
order on them. Virtual descriptors carry an extractor that computes the value
from the hydrated ORM row in memory.

Catalogs are built once at import time. Every path is checked against the ORM
mappers when the catalog is constructed, so a typo in a path stops the
application from starting instead of failing individual requests.
"""

import enum
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import selectinload

from app.core.exceptions import CatalogError

Path = tuple[str, ...]


class FieldKind(str, enum.Enum):
    NATIVE = "native"
    VIRTUAL = "virtual"


class ValueType(str, enum.Enum):
    STRING = "string"
    DATE = "date"
    NUMBER = "number"


class Match(str, enum.Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    DAY = "day"
    DAY_FROM = "day_from"
    DAY_TO = "day_to"
    NEAR = "near"
    COORDINATES = "coordinates"
    DATE_WINDOW = "date_window"


@dataclass(frozen=True)
class ProjectionContext:
    """Per-request inputs to extractors besides the row itself."""

    now: datetime
    lookups: Mapping[str, Mapping] = field(default_factory=dict)


Extractor = Callable[[Any, ProjectionContext], Any]


@dataclass(frozen=True)
class FieldDescriptor:
    key: str
    kind: FieldKind
    path: Path = ()
    value_type: ValueType = ValueType.STRING
    match: Match = Match.CONTAINS
    filter_paths: tuple[Path, ...] = ()
    extract: Extractor | None = None
    requires: tuple[Path, ...] = ()
    field: str | None = None
    ignore_values: frozenset[str] = frozenset()
    output: bool = True

    @property
    def record_field(self) -> str:
        """Key of the projected record this descriptor reads."""
        return self.field or self.key

    @property
    def targets(self) -> tuple[Path, ...]:
        """Native column paths a filter on this key is compiled against."""
        if self.filter_paths:
            return self.filter_paths
        return (self.path,) if self.path else ()


def _split(path: str) -> Path:
    return tuple(path.split("."))


def _default_match(value_type: ValueType) -> Match:
    if value_type is ValueType.DATE:
        return Match.DAY
    if value_type is ValueType.NUMBER:
        return Match.EQUALS
    return Match.CONTAINS


def native(
    key: str,
    path: str | None = None,
    *,
    value_type: ValueType = ValueType.STRING,
    match: Match | None = None,
    filter_paths: Iterable[str] = (),
    extract: Extractor | None = None,
    requires: Iterable[str] = (),
    ignore: Iterable[str] = (),
    output: bool = True,
) -> FieldDescriptor:
    """Descriptor for a key the store can filter on directly.

    ``path`` is a dotted chain of relationship names ending in a column. Keys
    without a ``path`` (combined searches) filter natively through
    ``filter_paths`` and sort in memory on their extracted value.
    """
    return FieldDescriptor(
        key=key,
        kind=FieldKind.NATIVE,
        path=_split(path) if path else (),
        value_type=value_type,
        match=match or _default_match(value_type),
        filter_paths=tuple(_split(p) for p in filter_paths),
        extract=extract,
        requires=tuple(_split(p) for p in requires),
        ignore_values=frozenset(ignore),
        output=output and (bool(path) or extract is not None),
    )


def virtual(
    key: str,
    extract: Extractor | None = None,
    *,
    requires: Iterable[str] = (),
    value_type: ValueType = ValueType.STRING,
    match: Match | None = None,
    field: str | None = None,
) -> FieldDescriptor:
    """Descriptor for a value only known after projection.

    Without an extractor the descriptor is filter-only and reads the
    projected record under ``field``.
    """
    return FieldDescriptor(
        key=key,
        kind=FieldKind.VIRTUAL,
        value_type=value_type,
        match=match or _default_match(value_type),
        extract=extract,
        requires=tuple(_split(p) for p in requires),
        field=field,
        output=extract is not None,
    )


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize(value: Any) -> Any:
    """Bring column values into the shapes records carry."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, Decimal):
        return float(value)
    return value


def follow(row: Any, path: Path) -> Any:
    """Walk attribute hops from ``row``. To-many hops take the first element."""
    current = row
    for hop in path:
        if current is None:
            return None
        current = getattr(current, hop)
        if isinstance(current, list):
            current = current[0] if current else None
    return normalize(current)


class FieldCatalog:
    """Read-only registry of the descriptors of one listing."""

    def __init__(
        self,
        name: str,
        model: type,
        fields: Iterable[FieldDescriptor],
        *,
        default_sort: str,
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self.name = name
        self.model = model
        self._fields: dict[str, FieldDescriptor] = {}
        for descriptor in fields:
            if descriptor.key in self._fields:
                raise CatalogError(f"{name}: duplicate key {descriptor.key!r}")
            self._fields[descriptor.key] = descriptor
        self._aliases = dict(aliases or {})
        for alias, target in self._aliases.items():
            if target not in self._fields:
                raise CatalogError(f"{name}: alias {alias!r} points at unknown key {target!r}")

        self._native_sortable: set[str] = set()
        self._relations: dict[str, tuple[Path, ...]] = {}
        self._validate()

        default = self._fields.get(default_sort)
        if default is None or default.key not in self._native_sortable or len(default.path) != 1:
            raise CatalogError(f"{name}: default sort {default_sort!r} must be a root column")
        self.default_sort = default

    # ── Lookup ────────────────────────────────────────────────────────

    def resolve(self, key: str) -> FieldDescriptor | None:
        return self._fields.get(self._aliases.get(key, key))

    def __contains__(self, key: str) -> bool:
        return self.resolve(key) is not None

    def __iter__(self):
        return iter(self._fields.values())

    def is_native_sortable(self, descriptor: FieldDescriptor) -> bool:
        return descriptor.key in self._native_sortable

    def output_fields(self, keys: Iterable[str] | None = None) -> list[FieldDescriptor]:
        """Descriptors that produce a record value, optionally limited to ``keys``."""
        wanted = None if keys is None else {self._aliases.get(k, k) for k in keys}
        return [
            d for d in self._fields.values()
            if d.output and (wanted is None or d.key in wanted)
        ]

    def load_options(self, keys: Iterable[str] | None = None) -> list:
        """Eager-load options hydrating every relation the selected fields read."""
        paths: set[Path] = set()
        for descriptor in self.output_fields(keys):
            paths.update(self._relations.get(descriptor.key, ()))
        leaves = [
            p for p in paths
            if not any(other != p and other[: len(p)] == p for other in paths)
        ]
        return [self._loader(p) for p in sorted(leaves)]

    # ── Validation ────────────────────────────────────────────────────

    def _validate(self) -> None:
        for descriptor in self._fields.values():
            relations: list[Path] = []
            if descriptor.path:
                to_many = self._walk(descriptor.key, descriptor.path, ends_in_column=True)
                if not to_many:
                    self._native_sortable.add(descriptor.key)
                if len(descriptor.path) > 1:
                    relations.append(descriptor.path[:-1])
            for path in descriptor.filter_paths:
                self._walk(descriptor.key, path, ends_in_column=True)
            for path in descriptor.requires:
                self._walk(descriptor.key, path, ends_in_column=False)
                relations.append(path)
            if descriptor.kind is FieldKind.VIRTUAL and descriptor.path:
                raise CatalogError(f"{self.name}.{descriptor.key}: virtual fields have no native path")
            if descriptor.match is Match.DATE_WINDOW and len(descriptor.filter_paths) != 2:
                raise CatalogError(
                    f"{self.name}.{descriptor.key}: a date window needs a start and an end path"
                )
            self._relations[descriptor.key] = tuple(relations)

    def _walk(self, key: str, path: Path, *, ends_in_column: bool) -> bool:
        mapper = inspect(self.model)
        to_many = False
        hops = path[:-1] if ends_in_column else path
        for hop in hops:
            if hop not in mapper.relationships:
                raise CatalogError(
                    f"{self.name}.{key}: {mapper.class_.__name__} has no relationship {hop!r}"
                )
            relationship = mapper.relationships[hop]
            to_many = to_many or relationship.uselist
            mapper = relationship.mapper
        if ends_in_column and path[-1] not in mapper.column_attrs:
            raise CatalogError(
                f"{self.name}.{key}: {mapper.class_.__name__} has no column {path[-1]!r}"
            )
        return to_many

    def _loader(self, path: Path):
        mapper = inspect(self.model)
        option = None
        for hop in path:
            attribute = getattr(mapper.class_, hop)
            option = selectinload(attribute) if option is None else option.selectinload(attribute)
            mapper = mapper.relationships[hop].mapper
        return option


def derived(
    key: str,
    path: str,
    *,
    value_type: ValueType = ValueType.STRING,
    match: Match | None = None,
) -> FieldDescriptor:
    """Virtual field read through relations, filtered and sorted in memory."""
    hops = _split(path)
    return virtual(
        key,
        lambda row, context: follow(row, hops),
        requires=[".".join(hops[:-1])] if len(hops) > 1 else [],
        value_type=value_type,
        match=match,
    )
