"""Hybrid relational/in-memory listing pipeline.

Order of operations for one request:

1. compile filters into native clauses and residual predicates
2. split the sort string into native keys and at most one virtual key
3. fetch the full native-filtered candidate set (native order applied)
4. project each row into an immutable record
5. drop records failing a residual predicate
6. re-sort in memory on the virtual key (stable)
7. compute statistics over the surviving records
8. slice the requested page

When filters and sort are purely native and no statistics are requested,
steps 3 to 8 collapse into a count plus an offset/limit query.
"""

import logging
import math
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.config import settings
from app.core.exceptions import UpstreamFailure
from app.services.field_catalog import (
    FieldCatalog,
    FieldDescriptor,
    Path,
    ProjectionContext,
    ValueType,
    follow,
)
from app.services.filter_compiler import (
    CompiledFilters,
    ResidualPredicate,
    compile_filters,
    parse_date,
    to_number,
)
from app.services.statistics import StatisticsAggregator, StatisticsBucket, counts

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Sort planning ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class SortTerm:
    key: str
    descending: bool = False


def parse_sort(sort: str | None) -> list[SortTerm]:
    """Parse ``"key:dir,key2:dir"``. Anything but ``desc`` sorts ascending."""
    terms: list[SortTerm] = []
    if not sort:
        return terms
    for chunk in str(sort).split(","):
        key, _, direction = chunk.strip().partition(":")
        key = key.strip()
        if key:
            terms.append(SortTerm(key, direction.strip().lower() == "desc"))
    return terms


@dataclass(frozen=True)
class SortPlan:
    native: tuple[tuple[FieldDescriptor, bool], ...] = ()
    virtual: tuple[FieldDescriptor, bool] | None = None

    @property
    def is_native(self) -> bool:
        return self.virtual is None


def plan_sort(catalog: FieldCatalog, sort: str | None) -> SortPlan:
    """Split a sort string into native keys and the first virtual key.

    Unknown keys are skipped. With nothing usable left the catalog's default
    key applies, ascending.
    """
    native: list[tuple[FieldDescriptor, bool]] = []
    virtual: tuple[FieldDescriptor, bool] | None = None
    for term in parse_sort(sort):
        descriptor = catalog.resolve(term.key)
        if descriptor is None:
            logger.debug("Unknown sort key %r for %s", term.key, catalog.name)
            continue
        if catalog.is_native_sortable(descriptor):
            native.append((descriptor, term.descending))
        elif virtual is None and descriptor.output:
            virtual = (descriptor, term.descending)
    if not native and virtual is None:
        native.append((catalog.default_sort, False))
    return SortPlan(tuple(native), virtual)


def _sort_value(value_type: ValueType) -> Callable[[Any], Any]:
    if value_type is ValueType.DATE:
        def by_epoch(value):
            moment = parse_date(value)
            return moment.timestamp() if moment is not None else -math.inf
        return by_epoch
    if value_type is ValueType.NUMBER:
        return lambda value: to_number(value) or 0.0
    return lambda value: "" if value is None else str(value).lower()


def sort_records(
    records: Sequence[Record],
    field_name: str,
    value_type: ValueType,
    descending: bool = False,
) -> list[Record]:
    """Stable in-memory sort. Sort keys are computed once per record."""
    to_key = _sort_value(value_type)
    keys = [to_key(r.get(field_name)) for r in records]
    order = sorted(range(len(records)), key=keys.__getitem__, reverse=descending)
    return [records[i] for i in order]


def apply_residual(records: Iterable[Record], predicates: Sequence[ResidualPredicate]) -> list[Record]:
    if not predicates:
        return list(records)
    return [r for r in records if all(p(r) for p in predicates)]


# ── Pagination ────────────────────────────────────────────────────────


def clamp_page(value: Any) -> int:
    try:
        page = int(value)
    except (TypeError, ValueError):
        return 1
    return max(page, 1)


def clamp_per_page(value: Any, *, default: int | None = None, maximum: int | None = None) -> int:
    default = default or settings.DEFAULT_PER_PAGE
    maximum = maximum or settings.MAX_PER_PAGE
    try:
        per_page = int(value)
    except (TypeError, ValueError):
        return default
    if per_page < 1:
        return default
    return min(per_page, maximum)


def paginate(records: Sequence[Record], page: int, per_page: int | None) -> list[Record]:
    if per_page is None:
        return list(records)
    start = (page - 1) * per_page
    return list(records[start:start + per_page])


@dataclass
class Page:
    data: list[Record]
    total: int
    page: int = 1
    per_page: int | None = None
    stats: dict[str, Any] | None = None

    @property
    def total_pages(self) -> int:
        if not self.per_page:
            return 1 if self.total else 0
        return math.ceil(self.total / self.per_page)

    def meta(self) -> dict:
        return {
            "page": self.page,
            "per_page": self.per_page if self.per_page is not None else self.total,
            "total": self.total,
            "total_pages": self.total_pages,
        }


# ── Fetch and projection ──────────────────────────────────────────────


def apply_native_sort(stmt, catalog: FieldCatalog, plan: SortPlan):
    """Order by the native keys, outer-joining each relation hop once.

    The catalog's default key is always appended ascending so that equal
    native keys keep a deterministic order across pages.
    """
    joined: dict[Path, Any] = {}
    order_by = []
    for descriptor, descending in plan.native:
        entity = catalog.model
        for depth in range(1, len(descriptor.path)):
            prefix = descriptor.path[:depth]
            if prefix not in joined:
                relation = getattr(entity, prefix[-1])
                target = aliased(relation.property.mapper.class_)
                stmt = stmt.outerjoin(target, relation.of_type(target))
                joined[prefix] = target
            entity = joined[prefix]
        column = getattr(entity, descriptor.path[-1])
        order_by.append(column.desc() if descending else column.asc())
    default = catalog.default_sort
    if all(d.key != default.key for d, _ in plan.native):
        order_by.append(getattr(catalog.model, default.path[0]).asc())
    return stmt.order_by(*order_by)


async def fetch_candidates(
    db: AsyncSession,
    catalog: FieldCatalog,
    conditions: Sequence,
    plan: SortPlan,
    *,
    options: Sequence = (),
    offset: int | None = None,
    limit: int | None = None,
) -> list:
    stmt = select(catalog.model).where(*conditions).options(*options)
    stmt = apply_native_sort(stmt, catalog, plan)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as exc:
        logger.error("Candidate fetch failed for %s", catalog.name, exc_info=True)
        raise UpstreamFailure("candidate_fetch") from exc
    return list(result.scalars().all())


async def count_candidates(db: AsyncSession, catalog: FieldCatalog, conditions: Sequence) -> int:
    subq = select(catalog.model).where(*conditions).subquery()
    try:
        result = await db.execute(select(func.count()).select_from(subq))
    except SQLAlchemyError as exc:
        logger.error("Candidate count failed for %s", catalog.name, exc_info=True)
        raise UpstreamFailure("candidate_count") from exc
    return result.scalar_one()


def project_row(row: Any, fields: Sequence[FieldDescriptor], context: ProjectionContext) -> Record:
    record = {}
    for descriptor in fields:
        if descriptor.extract is not None:
            record[descriptor.key] = descriptor.extract(row, context)
        else:
            record[descriptor.key] = follow(row, descriptor.path)
    return MappingProxyType(record)


# ── Engine ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ListingRequest:
    filters: Mapping[str, Any] = field(default_factory=dict)
    sort: str | None = None
    page: int = 1
    per_page: int | None = 10
    fields: frozenset[str] | None = None


@dataclass
class Collected:
    """Projected and residual-filtered records of one catalog, not yet sorted."""

    records: list[Record]
    compiled: CompiledFilters
    plan: SortPlan


Enricher = Callable[[AsyncSession, Sequence[Any]], Awaitable[Mapping[str, Mapping]]]
Drilldown = Callable[[list[Record], Mapping[str, StatisticsBucket]], list[Record]]


class ListingEngine:
    """Runs the listing pipeline over one field catalog."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: FieldCatalog,
        *,
        statistics: StatisticsAggregator | None = None,
        always_project: Iterable[str] = (),
        enrich: Enricher | None = None,
    ) -> None:
        self.db = db
        self.catalog = catalog
        self.statistics = statistics
        self.always_project = frozenset(always_project)
        self.enrich = enrich

    def _projection_keys(
        self, request: ListingRequest, compiled: CompiledFilters, plan: SortPlan
    ) -> frozenset[str] | None:
        if request.fields is None:
            return None
        keys = set(request.fields) | self.always_project
        keys.update(p.field for p in compiled.residual)
        keys.add(self.catalog.default_sort.key)
        keys.update(d.key for d, _ in plan.native)
        if plan.virtual is not None:
            keys.add(plan.virtual[0].record_field)
        return frozenset(keys)

    async def collect(
        self,
        request: ListingRequest,
        *,
        scope: Sequence = (),
        now: datetime,
        compiled: CompiledFilters | None = None,
        plan: SortPlan | None = None,
    ) -> Collected:
        """Fetch, project and residual-filter the full candidate set."""
        compiled = compiled or compile_filters(self.catalog, request.filters)
        plan = plan or plan_sort(self.catalog, request.sort)
        keys = self._projection_keys(request, compiled, plan)
        rows = await fetch_candidates(
            self.db,
            self.catalog,
            [*scope, *compiled.native],
            plan,
            options=self.catalog.load_options(keys),
        )
        lookups = await self.enrich(self.db, rows) if self.enrich and rows else {}
        context = ProjectionContext(now=now, lookups=lookups)
        fields = self.catalog.output_fields(keys)
        records = [project_row(row, fields, context) for row in rows]
        return Collected(apply_residual(records, compiled.residual), compiled, plan)

    async def run(
        self,
        request: ListingRequest,
        *,
        scope: Sequence = (),
        now: datetime | None = None,
        drilldown: Drilldown | None = None,
    ) -> Page:
        now = now or utcnow()
        page = clamp_page(request.page)
        compiled = compile_filters(self.catalog, request.filters)
        plan = plan_sort(self.catalog, request.sort)
        if (
            compiled.is_native
            and plan.is_native
            and self.statistics is None
            and drilldown is None
            and request.per_page is not None
        ):
            return await self._run_pushed_down(request, compiled, plan, scope, now, page)

        collected = await self.collect(
            request, scope=scope, now=now, compiled=compiled, plan=plan
        )
        records = collected.records
        if collected.plan.virtual is not None:
            descriptor, descending = collected.plan.virtual
            records = sort_records(records, descriptor.record_field, descriptor.value_type, descending)

        stats = None
        if self.statistics is not None:
            buckets = await self.statistics.compute(self.db, records, now)
            stats = counts(buckets)
            if drilldown is not None:
                records = drilldown(records, buckets)

        return Page(
            data=paginate(records, page, request.per_page),
            total=len(records),
            page=page,
            per_page=request.per_page,
            stats=stats,
        )

    async def _run_pushed_down(
        self,
        request: ListingRequest,
        compiled: CompiledFilters,
        plan: SortPlan,
        scope: Sequence,
        now: datetime,
        page: int,
    ) -> Page:
        conditions = [*scope, *compiled.native]
        total = await count_candidates(self.db, self.catalog, conditions)
        keys = self._projection_keys(request, compiled, plan)
        rows = await fetch_candidates(
            self.db,
            self.catalog,
            conditions,
            plan,
            options=self.catalog.load_options(keys),
            offset=(page - 1) * request.per_page,
            limit=request.per_page,
        )
        lookups = await self.enrich(self.db, rows) if self.enrich and rows else {}
        context = ProjectionContext(now=now, lookups=lookups)
        fields = self.catalog.output_fields(keys)
        return Page(
            data=[project_row(row, fields, context) for row in rows],
            total=total,
            page=page,
            per_page=request.per_page,
        )
