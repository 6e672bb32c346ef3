"""Named counts over the identifiers of a filtered listing."""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import UpstreamFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatisticsBucket:
    name: str
    members: frozenset

    @property
    def count(self) -> int:
        return len(self.members)


@dataclass(frozen=True)
class QueryBucket:
    """Members are the candidate ids returned by ``build(ids, now)``."""

    name: str
    build: Callable[[Sequence[Any], datetime], Select]

    async def evaluate(
        self,
        db: AsyncSession,
        ids: Sequence[Any],
        records: Sequence[Mapping],
        now: datetime,
        chunk_size: int,
    ) -> frozenset:
        found: set = set()
        for start in range(0, len(ids), chunk_size):
            stmt = self.build(ids[start:start + chunk_size], now)
            try:
                result = await db.execute(stmt)
            except SQLAlchemyError as exc:
                logger.error("Statistics bucket %s failed", self.name, exc_info=True)
                raise UpstreamFailure(f"statistics:{self.name}") from exc
            found.update(result.scalars().all())
        return frozenset(found)


@dataclass(frozen=True)
class RecordBucket:
    """Members are the ids of records satisfying ``predicate(record, now)``."""

    name: str
    predicate: Callable[[Mapping, datetime], bool]
    id_field: str

    async def evaluate(
        self,
        db: AsyncSession,
        ids: Sequence[Any],
        records: Sequence[Mapping],
        now: datetime,
        chunk_size: int,
    ) -> frozenset:
        return frozenset(
            r.get(self.id_field) for r in records
            if r.get(self.id_field) is not None and self.predicate(r, now)
        )


class StatisticsAggregator:
    """Computes every bucket against the same identifier set and the same ``now``.

    Buckets run one after another on the request session. ``complements`` maps a
    bucket name to another bucket whose members it excludes from the total.
    """

    def __init__(
        self,
        id_field: str,
        buckets: Iterable[QueryBucket | RecordBucket],
        *,
        total: str | None = None,
        complements: Mapping[str, str] | None = None,
        chunk_size: int | None = None,
    ) -> None:
        self.id_field = id_field
        self.buckets = tuple(buckets)
        self.total = total
        self.complements = dict(complements or {})
        self.chunk_size = chunk_size or settings.STATS_ID_CHUNK_SIZE

    @property
    def names(self) -> list[str]:
        names = [self.total] if self.total else []
        return names + [b.name for b in self.buckets] + list(self.complements)

    async def compute(
        self, db: AsyncSession, records: Sequence[Mapping], now: datetime
    ) -> dict[str, StatisticsBucket]:
        ids = list(dict.fromkeys(
            r.get(self.id_field) for r in records if r.get(self.id_field) is not None
        ))
        everything = frozenset(ids)
        result: dict[str, StatisticsBucket] = {}
        if self.total:
            result[self.total] = StatisticsBucket(self.total, everything)
        for bucket in self.buckets:
            members = (
                await bucket.evaluate(db, ids, records, now, self.chunk_size) if ids else frozenset()
            )
            result[bucket.name] = StatisticsBucket(bucket.name, members)
        for name, source in self.complements.items():
            result[name] = StatisticsBucket(name, everything - result[source].members)
        return result


def counts(buckets: Mapping[str, StatisticsBucket]) -> dict[str, int]:
    return {name: bucket.count for name, bucket in buckets.items()}
