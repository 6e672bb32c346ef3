"""Helpers turning loose HTTP parameters into listing inputs."""

from collections.abc import Iterable, Mapping
from typing import Any

from app.services.listing import ListingRequest, clamp_page, clamp_per_page

PAGING_KEYS = frozenset({"page", "perPage", "per_page", "sort"})


def as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = [value]
    flattened = []
    for item in items:
        if isinstance(item, str):
            flattened.extend(part.strip() for part in item.split(",") if part.strip())
        elif item is not None:
            flattened.append(item)
    return flattened


def parse_id_list(value: Any) -> list[int]:
    """Parse ``1,2``, ``[1, "2"]`` or repeated query values into ints."""
    ids = []
    for item in as_list(value):
        try:
            ids.append(int(item))
        except (TypeError, ValueError):
            continue
    return ids


def wants_everything(value: Any) -> bool:
    return any(str(item).strip().lower() == "all" for item in as_list(value))


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def build_request(
    params: Mapping[str, Any],
    *,
    reserved: Iterable[str] = (),
    unbounded: bool = False,
    fields: Iterable[str] | None = None,
) -> ListingRequest:
    """Split raw params into paging, sort and the remaining filter keys."""
    skip = PAGING_KEYS | frozenset(reserved)
    filters = {k: v for k, v in params.items() if k not in skip}
    per_page = params.get("perPage", params.get("per_page"))
    return ListingRequest(
        filters=filters,
        sort=params.get("sort"),
        page=1 if unbounded else clamp_page(params.get("page")),
        per_page=None if unbounded else clamp_per_page(per_page),
        fields=frozenset(fields) if fields is not None else None,
    )
