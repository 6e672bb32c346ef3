# tests/test_listing_engine.py
"""Sort planning, in-memory sorting, pagination and request parsing."""
from datetime import datetime, timezone
from types import MappingProxyType

import pytest

from app.services.field_catalog import ValueType
from app.services.fleet import FLEET_CATALOG
from app.services.listing import (
    Page,
    SortTerm,
    clamp_page,
    clamp_per_page,
    paginate,
    parse_sort,
    plan_sort,
    sort_records,
)
from app.services.request_params import (
    as_list,
    build_request,
    parse_bool,
    parse_id_list,
    wants_everything,
)
from app.services.workorder import WORKORDER_CATALOG


# ===== SORT PARSING =====

def test_parse_sort_pairs_and_directions():
    assert parse_sort("unitNumber:desc, vin:ASC,make") == [
        SortTerm("unitNumber", True),
        SortTerm("vin", False),
        SortTerm("make", False),
    ]


def test_malformed_direction_defaults_to_ascending():
    assert parse_sort("vin:sideways") == [SortTerm("vin", False)]
    assert parse_sort("") == []
    assert parse_sort(None) == []
    assert parse_sort(",,") == []


def test_plan_sort_splits_native_and_virtual():
    plan = plan_sort(FLEET_CATALOG, "unitNumber:desc,vendor_name:asc,driver_name:desc")
    assert [(d.key, desc) for d, desc in plan.native] == [("unitNumber", True)]
    assert plan.virtual is not None
    assert plan.virtual[0].key == "vendorName"
    assert not plan.is_native


def test_plan_sort_unknown_key_falls_back_to_default():
    plan = plan_sort(FLEET_CATALOG, "nonsense:desc")
    assert [(d.key, desc) for d, desc in plan.native] == [("equipment_id", False)]
    assert plan.is_native
    assert plan_sort(WORKORDER_CATALOG, None).native[0][0].key == "workorder_id"


def test_plan_sort_to_many_path_sorts_in_memory():
    plan = plan_sort(WORKORDER_CATALOG, "invoice_total_amount:desc")
    assert plan.native == ()
    assert plan.virtual[0].key == "invoice_total_amount"


# ===== IN-MEMORY SORT =====

def _records(values, field="v"):
    return [MappingProxyType({"id": i, field: value}) for i, value in enumerate(values)]


def test_string_sort_is_case_insensitive_and_stable():
    records = _records(["beta", "Alpha", "alpha", "Beta"])
    ordered = sort_records(records, "v", ValueType.STRING)
    assert [r["id"] for r in ordered] == [1, 2, 0, 3]


def test_descending_keeps_ties_in_original_order():
    records = _records(["b", "a", "b", "a"])
    ordered = sort_records(records, "v", ValueType.STRING, descending=True)
    assert [r["id"] for r in ordered] == [0, 2, 1, 3]


def test_missing_dates_sort_as_minimum():
    records = _records([
        datetime(2024, 3, 1, tzinfo=timezone.utc),
        None,
        "2024-01-01",
        "not a date",
    ])
    ordered = sort_records(records, "v", ValueType.DATE)
    assert [r["id"] for r in ordered] == [1, 3, 2, 0]


def test_numeric_sort_coerces_strings_and_zeroes_garbage():
    records = _records(["10", 2, "abc", None, 1.5])
    ordered = sort_records(records, "v", ValueType.NUMBER)
    assert [r["id"] for r in ordered] == [2, 3, 4, 1, 0]


def test_sort_key_computed_once_per_record():
    class Counting(dict):
        reads = 0

        def get(self, key, default=None):
            Counting.reads += 1
            return super().get(key, default)

    records = [Counting(v=str(n)) for n in range(50)]
    sort_records(records, "v", ValueType.NUMBER)
    assert Counting.reads == 50


# ===== PAGINATION =====

def test_pages_partition_the_list():
    records = list(range(23))
    pages = [paginate(records, page, 5) for page in range(1, 6)]
    assert [len(p) for p in pages] == [5, 5, 5, 5, 3]
    assert sum(pages, []) == records


def test_page_beyond_end_is_empty():
    assert paginate(list(range(3)), 99, 10) == []


def test_unbounded_page_returns_everything():
    assert paginate([1, 2, 3], 1, None) == [1, 2, 3]


@pytest.mark.parametrize("raw,expected", [("3", 3), (0, 1), (-4, 1), ("x", 1), (None, 1)])
def test_clamp_page(raw, expected):
    assert clamp_page(raw) == expected


def test_clamp_per_page_bounds():
    assert clamp_per_page(None) == 10
    assert clamp_per_page("25") == 25
    assert clamp_per_page(0) == 10
    assert clamp_per_page(10_000) == 100


def test_page_meta():
    page = Page(data=[], total=23, page=2, per_page=5)
    assert page.meta() == {"page": 2, "per_page": 5, "total": 23, "total_pages": 5}
    assert Page(data=[], total=0, page=1, per_page=None).total_pages == 0


# ===== REQUEST PARAMS =====

def test_id_lists():
    assert parse_id_list("1, 2,x") == [1, 2]
    assert parse_id_list([3, "4"]) == [3, 4]
    assert parse_id_list(None) == []
    assert as_list(["a,b", "c"]) == ["a", "b", "c"]


def test_all_sentinel_and_booleans():
    assert wants_everything("all")
    assert wants_everything(["ALL"])
    assert not wants_everything([1, 2])
    assert parse_bool("true")
    assert parse_bool(True)
    assert not parse_bool("false")


def test_build_request_separates_paging_from_filters():
    request = build_request(
        {"account_ids": "1", "page": "2", "perPage": "5", "sort": "vin:desc", "vin": "1FU"},
        reserved=("account_ids",),
    )
    assert request.filters == {"vin": "1FU"}
    assert (request.page, request.per_page, request.sort) == (2, 5, "vin:desc")


def test_unbounded_request_ignores_paging():
    request = build_request({"page": "4", "perPage": "5"}, unbounded=True, fields=["vin"])
    assert request.page == 1
    assert request.per_page is None
    assert request.fields == frozenset({"vin"})
