# tests/test_pm_dot_service.py
"""PM schedules, DOT inspections and the merged PM/DOT listing."""
from datetime import datetime, timezone

import pytest

from app.core.exceptions import BadRequestError
from app.services.pm_dot import PmDotService, start_of_day, tables_to_query
from tests.conftest import NOW


def test_start_of_day():
    assert start_of_day(NOW) == datetime(2024, 6, 15, tzinfo=timezone.utc)


@pytest.mark.parametrize("params,expected", [
    ({}, (True, True)),
    ({"recordType": "pm", "violation_code": "V"}, (True, False)),
    ({"recordType": "DOT"}, (False, True)),
    ({"violation_code": "V-1"}, (False, True)),
    ({"pm_task_description": "oil"}, (True, False)),
    ({"unit_number": "U-1"}, (True, True)),
    ({"violation_code": ""}, (True, True)),
])
def test_tables_to_query(params, expected):
    assert tables_to_query(params) == expected


# ===== PM =====

@pytest.mark.asyncio
async def test_pm_requires_account_scope(fleet):
    with pytest.raises(BadRequestError):
        await PmDotService(fleet).list_pm_schedules({}, now=NOW)


@pytest.mark.asyncio
async def test_pm_listing_and_statistics(fleet):
    page = await PmDotService(fleet).list_pm_schedules({"account_ids": "1"}, now=NOW)
    assert [r["pm_schedule_id"] for r in page.data] == [1, 2]
    assert page.stats == {
        "totalUnits": 2,
        "unitsComingDue": 1,
        "unitsOverdue": 1,
        "unitsRecentlyCompleted": 1,
    }


@pytest.mark.asyncio
async def test_pm_event_fields_and_latest_service(fleet):
    page = await PmDotService(fleet).list_pm_schedules({"account_ids": "1"}, now=NOW)
    first, second = page.data
    assert first["lastEvent_performed_date"] == datetime(2024, 6, 1, tzinfo=timezone.utc)
    assert first["nextEvent_next_due_date"] == datetime(2024, 6, 10, tzinfo=timezone.utc)
    assert first["nextEvent_pm_event_id"] == 2
    assert first["workorder_id"] == 3
    assert first["workorder_ref_id"] == "WO-3"
    assert first["service_request_id"] == 2
    assert first["recordType"] == "PM"
    # service request 1 carries workorders 1 and 2; the newer one wins
    assert second["workorder_id"] == 2


@pytest.mark.asyncio
async def test_pm_status_all_is_not_a_filter(fleet):
    service = PmDotService(fleet)
    assert (await service.list_pm_schedules({"account_ids": "1", "status": "All"}, now=NOW)).total == 2
    page = await service.list_pm_schedules({"account_ids": "1", "status": "inactive"}, now=NOW)
    assert [r["pm_schedule_id"] for r in page.data] == [2]


@pytest.mark.asyncio
async def test_pm_sort_on_event_date(fleet):
    page = await PmDotService(fleet).list_pm_schedules(
        {"account_ids": "1", "sort": "nextEvent_next_due_date:desc"}, now=NOW
    )
    assert [r["pm_schedule_id"] for r in page.data] == [2, 1]


@pytest.mark.asyncio
async def test_pm_residual_event_filter(fleet):
    page = await PmDotService(fleet).list_pm_schedules(
        {"account_ids": "1", "lastEvent_performed_date": "2024_03_01"}, now=NOW
    )
    assert [r["pm_schedule_id"] for r in page.data] == [2]
    assert page.stats["totalUnits"] == 1


# ===== DOT =====

@pytest.mark.asyncio
async def test_dot_listing_and_statistics(fleet):
    page = await PmDotService(fleet).list_dot_inspections({"account_ids": "1"}, now=NOW)
    assert [r["dot_inspection_id"] for r in page.data] == [1, 2]
    assert page.stats == {
        "totalInspections": 2,
        "failedInspections": 1,
        "unitsDueForInspection": 1,
        "unitsWithExpiredPermits": 0,
    }
    assert page.data[0]["violations"][0]["violation_code"] == "V-1"
    assert page.data[1]["violations"] == []


@pytest.mark.asyncio
async def test_dot_violation_filter(fleet):
    page = await PmDotService(fleet).list_dot_inspections(
        {"account_ids": "1", "violation_code": "v-1"}, now=NOW
    )
    assert [r["dot_inspection_id"] for r in page.data] == [1]


# ===== MERGED =====

@pytest.mark.asyncio
async def test_merged_listing_reports_stats_per_type(fleet):
    page = await PmDotService(fleet).list_records({"account_ids": "1"}, now=NOW)
    assert page.total == 4
    assert [r["recordType"] for r in page.data] == ["PM", "PM", "DOT", "DOT"]
    assert set(page.stats) == {"pm", "dot"}
    assert page.stats["dot"]["totalInspections"] == 2


@pytest.mark.asyncio
async def test_merged_listing_with_record_type(fleet):
    page = await PmDotService(fleet).list_records({"account_ids": "1", "recordType": "DOT"}, now=NOW)
    assert page.total == 2
    assert set(page.stats) == {"dot"}


@pytest.mark.asyncio
async def test_merged_listing_skips_table_without_matching_keys(fleet):
    page = await PmDotService(fleet).list_records(
        {"account_ids": "1", "violation_code": "V-1"}, now=NOW
    )
    assert page.total == 1
    assert page.data[0]["recordType"] == "DOT"


@pytest.mark.asyncio
async def test_merged_sort_and_pagination(fleet):
    service = PmDotService(fleet)
    params = {"account_ids": "1", "sort": "unit_number:asc", "perPage": 3}
    first = await service.list_records(params, now=NOW)
    assert [(r["recordType"], r["unit_number"]) for r in first.data] == [
        ("PM", "U-100"),
        ("DOT", "U-100"),
        ("PM", "U-200"),
    ]
    second = await service.list_records({**params, "page": 2}, now=NOW)
    assert [(r["recordType"], r["unit_number"]) for r in second.data] == [("DOT", "U-200")]
    assert second.total == 4


@pytest.mark.asyncio
async def test_merged_exclusions_and_unbounded(fleet):
    page = await PmDotService(fleet).list_records(
        {"account_ids": "1", "excluded_pm_ids": "1", "excluded_dot_ids": [2], "perPage": 1},
        now=NOW,
        unbounded=True,
    )
    assert page.total == 2
    assert len(page.data) == 2


@pytest.mark.asyncio
async def test_merged_account_search(fleet):
    page = await PmDotService(fleet).list_records(
        {"account_ids": "1,2", "account": "2002"}, now=NOW
    )
    assert [(r["recordType"], r["dot_inspection_id"]) for r in page.data] == [("DOT", 3)]


@pytest.mark.asyncio
async def test_merged_order_without_usable_sort_key(fleet):
    service = PmDotService(fleet)
    params = {"account_ids": "1", "sort": "bogus:desc", "perPage": 1}
    seen = []
    for page_number in range(1, 5):
        page = await service.list_records({**params, "page": page_number}, now=NOW)
        seen.extend(
            (r["recordType"], r.get("pm_schedule_id") or r.get("dot_inspection_id"))
            for r in page.data
        )
    assert seen == [("PM", 1), ("PM", 2), ("DOT", 1), ("DOT", 2)]


@pytest.mark.asyncio
async def test_merged_sort_ties_fall_back_to_identity(fleet):
    page = await PmDotService(fleet).list_records(
        {"account_ids": "1", "sort": "status:desc"}, now=NOW
    )
    # PM 2 is INACTIVE; every other row is ACTIVE and keeps identity order
    assert [
        (r["recordType"], r.get("pm_schedule_id") or r.get("dot_inspection_id"))
        for r in page.data
    ] == [("PM", 2), ("PM", 1), ("DOT", 1), ("DOT", 2)]
