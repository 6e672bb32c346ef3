# tests/test_field_catalog.py
"""Catalog construction, key resolution and eager-load planning."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.core.exceptions import CatalogError
from app.models import Workorder
from app.services.field_catalog import (
    FieldCatalog,
    FieldKind,
    Match,
    ValueType,
    follow,
    native,
    normalize,
    virtual,
)
from app.services.fleet import FLEET_CATALOG
from app.services.pm_dot import DOT_CATALOG, PM_CATALOG
from app.services.workorder import WORKORDER_CATALOG


def test_resolve_known_keys_and_aliases():
    vendor = FLEET_CATALOG.resolve("vendorName")
    assert vendor is not None
    assert FLEET_CATALOG.resolve("vendor_name") is vendor
    assert FLEET_CATALOG.resolve("unit_number") is FLEET_CATALOG.resolve("unitNumber")
    assert "lastGpsCoordinates" in FLEET_CATALOG


def test_unknown_key_resolves_to_none():
    assert FLEET_CATALOG.resolve("doesNotExist") is None
    assert "doesNotExist" not in WORKORDER_CATALOG


def test_native_sortable_only_through_to_one_hops():
    assert FLEET_CATALOG.is_native_sortable(FLEET_CATALOG.resolve("unitNumber"))
    assert FLEET_CATALOG.is_native_sortable(FLEET_CATALOG.resolve("licensePlateNumber"))
    # derived through relations, or through a to-many relation
    assert not FLEET_CATALOG.is_native_sortable(FLEET_CATALOG.resolve("vendorName"))
    assert not WORKORDER_CATALOG.is_native_sortable(WORKORDER_CATALOG.resolve("invoice_number"))
    # combined search keys have no single column
    assert not FLEET_CATALOG.is_native_sortable(FLEET_CATALOG.resolve("account"))


def test_kinds():
    assert FLEET_CATALOG.resolve("driver_name").kind is FieldKind.VIRTUAL
    assert FLEET_CATALOG.resolve("contractStartDate").kind is FieldKind.VIRTUAL
    assert FLEET_CATALOG.resolve("status").kind is FieldKind.NATIVE
    assert PM_CATALOG.resolve("lastEvent_performed_date").value_type is ValueType.DATE


def test_filter_only_keys_produce_no_output():
    keys = {d.key for d in FLEET_CATALOG.output_fields()}
    assert "equipmentId" not in keys
    assert "driver_name" in keys
    dot_keys = {d.key for d in DOT_CATALOG.output_fields()}
    assert "violation_code" not in dot_keys
    assert "violations" in dot_keys


def test_output_fields_limited_by_keys():
    fields = FLEET_CATALOG.output_fields(["unit_number", "vendorName", "bogus"])
    assert [d.key for d in fields] == ["unitNumber", "vendorName"]


def test_load_options_cover_only_requested_relations():
    assert FLEET_CATALOG.load_options(["equipment_id"]) == []
    assert len(FLEET_CATALOG.load_options(["vendorName"])) == 1
    # unit number and vendor share the equipment hop, but need distinct leaves
    assert len(FLEET_CATALOG.load_options(["unitNumber", "vendorName"])) == 1
    assert FLEET_CATALOG.load_options() != []


def test_bad_relation_fails_at_construction():
    with pytest.raises(CatalogError, match="no relationship 'nope'"):
        FieldCatalog(
            "broken",
            Workorder,
            [native("workorder_id", "workorder_id"), native("x", "nope.column")],
            default_sort="workorder_id",
        )


def test_bad_column_fails_at_construction():
    with pytest.raises(CatalogError, match="no column 'missing'"):
        FieldCatalog(
            "broken",
            Workorder,
            [native("workorder_id", "workorder_id"), native("x", "service_request.missing")],
            default_sort="workorder_id",
        )


def test_date_window_needs_start_and_end_paths():
    with pytest.raises(CatalogError, match="date window"):
        FieldCatalog(
            "broken",
            Workorder,
            [
                native("workorder_id", "workorder_id"),
                native("window", filter_paths=["workorder_start_date"], match=Match.DATE_WINDOW),
            ],
            default_sort="workorder_id",
        )


def test_default_sort_must_be_root_column():
    with pytest.raises(CatalogError, match="default sort"):
        FieldCatalog(
            "broken",
            Workorder,
            [native("unit", "service_request.equipment.unit_number")],
            default_sort="unit",
        )


def test_duplicate_key_and_dangling_alias_rejected():
    with pytest.raises(CatalogError, match="duplicate"):
        FieldCatalog(
            "broken",
            Workorder,
            [native("workorder_id", "workorder_id"), native("workorder_id", "workorder_ref_id")],
            default_sort="workorder_id",
        )
    with pytest.raises(CatalogError, match="alias"):
        FieldCatalog(
            "broken",
            Workorder,
            [native("workorder_id", "workorder_id")],
            default_sort="workorder_id",
            aliases={"id": "nothing"},
        )


def test_builders_pick_default_match_from_type():
    assert native("d", "x", value_type=ValueType.DATE).match is Match.DAY
    assert native("n", "x", value_type=ValueType.NUMBER).match is Match.EQUALS
    assert virtual("s", lambda row, ctx: None).match is Match.CONTAINS
    assert virtual("only", field="other").record_field == "other"


def test_follow_takes_first_of_to_many_and_stops_at_none():
    row = SimpleNamespace(
        items=[SimpleNamespace(amount=Decimal("2.50")), SimpleNamespace(amount=Decimal("9"))],
        parent=None,
    )
    assert follow(row, ("items", "amount")) == 2.5
    assert follow(row, ("parent", "name")) is None
    assert follow(SimpleNamespace(items=[]), ("items", "amount")) is None


def test_normalize_makes_datetimes_utc():
    naive = datetime(2024, 1, 2, 3, 4)
    assert normalize(naive).tzinfo is timezone.utc
    offset = datetime(2024, 1, 2, 3, 4, tzinfo=timezone(timedelta(hours=2)))
    assert normalize(offset).hour == 1
