"""Request parsing and response shaping shared by the listing routers."""

import io
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from fastapi import Request
from fastapi.responses import Response, StreamingResponse

from app.schemas import PaginationMeta
from app.schemas.listing import CatalogFieldInfo, ExportColumn
from app.services import export
from app.services.field_catalog import FieldCatalog
from app.services.listing import Page

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def collect_query_params(request: Request) -> dict[str, Any]:
    """Query string as a dict; repeated keys (``a=1&a=2`` or ``a[]=1``) become lists."""
    params: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        name = key[:-2] if key.endswith("[]") else key
        params[name] = values if len(values) > 1 or key.endswith("[]") else values[0]
    return params


def page_response(page: Page) -> dict:
    body: dict = {
        "success": True,
        "data": [dict(record) for record in page.data],
        "meta": PaginationMeta(**page.meta()).model_dump(),
    }
    if page.stats is not None:
        body["stats"] = page.stats
    return body


def describe_catalog(catalog: FieldCatalog) -> list[dict]:
    return [
        CatalogFieldInfo(
            key=d.key,
            kind=d.kind.value,
            type=d.value_type.value,
            match=d.match.value,
            native_sort=catalog.is_native_sortable(d),
        ).model_dump()
        for d in catalog
    ]


def export_response(
    records: Sequence[Mapping[str, Any]],
    columns: Sequence[ExportColumn],
    file_format: str,
    *,
    title: str,
    prefix: str,
    now: datetime,
) -> Response:
    export.ensure_exportable(len(records))
    if file_format == "pdf":
        filename = export.export_filename(prefix, "pdf", now)
        return Response(
            content=export.to_pdf(title, records, columns),
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    if file_format == "xlsx":
        filename = export.export_filename(prefix, "xlsx", now)
        return Response(
            content=export.to_xlsx(title, records, columns),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    filename = export.export_filename(prefix, "csv", now)
    return StreamingResponse(
        io.StringIO(export.to_csv(records, columns)),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
