"""Tabular export of listing records to CSV, Excel or PDF."""

import csv
import io
import logging
import pathlib
from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any, Protocol

from jinja2 import Environment, FileSystemLoader
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from app.config import settings
from app.core.exceptions import BadRequestError

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = pathlib.Path(__file__).parent / "report_templates"
_jinja_env = Environment(
    loader=FileSystemLoader(str(_TEMPLATE_DIR)),
    autoescape=True,
)

ROW_NUMBER = "sno"


class Column(Protocol):
    label: str
    field: str


def format_cell(value: Any) -> str:
    """Render one record value as export text. Missing values become ''."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, (list, tuple)):
        return ", ".join(format_cell(v) for v in value if v is not None)
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def build_rows(records: Sequence[Mapping[str, Any]], columns: Sequence[Column]) -> list[list[str]]:
    rows = []
    for index, record in enumerate(records, start=1):
        rows.append([
            str(index) if column.field == ROW_NUMBER else format_cell(record.get(column.field))
            for column in columns
        ])
    return rows


def to_csv(records: Sequence[Mapping[str, Any]], columns: Sequence[Column]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([column.label for column in columns])
    writer.writerows(build_rows(records, columns))
    return output.getvalue()


def to_xlsx(
    title: str, records: Sequence[Mapping[str, Any]], columns: Sequence[Column]
) -> bytes:
    """One worksheet: bold header row, frozen below the header, columns sized to content."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title[:31]
    sheet.append([column.label for column in columns])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    rows = build_rows(records, columns)
    for row in rows:
        sheet.append(row)
    sheet.freeze_panes = "A2"

    for index, column in enumerate(columns, start=1):
        width = max([len(column.label), *(len(row[index - 1]) for row in rows)])
        sheet.column_dimensions[get_column_letter(index)].width = min(width + 2, 60)

    buf = io.BytesIO()
    workbook.save(buf)
    return buf.getvalue()


def render_table_html(
    title: str, records: Sequence[Mapping[str, Any]], columns: Sequence[Column]
) -> str:
    template = _jinja_env.get_template("table_export.html")
    return template.render(
        title=title,
        headers=[column.label for column in columns],
        rows=build_rows(records, columns),
        total=len(records),
        app_name=settings.APP_NAME,
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
    )


def to_pdf(title: str, records: Sequence[Mapping[str, Any]], columns: Sequence[Column]) -> bytes:
    """Render the table to PDF bytes via WeasyPrint."""
    from weasyprint import HTML

    return HTML(string=render_table_html(title, records, columns)).write_pdf()


def export_filename(prefix: str, extension: str, now: datetime | None = None) -> str:
    stamp = (now or datetime.now(timezone.utc)).strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{stamp}.{extension}"


def ensure_exportable(row_count: int) -> None:
    if row_count > settings.EXPORT_MAX_ROWS:
        raise BadRequestError(
            f"Export of {row_count} rows exceeds the limit of {settings.EXPORT_MAX_ROWS}; "
            "narrow the filters and try again"
        )
