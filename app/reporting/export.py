"""CSV and Excel rendering of global report exports."""

import io
from datetime import date
from typing import Optional

import pandas as pd

from app.reporting.schemas import ExportFormat
from app.reporting.service import ExportTable

SHEET_NAME = "Global Report"
MAX_COLUMN_WIDTH = 50

MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


def export_filename(fmt: ExportFormat, today: Optional[date] = None) -> str:
    return f"global-report-{(today or date.today()).isoformat()}.{fmt.value}"


def render_export(table: ExportTable, fmt: ExportFormat) -> bytes:
    df = pd.DataFrame(table.records, columns=table.labels)
    if fmt == ExportFormat.XLSX:
        return _render_xlsx(df)
    return df.to_csv(index=False).encode("utf-8")


def _render_xlsx(df: pd.DataFrame) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=SHEET_NAME, index=False)
        _auto_adjust_columns(writer.sheets[SHEET_NAME])
    return buffer.getvalue()


def _auto_adjust_columns(worksheet) -> None:
    """Size each column to its longest value, capped at ``MAX_COLUMN_WIDTH``."""
    for column in worksheet.columns:
        longest = max((len(str(cell.value)) for cell in column if cell.value is not None), default=0)
        worksheet.column_dimensions[column[0].column_letter].width = min(longest + 2, MAX_COLUMN_WIDTH)
