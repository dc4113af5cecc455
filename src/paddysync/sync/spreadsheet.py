"""Spreadsheet export for synchronized survey records.

One xlsx file is kept per location code and visit day. Rows are appended
below the last populated row of the first worksheet; the file itself is
an opaque artifact that is downloaded, extended and uploaded again.
"""

from __future__ import annotations

import io
import logging
import zipfile
from datetime import date
from typing import TYPE_CHECKING

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from paddysync.core.errors import SpreadsheetFormatError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from openpyxl.worksheet.worksheet import Worksheet

    from paddysync.server.models import SurveyRecord

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Farm ID",
    "Date of Visit",
    "GPS Latitude",
    "GPS Longitude",
    "Surveyor Name",
    "Surveyor Phone",
    "Rainfall in last 2 days",
    "Rainfall intensity (if yes)",
    "Soil Roughness",
    "Growth Stage",
    "Water Status (last 1 week)",
    "Overall Health",
    "Visible Problems",
    "Fertilizer used (last 1 week)",
    "Fertilizer type (if yes)",
    "Herbicide used (last 1 week)",
    "Pesticide used (last 1 week)",
    "Stress events (last 1 week)",
    "Photo Google Drive folder",
    "Surveyor notes",
]

DEFAULT_SHEET_TITLE = "Entries"
NOT_AVAILABLE = "N/A"
ROW_FONT = Font(name="Calibri", size=11, color="FF0000FF")

PHOTO_ROOT = "4_GT photo and log"
TEXT_DATA_ROOT = "5_GT text-data/RecurringVisit"

ExportRow = list[str]


def date_folder(visit_date: date) -> str:
    """Visit date as ``YYYYMMDD``."""
    return visit_date.strftime("%Y%m%d")


def photo_folder_path(province_name: str, field_id: str, visit_date: date) -> str:
    return f"{PHOTO_ROOT}/{province_name}/{field_id}/{date_folder(visit_date)}"


def spreadsheet_folder_path(province_name: str) -> str:
    return f"{TEXT_DATA_ROOT}/{province_name} - Data"


def spreadsheet_filename(location_code: str, visit_date: date) -> str:
    return f"GT-{location_code}-{date_folder(visit_date)}.xlsx"


def build_export_row(
    record: SurveyRecord,
    surveyor_name: str,
    photo_folder_link: str = "",
) -> ExportRow:
    """Flatten a survey record into display values, in EXPORT_HEADERS order."""
    return [
        record.field_id,
        record.date_of_visit.isoformat(),
        str(record.gps_latitude),
        str(record.gps_longitude),
        surveyor_name,
        NOT_AVAILABLE,
        record.rainfall,
        record.rainfall_intensity or NOT_AVAILABLE,
        record.soil_roughness,
        record.growth_stage,
        record.water_status,
        record.overall_health,
        record.visible_problems,
        record.fertilizer,
        record.fertilizer_type or NOT_AVAILABLE,
        record.herbicide,
        record.pesticide,
        record.stress_events,
        photo_folder_link,
        record.notes or "",
    ]


def new_workbook() -> Workbook:
    """Blank workbook with a single sheet holding the header row."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = DEFAULT_SHEET_TITLE
    sheet.append(EXPORT_HEADERS)
    for cell in sheet[1]:
        cell.font = Font(name="Calibri", size=11, bold=True)
    return workbook


def _load(data: bytes, source: str) -> Workbook:
    try:
        return load_workbook(io.BytesIO(data))
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise SpreadsheetFormatError(f"Cannot read {source} spreadsheet: {e}") from e


def last_data_row(sheet: Worksheet) -> int:
    """Index of the last row (below the header) with a value in column A.

    Returns 1 when only the header row is present.
    """
    last = 1
    for row in range(2, sheet.max_row + 1):
        value = sheet.cell(row=row, column=1).value
        if value is not None and value != "":
            last = row
    return last


def append_rows(
    existing: bytes | None,
    rows: Sequence[Sequence[str]],
    template: bytes | None = None,
) -> bytes:
    """Append rows to a spreadsheet and return the new file content.

    Args:
        existing: Current file content, or None if the file does not exist yet.
        rows: Rows to append, each in EXPORT_HEADERS order.
        template: Workbook used when ``existing`` is None; a blank
            workbook with headers is used if this is None too.

    Returns:
        Serialized xlsx content.

    Raises:
        SpreadsheetFormatError: If the file cannot be read or has no worksheet.
    """
    if existing is not None:
        workbook = _load(existing, "existing")
    elif template is not None:
        workbook = _load(template, "template")
    else:
        workbook = new_workbook()

    if not workbook.worksheets:
        raise SpreadsheetFormatError("No worksheet found in workbook")
    sheet = workbook.worksheets[0]

    row_number = last_data_row(sheet) + 1
    for values in rows:
        for column, value in enumerate(values, start=1):
            cell = sheet.cell(row=row_number, column=column, value=value)
            cell.font = ROW_FONT
        row_number += 1

    logger.debug("Appended %d rows, last row is now %d", len(rows), row_number - 1)

    output = io.BytesIO()
    workbook.save(output)
    return output.getvalue()
