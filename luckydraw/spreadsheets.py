"""Participant roster import and winners export."""

from __future__ import annotations

import csv
import io
import zipfile
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException

from .records import RewardRecord

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_CONTENT_TYPES = {"text/csv", "application/csv"}
HEADER_FILL = "FFD4AF37"
FIXED_HEADERS = ("Reward Name", "Total Quantity", "Winners Count")
FIXED_WIDTHS = (30, 15, 15)
WINNER_WIDTH = 20


class ParticipantImportError(Exception):
    """Raised when an uploaded roster is unsupported, too large or empty."""


def _detect_format(file_name: str, content_type: Optional[str]) -> str:
    lowered = (file_name or "").lower()
    if lowered.endswith(".csv"):
        return "csv"
    if lowered.endswith(".xlsx"):
        return "xlsx"
    if lowered.endswith(".xls"):
        raise ParticipantImportError(
            "Legacy .xls workbooks are not supported. Save the file as .xlsx or .csv."
        )
    if content_type in CSV_CONTENT_TYPES:
        return "csv"
    if content_type == XLSX_CONTENT_TYPE:
        return "xlsx"
    raise ParticipantImportError("File must be an Excel file (.xlsx) or CSV (.csv)")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _first_column_csv(data: bytes) -> List[Any]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        try:
            text = data.decode("gbk")
        except UnicodeDecodeError as exc:
            raise ParticipantImportError(
                f"Failed to decode CSV. Save it as UTF-8. Details: {exc}"
            ) from exc
    return [row[0] if row else None for row in csv.reader(io.StringIO(text))]


def _first_column_xlsx(data: bytes) -> List[Any]:
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError, ValueError) as exc:
        raise ParticipantImportError(f"Failed to read Excel file: {exc}") from exc
    try:
        if not workbook.worksheets:
            return []
        sheet = workbook.worksheets[0]
        return [row[0] if row else None for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def parse_participants(
    data: bytes,
    file_name: str,
    content_type: Optional[str] = None,
    *,
    max_bytes: int = 5 * 1024 * 1024,
) -> List[str]:
    """Return the non-empty, trimmed first-column values of an uploaded roster.

    Duplicate names are kept in file order.
    """
    file_format = _detect_format(file_name, content_type)
    if len(data) > max_bytes:
        raise ParticipantImportError(
            f"File size must be less than {max_bytes // (1024 * 1024)}MB"
        )

    if file_format == "csv":
        column = _first_column_csv(data)
    else:
        column = _first_column_xlsx(data)

    participants = [text for text in (_cell_text(value) for value in column) if text]
    if not participants:
        raise ParticipantImportError(
            "No participants found in the file. Please ensure the first column "
            "contains participant names."
        )
    return participants


def winners_rows(rewards: Sequence[RewardRecord]) -> List[List[Any]]:
    """Header plus one row per reward, padded to the longest winners list."""
    max_winners = max((len(reward.winners) for reward in rewards), default=0)
    header: List[Any] = list(FIXED_HEADERS)
    header.extend(f"Winner #{index}" for index in range(1, max(max_winners, 1) + 1))
    rows = [header]
    for reward in rewards:
        row: List[Any] = [reward.name, reward.total_quantity, len(reward.winners)]
        row.extend(reward.winners)
        row.extend([""] * (max_winners - len(reward.winners)))
        rows.append(row)
    return rows


def build_winners_workbook(rewards: Iterable[RewardRecord]) -> bytes:
    rows = winners_rows(list(rewards))
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Winners"
    for row in rows:
        sheet.append(row)

    header_font = Font(bold=True)
    header_fill = PatternFill(fill_type="solid", fgColor=HEADER_FILL)
    centered = Alignment(horizontal="center", vertical="center")
    for cell in sheet[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = centered

    for index in range(1, len(rows[0]) + 1):
        width = FIXED_WIDTHS[index - 1] if index <= len(FIXED_WIDTHS) else WINNER_WIDTH
        sheet.column_dimensions[get_column_letter(index)].width = width

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_filename(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"winners-export-{now.strftime('%Y-%m-%dT%H-%M-%S')}.xlsx"
