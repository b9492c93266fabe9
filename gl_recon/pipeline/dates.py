"""
Strict posting-date parser.

GL exports mix two layouts for three-part dates, and the only rule used to
tell them apart is the first segment:

    2024/DD/MM, 2025/DD/MM   year first, then DAY, then MONTH
    anything else            DD/MM/YYYY (two-digit years are 20YY)

Only the literal prefixes "2024" and "2025" switch to year-first reading.
A 2023/... or 2026/... value is read day-first and fails validation; that is
a known limitation of the export convention, not something to guess around.

Excel serial numbers (40000 < n < 60000) are accepted when the value does not
split into three segments.

The parser never raises. Every outcome, including failures, comes back as a
DateParseResult whose ``reason`` is shown to reviewers.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

from gl_recon.pipeline.shared import (
    EXCEL_SERIAL_MAX,
    EXCEL_SERIAL_MIN,
    EXCEL_UNIX_EPOCH_SERIAL,
    FORMAT_DAY_MONTH_YEAR,
    FORMAT_INVALID,
    FORMAT_YEAR_DAY_MONTH,
    FORMAT_YEAR_MONTH_DAY,
    STATUS_DAY_FIRST,
    STATUS_FAILED,
    STATUS_YEAR_FIRST,
    YEAR_FIRST_PREFIXES,
    DateParseResult,
)
from gl_recon.pipeline.text import is_blank

UNIX_EPOCH = datetime(1970, 1, 1)

_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")
_PLAIN_NUMBER_RE = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_SEGMENT_SEPARATORS_RE = re.compile(r"[.\-]")


def _leading_int(segment: str) -> int | None:
    match = _LEADING_INT_RE.match(segment)
    return int(match.group(1)) if match else None


def _iso(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month:02d}-{day:02d}"


def _coerce_raw(raw: Any) -> str:
    # NaT is a datetime subclass, so blanks are checked before the date branch
    if is_blank(raw):
        return ""
    if isinstance(raw, datetime):
        raw = raw.date()
    if isinstance(raw, date):
        # Spreadsheet readers hand real dates over; render them day-first so
        # the strict rule reads them back exactly.
        return raw.strftime("%d/%m/%Y")
    return str(raw)


def _failed(raw: str, reason: str, format_detected: str = FORMAT_INVALID) -> DateParseResult:
    return DateParseResult(
        parsed=None,
        raw=raw,
        format_detected=format_detected,
        year=0,
        month=0,
        day=0,
        status=STATUS_FAILED,
        failed_flag=True,
        reason=reason,
    )


def _from_excel_serial(text: str) -> date | None:
    if not _PLAIN_NUMBER_RE.fullmatch(text):
        return None
    serial = float(text)
    if not EXCEL_SERIAL_MIN < serial < EXCEL_SERIAL_MAX:
        return None
    millis = round((serial - EXCEL_UNIX_EPOCH_SERIAL) * 86_400_000)
    return (UNIX_EPOCH + timedelta(milliseconds=millis)).date()


def parse_strict_date(raw: Any) -> DateParseResult:
    raw_text = _coerce_raw(raw)
    trimmed = raw_text.strip()
    if not trimmed:
        return _failed(raw_text, "Empty value")

    date_str = trimmed[1:] if trimmed.startswith("'") else trimmed
    date_str = date_str.split(" ")[0]
    normalized = _SEGMENT_SEPARATORS_RE.sub("/", date_str)
    parts = normalized.split("/")

    if len(parts) != 3:
        serial_date = _from_excel_serial(trimmed)
        if serial_date is not None:
            return DateParseResult(
                parsed=_iso(serial_date.year, serial_date.month, serial_date.day),
                raw=raw_text,
                format_detected=FORMAT_YEAR_MONTH_DAY,
                year=serial_date.year,
                month=serial_date.month,
                day=serial_date.day,
                status=STATUS_YEAR_FIRST,
                failed_flag=False,
            )
        return _failed(raw_text, f'Expected 3 segments, found {len(parts)}. String: "{normalized}"')

    p1, p2, p3 = parts
    if p1 in YEAR_FIRST_PREFIXES:
        year, day, month = _leading_int(p1), _leading_int(p2), _leading_int(p3)
        status, format_detected = STATUS_YEAR_FIRST, FORMAT_YEAR_DAY_MONTH
    else:
        day, month = _leading_int(p1), _leading_int(p2)
        year = _leading_int(p3)
        if year is not None and len(p3) == 2:
            year += 2000
        status, format_detected = STATUS_DAY_FIRST, FORMAT_DAY_MONTH_YEAR

    segments = f"[{p1}, {p2}, {p3}]"
    if year is None or month is None or day is None:
        return _failed(raw_text, f"Non-numeric segments: {segments}", format_detected)
    if not 1 <= month <= 12:
        return _failed(raw_text, f"Month out of bounds: {month}. (Input segments: {segments})", format_detected)
    if not 1 <= day <= 31:
        return _failed(raw_text, f"Day out of bounds: {day}. (Input segments: {segments})", format_detected)

    try:
        # years below 100 cannot round-trip as four-digit calendar years
        if year < 100:
            raise ValueError(year)
        date(year, month, day)
    except ValueError:
        return _failed(raw_text, f"Invalid calendar date: {day}/{month}/{year}.", format_detected)

    return DateParseResult(
        parsed=_iso(year, month, day),
        raw=raw_text,
        format_detected=format_detected,
        year=year,
        month=month,
        day=day,
        status=status,
        failed_flag=False,
    )
