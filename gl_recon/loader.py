"""
GL export reader.

Turns an ERP export (.csv .tsv .txt .xlsx .xlsm .xls .ods) into a pandas
DataFrame whose columns are the export's own headers. ERP exports often put
a report title, the run date or a company banner above the real header, so
the header row is located rather than assumed: the first rows are scored by
how many expected ledger columns they resolve to, and everything above the
winning row is dropped.

Text cells stay strings. Workbook cells keep their native values, so date
cells arrive as datetimes and are rendered day-first by the date parser.

An empty file loads as an empty frame; deciding that it is an error is the
importer's job.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

from gl_recon.pipeline.shared import HEADER_SYNONYMS, REQUIRED_LEDGER_COLUMNS
from gl_recon.pipeline.text import as_text, fuzzy_lookup, is_blank

logger = logging.getLogger(__name__)

TEXT_FORMATS = {".csv", ".tsv", ".txt"}
WORKBOOK_FORMATS = {".xlsx", ".xlsm", ".xls", ".ods"}
SUPPORTED_FORMATS = TEXT_FORMATS | WORKBOOK_FORMATS

# Title rows above the header are only looked for this far down.
HEADER_SCAN_ROWS = 15
DELIMITER_CANDIDATES = (",", ";", "\t", "|")


@dataclass
class LoadedExport:
    dataframe: pd.DataFrame
    detected_format: str
    encoding: Optional[str] = None
    delimiter: Optional[str] = None
    sheet_name: Optional[str] = None
    sheet_names: list[str] = field(default_factory=list)
    header_row: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def rows_read(self) -> int:
        return len(self.dataframe)


def decode_export_bytes(raw: bytes) -> tuple[str, str]:
    """
    Decode export bytes, returning (text, encoding).

    UTF-8 (with or without BOM) is tried first because most ERPs write it;
    otherwise chardet's guess is used, and cp1252 with replacement is the
    last resort so a stray byte never stops an import.
    """
    try:
        return raw.decode("utf-8-sig"), "utf-8"
    except UnicodeDecodeError:
        pass
    guess = chardet.detect(raw).get("encoding")
    if guess:
        try:
            return raw.decode(guess), guess.lower()
        except (LookupError, UnicodeDecodeError):
            logger.debug("chardet guessed %s but decoding failed", guess)
    return raw.decode("cp1252", errors="replace"), "cp1252"


def sniff_delimiter(text: str) -> str:
    """Pick the delimiter that splits the most sample lines into the same number of fields."""
    lines = [line for line in text.splitlines() if line.strip()][: HEADER_SCAN_ROWS * 2]
    try:
        return csv.Sniffer().sniff("\n".join(lines), delimiters="".join(DELIMITER_CANDIDATES)).delimiter
    except csv.Error:
        pass

    best, best_key = ",", (0, 0)
    for delimiter in DELIMITER_CANDIDATES:
        widths = [len(row) for row in csv.reader(lines, delimiter=delimiter)]
        if not widths or max(widths) < 2:
            continue
        widest = max(widths)
        key = (sum(1 for width in widths if width == widest), widest)
        if key > best_key:
            best, best_key = delimiter, key
    return best


def _clean_header(value: Any) -> str:
    return " ".join(as_text(value).split())


def locate_header_row(
    grid: Sequence[Sequence[Any]],
    expected: Iterable[str] = REQUIRED_LEDGER_COLUMNS,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> int:
    """
    Index of the row that resolves the most ``expected`` columns.

    Ties go to the earliest row. When no scanned row matches anything the
    first non-empty row is the header.
    """
    expected = list(expected)
    best_index, best_hits = None, 0
    first_populated = None
    for index, row in enumerate(grid[:HEADER_SCAN_ROWS]):
        headers = {_clean_header(cell): True for cell in row if _clean_header(cell)}
        if not headers:
            continue
        if first_populated is None:
            first_populated = index
        hits = sum(1 for column in expected if fuzzy_lookup(headers, column, synonyms) is not None)
        if hits > best_hits:
            best_index, best_hits = index, hits
    if best_index is not None:
        return best_index
    return first_populated or 0


def grid_to_frame(
    grid: Sequence[Sequence[Any]],
    expected: Iterable[str] = REQUIRED_LEDGER_COLUMNS,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> tuple[pd.DataFrame, int, list[str]]:
    """
    Build a frame from raw cell rows; returns (frame, header_row, warnings).

    Columns with a blank header are dropped. A repeated header keeps its
    first column. Rows with no populated cell are dropped.
    """
    warnings: list[str] = []
    if not grid:
        return pd.DataFrame(), 0, warnings

    header_row = locate_header_row(grid, expected, synonyms)
    if header_row:
        warnings.append(f"Skipped {header_row} title row(s) above the header.")

    keep: list[tuple[int, str]] = []
    seen: set[str] = set()
    for position, cell in enumerate(grid[header_row]):
        header = _clean_header(cell)
        if not header:
            continue
        if header in seen:
            warnings.append(f"Duplicate header '{header}'; kept the first column.")
            continue
        seen.add(header)
        keep.append((position, header))

    body = []
    for row in grid[header_row + 1:]:
        values = [row[position] if position < len(row) else "" for position, _ in keep]
        if all(is_blank(value) or not str(value).strip() for value in values):
            continue
        body.append(values)
    return pd.DataFrame(body, columns=[header for _, header in keep], dtype=object), header_row, warnings


def _read_text_export(path: Path, suffix: str, expected, synonyms) -> LoadedExport:
    text, encoding = decode_export_bytes(path.read_bytes())
    text = text.replace("\x00", "")
    if not text.strip():
        return LoadedExport(pd.DataFrame(), suffix.lstrip("."), encoding=encoding)

    delimiter = "\t" if suffix == ".tsv" else sniff_delimiter(text)
    grid = list(csv.reader(io.StringIO(text), delimiter=delimiter))
    frame, header_row, warnings = grid_to_frame(grid, expected, synonyms)
    return LoadedExport(
        frame,
        suffix.lstrip("."),
        encoding=encoding,
        delimiter=delimiter,
        header_row=header_row,
        warnings=warnings,
    )


def _workbook_engine(suffix: str) -> Optional[str]:
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError as exc:
            raise ImportError(".xls files require xlrd; run: pip install xlrd") from exc
        return "xlrd"
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError as exc:
            raise ImportError(".ods files require odfpy; run: pip install odfpy") from exc
        return "odf"
    return None


def _sheet_grid(path: Path, sheet: str, engine: Optional[str]) -> list[list[Any]]:
    try:
        raw = pd.read_excel(path, sheet_name=sheet, header=None, dtype=object, engine=engine)
    except Exception as exc:
        raise ValueError(f"Could not load sheet '{sheet}': {exc}") from exc
    return raw.astype(object).where(raw.notna(), "").values.tolist()


def _read_workbook_export(
    path: Path,
    suffix: str,
    sheet_name: Optional[str],
    consolidate_sheets: Optional[bool],
    expected,
    synonyms,
) -> LoadedExport:
    engine = _workbook_engine(suffix)
    try:
        with pd.ExcelFile(path, engine=engine) as workbook:
            sheet_names = [str(name) for name in workbook.sheet_names]
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc
    if not sheet_names:
        raise ValueError("Workbook has no sheets.")
    if sheet_name is not None and sheet_name not in sheet_names:
        raise ValueError(f"Sheet '{sheet_name}' not found. Available: {sheet_names}")

    if consolidate_sheets and sheet_name is None and len(sheet_names) > 1:
        frames, warnings, header_row = [], [], 0
        for sheet in sheet_names:
            frame, sheet_header_row, sheet_warnings = grid_to_frame(_sheet_grid(path, sheet, engine), expected, synonyms)
            if frames and list(frame.columns) != list(frames[0].columns):
                raise ValueError(
                    f"Cannot consolidate workbook sheets with different columns: '{sheet}' differs from '{sheet_names[0]}'."
                )
            frames.append(frame)
            warnings.extend(f"{sheet}: {warning}" for warning in sheet_warnings)
            header_row = header_row or sheet_header_row
        warnings.append(f"Consolidated {len(frames)} sheets into one table.")
        return LoadedExport(
            pd.concat(frames, ignore_index=True),
            suffix.lstrip("."),
            sheet_name=f"[all {len(frames)} sheets]",
            sheet_names=sheet_names,
            header_row=header_row,
            warnings=warnings,
        )

    chosen = sheet_name if sheet_name is not None else sheet_names[0]
    frame, header_row, warnings = grid_to_frame(_sheet_grid(path, chosen, engine), expected, synonyms)
    ignored = [sheet for sheet in sheet_names if sheet != chosen]
    if ignored:
        warnings.append(f"Used sheet '{chosen}'. Ignored: {ignored}")
    return LoadedExport(
        frame,
        suffix.lstrip("."),
        sheet_name=chosen,
        sheet_names=sheet_names,
        header_row=header_row,
        warnings=warnings,
    )


def load_file(
    path: "str | Path",
    sheet_name: Optional[str] = None,
    consolidate_sheets: Optional[bool] = None,
    *,
    expected_columns: Iterable[str] = REQUIRED_LEDGER_COLUMNS,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> LoadedExport:
    """
    Read a GL export (or any table with known headers) into a LoadedExport.

    ``expected_columns`` and ``synonyms`` steer the header-row search; the
    account directory passes its own.

    Raises FileNotFoundError for a missing file, ValueError for an
    unsupported or unreadable one, and ImportError when .xls/.ods support
    is not installed.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if suffix not in SUPPORTED_FORMATS:
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {', '.join(sorted(SUPPORTED_FORMATS))}")

    if suffix in TEXT_FORMATS:
        loaded = _read_text_export(path, suffix, expected_columns, synonyms)
    else:
        loaded = _read_workbook_export(path, suffix, sheet_name, consolidate_sheets, expected_columns, synonyms)
    logger.debug(
        "Loaded %s: %d rows, %d columns, header at row %d",
        path.name, loaded.rows_read, len(loaded.dataframe.columns), loaded.header_row + 1,
    )
    return loaded


def dataframe_to_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Raw row mappings (header -> cell); missing cells become "" and blank headers are dropped."""
    columns = [column for column in df.columns if str(column).strip()]
    frame = df[columns].astype(object).where(df[columns].notna(), "")
    return [
        {str(column): value for column, value in zip(columns, values)}
        for values in frame.itertuples(index=False, name=None)
    ]
