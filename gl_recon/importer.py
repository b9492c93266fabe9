"""
Batch import of GL export rows.

Applies the batch-level checks that run before any row is classified
(non-empty file, required columns present), drops near-empty rows, then runs
every remaining row through the classifier. Also loads the account directory
used to name offset accounts.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from gl_recon.loader import dataframe_to_rows, load_file
from gl_recon.pipeline.classifier import process_ledger_row
from gl_recon.pipeline.shared import (
    FLAG_ORDER,
    HEADER_SYNONYMS,
    REQUIRED_LEDGER_COLUMNS,
    REVIEW_OPEN,
    AccountDirectoryItem,
    ImportMetadata,
    LedgerEntry,
)
from gl_recon.pipeline.sites import extract_account_code
from gl_recon.pipeline.text import as_text, fuzzy_lookup, is_blank

logger = logging.getLogger(__name__)

# Rows need more populated cells than this to be treated as ledger lines.
MIN_POPULATED_CELLS = 2
# A header sample row must have more populated cells than this.
SAMPLE_ROW_MIN_CELLS = 3

DIRECTORY_SYNONYMS = {
    "code": ("accountcode", "account", "accountno", "acccode", "glcode"),
    "name": ("accountname", "description", "accname"),
    "category": ("type", "group", "accountcategory"),
    "notes": ("note", "comment", "comments"),
}


class LedgerImportError(ValueError):
    pass


def _populated_cells(row: Mapping[str, Any]) -> int:
    return sum(1 for value in row.values() if not is_blank(value) and str(value).strip())


def build_import_metadata(
    company_code: str,
    gl_account: str,
    *,
    file_name: str = "",
    import_label: str = "",
    imported_by: str = "",
    gl_account_name: str = "",
    imported_at: Optional[datetime] = None,
) -> ImportMetadata:
    company_code = (company_code or "").strip()
    gl_account = (gl_account or "").strip()
    if not company_code or not gl_account:
        raise LedgerImportError("Please enter Company Code and select a GL Account first.")

    stamp = imported_at or datetime.now(timezone.utc)
    return ImportMetadata(
        id=uuid.uuid4().hex,
        company_code=company_code,
        gl_account=gl_account,
        gl_account_name=gl_account_name,
        import_label=import_label or f"{gl_account} Import ({stamp.date().isoformat()})",
        imported_by=imported_by,
        imported_at=stamp.replace(microsecond=0).isoformat(),
        file_name=file_name,
    )


def missing_required_columns(
    rows: Sequence[Mapping[str, Any]],
    required: Iterable[str] = REQUIRED_LEDGER_COLUMNS,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> list[str]:
    """Required headers that no column of the sample row resolves to."""
    if not rows:
        return list(required)
    sample = next((row for row in rows if len(row) > SAMPLE_ROW_MIN_CELLS), rows[0])
    return [column for column in required if fuzzy_lookup(sample, column, synonyms) is None]


def import_rows(
    rows: Sequence[Mapping[str, Any]],
    meta: ImportMetadata,
    directory: Iterable[AccountDirectoryItem] = (),
    *,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> dict[str, Any]:
    """
    Classify a batch of raw rows.

    Raises LedgerImportError when the batch is empty or a required column is
    missing. Returns {"metadata", "entries", "skipped_rows", "warnings"}.
    """
    if not rows:
        raise LedgerImportError("The file appears to be empty.")

    missing = missing_required_columns(rows, synonyms=synonyms)
    if missing:
        raise LedgerImportError(f"Missing required columns: {', '.join(missing)}.")

    directory = list(directory)
    offset_map: dict[str, Any] = {}
    entries: list[LedgerEntry] = []
    skipped: list[int] = []
    for index, row in enumerate(rows, start=2):
        if _populated_cells(row) <= MIN_POPULATED_CELLS:
            skipped.append(index)
            logger.debug("Skipping near-empty row %d", index)
            continue
        entries.append(process_ledger_row(row, meta, directory, offset_map, synonyms=synonyms))

    warnings: list[str] = []
    if skipped:
        warnings.append(f"Skipped {len(skipped)} near-empty rows.")
    open_count = sum(1 for entry in entries if entry.site_review_status == REVIEW_OPEN)
    logger.info(
        "Imported %d rows for %s/%s (%d open for review, %d skipped)",
        len(entries), meta.company_code, meta.gl_account, open_count, len(skipped),
    )
    return {
        "metadata": meta,
        "entries": entries,
        "skipped_rows": skipped,
        "warnings": warnings,
    }


def import_file(
    path: "str | Path",
    meta: ImportMetadata,
    directory: Iterable[AccountDirectoryItem] = (),
    *,
    sheet_name: Optional[str] = None,
    consolidate_sheets: Optional[bool] = None,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> dict[str, Any]:
    """
    Load an export and classify it.

    A zero-byte file and a header-only file both end up as an empty batch, so
    they fail the same way.
    """
    loaded = load_file(path, sheet_name=sheet_name, consolidate_sheets=consolidate_sheets, synonyms=synonyms)
    rows = dataframe_to_rows(loaded.dataframe)
    result = import_rows(rows, meta, directory, synonyms=synonyms)
    result["warnings"] = list(loaded.warnings) + result["warnings"]
    result["source"] = {
        "file": str(path),
        "detected_format": loaded.detected_format,
        "encoding": loaded.encoding,
        "delimiter": loaded.delimiter,
        "sheet_name": loaded.sheet_name,
        "header_row": loaded.header_row + 1,
        "rows_read": loaded.rows_read,
    }
    return result


def load_account_directory(path: "str | Path") -> list[AccountDirectoryItem]:
    """
    Read an account directory export (CSV/TSV/Excel).

    Codes are reduced to their digits when they contain any, matching how
    offset-account codes are extracted during classification.
    """
    loaded = load_file(path, expected_columns=("code", "name"), synonyms=DIRECTORY_SYNONYMS)
    items: list[AccountDirectoryItem] = []
    for row in dataframe_to_rows(loaded.dataframe):
        raw_code = as_text(fuzzy_lookup(row, "code", DIRECTORY_SYNONYMS)).strip()
        if not raw_code:
            continue
        code = extract_account_code(raw_code) or raw_code
        category = as_text(fuzzy_lookup(row, "category", DIRECTORY_SYNONYMS)).strip()
        notes = as_text(fuzzy_lookup(row, "notes", DIRECTORY_SYNONYMS)).strip()
        items.append(
            AccountDirectoryItem(
                code=code,
                name=as_text(fuzzy_lookup(row, "name", DIRECTORY_SYNONYMS)).strip(),
                category=category or None,
                notes=notes or None,
            )
        )
    logger.debug("Loaded %d account directory items from %s", len(items), path)
    return items


def summarize_entries(entries: Sequence[LedgerEntry]) -> dict[str, Any]:
    flag_counts = Counter(reason for entry in entries for reason in entry.why_flagged)
    months = sorted({entry.transaction_month for entry in entries if entry.transaction_month != "Unknown"})
    open_rows = sum(1 for entry in entries if entry.site_review_status == REVIEW_OPEN)
    return {
        "rows": len(entries),
        "open_review_rows": open_rows,
        "resolved_rows": len(entries) - open_rows,
        "date_parse_failures": sum(1 for entry in entries if entry.posting_date_parse_failed_flag),
        "flag_counts": {reason: flag_counts[reason] for reason in FLAG_ORDER if flag_counts[reason]},
        "business_meaning_counts": dict(sorted(Counter(e.business_meaning for e in entries).items())),
        "counterparty_counts": dict(sorted(Counter(e.counterparty_type for e in entries).items())),
        "site_source_counts": dict(sorted(Counter(e.site_source for e in entries).items())),
        "total_debit_lc": round(sum(e.debit_lc for e in entries), 2),
        "total_credit_lc": round(sum(e.credit_lc for e in entries), 2),
        "net_movement_lc": round(sum(e.net_movement_lc for e in entries), 2),
        "months": months,
    }
