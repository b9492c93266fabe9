"""
Excel output for classified ledgers.

Sheets:
    Ledger         every entry; review and date-failure cells accented
    Site Queue     open rows with the reasons they were flagged
    Date Failures  raw posting-date values that failed strict parsing
    Override Log   manual site corrections
    Site Summary   per-site balance buckets and reconciled totals
    Allocations    credit-to-debit allocations
    Journal Fixes  journal instructions for accounting
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from gl_recon.pipeline.shared import REVIEW_OPEN, LedgerEntry
from gl_recon.recon import (
    JOURNAL_EXPORT_COLUMNS,
    JOURNAL_PROCESSED,
    SITE_BALANCE_COLUMNS,
    Allocation,
    JournalInstruction,
    journal_export_frame,
    site_balance_frame,
    site_balances,
)
from gl_recon.review import SiteOverrideLog, date_failures

LEDGER_SHEET_COLUMNS = [
    ("Posting Date", "posting_date"),
    ("Trans. No.", "trans_no"),
    ("Origin", "origin"),
    ("Origin No.", "origin_no"),
    ("Ref. 1", "ref1"),
    ("Ref. 2", "ref2"),
    ("Offset Account", "offset_account"),
    ("Offset Account Name", "offset_account_name"),
    ("Details", "details"),
    ("Debit (LC)", "debit_lc"),
    ("Credit (LC)", "credit_lc"),
    ("Net Movement (LC)", "net_movement_lc"),
    ("Direction", "direction"),
    ("Transaction Month", "transaction_month"),
    ("Counterparty", "counterparty_type"),
    ("Tenant Sub Type", "tenant_sub_type"),
    ("Business Meaning", "business_meaning"),
    ("Site (File)", "site"),
    ("Suggested Site", "suggested_site"),
    ("Site Final", "site_final"),
    ("Site Source", "site_source"),
    ("Review Status", "site_review_status"),
    ("Date Parse Status", "posting_date_parse_status"),
    ("Row ID", "row_id"),
]

QUEUE_SHEET_COLUMNS = [
    ("Row ID", "row_id"),
    ("Posting Date", "posting_date_raw"),
    ("Trans. No.", "trans_no"),
    ("Details", "details"),
    ("Site (File)", "site"),
    ("Suggested Site", "suggested_site"),
    ("Site Final", "site_final"),
    ("Net Movement (LC)", "net_movement_lc"),
]

DATE_FAILURE_COLUMNS = [
    ("Row ID", "row_id"),
    ("Trans. No.", "trans_no"),
    ("Raw Value", "posting_date_raw"),
    ("Format Detected", "posting_date_format_detected"),
    ("Status", "posting_date_parse_status"),
    ("Reason", "date_failure_reason"),
]

OVERRIDE_LOG_COLUMNS = [
    "row_id", "company_code", "gl_account", "trans_no", "posting_date",
    "old_site", "new_site", "amount", "direction", "changed_by", "changed_at", "reason",
]

ALLOCATION_COLUMNS = [
    "id", "company_code", "gl_account", "site_final", "credit_row_id", "debit_row_id",
    "allocated_amount", "allocation_date", "allocated_by", "note",
]

HEADER_GREEN = "4CAF50"
HEADER_RED = "E53935"
HEADER_BLUE = "1565C0"
HEADER_AMBER = "EF6C00"

FILL_REVIEW = PatternFill("solid", fgColor="FCE4D6")   # soft orange
FILL_DATE_FAILED = PatternFill("solid", fgColor="FFF2CC")   # soft yellow
FILL_PROCESSED = PatternFill("solid", fgColor="E2EFDA")   # soft green


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _header_fill(hex_color: str) -> PatternFill:
    return PatternFill("solid", fgColor=hex_color)


def _style_sheet(ws, col_widths: list[int], header_color: str):
    """Apply bold header, color, frozen row, and column widths."""
    fill = _header_fill(header_color)
    font = _header_font()
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=False)
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 10, max_width: int = 60, sample: int = 300) -> list[int]:
    if not rows:
        return []
    widths = [max(min_width, min(max_width, len(str(v)) + 2)) for v in rows[0]]
    for row in rows[1 : sample + 1]:
        for i, val in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(val)) + 2))
    return [max(min_width, min(max_width, w)) for w in widths]


def _cell_value(value):
    return "" if value is None else value


def _append_table(ws, headers: list[str], rows: Iterable[list], header_color: str) -> None:
    rows_for_width = [headers]
    ws.append(headers)
    for row in rows:
        ws.append(row)
        rows_for_width.append(row)
    _style_sheet(ws, _infer_col_widths(rows_for_width), header_color)


def write_workbook(
    entries: Sequence[LedgerEntry],
    output_path: Path,
    *,
    override_logs: Sequence[SiteOverrideLog] = (),
    allocations: Sequence[Allocation] = (),
    journal_instructions: Sequence[JournalInstruction] = (),
) -> None:
    output_path = Path(output_path)
    wb = openpyxl.Workbook()

    # ── Sheet 1: Ledger ────────────────────────────────────────────────
    ws1 = wb.active
    ws1.title = "Ledger"
    ledger_headers = [header for header, _ in LEDGER_SHEET_COLUMNS]
    review_col = ledger_headers.index("Review Status") + 1
    date_col = ledger_headers.index("Posting Date") + 1
    ledger_rows = [ledger_headers]
    ws1.append(ledger_headers)
    for entry in entries:
        row_out = [_cell_value(getattr(entry, attr)) for _, attr in LEDGER_SHEET_COLUMNS]
        ws1.append(row_out)
        ledger_rows.append(row_out)
        last = ws1.max_row
        if entry.site_review_status == REVIEW_OPEN:
            ws1.cell(last, review_col).fill = FILL_REVIEW
        if entry.posting_date_parse_failed_flag:
            ws1.cell(last, date_col).fill = FILL_DATE_FAILED
    _style_sheet(ws1, _infer_col_widths(ledger_rows), HEADER_GREEN)

    # ── Sheet 2: Site Queue ────────────────────────────────────────────
    ws2 = wb.create_sheet("Site Queue")
    queue_rows = []
    for entry in entries:
        if entry.site_review_status != REVIEW_OPEN:
            continue
        row_out = [_cell_value(getattr(entry, attr)) for _, attr in QUEUE_SHEET_COLUMNS]
        row_out.append("; ".join(entry.why_flagged))
        queue_rows.append(row_out)
    _append_table(ws2, [header for header, _ in QUEUE_SHEET_COLUMNS] + ["Why Flagged"], queue_rows, HEADER_RED)

    # ── Sheet 3: Date Failures ─────────────────────────────────────────
    ws3 = wb.create_sheet("Date Failures")
    failure_rows = [
        [_cell_value(getattr(entry, attr)) for _, attr in DATE_FAILURE_COLUMNS]
        for entry in date_failures(entries)
    ]
    _append_table(ws3, [header for header, _ in DATE_FAILURE_COLUMNS], failure_rows, HEADER_AMBER)
    reason_col = get_column_letter(len(DATE_FAILURE_COLUMNS))
    for cell in ws3[reason_col][1:]:
        cell.alignment = Alignment(wrap_text=True, vertical="top")

    # ── Sheet 4: Override Log ──────────────────────────────────────────
    ws4 = wb.create_sheet("Override Log")
    log_rows = [[_cell_value(getattr(log, column)) for column in OVERRIDE_LOG_COLUMNS] for log in override_logs]
    _append_table(ws4, list(OVERRIDE_LOG_COLUMNS), log_rows, HEADER_BLUE)

    # ── Sheet 5: Site Summary ──────────────────────────────────────────
    ws5 = wb.create_sheet("Site Summary")
    summary = site_balance_frame(site_balances(entries, journal_instructions))
    _append_table(ws5, list(SITE_BALANCE_COLUMNS), summary.values.tolist(), HEADER_GREEN)
    for row in ws5.iter_rows(min_row=2, min_col=2):
        for cell in row:
            cell.number_format = "#,##0.00"

    # ── Sheet 6: Allocations ───────────────────────────────────────────
    ws6 = wb.create_sheet("Allocations")
    allocation_rows = [[_cell_value(getattr(item, column)) for column in ALLOCATION_COLUMNS] for item in allocations]
    _append_table(ws6, list(ALLOCATION_COLUMNS), allocation_rows, HEADER_BLUE)

    # ── Sheet 7: Journal Fixes ─────────────────────────────────────────
    ws7 = wb.create_sheet("Journal Fixes")
    journal = journal_export_frame(journal_instructions)
    _append_table(ws7, list(JOURNAL_EXPORT_COLUMNS), journal.values.tolist(), HEADER_AMBER)
    status_col = JOURNAL_EXPORT_COLUMNS.index("Status") + 1
    for offset, instruction in enumerate(journal_instructions, start=2):
        if instruction.status == JOURNAL_PROCESSED:
            ws7.cell(offset, status_col).fill = FILL_PROCESSED

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
