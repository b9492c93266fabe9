from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any

# Semantic columns of a GL export, keyed by the attribute they feed.
LEDGER_COLUMNS = {
    "posting_date": "Posting Date",
    "trans_no": "Trans. No.",
    "origin": "Origin",
    "origin_no": "Origin No.",
    "ref1": "Ref. 1",
    "ref2": "Ref. 2",
    "offset_account": "Offset Account",
    "details": "Details",
    "cd_lc": "C/D (LC)",
    "cumulative_balance_lc": "Cumulative Balance (LC)",
    "debit_lc": "Debit (LC)",
    "credit_lc": "Credit (LC)",
    "bp_account_code": "BP/Account Code",
    "created_by": "Created By",
    "line_type": "Type",
    "region": "Region",
    "client": "Client",
    "site": "Site",
}

REQUIRED_LEDGER_COLUMNS = (
    "Posting Date",
    "Trans. No.",
    "Origin",
    "Offset Account",
    "Debit (LC)",
    "Credit (LC)",
    "Site",
)

# normalized canonical header -> accepted header spellings
HEADER_SYNONYMS: dict[str, tuple[str, ...]] = {
    "offsetaccount": ("offsetacc", "offsetaccountcode", "offsetaccno", "offset"),
    "postingdate": ("date", "docdate", "posting", "postingdate", "postdate"),
    "transno": ("transnumber", "docno", "docnumber", "trans", "transno", "transactionno"),
    "debitlc": ("debit", "debitamount", "dr", "debitlc", "debitamt"),
    "creditlc": ("credit", "creditamount", "cr", "creditlc", "creditamt"),
    "cumulativebalancelc": ("balance", "cumbalance", "cumulativebala", "cumbals", "cumulativebalancelc"),
    "site": ("site", "sitecode", "siteno", "property", "location", "siteid", "site#"),
    "bpaccountcode": ("bp/account code", "bpcode", "accountcode", "bpacc"),
}

# Date parse outcomes
FORMAT_YEAR_MONTH_DAY = "YYYY/MM/DD"
FORMAT_YEAR_DAY_MONTH = "YYYY/DD/MM"
FORMAT_DAY_MONTH_YEAR = "DD/MM/YYYY"
FORMAT_INVALID = "Invalid"

STATUS_YEAR_FIRST = "OK-YYYYfirst"
STATUS_DAY_FIRST = "OK-DDfirst"
STATUS_FAILED = "FAILED"

# Only these literal prefixes switch a date to year-first reading.
YEAR_FIRST_PREFIXES = ("2024", "2025")

EXCEL_SERIAL_MIN = 40_000
EXCEL_SERIAL_MAX = 60_000
EXCEL_UNIX_EPOCH_SERIAL = 25_569

BUSINESS_MEANINGS = {
    "PU": "Landlord Credit Note (PU)",
    "RC": "Receipts / Revenue Banked",
    "JE": "Journal / Manual Adjustment",
    "PS": "Payments / Reversal",
    "OB": "Opening Balance",
}
INVOICE_ORIGINS = ("CN", "IN")
LANDLORD_INVOICE_MEANING = "Landlord Invoice/Credit Note (CIP)"
TENANT_INVOICE_MEANING = "Tenant Invoice/Credit Note"
OTHER_MEANING = "Other"

OPENING_BALANCE_ORIGIN = "OB"
LANDLORD_ORIGIN = "PU"
LANDLORD_PREFIX = "CIP"
INTERCOMPANY_PREFIX = "DBT"

UNKNOWN_SITE = "Unknown"
UNKNOWN_MONTH = "Unknown"
OTHER_CATEGORY = "Other"

SITE_SOURCE_COLUMN = "Site Column"
SITE_SOURCE_DERIVED = "Derived"
SITE_SOURCE_UNKNOWN = "Unknown"
SITE_SOURCE_MANUAL = "Manual Override"

REVIEW_OPEN = "Open"
REVIEW_RESOLVED = "Resolved"
REVIEW_IGNORE = "Ignore"

FLAG_MISSING_SITE = "Missing Site"
FLAG_MULTIPLE_SITES = "Multiple Sites in Text"
FLAG_SITE_CONFLICT = "Site Conflict (File vs Ref)"
FLAG_DATE_FAILED = "Date Parse Failed"
# Reporting order of why_flagged reasons
FLAG_ORDER = (FLAG_MISSING_SITE, FLAG_MULTIPLE_SITES, FLAG_SITE_CONFLICT, FLAG_DATE_FAILED)


@dataclass(frozen=True)
class AccountDirectoryItem:
    code: str
    name: str
    category: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ImportMetadata:
    id: str
    company_code: str
    gl_account: str
    gl_account_name: str = ""
    import_label: str = ""
    imported_by: str = ""
    imported_at: str = ""
    file_name: str = ""


@dataclass(frozen=True)
class DateParseResult:
    parsed: str | None
    raw: str
    format_detected: str
    year: int
    month: int
    day: int
    status: str
    failed_flag: bool
    reason: str | None = None


@dataclass(frozen=True)
class LedgerEntry:
    row_id: str
    import_id: str
    company_code: str
    gl_account: str

    posting_date: str
    trans_no: str
    origin: str
    origin_no: str
    ref1: str
    ref2: str
    offset_account: str
    details: str
    cd_lc: str
    cumulative_balance_lc: float
    debit_lc: float
    credit_lc: float
    bp_account_code: str
    created_by: str
    line_type: str
    region: str
    client: str
    site: str

    posting_date_raw: str
    posting_date_format_detected: str
    year_part: int
    month_part: int
    day_part: int
    posting_date_parse_status: str
    posting_date_parse_failed_flag: bool
    date_failure_reason: str | None

    signed_amount: float
    net_movement_lc: float
    direction: str
    origin_category: str
    transaction_month: str

    offset_account_norm: str
    counterparty_type: str
    tenant_sub_type: str
    business_meaning: str
    journal_reason_text: str

    offset_account_key: str
    offset_account_code4: str
    offset_account_name: str
    offset_account_category: str
    unknown_offset_account_flag: bool

    site_override: str
    suggested_site: str
    site_final: str
    site_source: str

    unknown_site_flag: bool
    ref_conflict_flag: bool
    offset_conflict_flag: bool
    multi_match_flag: bool

    site_review_status: str
    why_flagged: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["why_flagged"] = list(self.why_flagged)
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "LedgerEntry":
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in payload.items() if key in known}
        values["why_flagged"] = tuple(values.get("why_flagged") or ())
        return cls(**values)
