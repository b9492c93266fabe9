"""
Row classifier: one raw GL export row in, one LedgerEntry out.

Pure and row-at-a-time. The only shared inputs are the read-only account
directory and header synonym table supplied by the caller. Bad data never
raises; it lands in the entry as zeroed amounts, an "Unknown" site, a FAILED
date status and the ordered ``why_flagged`` reasons read by the review queue.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from gl_recon.pipeline.dates import parse_strict_date
from gl_recon.pipeline.numbers import parse_accounting_num
from gl_recon.pipeline.shared import (
    BUSINESS_MEANINGS,
    FLAG_DATE_FAILED,
    FLAG_MISSING_SITE,
    FLAG_MULTIPLE_SITES,
    FLAG_SITE_CONFLICT,
    HEADER_SYNONYMS,
    INTERCOMPANY_PREFIX,
    INVOICE_ORIGINS,
    LANDLORD_INVOICE_MEANING,
    LANDLORD_ORIGIN,
    LANDLORD_PREFIX,
    LEDGER_COLUMNS,
    OPENING_BALANCE_ORIGIN,
    OTHER_CATEGORY,
    OTHER_MEANING,
    REVIEW_OPEN,
    REVIEW_RESOLVED,
    SITE_SOURCE_COLUMN,
    SITE_SOURCE_DERIVED,
    SITE_SOURCE_UNKNOWN,
    TENANT_INVOICE_MEANING,
    UNKNOWN_MONTH,
    UNKNOWN_SITE,
    AccountDirectoryItem,
    ImportMetadata,
    LedgerEntry,
)
from gl_recon.pipeline.sites import extract_account_code, extract_sites
from gl_recon.pipeline.text import as_text, fuzzy_lookup, normalize


def classify_counterparty(offset_norm: str, origin: str) -> tuple[str, str]:
    """Return (counterparty_type, tenant_sub_type) for a normalized offset account."""
    starts_cip = offset_norm.startswith(LANDLORD_PREFIX)
    starts_dbt = offset_norm.startswith(INTERCOMPANY_PREFIX)

    if starts_cip or origin == LANDLORD_ORIGIN:
        return "Landlord", ""
    if starts_dbt:
        return "Intercompany Tenant", "Intercompany"
    if offset_norm.endswith("V"):
        return "Tenant", "Voucher"
    if offset_norm.endswith("C"):
        return "Tenant", "Credit Casual"
    return "Tenant", "Normal"


def business_meaning_for(origin: str, counterparty_type: str) -> str:
    if origin in INVOICE_ORIGINS:
        return LANDLORD_INVOICE_MEANING if counterparty_type == "Landlord" else TENANT_INVOICE_MEANING
    return BUSINESS_MEANINGS.get(origin, OTHER_MEANING)


def _direction(debit_lc: float, credit_lc: float) -> str:
    if credit_lc > 0:
        return "Credit"
    if debit_lc > 0:
        return "Debit"
    return "Zero/Other"


def _find_directory_entry(
    code: str,
    account_directory: Iterable[AccountDirectoryItem],
) -> AccountDirectoryItem | None:
    if not code:
        return None
    for item in account_directory or ():
        if item.code == code:
            return item
    return None


def process_ledger_row(
    raw: Mapping[str, Any],
    import_meta: ImportMetadata,
    account_directory: Iterable[AccountDirectoryItem],
    offset_map: Mapping[str, Any] | None = None,
    *,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> LedgerEntry:
    # offset_map is reserved for offset-account site heuristics; no rule reads it yet.
    def field(name: str) -> Any:
        return fuzzy_lookup(raw, LEDGER_COLUMNS[name], synonyms)

    origin = normalize(field("origin"))
    raw_offset = field("offset_account")
    site_column = normalize(field("site"))

    debit_lc = abs(parse_accounting_num(field("debit_lc")))
    credit_lc = abs(parse_accounting_num(field("credit_lc")))

    offset_norm = normalize(raw_offset)
    counterparty_type, tenant_sub_type = classify_counterparty(offset_norm, origin)
    business_meaning = business_meaning_for(origin, counterparty_type)

    date_result = parse_strict_date(field("posting_date"))
    transaction_month = date_result.parsed[:7] if date_result.parsed else UNKNOWN_MONTH

    ref1 = as_text(field("ref1"))
    ref2 = as_text(field("ref2"))
    details = as_text(field("details"))

    candidates = [extract_sites(normalize(text)) for text in (ref1, ref2, details)]
    suggested_site = next((sites[0] for sites in candidates if sites), "")

    site_final = site_column or suggested_site or UNKNOWN_SITE
    if site_column:
        site_source = SITE_SOURCE_COLUMN
    elif suggested_site:
        site_source = SITE_SOURCE_DERIVED
    else:
        site_source = SITE_SOURCE_UNKNOWN

    unknown_site_flag = site_final == UNKNOWN_SITE
    multi_match_flag = any(len(sites) > 1 for sites in candidates)
    ref_conflict_flag = bool(site_column) and bool(suggested_site) and site_column != suggested_site

    why_flagged: list[str] = []
    if origin != OPENING_BALANCE_ORIGIN:
        if unknown_site_flag:
            why_flagged.append(FLAG_MISSING_SITE)
        if multi_match_flag:
            why_flagged.append(FLAG_MULTIPLE_SITES)
        if ref_conflict_flag:
            why_flagged.append(FLAG_SITE_CONFLICT)
        if date_result.failed_flag:
            why_flagged.append(FLAG_DATE_FAILED)

    offset_code = extract_account_code(offset_norm)
    directory_entry = _find_directory_entry(offset_code, account_directory)

    return LedgerEntry(
        row_id=uuid.uuid4().hex,
        import_id=import_meta.id,
        company_code=import_meta.company_code,
        gl_account=import_meta.gl_account,
        posting_date=date_result.parsed or "",
        trans_no=as_text(field("trans_no")),
        origin=origin,
        origin_no=as_text(field("origin_no")),
        ref1=ref1,
        ref2=ref2,
        offset_account=as_text(raw_offset),
        details=details,
        cd_lc=as_text(field("cd_lc")),
        cumulative_balance_lc=parse_accounting_num(field("cumulative_balance_lc")),
        debit_lc=debit_lc,
        credit_lc=credit_lc,
        bp_account_code=as_text(field("bp_account_code")),
        created_by=as_text(field("created_by")),
        line_type=as_text(field("line_type")),
        region=as_text(field("region")),
        client=as_text(field("client")),
        site=site_column,
        posting_date_raw=date_result.raw,
        posting_date_format_detected=date_result.format_detected,
        year_part=date_result.year,
        month_part=date_result.month,
        day_part=date_result.day,
        posting_date_parse_status=date_result.status,
        posting_date_parse_failed_flag=date_result.failed_flag,
        date_failure_reason=date_result.reason,
        signed_amount=credit_lc - debit_lc,
        net_movement_lc=debit_lc - credit_lc,
        direction=_direction(debit_lc, credit_lc),
        origin_category=business_meaning,
        transaction_month=transaction_month,
        offset_account_norm=offset_norm,
        counterparty_type=counterparty_type,
        tenant_sub_type=tenant_sub_type,
        business_meaning=business_meaning,
        journal_reason_text=f"{ref1} | {ref2} | {details}",
        offset_account_key=offset_norm,
        offset_account_code4=offset_code or offset_norm,
        offset_account_name=directory_entry.name if directory_entry and directory_entry.name else "",
        offset_account_category=(directory_entry.category if directory_entry and directory_entry.category else OTHER_CATEGORY),
        # informational only; never opens the row for review
        unknown_offset_account_flag=bool(offset_norm) and directory_entry is None,
        site_override="",
        suggested_site=suggested_site,
        site_final=site_final,
        site_source=site_source,
        unknown_site_flag=unknown_site_flag,
        ref_conflict_flag=ref_conflict_flag,
        offset_conflict_flag=False,
        multi_match_flag=multi_match_flag,
        site_review_status=REVIEW_OPEN if why_flagged else REVIEW_RESOLVED,
        why_flagged=tuple(why_flagged),
    )
