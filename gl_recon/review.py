"""
Site review workflow.

Classified entries are never mutated: every correction returns a new
LedgerEntry (via dataclasses.replace) plus, for site changes, an audit
record of what changed.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, replace
from typing import Any, Optional

from gl_recon.contracts import utc_now_iso
from gl_recon.pipeline.shared import (
    REVIEW_IGNORE,
    REVIEW_OPEN,
    REVIEW_RESOLVED,
    SITE_SOURCE_MANUAL,
    UNKNOWN_SITE,
    LedgerEntry,
)
from gl_recon.pipeline.text import normalize

DEFAULT_OVERRIDE_REASON = "Manual correction in workspace"


@dataclass(frozen=True)
class SiteOverrideLog:
    id: str
    row_id: str
    company_code: str
    gl_account: str
    trans_no: str
    posting_date: str
    old_site: str
    new_site: str
    amount: float
    direction: str
    changed_by: str
    changed_at: str
    reason: str = DEFAULT_OVERRIDE_REASON

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def review_queue(
    entries: Iterable[LedgerEntry],
    *,
    company_code: Optional[str] = None,
    gl_account: Optional[str] = None,
    search_text: Optional[str] = None,
) -> list[LedgerEntry]:
    """Open entries, optionally narrowed by company, GL account and free-text search."""
    needle = (search_text or "").strip().lower()
    queue: list[LedgerEntry] = []
    for entry in entries:
        if entry.site_review_status != REVIEW_OPEN:
            continue
        if company_code and entry.company_code != company_code:
            continue
        if gl_account and entry.gl_account != gl_account:
            continue
        if needle and not any(
            needle in value.lower() for value in (entry.trans_no, entry.details, entry.site_final)
        ):
            continue
        queue.append(entry)
    return queue


def date_failures(entries: Iterable[LedgerEntry]) -> list[LedgerEntry]:
    return [entry for entry in entries if entry.posting_date_parse_failed_flag]


def apply_site_override(
    entry: LedgerEntry,
    site_override: str,
    *,
    changed_by: str = "",
    reason: str = DEFAULT_OVERRIDE_REASON,
    changed_at: Optional[str] = None,
) -> tuple[LedgerEntry, SiteOverrideLog]:
    new_site = normalize(site_override)
    if not new_site:
        raise ValueError("Override site must not be blank.")

    updated = replace(
        entry,
        site_override=new_site,
        site_final=new_site,
        site_source=SITE_SOURCE_MANUAL,
        unknown_site_flag=new_site == UNKNOWN_SITE,
        site_review_status=REVIEW_RESOLVED,
    )
    log = SiteOverrideLog(
        id=uuid.uuid4().hex,
        row_id=entry.row_id,
        company_code=entry.company_code,
        gl_account=entry.gl_account,
        trans_no=entry.trans_no,
        posting_date=entry.posting_date,
        old_site=entry.site_final,
        new_site=new_site,
        amount=entry.credit_lc or entry.debit_lc or 0.0,
        direction=entry.direction,
        changed_by=changed_by,
        changed_at=changed_at or utc_now_iso(),
        reason=reason,
    )
    return updated, log


def accept_suggested_site(entry: LedgerEntry, **kwargs: Any) -> tuple[LedgerEntry, SiteOverrideLog]:
    if not entry.suggested_site:
        raise ValueError(f"Row {entry.row_id} has no suggested site to accept.")
    return apply_site_override(entry, entry.suggested_site, **kwargs)


def resolve_entry(entry: LedgerEntry) -> LedgerEntry:
    return replace(entry, site_review_status=REVIEW_RESOLVED)


def ignore_entry(entry: LedgerEntry) -> LedgerEntry:
    return replace(entry, site_review_status=REVIEW_IGNORE)


def apply_overrides(
    entries: Sequence[LedgerEntry],
    overrides: Mapping[str, str],
    **kwargs: Any,
) -> tuple[list[LedgerEntry], list[SiteOverrideLog]]:
    """Apply {row_id: site} overrides; raises KeyError for row ids not in ``entries``."""
    known = {entry.row_id for entry in entries}
    unknown = [row_id for row_id in overrides if row_id not in known]
    if unknown:
        raise KeyError(f"Unknown row id(s): {', '.join(unknown)}")

    updated: list[LedgerEntry] = []
    logs: list[SiteOverrideLog] = []
    for entry in entries:
        if entry.row_id in overrides:
            entry, log = apply_site_override(entry, overrides[entry.row_id], **kwargs)
            logs.append(log)
        updated.append(entry)
    return updated, logs
