"""
Balance reconciliation for a classified ledger.

Balances are built from ``signed_amount`` (credit minus debit):

    opening balance   sum over OB rows
    movement          sum over every other row
    journal fixes     sum of journal instruction adjustments
    closing balance   opening + movement + journal fixes

Per-site figures split the movement into activity buckets (tenant,
landlord, bank, adjustments) and add the site's journal fixes to reach the
reconciled total.

Credits are matched against debits with allocations; a row's unallocated
amount is its own side (credit or debit) less everything allocated
against it, never below zero.

Journal instructions are the corrections handed to accounting. Moving a row
to another site produces a reversal on the current site and an allocation
on the target site.
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, replace
from typing import Any, Optional

import pandas as pd

from gl_recon.contracts import utc_now_iso
from gl_recon.pipeline.shared import (
    INVOICE_ORIGINS,
    LANDLORD_ORIGIN,
    OPENING_BALANCE_ORIGIN,
    UNKNOWN_MONTH,
    UNKNOWN_SITE,
    LedgerEntry,
)
from gl_recon.pipeline.text import normalize

CATEGORY_TENANT = "Tenant"
CATEGORY_LANDLORD = "Landlord"
CATEGORY_BANK = "Bank"
CATEGORY_ADJUSTMENTS = "Adjustments"
CATEGORY_OTHER = "Other"

BANK_ORIGINS = ("RC",)
ADJUSTMENT_ORIGINS = ("JE", "PS")

DIRECTION_CREDIT = "Credit"
DIRECTION_DEBIT = "Debit"

JOURNAL_DRAFT = "Draft"
JOURNAL_SENT = "Sent"
JOURNAL_PROCESSED = "Processed"
JOURNAL_STATUSES = (JOURNAL_DRAFT, JOURNAL_SENT, JOURNAL_PROCESSED)

REVERSAL_PREFIX = "RECON-REVERSAL-"
ALLOCATION_PREFIX = "RECON-ALLOC-"

SITE_BALANCE_COLUMNS = [
    "Site", "Tenant", "Landlord", "Bank", "Adjustments", "Ledger Total", "Journal Fixes", "Reconciled Total",
]
JOURNAL_EXPORT_COLUMNS = [
    "ID", "TransNo", "Company", "GL", "Site", "OriginalAmt", "AdjAmt", "Instruction", "Status", "Date",
]

# Sub-cent residue left by float sums is treated as zero.
AMOUNT_TOLERANCE = 0.005


def _money(value: float) -> float:
    rounded = round(value, 2)
    return 0.0 if rounded == 0 else rounded


@dataclass(frozen=True)
class Allocation:
    id: str
    company_code: str
    gl_account: str
    site_final: str
    credit_row_id: str
    debit_row_id: str
    allocated_amount: float
    allocation_date: str
    allocated_by: str
    note: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class JournalInstruction:
    id: str
    row_id: str
    company_code: str
    gl_account: str
    site_final: str
    original_amount: float
    adjustment_amount: float
    instruction: str
    reference: str
    status: str
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReconBalances:
    opening_balance: float
    movement: float
    journal_adjustments: float
    closing_balance: float


@dataclass(frozen=True)
class SiteBalance:
    site: str
    tenant: float
    landlord: float
    bank: float
    adjustments: float
    ledger_total: float
    journal: float

    @property
    def reconciled_total(self) -> float:
        return _money(self.ledger_total + self.journal)

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["reconciled_total"] = self.reconciled_total
        return payload


@dataclass(frozen=True)
class MonthActivity:
    month: str
    tenant: float
    landlord: float
    bank: float
    adjustments: float
    total: float


def activity_category(entry: LedgerEntry) -> str:
    if entry.origin in INVOICE_ORIGINS:
        return CATEGORY_LANDLORD if entry.counterparty_type == "Landlord" else CATEGORY_TENANT
    if entry.origin == LANDLORD_ORIGIN:
        return CATEGORY_LANDLORD
    if entry.origin in BANK_ORIGINS:
        return CATEGORY_BANK
    if entry.origin in ADJUSTMENT_ORIGINS:
        return CATEGORY_ADJUSTMENTS
    return CATEGORY_OTHER


def filter_entries(
    entries: Iterable[LedgerEntry],
    *,
    company_code: Optional[str] = None,
    gl_account: Optional[str] = None,
    sites: Sequence[str] = (),
    month_from: Optional[str] = None,
    month_to: Optional[str] = None,
    search_text: Optional[str] = None,
) -> list[LedgerEntry]:
    """
    Scope entries the way the reconciliation views do.

    Months compare as "YYYY-MM" strings; "Unknown" sorts after every real
    month. The search looks at trans no, details, offset account name and
    Ref. 1, case-insensitively.
    """
    wanted_sites = {normalize(site) for site in sites}
    needle = (search_text or "").strip().lower()
    scoped = []
    for entry in entries:
        if company_code and entry.company_code != company_code:
            continue
        if gl_account and entry.gl_account != gl_account:
            continue
        if wanted_sites and entry.site_final not in wanted_sites:
            continue
        if month_from and entry.transaction_month < month_from:
            continue
        if month_to and entry.transaction_month > month_to:
            continue
        if needle and not any(
            needle in value.lower()
            for value in (entry.trans_no, entry.details, entry.offset_account_name, entry.ref1)
        ):
            continue
        scoped.append(entry)
    return scoped


def filter_instructions(
    instructions: Iterable[JournalInstruction],
    *,
    company_code: Optional[str] = None,
    gl_account: Optional[str] = None,
    sites: Sequence[str] = (),
) -> list[JournalInstruction]:
    wanted_sites = {normalize(site) for site in sites}
    return [
        instruction
        for instruction in instructions
        if (not company_code or instruction.company_code == company_code)
        and (not gl_account or instruction.gl_account == gl_account)
        and (not wanted_sites or instruction.site_final in wanted_sites)
    ]


def compute_balances(
    entries: Iterable[LedgerEntry],
    instructions: Iterable[JournalInstruction] = (),
) -> ReconBalances:
    opening = movement = 0.0
    for entry in entries:
        if entry.origin == OPENING_BALANCE_ORIGIN:
            opening += entry.signed_amount
        else:
            movement += entry.signed_amount
    journal = sum(instruction.adjustment_amount for instruction in instructions)
    return ReconBalances(
        opening_balance=_money(opening),
        movement=_money(movement),
        journal_adjustments=_money(journal),
        closing_balance=_money(opening + movement + journal),
    )


def _bucket_movement(entries: Iterable[LedgerEntry], key) -> dict[str, dict[str, float]]:
    buckets: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
    for entry in entries:
        if entry.origin == OPENING_BALANCE_ORIGIN:
            continue
        bucket = buckets[key(entry)]
        bucket[activity_category(entry)] += entry.signed_amount
        bucket["total"] += entry.signed_amount
    return buckets


def site_balances(
    entries: Iterable[LedgerEntry],
    instructions: Iterable[JournalInstruction] = (),
) -> list[SiteBalance]:
    """Per-site movement buckets plus journal fixes, sorted by site."""
    buckets = _bucket_movement(entries, lambda entry: entry.site_final or UNKNOWN_SITE)
    journal: dict[str, float] = defaultdict(float)
    for instruction in instructions:
        journal[instruction.site_final] += instruction.adjustment_amount
        buckets.setdefault(instruction.site_final, defaultdict(float))
    return [
        SiteBalance(
            site=site,
            tenant=_money(values[CATEGORY_TENANT]),
            landlord=_money(values[CATEGORY_LANDLORD]),
            bank=_money(values[CATEGORY_BANK]),
            adjustments=_money(values[CATEGORY_ADJUSTMENTS]),
            ledger_total=_money(values["total"]),
            journal=_money(journal[site]),
        )
        for site, values in sorted(buckets.items())
    ]


def monthly_activity(entries: Iterable[LedgerEntry]) -> list[MonthActivity]:
    """Movement buckets per transaction month, newest month first."""
    buckets = _bucket_movement(entries, lambda entry: entry.transaction_month or UNKNOWN_MONTH)
    return [
        MonthActivity(
            month=month,
            tenant=_money(values[CATEGORY_TENANT]),
            landlord=_money(values[CATEGORY_LANDLORD]),
            bank=_money(values[CATEGORY_BANK]),
            adjustments=_money(values[CATEGORY_ADJUSTMENTS]),
            total=_money(values["total"]),
        )
        for month, values in sorted(buckets.items(), reverse=True)
    ]


def allocated_by_row(allocations: Iterable[Allocation]) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for allocation in allocations:
        totals[allocation.credit_row_id] += allocation.allocated_amount
        totals[allocation.debit_row_id] += allocation.allocated_amount
    return totals


def unallocated_amount(entry: LedgerEntry, allocations: Iterable[Allocation] | Mapping[str, float]) -> float:
    totals = allocations if isinstance(allocations, Mapping) else allocated_by_row(allocations)
    side = entry.credit_lc if entry.direction == DIRECTION_CREDIT else entry.debit_lc
    remaining = side - totals.get(entry.row_id, 0.0)
    return _money(remaining) if remaining > AMOUNT_TOLERANCE else 0.0


def open_items(
    entries: Iterable[LedgerEntry],
    allocations: Iterable[Allocation],
) -> list[tuple[LedgerEntry, float]]:
    """Credit and debit rows that still carry an unallocated amount, credits first."""
    totals = allocated_by_row(allocations)
    items = [
        (entry, unallocated_amount(entry, totals))
        for entry in entries
        if entry.direction in (DIRECTION_CREDIT, DIRECTION_DEBIT)
    ]
    items = [(entry, amount) for entry, amount in items if amount > 0]
    return sorted(items, key=lambda item: item[0].direction != DIRECTION_CREDIT)


def allocate(
    credit: LedgerEntry,
    debit: LedgerEntry,
    allocations: Iterable[Allocation] = (),
    *,
    amount: Optional[float] = None,
    allocated_by: str = "",
    note: str = "",
    allocation_date: Optional[str] = None,
) -> Allocation:
    """
    Match part of a credit row against a debit row.

    Without ``amount`` the largest possible amount is allocated: the smaller
    of the two unallocated remainders. The allocation takes the debit row's
    site.
    """
    if credit.direction != DIRECTION_CREDIT:
        raise ValueError(f"Row {credit.row_id} is not a credit.")
    if debit.direction != DIRECTION_DEBIT:
        raise ValueError(f"Row {debit.row_id} is not a debit.")
    if (credit.company_code, credit.gl_account) != (debit.company_code, debit.gl_account):
        raise ValueError("Allocations must stay within one company and GL account.")

    totals = allocated_by_row(allocations)
    available = min(unallocated_amount(credit, totals), unallocated_amount(debit, totals))
    if available <= 0:
        raise ValueError(f"Nothing left to allocate between {credit.row_id} and {debit.row_id}.")
    if amount is None:
        amount = available
    elif not 0 < amount <= available + AMOUNT_TOLERANCE:
        raise ValueError(f"Allocation amount must be more than 0 and at most {available:.2f}.")

    return Allocation(
        id=uuid.uuid4().hex,
        company_code=debit.company_code,
        gl_account=debit.gl_account,
        site_final=debit.site_final,
        credit_row_id=credit.row_id,
        debit_row_id=debit.row_id,
        allocated_amount=_money(amount),
        allocation_date=allocation_date or utc_now_iso(),
        allocated_by=allocated_by,
        note=note,
    )


def create_journal_fix(
    entry: LedgerEntry,
    instruction: str,
    *,
    adjustment_amount: Optional[float] = None,
    target_site: str = "",
    created_at: Optional[str] = None,
) -> list[JournalInstruction]:
    """
    Draft the journal instruction(s) that correct ``entry``.

    The first instruction reverses the row on its current site; the default
    adjustment is the negated signed amount. When ``target_site`` names a
    different site, a second instruction books the opposite adjustment there.
    """
    text = (instruction or "").strip()
    if not text:
        raise ValueError("Journal instruction text is required.")
    adjustment = -entry.signed_amount if adjustment_amount is None else adjustment_amount
    target = normalize(target_site)
    stamp = created_at or utc_now_iso()

    reversal_text = text
    if target:
        reversal_text = f"Reversal of misallocation to {entry.site_final}. Moving to {target}. {text}"
    fixes = [
        JournalInstruction(
            id=uuid.uuid4().hex,
            row_id=entry.row_id,
            company_code=entry.company_code,
            gl_account=entry.gl_account,
            site_final=entry.site_final,
            original_amount=entry.signed_amount,
            adjustment_amount=_money(adjustment),
            instruction=reversal_text,
            reference=f"{REVERSAL_PREFIX}{entry.trans_no}",
            status=JOURNAL_DRAFT,
            created_at=stamp,
        )
    ]
    if target and target != entry.site_final:
        fixes.append(
            JournalInstruction(
                id=uuid.uuid4().hex,
                row_id=entry.row_id,
                company_code=entry.company_code,
                gl_account=entry.gl_account,
                site_final=target,
                original_amount=0.0,
                adjustment_amount=_money(-adjustment),
                instruction=f"Allocated from site {entry.site_final}. {text}",
                reference=f"{ALLOCATION_PREFIX}{entry.trans_no}",
                status=JOURNAL_DRAFT,
                created_at=stamp,
            )
        )
    return fixes


def set_journal_status(
    instructions: Sequence[JournalInstruction],
    instruction_id: str,
    status: str,
) -> list[JournalInstruction]:
    if status not in JOURNAL_STATUSES:
        raise ValueError(f"Unknown journal status '{status}'. Use one of: {', '.join(JOURNAL_STATUSES)}")
    if not any(instruction.id == instruction_id for instruction in instructions):
        raise KeyError(f"Unknown journal instruction: {instruction_id}")
    return [
        replace(instruction, status=status) if instruction.id == instruction_id else instruction
        for instruction in instructions
    ]


def site_balance_frame(balances: Iterable[SiteBalance]) -> pd.DataFrame:
    rows = [
        [b.site, b.tenant, b.landlord, b.bank, b.adjustments, b.ledger_total, b.journal, b.reconciled_total]
        for b in balances
    ]
    return pd.DataFrame(rows, columns=SITE_BALANCE_COLUMNS)


def journal_export_frame(instructions: Iterable[JournalInstruction]) -> pd.DataFrame:
    rows = [
        [i.id, i.reference, i.company_code, i.gl_account, i.site_final, i.original_amount,
         i.adjustment_amount, i.instruction, i.status, i.created_at]
        for i in instructions
    ]
    return pd.DataFrame(rows, columns=JOURNAL_EXPORT_COLUMNS)


def state_to_payload(
    allocations: Iterable[Allocation],
    instructions: Iterable[JournalInstruction],
) -> dict[str, Any]:
    return {
        "allocations": [allocation.to_dict() for allocation in allocations],
        "journal_instructions": [instruction.to_dict() for instruction in instructions],
    }


def state_from_payload(payload: Mapping[str, Any]) -> tuple[list[Allocation], list[JournalInstruction]]:
    allocations = [Allocation(**item) for item in payload.get("allocations", [])]
    instructions = [JournalInstruction(**item) for item in payload.get("journal_instructions", [])]
    return allocations, instructions
