"""Row classification and strict date-parsing pipeline."""

from gl_recon.pipeline.classifier import process_ledger_row
from gl_recon.pipeline.dates import parse_strict_date
from gl_recon.pipeline.numbers import parse_accounting_num
from gl_recon.pipeline.shared import (
    HEADER_SYNONYMS,
    REQUIRED_LEDGER_COLUMNS,
    AccountDirectoryItem,
    DateParseResult,
    ImportMetadata,
    LedgerEntry,
)
from gl_recon.pipeline.sites import extract_account_code, extract_sites
from gl_recon.pipeline.text import fuzzy_lookup, normalize

__all__ = [
    "HEADER_SYNONYMS",
    "REQUIRED_LEDGER_COLUMNS",
    "AccountDirectoryItem",
    "DateParseResult",
    "ImportMetadata",
    "LedgerEntry",
    "extract_account_code",
    "extract_sites",
    "fuzzy_lookup",
    "normalize",
    "parse_accounting_num",
    "parse_strict_date",
    "process_ledger_row",
]
