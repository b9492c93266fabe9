from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

import pandas as pd

from gl_recon.pipeline.shared import HEADER_SYNONYMS

_KEY_STRIP_RE = re.compile(r"[^a-z0-9]")


def is_blank(value: Any) -> bool:
    """True for None, "" and pandas missing scalars (NaN, NaT, pd.NA)."""
    if isinstance(value, str):
        return value == ""
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


def as_text(value: Any) -> str:
    """Cell value as a plain string; blanks become ''."""
    if is_blank(value):
        return ""
    return str(value)


def normalize(text: Any) -> str:
    """Upper-case, trim and collapse whitespace runs to a single space."""
    if is_blank(text):
        return ""
    return " ".join(str(text).upper().split())


def normalize_key(key: Any) -> str:
    return _KEY_STRIP_RE.sub("", str(key).lower())


def _synonym_variants(target_key: str, synonyms: Mapping[str, Any]) -> set[str]:
    return {normalize_key(variant) for variant in synonyms.get(target_key, ())}


def fuzzy_lookup(
    row: Any,
    target: str,
    synonyms: Mapping[str, Any] = HEADER_SYNONYMS,
) -> Any:
    """
    Return the value of the row column that matches ``target``.

    Headers are compared after lower-casing and dropping everything that is
    not a letter or digit, so "Debit (LC)", "debit_lc" and "DEBIT LC" all hit
    the same column. When no header matches exactly, the synonym table for
    the target is consulted and the first column (in row order) whose header
    is one of the accepted spellings wins. Returns None when nothing matches.
    """
    if not isinstance(row, Mapping) or not row:
        return None

    target_key = normalize_key(target)
    keyed = [(normalize_key(key), key) for key in row.keys()]

    for normalized, key in keyed:
        if normalized == target_key:
            return row[key]

    variants = _synonym_variants(target_key, synonyms)
    if variants:
        for normalized, key in keyed:
            if normalized in variants:
                return row[key]
    return None
