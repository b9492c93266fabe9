from __future__ import annotations

import re

SITE_CODE_RE = re.compile(r"\bP\d{3}\b", re.IGNORECASE | re.ASCII)
ACCOUNT_CODE_RE = re.compile(r"[0-9]+")


def extract_sites(text: str) -> list[str]:
    """Distinct P### site codes in first-seen order, upper-cased."""
    seen: dict[str, None] = {}
    for match in SITE_CODE_RE.findall(text or ""):
        seen.setdefault(match.upper(), None)
    return list(seen)


def extract_account_code(text: str) -> str:
    match = ACCOUNT_CODE_RE.search(text or "")
    return match.group(0) if match else ""
