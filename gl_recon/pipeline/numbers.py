from __future__ import annotations

import math
import re
from typing import Any

from gl_recon.pipeline.text import is_blank

_KEEP_NUMERIC_RE = re.compile(r"[^\d.,]")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def _leading_float(text: str) -> float | None:
    # Reads the longest leading decimal, so "12.5.3" gives 12.5.
    match = _LEADING_NUMBER_RE.match(text)
    if not match:
        return None
    return float(match.group(0))


def parse_accounting_num(value: Any) -> float:
    """
    Convert an accounting amount cell into a signed float.

    Handles parentheses negatives "(1,234.56)", leading minus signs and both
    1,234.56 and 1.234,56 separator conventions. Anything unreadable is 0.0;
    the result is always finite.
    """
    if is_blank(value):
        return 0.0
    if isinstance(value, bool):
        value = str(value)
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    text = str(value).strip()
    if not text:
        return 0.0

    is_negative = (text.startswith("(") and text.endswith(")")) or text.startswith("-")
    clean = _KEEP_NUMERIC_RE.sub("", text)

    if "," in clean and ("." not in clean or clean.index(",") > clean.index(".")):
        # European style: period groups thousands, comma marks decimals
        clean = clean.replace(".", "").replace(",", ".", 1)
    else:
        clean = clean.replace(",", "")

    number = _leading_float(clean)
    if number is None or not math.isfinite(number):
        return 0.0
    return -abs(number) if is_negative else number
