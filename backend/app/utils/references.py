from __future__ import annotations

import re

# Arabic-Indic and Extended (Persian) digits as they appear in local bank/telecom SMS.
_DIGITS = str.maketrans("٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹", "01234567890123456789")

# 6-12 digit runs not glued to other ASCII word characters (bank/wallet reference shapes).
_REF_PATTERN = re.compile(r"(?<![0-9A-Za-z_])[0-9]{6,12}(?![0-9A-Za-z_])")
_WS = re.compile(r"\s+")


def normalize_reference(raw) -> str:
    if raw is None:
        return ""
    text = str(raw).translate(_DIGITS)
    return _WS.sub("", text).casefold()


def normalize_references(refs) -> list[str]:
    """Normalize, drop blanks and duplicates, keep first-seen order."""
    out = []
    seen = set()
    for r in refs or []:
        n = normalize_reference(r)
        if n and n not in seen:
            seen.add(n)
            out.append(n)
    return out


def extract_references(text: str) -> list[str]:
    if not text:
        return []
    return normalize_references(_REF_PATTERN.findall(str(text).translate(_DIGITS)))
