"""Date normalization for amendment and baseline values."""

import re

# Matches the date shapes normalize_date understands, for use inside larger patterns.
DATE_PATTERN = r"\d{4}[-/]\d{1,2}[-/]\d{1,2}|\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"

_YMD_RE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})$")
_MDY_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")
_MDY_SHORT_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{2})$")


def normalize_date(value: str) -> str:
    """Normalize MM/DD/YYYY, YYYY/MM/DD or MM/DD/YY to YYYY-MM-DD.

    US month-first order is assumed; two-digit years are 2000+. Either
    ``/`` or ``-`` separates the parts. Anything else is returned
    unchanged so a bad date stays visible downstream.
    """
    text = value.strip()

    match = _YMD_RE.match(text)
    if match:
        year, month, day = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    match = _MDY_RE.match(text)
    if match:
        month, day, year = match.groups()
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"

    match = _MDY_SHORT_RE.match(text)
    if match:
        month, day, year = match.groups()
        return f"{2000 + int(year)}-{month.zfill(2)}-{day.zfill(2)}"

    return value
