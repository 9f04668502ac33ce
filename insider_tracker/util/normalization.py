from __future__ import annotations

import re


# Values the SEC (and filers) put in issuerTradingSymbol when the issuer has no
# public ticker.
PLACEHOLDER_TICKERS = frozenset({"", "NONE", "N/A", "NA", "NULL", "-", "--"})

_ACCESSION_DASHED = re.compile(r"^(\d{10})-?(\d{2})-?(\d{6})$")


def normalize_cik(cik: str | int | None) -> str | None:
    """Normalize a CIK: digits only, left-pad to 10.

    Returns None if input is blank or contains no digits.
    """
    if cik is None:
        return None
    s = str(cik).strip()
    if not s:
        return None
    digits = "".join(ch for ch in s if ch.isdigit())
    if not digits:
        return None
    return digits.zfill(10)


def cik_path_component(cik: str) -> str:
    # EDGAR archive paths use the integer CIK without leading zeros
    return str(int(str(cik).strip()))


def normalize_accession(accession_number: str | None) -> str | None:
    """Return the dashed form (##########-##-######), accepting the 18-digit form too."""
    s = str(accession_number or "").strip()
    m = _ACCESSION_DASHED.match(s)
    if not m:
        return None
    return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"


def accession_nodash(accession_number: str) -> str:
    return str(accession_number or "").replace("-", "").strip()


def clean_ticker(raw: str | None) -> str | None:
    """Uppercase/strip a reported ticker; None for placeholder values."""
    if raw is None:
        return None
    t = str(raw).strip().upper()
    if t in PLACEHOLDER_TICKERS:
        return None
    return t


def parse_number(s: str | float | int | None) -> float | None:
    if s is None:
        return None
    if isinstance(s, (int, float)):
        return float(s)
    t = str(s).strip().replace(",", "").replace("$", "")
    if not t:
        return None
    try:
        return float(t)
    except ValueError:
        return None