from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class TransactionCode:
    code: str
    label: str
    description: str
    side: str  # buy | sell | other


def _c(code: str, label: str, description: str, side: str) -> TransactionCode:
    return TransactionCode(code=code, label=label, description=description, side=side)


# Form 4 Table I transaction codes.
TRANSACTION_CODES: Dict[str, TransactionCode] = {
    tc.code: tc
    for tc in (
        # Acquisitions
        _c("P", "Purchase", "Open market or private purchase", "buy"),
        _c("A", "Grant/Award", "Grant, award, or other acquisition", "buy"),
        _c("L", "Small Acquisition", "Small acquisition (direct or indirect)", "buy"),
        _c("W", "Will/Descent", "Acquisition by will or laws of descent", "buy"),
        _c("M", "Option Exercise", "Exercise or conversion of derivative", "buy"),
        _c("X", "ITM Exercise", "Exercise of in-the-money or at-the-money option", "buy"),
        _c("I", "Discretionary", "Discretionary transaction", "buy"),
        # Dispositions
        _c("S", "Sale", "Open market sale", "sell"),
        _c("D", "Return to Issuer", "Sale back to issuer", "sell"),
        _c("G", "Gift", "Bona fide gift", "sell"),
        _c("F", "Tax Payment", "Payment of tax liability by withholding", "sell"),
        _c("E", "Expiration", "Expiration of derivative position", "sell"),
        # Other
        _c("C", "Conversion", "Conversion of derivative security", "other"),
        _c("J", "Other", "Other acquisition or disposition", "other"),
        _c("K", "Equity Swap", "Transaction in equity swap or similar", "other"),
        _c("Z", "Trust Deposit", "Deposit/withdrawal from voting trust", "other"),
        _c("H", "Inheritance", "Transaction through inheritance", "other"),
        _c("U", "Tender", "Tender of shares", "other"),
        _c("O", "Option Grant", "Option grant (derivative)", "other"),
        _c("V", "Transaction", "Transaction voluntarily reported", "other"),
    )
}


def lookup(code: str | None) -> TransactionCode | None:
    return TRANSACTION_CODES.get(str(code or "").strip().upper())


def transaction_label(code: str | None) -> str:
    """'P - Purchase' style label; unknown codes are labelled as such."""
    tc = lookup(code)
    if tc is None:
        return f"{code} - Unknown"
    return f"{tc.code} - {tc.label}"


def transaction_side(code: str | None) -> str:
    tc = lookup(code)
    return tc.side if tc is not None else "other"


def transaction_description(code: str | None) -> str:
    tc = lookup(code)
    return tc.description if tc is not None else "Unknown transaction type"
