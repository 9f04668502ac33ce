from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional
from xml.etree import ElementTree as ET

from insider_tracker.models import RawTransaction
from insider_tracker.util.normalization import clean_ticker, parse_number
from insider_tracker.util.xmltools import find_child, find_text, find_value_text, iter_children, strip_ns


def _debug(msg: str) -> None:
    print(f"[parser] {msg}")


@dataclass(frozen=True)
class ReportingOwner:
    owner_cik: str | None
    owner_name: str | None
    is_director: bool | None
    is_officer: bool | None
    is_ten_percent_owner: bool | None
    officer_title: str | None
    other_text: str | None


@dataclass(frozen=True)
class TransactionRow:
    security_title: str | None
    transaction_code: str | None
    transaction_date: str | None
    shares: float | None
    price: float | None
    acquired_disposed: str | None
    shares_owned_following: float | None


@dataclass(frozen=True)
class ParsedForm4:
    document_type: str | None
    period_of_report: str | None
    issuer_cik: str | None
    issuer_name: str | None
    issuer_trading_symbol: str | None
    reporting_owners: List[ReportingOwner]
    transactions: List[TransactionRow]


_OWNERSHIP_START = re.compile(r"<ownershipdocument\b", re.IGNORECASE)
_OWNERSHIP_END = re.compile(r"</ownershipdocument>", re.IGNORECASE)


def extract_ownership_fragment(text: str) -> Optional[str]:
    """Cut the <ownershipDocument>...</ownershipDocument> fragment out of a larger body.

    Some accessions embed the XML inside a .txt submission or an HTML wrapper.
    """
    if not isinstance(text, str):
        return None
    m_start = _OWNERSHIP_START.search(text)
    if not m_start:
        return None
    m_end = _OWNERSHIP_END.search(text, m_start.end())
    if not m_end:
        return None
    return text[m_start.start() : m_end.end()]


def _to_bool(v: Optional[str]) -> Optional[bool]:
    if v is None:
        return None
    s = v.strip().lower()
    if s in ("1", "true"):
        return True
    if s in ("0", "false"):
        return False
    return None


def parse_form4_xml(xml_text: str) -> ParsedForm4:
    """Parse an ownershipDocument. Raises RuntimeError/ET.ParseError on unusable input."""
    frag = extract_ownership_fragment(xml_text) or xml_text
    root = ET.fromstring(frag)

    if strip_ns(root.tag).lower() != "ownershipdocument":
        ownership = None
        for el in root.iter():
            if strip_ns(el.tag).lower() == "ownershipdocument":
                ownership = el
                break
        if ownership is None:
            raise RuntimeError("No ownershipDocument element found in XML")
        root = ownership

    doc_type = find_text(root, ["documentType"])
    period = find_text(root, ["periodOfReport"])

    issuer_el = find_child(root, "issuer")
    issuer_cik = find_text(issuer_el, ["issuerCik"])
    issuer_name = find_text(issuer_el, ["issuerName"])
    issuer_symbol = find_text(issuer_el, ["issuerTradingSymbol"])

    reporting_owners: List[ReportingOwner] = []
    for ro_el in iter_children(root, "reportingOwner"):
        ro_id = find_child(ro_el, "reportingOwnerId")
        rel = find_child(ro_el, "reportingOwnerRelationship")
        reporting_owners.append(
            ReportingOwner(
                owner_cik=find_text(ro_id, ["rptOwnerCik"]),
                owner_name=find_text(ro_id, ["rptOwnerName"]),
                is_director=_to_bool(find_text(rel, ["isDirector"])),
                is_officer=_to_bool(find_text(rel, ["isOfficer"])),
                is_ten_percent_owner=_to_bool(find_text(rel, ["isTenPercentOwner"])),
                officer_title=find_text(rel, ["officerTitle"]),
                other_text=find_text(rel, ["otherText"]),
            )
        )

    # Only Table I (non-derivative) lines are tracked
    transactions: List[TransactionRow] = []
    nd_table = find_child(root, "nonDerivativeTable")
    for tx in iter_children(nd_table, "nonDerivativeTransaction"):
        transactions.append(_parse_transaction(tx))

    _debug(
        f"Parsed Form4: doc_type={doc_type} issuer_cik={issuer_cik} symbol={issuer_symbol} "
        f"owners={len(reporting_owners)} txs={len(transactions)}"
    )

    return ParsedForm4(
        document_type=doc_type,
        period_of_report=period,
        issuer_cik=issuer_cik,
        issuer_name=issuer_name,
        issuer_trading_symbol=issuer_symbol,
        reporting_owners=reporting_owners,
        transactions=transactions,
    )


def _parse_transaction(tx_el: ET.Element) -> TransactionRow:
    # Filers use both <transactionAmounts><transactionShares><value> and flatter shapes
    def amount(group: str, name: str) -> Optional[str]:
        return find_value_text(tx_el, [group, name]) or find_value_text(tx_el, [name])

    return TransactionRow(
        security_title=find_value_text(tx_el, ["securityTitle"]),
        transaction_code=(
            find_text(tx_el, ["transactionCoding", "transactionCode"]) or find_text(tx_el, ["transactionCode"])
        ),
        transaction_date=find_value_text(tx_el, ["transactionDate"]),
        shares=parse_number(amount("transactionAmounts", "transactionShares")),
        price=parse_number(amount("transactionAmounts", "transactionPricePerShare")),
        acquired_disposed=amount("transactionAmounts", "transactionAcquiredDisposedCode"),
        shares_owned_following=parse_number(amount("postTransactionAmounts", "sharesOwnedFollowingTransaction")),
    )


def insider_title(owner: ReportingOwner | None) -> str:
    """Explicit title string, else Officer -> Director -> 10% Owner -> Other."""
    if owner is None:
        return "Other"
    explicit = owner.officer_title or owner.other_text
    if explicit:
        return explicit
    if owner.is_officer:
        return "Officer"
    if owner.is_director:
        return "Director"
    if owner.is_ten_percent_owner:
        return "10% Owner"
    return "Other"


def extract_transactions(parsed: ParsedForm4) -> List[RawTransaction]:
    """Flatten a parsed document into RawTransactions for the first reporting owner.

    Placeholder tickers yield nothing; lines whose value is not positive and finite
    are dropped.
    """
    ticker = clean_ticker(parsed.issuer_trading_symbol)
    if ticker is None:
        _debug(f"Skipping issuer_cik={parsed.issuer_cik}: no public ticker ({parsed.issuer_trading_symbol!r})")
        return []

    owner = parsed.reporting_owners[0] if parsed.reporting_owners else None
    name = (owner.owner_name if owner else None) or "Unknown"
    title = insider_title(owner)

    out: List[RawTransaction] = []
    for row in parsed.transactions:
        code = (row.transaction_code or "").strip().upper()
        if not code:
            code = "P" if (row.acquired_disposed or "").strip().upper() == "A" else "S"
        shares = abs(row.shares) if row.shares is not None else None
        rt = RawTransaction(
            ticker=ticker,
            issuer_name=parsed.issuer_name,
            issuer_cik=parsed.issuer_cik,
            insider_name=name,
            insider_title=title,
            insider_cik=(owner.owner_cik if owner else None),
            transaction_code=code,
            trade_date=row.transaction_date,
            shares=shares,
            price=row.price,
            shares_owned_after=row.shares_owned_following,
            security_title=row.security_title,
            acquired_disposed=row.acquired_disposed,
        )
        if not rt.has_valid_value():
            continue
        out.append(rt)
    return out
