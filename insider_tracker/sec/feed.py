from __future__ import annotations

import re
from typing import Dict, List, Optional, Tuple
from xml.etree import ElementTree as ET

from insider_tracker.models import FilingReference
from insider_tracker.util.normalization import normalize_accession, normalize_cik
from insider_tracker.util.xmltools import find_text, iter_children


def _debug(msg: str) -> None:
    print(f"[feed] {msg}")


# "4 - Acme Corp (0000320193) (Issuer)" / "4/A - Jane Doe (0001234567) (Reporting)"
_TITLE_RE = re.compile(r"^(4(?:/A)?)\s+-\s+(.+?)\s+\((\d+)\)(?:\s+\(([^)]+)\))?")

_ACCESSION_PATTERNS = (
    re.compile(r"accession[_-]number=(\d{10}-\d{2}-\d{6})", re.IGNORECASE),
    re.compile(r"(\d{10}-\d{2}-\d{6})"),
    # Archive directory links: /Archives/edgar/data/{cik}/{accession_nodash}
    re.compile(r"/Archives/edgar/data/\d+/(\d{18})\b"),
)


def parse_entry_title(title: str) -> Optional[Tuple[str, str, str, Optional[str]]]:
    """Return (form_type, name, cik10, role) or None when the title isn't a Form 4 entry."""
    m = _TITLE_RE.match((title or "").strip())
    if not m:
        return None
    cik10 = normalize_cik(m.group(3))
    if cik10 is None:
        return None
    role = m.group(4).strip() if m.group(4) else None
    return m.group(1), m.group(2).strip(), cik10, role


def extract_accession(link: str) -> Optional[str]:
    for pat in _ACCESSION_PATTERNS:
        m = pat.search(link or "")
        if m:
            acc = normalize_accession(m.group(1))
            if acc:
                return acc
    return None


def _entry_link(entry: ET.Element) -> str:
    for link in iter_children(entry, "link"):
        href = (link.attrib.get("href") or "").strip()
        if href:
            return href
    return ""


def parse_atom_feed(xml_text: str) -> Tuple[int, List[FilingReference]]:
    """Parse one page of the "current filings" Atom feed.

    Returns (raw_entry_count, filings). Entries without a recognizable accession or
    CIK are dropped silently; the raw count still includes them so the caller can
    decide whether the page was full.
    """
    root = ET.fromstring(xml_text)
    entries = list(iter_children(root, "entry"))

    out: List[FilingReference] = []
    for entry in entries:
        title = find_text(entry, ["title"]) or ""
        parsed = parse_entry_title(title)
        link = _entry_link(entry)
        accession = extract_accession(link)
        if parsed is None or accession is None:
            continue
        form_type, name, cik10, role = parsed

        updated = find_text(entry, ["updated"]) or ""
        filed_at = updated.split("T")[0] or None

        out.append(
            FilingReference(
                accession_number=accession,
                issuer_cik=cik10,
                issuer_name=name,
                filed_at=filed_at,
                form_type=form_type,
                feed_role=role,
                link=link or None,
            )
        )
    if len(out) < len(entries):
        _debug(f"Dropped {len(entries) - len(out)} of {len(entries)} entries without accession/CIK")
    return len(entries), out


def dedupe_filings(filings: List[FilingReference]) -> List[FilingReference]:
    """Collapse duplicate accessions, keeping first-seen order.

    The feed lists a filing once per party; when both an Issuer and a Reporting
    entry exist for the same accession, the Issuer entry is kept so issuer_cik
    points at the company.
    """
    by_acc: Dict[str, FilingReference] = {}
    for f in filings:
        cur = by_acc.get(f.accession_number)
        if cur is None:
            by_acc[f.accession_number] = f
        elif (cur.feed_role or "").lower() != "issuer" and (f.feed_role or "").lower() == "issuer":
            by_acc[f.accession_number] = f
    return list(by_acc.values())
