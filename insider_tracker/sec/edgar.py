from __future__ import annotations

import re
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree as ET

import requests

from insider_tracker.config import Config
from insider_tracker.models import FilingReference, ParsedFiling
from insider_tracker.sec.feed import dedupe_filings, parse_atom_feed
from insider_tracker.sec.parser import extract_ownership_fragment, extract_transactions, parse_form4_xml
from insider_tracker.util.normalization import accession_nodash, cik_path_component, normalize_cik
from insider_tracker.util.throttle import Throttle


def _debug(msg: str) -> None:
    print(f"[sec] {msg}")


class SecRequestError(RuntimeError):
    """Non-200 response or transport failure talking to SEC."""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"SEC request failed ({status_code if status_code is not None else 'transport'}): {url}: {message}")
        self.url = url
        self.status_code = status_code


class FilingListError(RuntimeError):
    """The first page of the current-filings feed could not be fetched."""


_HTML_XML_HREF = re.compile(r'href="([^"]*\.xml)"', re.IGNORECASE)

# Company browse page patterns, tried in order.
_SIC_PATTERNS = (
    re.compile(r"SIC[^>]*>.*?<a[^>]*>(\d+)\s*-\s*([^<]+)</a>", re.IGNORECASE | re.DOTALL),
    re.compile(r"SIC:\s*</span>\s*(\d+)\s*-\s*([^<\n]+)", re.IGNORECASE),
    re.compile(r"Standard Industrial Classification[^>]*>\s*<a[^>]*>([^<]+)</a>", re.IGNORECASE | re.DOTALL),
)
_SIC_AGGRESSIVE = re.compile(r"SIC[^\d]*(\d+)\s*-\s*([^<\n]{10,100})", re.IGNORECASE)


def score_document_name(name: str) -> int:
    """Lower sorts first. Ownership/form4 XML first, schemas and XSL renderings last."""
    n = name.lower().rsplit("/", 1)[-1]
    full = name.lower()
    s = 0
    if n.endswith(".xml"):
        s += 3
    if "ownership" in n:
        s += 4
    if "form" in n:
        s += 2
    if "4" in n:
        s += 1
    if n.endswith(".xsd"):
        s -= 5
    # /xslF345X05/form4.xml is the HTML rendering of the same document
    if "/xsl" in full or n.startswith("xsl"):
        s -= 10
    return -s


def _unique(urls: List[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for u in urls:
        if u not in seen:
            seen.add(u)
            out.append(u)
    return out


class SecClient:
    """EDGAR client: current Form 4 feed, filing documents and issuer classification.

    Every request goes through one shared Throttle and carries the configured
    User-Agent. No method retries.
    """

    def __init__(
        self,
        cfg: Config,
        session: Any = None,
        throttle: Throttle | None = None,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.throttle = throttle or Throttle(cfg.SEC_MIN_INTERVAL_SECONDS)
        self.base_url = cfg.SEC_BASE_URL.rstrip("/")
        self.data_url = cfg.SEC_DATA_URL.rstrip("/")

    # -----------------
    # HTTP
    # -----------------
    def _get(self, url: str, accept: str | None = None) -> requests.Response:
        headers = {"User-Agent": self.cfg.SEC_USER_AGENT}
        if accept:
            headers["Accept"] = accept
        self.throttle.wait()
        _debug(f"GET {url}")
        try:
            r = self.session.get(url, headers=headers, timeout=self.cfg.SEC_TIMEOUT_SECONDS)
        except requests.RequestException as e:
            raise SecRequestError(url, str(e)) from e
        if r.status_code != 200:
            raise SecRequestError(url, (r.text or "")[:300], status_code=r.status_code)
        return r

    def _archive_dir(self, issuer_cik: str, accession_number: str) -> str:
        return f"{self.base_url}/Archives/edgar/data/{cik_path_component(issuer_cik)}/{accession_nodash(accession_number)}"

    # -----------------
    # Listing
    # -----------------
    def feed_url(self, start: int, count: int) -> str:
        return (
            f"{self.base_url}/cgi-bin/browse-edgar?action=getcurrent&type=4&company=&dateb=&owner=include"
            f"&start={start}&count={count}&output=atom"
        )

    def list_recent_filings(self, max_count: int | None = None) -> List[FilingReference]:
        """Page through the current Form 4 feed until max_count entries were seen.

        Stops early on a short or empty page. A failure on the first page raises
        FilingListError; a failure on a later page keeps what was collected.
        """
        max_count = int(max_count if max_count is not None else self.cfg.FORM4_FEED_MAX_ENTRIES)
        page_size = max(1, int(self.cfg.FORM4_FEED_PAGE_SIZE))

        collected: List[FilingReference] = []
        seen_entries = 0
        start = 0
        while seen_entries < max_count:
            url = self.feed_url(start, page_size)
            try:
                r = self._get(url, accept="application/atom+xml, application/xml, text/xml, */*")
                raw_count, page = parse_atom_feed(r.text or "")
            except (SecRequestError, ET.ParseError) as e:
                if start == 0:
                    raise FilingListError(f"Could not fetch Form 4 feed: {e}") from e
                _debug(f"Feed page start={start} failed, keeping {len(collected)} filings: {e}")
                break

            collected.extend(page)
            seen_entries += raw_count
            _debug(f"Feed page start={start}: entries={raw_count} usable={len(page)} total={len(collected)}")

            if raw_count == 0 or raw_count < page_size:
                break
            start += page_size

        filings = dedupe_filings(collected)[:max_count]
        _debug(f"Listed {len(filings)} unique Form 4 filings")
        return filings

    # -----------------
    # Documents
    # -----------------
    def _index_json_candidates(self, issuer_cik: str, accession_number: str) -> List[str]:
        base_dir = self._archive_dir(issuer_cik, accession_number)
        r = self._get(f"{base_dir}/index.json", accept="application/json")
        try:
            idx = r.json()
        except ValueError as e:
            raise SecRequestError(f"{base_dir}/index.json", f"invalid JSON: {e}", status_code=r.status_code) from e

        items = (idx.get("directory") or {}).get("item") or []
        names = [str(it.get("name") or "").strip() for it in items if isinstance(it, dict)]
        xml_names = [n for n in names if n.lower().endswith(".xml")]
        return [f"{base_dir}/{n}" for n in sorted(xml_names, key=score_document_name)]

    def _html_index_candidates(self, issuer_cik: str, accession_number: str) -> List[str]:
        base_dir = self._archive_dir(issuer_cik, accession_number)
        r = self._get(f"{base_dir}/{accession_number}-index.htm", accept="text/html")
        urls: List[str] = []
        for m in _HTML_XML_HREF.finditer(r.text or ""):
            href = m.group(1)
            if href.startswith("http"):
                urls.append(href)
            elif href.startswith("/"):
                urls.append(f"{self.base_url}{href}")
            else:
                urls.append(f"{base_dir}/{href}")
        return sorted(_unique(urls), key=score_document_name)

    def discover_document_urls(self, accession_number: str, issuer_cik: str) -> List[str]:
        """Ordered candidate URLs for the ownership XML of one accession."""
        discovered: List[str] = []
        try:
            discovered = self._index_json_candidates(issuer_cik, accession_number)
        except SecRequestError as e:
            _debug(f"index.json unavailable for {accession_number}: {e}")

        if not discovered:
            try:
                discovered = self._html_index_candidates(issuer_cik, accession_number)
            except SecRequestError as e:
                _debug(f"HTML index unavailable for {accession_number}: {e}")

        base_dir = self._archive_dir(issuer_cik, accession_number)
        guesses = [
            f"{base_dir}/wk-form4_{accession_number}.xml",
            f"{base_dir}/{accession_number}.xml",
            f"{base_dir}/primary_doc.xml",
            f"{base_dir}/doc4.xml",
            f"{base_dir}/form4.xml",
        ]
        return _unique(discovered + guesses)

    def parse_filing(self, accession_number: str, issuer_cik: str) -> Optional[ParsedFiling]:
        """Fetch candidates in order; the first ownershipDocument that parses wins.

        Returns None when no candidate could be parsed.
        """
        cik10 = normalize_cik(issuer_cik)
        if cik10 is None:
            raise ValueError(f"Invalid issuer CIK: {issuer_cik!r}")

        for url in self.discover_document_urls(accession_number, cik10):
            try:
                text = self._get(url).text or ""
                frag = extract_ownership_fragment(text)
                if not frag:
                    continue
                parsed = parse_form4_xml(frag)
            except (SecRequestError, ET.ParseError, RuntimeError) as e:
                _debug(f"Candidate {url.rsplit('/', 1)[-1]} rejected: {e}")
                continue

            txs = extract_transactions(parsed)
            _debug(
                f"Selected {url.rsplit('/', 1)[-1]} for {accession_number}: "
                f"{len(txs)} trades ({parsed.issuer_name} / {parsed.issuer_trading_symbol})"
            )
            return ParsedFiling(
                accession_number=accession_number,
                source_url=url,
                issuer_cik=normalize_cik(parsed.issuer_cik),
                issuer_name=parsed.issuer_name,
                ticker=txs[0].ticker if txs else None,
                transactions=txs,
            )

        _debug(f"Could not find/parse ownership XML for {accession_number}")
        return None

    # -----------------
    # Classification
    # -----------------
    def fetch_classification_json(self, issuer_cik: str) -> Optional[str]:
        """sicDescription from the submissions JSON. Raises SecRequestError on failure."""
        cik10 = normalize_cik(issuer_cik)
        if cik10 is None:
            return None
        url = f"{self.data_url}/submissions/CIK{cik10}.json"
        r = self._get(url, accept="application/json")
        try:
            data: Dict[str, Any] = r.json()
        except ValueError as e:
            raise SecRequestError(url, f"invalid JSON: {e}", status_code=r.status_code) from e
        if not isinstance(data, dict):
            raise SecRequestError(url, "unexpected JSON payload", status_code=r.status_code)
        desc = str(data.get("sicDescription") or "").strip()
        return desc or None

    def fetch_classification_html(self, issuer_cik: str) -> Optional[str]:
        """SIC description scraped from the company browse page."""
        cik10 = normalize_cik(issuer_cik)
        if cik10 is None:
            return None
        url = (
            f"{self.base_url}/cgi-bin/browse-edgar?action=getcompany&CIK={cik10}"
            f"&owner=include&count=40&hidefilings=0"
        )
        html = self._get(url, accept="text/html").text or ""

        # Individuals have a state location but no SIC
        if "State location:" in html and "SIC:" not in html:
            _debug(f"CIK {cik10} looks like an individual (no SIC)")
            return None

        for pat in _SIC_PATTERNS:
            m = pat.search(html)
            if m:
                desc = (m.group(2) if m.lastindex and m.lastindex >= 2 else m.group(1)).strip()
                if desc:
                    return desc

        if "SIC" in html:
            m = _SIC_AGGRESSIVE.search(html)
            if m:
                return m.group(2).strip() or None
        return None

    def get_issuer_classification(self, issuer_cik: str) -> Optional[str]:
        """Industry description for an issuer. JSON first, HTML only if JSON failed. Never raises."""
        try:
            return self.fetch_classification_json(issuer_cik)
        except SecRequestError as e:
            _debug(f"Submissions JSON failed for CIK {issuer_cik}, trying HTML: {e}")

        try:
            return self.fetch_classification_html(issuer_cik)
        except SecRequestError as e:
            _debug(f"Company page failed for CIK {issuer_cik}: {e}")
            return None
