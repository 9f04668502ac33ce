"""Industry resolution for issuers.

Resolvers are tried in order; the first non-empty answer wins. The default chain
is the SEC classification lookup (submissions JSON, then the company page) and
finally a name-based guess from the tables below.
"""

from __future__ import annotations

import re
from typing import Callable, Optional, Sequence

# (issuer_cik, company_name) -> industry description or None
IndustryResolver = Callable[[Optional[str], Optional[str]], Optional[str]]


_SOFTWARE = "Prepackaged Software"
_DATA_PROCESSING = "Computer Programming, Data Processing, Etc."
_SEMIS = "Semiconductors & Related Devices"
_PHARMA = "Pharmaceutical Preparations"
_BROKERS = "Security Brokers, Dealers & Flotation Companies"
_MOTOR = "Motor Vehicles & Passenger Car Bodies"
_REIT = "Real Estate Investment Trusts"

# Names that keyword matching gets wrong. Checked first.
KNOWN_COMPANIES = {
    "alphabet": _DATA_PROCESSING,
    "google": _DATA_PROCESSING,
    "microsoft": _SOFTWARE,
    "apple": _DATA_PROCESSING,
    "facebook": _DATA_PROCESSING,
    "amazon": "Retail-Catalog & Mail-Order Houses",
    "netflix": "Services-Motion Picture & Video Tape Production",
    "tesla": _MOTOR,
    "nvidia": _SEMIS,
    "intel": _SEMIS,
    "salesforce": _SOFTWARE,
    "oracle": _SOFTWARE,
    "adobe": _SOFTWARE,
    "cisco": "Computer Communications Equipment",
    "uber": "Arrangement of Passenger Transportation",
    "airbnb": "Hotels & Motels",
    "crowdstrike": _SOFTWARE,
    "palo alto": _SOFTWARE,
    "robinhood": _BROKERS,
    "coinbase": _BROKERS,
    "pfizer": _PHARMA,
    "moderna": _PHARMA,
    "johnson & johnson": _PHARMA,
    "merck": _PHARMA,
    "abbvie": _PHARMA,
    "eli lilly": _PHARMA,
    "gilead": _PHARMA,
    "regeneron": _PHARMA,
    "berkshire": "Finance Services",
    "jpmorgan": "State Commercial Banks",
    "bank of america": "National Commercial Banks",
    "wells fargo": "National Commercial Banks",
    "goldman sachs": _BROKERS,
    "morgan stanley": _BROKERS,
    "blackrock": "Investment Advice",
    "walmart": "Retail-Variety Stores",
    "costco": "Retail-Variety Stores",
    "home depot": "Retail-Lumber & Other Building Materials Dealers",
    "nike": "Rubber & Plastics Footwear",
    "exxon": "Petroleum Refining",
    "chevron": "Petroleum Refining",
    "ford": _MOTOR,
    "general motors": _MOTOR,
    "rivian": _MOTOR,
}

# Substring keywords, checked in this order.
INDUSTRY_KEYWORDS = {
    "software": _SOFTWARE,
    "semiconductor": _SEMIS,
    "therapeutics": _PHARMA,
    "pharma": _PHARMA,
    "biotech": "Biological Products (No Diagnostic Substances)",
    "bio": "Biological Products (No Diagnostic Substances)",
    "medical": "Surgical & Medical Instruments & Apparatus",
    "health": "Services-Medical Laboratories",
    "bancorp": "State Commercial Banks",
    "bank": "State Commercial Banks",
    "banc": "State Commercial Banks",
    "insurance": "Fire, Marine & Casualty Insurance",
    "reit": _REIT,
    "realty": _REIT,
    "properties": _REIT,
    "real estate": _REIT,
    "trust": _REIT,
    "investment": "Investment Advice",
    "capital": "Finance Services",
    "financial": "Finance Services",
    "technolog": _DATA_PROCESSING,
    "cloud": _DATA_PROCESSING,
    "data": _DATA_PROCESSING,
    "digital": _DATA_PROCESSING,
    "networks": "Computer Communications Equipment",
    "petroleum": "Petroleum Refining",
    "oil": "Crude Petroleum & Natural Gas",
    "energy": "Crude Petroleum & Natural Gas",
    "solar": "Electric Services",
    "electric": "Electric Services",
    "utilities": "Electric Services",
    "telecom": "Telephone Communications (No Radiotelephone)",
    "wireless": "Radiotelephone Communications",
    "communications": "Communications Services, Nec",
    "entertainment": "Services-Motion Picture & Video Tape Production",
    "media": "Services-Motion Picture & Video Tape Production",
    "gaming": "Services-Amusement & Recreation Services",
    "airlines": "Air Transportation, Scheduled",
    "logistics": "Trucking (No Local)",
    "automotive": _MOTOR,
    "motors": _MOTOR,
    "restaurant": "Eating Places",
    "beverage": "Beverages",
    "foods": "Food & Kindred Products",
    "retail": "Retail-Variety Stores",
    "stores": "Retail-Variety Stores",
    "manufacturing": "Miscellaneous Manufacturing Industries",
    "industries": "Miscellaneous Manufacturing Industries",
    "holdings": "Finance Services",
}

_SUFFIX_RE = re.compile(r"[\s,]+(inc\.?|corp\.?|corporation|company|co\.?|ltd\.?|llc|plc|n\.v\.|s\.a\.)$", re.IGNORECASE)


def clean_company_name(name: str) -> str:
    s = (name or "").strip().lower()
    # "Foo Holdings, Inc. /DE/" style state tags
    s = re.sub(r"\s*/[a-z]{2}/?\s*$", "", s)
    prev = None
    while prev != s:
        prev = s
        s = _SUFFIX_RE.sub("", s).strip()
    return s


def infer_industry_from_name(company_name: str | None) -> Optional[str]:
    if not company_name:
        return None
    name = clean_company_name(company_name)
    if not name:
        return None
    for company, industry in KNOWN_COMPANIES.items():
        if company in name:
            return industry
    for keyword, industry in INDUSTRY_KEYWORDS.items():
        if keyword in name:
            return industry
    return None


def name_resolver(issuer_cik: Optional[str], company_name: Optional[str]) -> Optional[str]:
    return infer_industry_from_name(company_name)


def resolve_industry(
    resolvers: Sequence[IndustryResolver],
    issuer_cik: Optional[str],
    company_name: Optional[str],
) -> Optional[str]:
    """First non-empty answer from the ordered resolver chain."""
    for resolver in resolvers:
        industry = resolver(issuer_cik, company_name)
        if industry and industry.strip():
            return industry.strip()
    return None
