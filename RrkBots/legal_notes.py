"""
Legal note pre-processing.

Pulls the structured parts of a company registration notice (name, type,
registration number and date, scope, capital, address, ids) out of its
free text with regular expressions. Missing parts come back empty.
"""

import re
from typing import Any, List, Mapping

from config_schemas import LegalNoteSummary

COMPANY_NAME_RE = re.compile(r"شرکت\s+([^(]+)")
REGISTRATION_NUMBER_RE = re.compile(r"شماره\s+ثبت\s+(\d+)")
REGISTRATION_DATE_RE = re.compile(r"تاریخ\s*(\d{2}/\d{2}/\d{4})")
COMPANY_TYPE_RE = re.compile(r"شرکت\s+([^(]+)\s*\(([^)]+)\)")
# Scope runs until the next numbered clause, e.g. "2) مدت شرکت"
BUSINESS_SCOPE_RE = re.compile(r"موضوع\s+شرکت:\s*(.+?)(?:\s\d+\)|$)", re.S)
CAPITAL_RE = re.compile(r"سرمایه\s+شرکت:\s*مبلغ\s+(\d+)\s+ریال")
ADDRESS_RE = re.compile(r"مرکز\s+اصلی\s+شرکت:\s*([^,]+)")
POSTAL_CODE_RE = re.compile(r"کد\s+پستی\s+(\d+)")
NATIONAL_ID_RE = re.compile(r"\b\d{10}\b", re.ASCII)
PHONE_NUMBER_RE = re.compile(r"\b\d{11}\b", re.ASCII)
AUTHORITY_RE = re.compile(r"سازمان\s+([^,]+)")


def _group(pattern: re.Pattern, text: str, index: int = 1) -> str:
    match = pattern.search(text)
    return match.group(index).strip() if match else ""


def extract_business_scope(text: str) -> List[str]:
    scope = _group(BUSINESS_SCOPE_RE, text)
    if not scope:
        return []
    return [item.strip() for item in re.split(r"[.,]", scope) if item.strip()]


def extract_capital(text: str) -> int:
    amount = _group(CAPITAL_RE, text)
    return int(amount) if amount else 0


def preprocess_legal_note(text: str) -> LegalNoteSummary:
    text = text or ""
    return LegalNoteSummary(
        company_name=_group(COMPANY_NAME_RE, text),
        registration_number=_group(REGISTRATION_NUMBER_RE, text),
        registration_date=_group(REGISTRATION_DATE_RE, text),
        company_type=_group(COMPANY_TYPE_RE, text, 2),
        business_scope=extract_business_scope(text),
        capital=extract_capital(text),
        address=_group(ADDRESS_RE, text),
        postal_code=_group(POSTAL_CODE_RE, text),
        national_ids=NATIONAL_ID_RE.findall(text),
        phone_numbers=PHONE_NUMBER_RE.findall(text),
        registration_authority=_group(AUTHORITY_RE, text),
    )


def preprocess_row(row: Mapping[str, Any]) -> LegalNoteSummary:
    """Summarise a notices CSV row (``content`` column, else ``legal_note``)"""
    for column in ("content", "legal_note"):
        text = row.get(column)
        # pandas hands empty cells over as NaN
        if isinstance(text, str) and text.strip():
            return preprocess_legal_note(text)
    return preprocess_legal_note("")
