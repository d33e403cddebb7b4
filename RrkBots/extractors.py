"""
HTML/JSON extractors for portal responses: notice URLs from the grid fetch,
notice fields from a detail page, and company rows from the listing report.
"""

import re
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from config_schemas import CompanyRecord, NoticeRecord

logger = logging.getLogger(__name__)

CONTENT_LABEL = "متن آگهی:"

# NoticeRecord field -> detail page item (rendered as span#P<page>_<ITEM>_DISPLAY)
NOTICE_DISPLAY_ITEMS = {
    "title": "TITLE",
    "tracking_number": "REFERENCENUMBER",
    "letter_number": "INDIKATORNUMBER",
    "letter_date": "SABTDATE",
    "newspaper_number": "NEWSPAPERNO",
    "newspaper_date": "NEWSPAPERDATE",
    "page_number": "PAGENUMBER",
    "publish_count": "HCNEWSSTAGE",
    "company_name": "COMPANYNAME",
    "company_national_id": "SABTNATIONALID",
    "company_register_number": "SABTNUMBER",
    "letter_publisher": "AGAHI_SADER_KONANDE",
}

_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: Optional[str]) -> str:
    """Trim and collapse runs of whitespace"""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def extract_url_from_html(fragment: str) -> Optional[str]:
    soup = BeautifulSoup(fragment, "html.parser")
    anchor = soup.find("a", href=True)
    if anchor is None:
        return None
    return anchor["href"] or None


def extract_urls(ajax_response: Any, base_url: str) -> List[str]:
    """
    Collect notice detail URLs from a grid fetch.

    Each fetched row carries an HTML link in its second column.
    """
    urls: List[str] = []
    if not isinstance(ajax_response, dict):
        return urls

    for region in ajax_response.get("regions") or []:
        fetched = (region or {}).get("fetchedData") or {}
        for values in fetched.get("values") or []:
            if len(values) < 2 or not isinstance(values[1], str) or not values[1]:
                continue
            href = extract_url_from_html(values[1])
            if not href:
                continue
            urls.append(f"{base_url}{href}" if href.startswith("/") else href)
    return urls


def extract_page_info(html: str, url: str, page_id: int = 28) -> NoticeRecord:
    """Read the display items of a notice detail page"""
    soup = BeautifulSoup(html or "", "html.parser")

    def display_text(item: str) -> str:
        element = soup.select_one(f"span#P{page_id}_{item}_DISPLAY")
        return clean_text(element.get_text()) if element else ""

    info: Dict[str, str] = {
        "url": url,
        "scraped_at": datetime.now().isoformat(),
    }
    for field, item in NOTICE_DISPLAY_ITEMS.items():
        info[field] = display_text(item)

    label = soup.find(attrs={"aria-label": CONTENT_LABEL})
    if isinstance(label, Tag) and label.get("id"):
        region = soup.find(attrs={"region-id": label["id"]})
        if region is not None:
            info["content"] = clean_text(region.get_text(" "))

    return NoticeRecord(**{k: v for k, v in info.items() if v})


def _cell_headers(cell: Tag) -> List[str]:
    headers = cell.get("headers") or []
    if isinstance(headers, str):
        headers = headers.split()
    return [h.upper() for h in headers]


def parse_company_rows(html: Any, column_aliases: Dict[str, str], base_url: Optional[str] = None,
                       search_query: Optional[str] = None) -> List[CompanyRecord]:
    """
    Parse the company listing report rows.

    Args:
        html: Report HTML returned by the worksheet widget
        column_aliases: Record field (camelCase) -> report column header
        base_url: Used to make detail links absolute
        search_query: Stamped on every record

    Returns:
        One CompanyRecord per data row
    """
    if not isinstance(html, str) or not html.strip():
        return []

    soup = BeautifulSoup(html, "html.parser")
    field_for_header = {header.upper(): field for field, header in column_aliases.items()}
    scraped_at = datetime.now().isoformat()
    records: List[CompanyRecord] = []

    for row in soup.find_all("tr"):
        values: Dict[str, str] = {}
        for cell in row.find_all("td"):
            for header in _cell_headers(cell):
                field = field_for_header.get(header)
                if field and field not in values:
                    values[field] = clean_text(cell.get_text(" "))

        if not any(values.values()):
            continue

        anchor = row.find("a", href=True)
        if anchor is not None and anchor["href"]:
            href = anchor["href"]
            values["detailUrl"] = urljoin(base_url, href) if base_url else href

        records.append(CompanyRecord.model_validate({
            **values,
            "searchQuery": search_query,
            "scrapedAt": scraped_at,
        }))

    logger.debug(f"Parsed {len(records)} company rows")
    return records
