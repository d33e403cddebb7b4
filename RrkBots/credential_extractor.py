"""
Credential Extractor
====================

Harvests the per-page APEX session tokens from a page's HTML: hidden form
fields, the CSRF salt and page-item checksums, and the plugin identifiers
that the page's inline scripts hand to its interactive report, interactive
grid and dynamic actions.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, Optional

from bs4 import BeautifulSoup, Tag

from config_schemas import CheckedValue, CompanyRegionData, FormCredentials, GridConfig

logger = logging.getLogger(__name__)

INTERACTIVE_REPORT_RE = re.compile(r'interactiveReport\((.*?)\);', re.S)
INTERACTIVE_GRID_RE = re.compile(r'interactiveGrid\((.*?)\);', re.S)
EVENT_LIST_RE = re.compile(r'apex\.da\.gEventList\s*=\s*(\[.*?\]);', re.S)
AFFECTED_ELEMENT_RE = re.compile(
    r'"affectedElements"\s*:\s*"([^"]+)"[^}]*"ajaxIdentifier"\s*:\s*"([^"]+)"'
)
TRIGGERING_ELEMENT_RE = re.compile(
    r'"triggeringElement"\s*:\s*"([^"]+)"[^}]*"ajaxIdentifier"\s*:\s*"([^"]+)"'
)


def parse_encoded_string(encoded: str) -> str:
    """Decode a JS string literal body such as ``UkVH\\u002FABC``"""
    prepared = encoded.replace("\\u002F", "/")
    try:
        return json.loads(f'"{prepared}"')
    except ValueError:
        logger.warning(f"Could not decode identifier {encoded!r}, keeping it as is")
        return encoded


def _input_value(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    value = element.get("value")
    if value is None and element.name == "textarea":
        value = element.get_text()
    return value


def _checked_value(soup: BeautifulSoup, item_name: str) -> CheckedValue:
    return CheckedValue(
        value=_input_value(soup, f'input[name="{item_name}"]'),
        ck=_input_value(soup, f'input[data-for="{item_name}"]'),
    )


def _scripts_containing(soup: BeautifulSoup, needle: str) -> Iterable[str]:
    for script in soup.find_all("script"):
        text = script.get_text()
        if needle in text:
            yield text


def _first_json_call(scripts: Iterable[str], pattern: re.Pattern, label: str) -> Optional[Dict[str, Any]]:
    for text in scripts:
        match = pattern.search(text)
        if not match:
            continue
        try:
            return json.loads(match.group(1))
        except ValueError as e:
            logger.error(f"Error parsing {label} config: {e}")
    return None


def extract_company_region(soup: BeautifulSoup, flow_step_id: Optional[str]) -> CompanyRegionData:
    """Locate the company listing report that follows the COMPANY_CODE item"""
    region = CompanyRegionData()
    if not flow_step_id:
        return region

    anchor = soup.find(id=f"P{flow_step_id}_COMPANY_CODE")
    if not isinstance(anchor, Tag):
        return region

    sibling = anchor.find_next_sibling()
    if not isinstance(sibling, Tag) or sibling.name != "div" or not sibling.get("id"):
        return region

    region_id = sibling["id"].replace("_ir", "")
    region.region_id = region_id
    region.worksheet_id = _input_value(soup, f"#{region_id}_worksheet_id")
    region.report_id = _input_value(soup, f"#{region_id}_report_id")

    config = _first_json_call(_scripts_containing(soup, region_id), INTERACTIVE_REPORT_RE, "interactiveReport")
    if config:
        region.ajax_identifier = config.get("ajaxIdentifier")
    return region


def extract_grid_config(soup: BeautifulSoup) -> Optional[GridConfig]:
    config = _first_json_call(_scripts_containing(soup, "interactiveGrid"), INTERACTIVE_GRID_RE, "interactiveGrid")
    if not config:
        return None

    grid = config.get("config") or {}
    saved_reports = config.get("savedReports") or []
    if not grid.get("regionId") or not saved_reports:
        return None

    return GridConfig(
        report_id=str(saved_reports[0].get("id")),
        view="grid",
        ajax_columns=grid.get("ajaxColumns") or [],
        id=grid["regionId"],
        ajax_identifier=grid.get("ajaxIdentifier", ""),
    )


def extract_ajax_identifiers(soup: BeautifulSoup) -> Dict[str, str]:
    """Map dynamic-action elements to their plugin identifiers"""
    identifiers: Dict[str, str] = {}
    for script in _scripts_containing(soup, "apex.da.initDaEventList"):
        match = EVENT_LIST_RE.search(script)
        if not match:
            continue
        event_list = match.group(1)

        # Triggering elements are scanned last so they win on conflicts
        for pattern in (AFFECTED_ELEMENT_RE, TRIGGERING_ELEMENT_RE):
            for element, identifier in pattern.findall(event_list):
                if element and identifier:
                    identifiers[element] = parse_encoded_string(identifier)
    return identifiers


def extract_form_credentials(html: str, flow_step_id: Optional[str] = None) -> FormCredentials:
    """
    Extract every session token the portal expects back from a page.

    Args:
        html: Page HTML
        flow_step_id: Page id used for page-scoped items; read from the page if omitted

    Returns:
        FormCredentials with missing parts left as None
    """
    soup = BeautifulSoup(html or "", "html.parser")

    credentials = FormCredentials(
        flow_id=_input_value(soup, 'input[name="p_flow_id"]'),
        flow_step_id=_input_value(soup, 'input[name="p_flow_step_id"]'),
        instance=_input_value(soup, 'input[name="p_instance"]'),
        page_submission_id=_input_value(soup, 'input[name="p_page_submission_id"]'),
        salt=_input_value(soup, "#pSalt"),
        page_items_row_version=_input_value(soup, 'input[name="pPageItemsRowVersion"]'),
        order_price=_input_value(soup, 'input[name="P0_ORDER_PRICE"]'),
        banner=_input_value(soup, 'input[name="P0_BANNER"]'),
        link_banner=_input_value(soup, 'input[name="P0_LINK_BANNER"]'),
        current_date=_input_value(soup, 'input[name="P0_CURRENTDATE"]'),
        mt=_input_value(soup, 'input[name="P0_MT"]'),
        p_page_items_protected=_input_value(soup, "#pPageItemsProtected"),
        current_page_id=_checked_value(soup, "P0_CURRENT_PAGE_ID"),
        order_id=_checked_value(soup, "P0_ORDER_ID"),
        tooltip_banner=_checked_value(soup, "P0_TOOLTIP_BANNER"),
    )

    step = flow_step_id or credentials.flow_step_id
    credentials.company_region_data = extract_company_region(soup, step)
    credentials.grid_config = extract_grid_config(soup)
    credentials.ajax_identifiers = extract_ajax_identifiers(soup)
    return credentials
