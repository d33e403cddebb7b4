"""
Configuration Schemas for the RRK Registry Scraper
==================================================

This module defines Pydantic models for the portal configuration, the
harvested APEX session credentials, the resumable checkpoint files and the
records written to CSV, plus the scraper's exception hierarchy.
"""

from enum import Enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ─────────────────────────────────────────────────────────────────────────────
# EXCEPTIONS
# ─────────────────────────────────────────────────────────────────────────────

class RrkScraperError(Exception):
    """Base exception for the RRK scraper"""
    pass

class CredentialsMissingError(RrkScraperError):
    """No stored form credentials for the search page"""
    pass

class AjaxIdentifierMissingError(RrkScraperError):
    """The page did not expose a plugin identifier for an element"""

    def __init__(self, element: str):
        super().__init__(f"No AJAX identifier found for element: {element}")
        self.element = element

class SessionExpiredError(RrkScraperError):
    """The portal answered with its session-ended payload"""

    def __init__(self, payload: Any = None):
        super().__init__("Your session has ended.")
        self.payload = payload


# ─────────────────────────────────────────────────────────────────────────────
# PORTAL CONFIGURATION
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:137.0) "
    "Gecko/20100101 Firefox/137.0"
)

DEFAULT_COMPANY_COLUMNS = {
    "companyId": "ID",
    "companyName": "COMPANY_NAME",
    "nationalId": "NATIONALCODE",
    "registrationNumber": "SABTNO",
    "postalCode": "POSTALCODE",
    "address": "ADDRESS",
}

class PortalConfig(BaseModel):
    """Complete configuration for the portal scraper"""

    # Portal
    base_url: str = Field(default="https://rrk.ir", description="Portal origin")
    app_path: str = Field(default="/ords/r/rrs/rrs-front", description="APEX application path")
    context: str = Field(default="rrs-front/big_data11", description="p_context of the search page")
    search_page_alias: str = Field(default="big_data11")
    home_page_alias: str = Field(default="home")
    detail_page_id: int = Field(default=28, description="APEX page id of the notice detail page")

    # HTTP
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    timeout: int = Field(default=60, description="Request timeout in seconds")
    delay_between_requests: float = Field(default=1.0, description="Delay between listing batches in seconds")
    max_retries: int = Field(default=3, description="Attempts per step before giving up")
    retry_base_delay: float = Field(default=1.0, description="Backoff factor in seconds")
    retry_max_time: float = Field(default=120.0, description="Upper bound on time spent retrying a step")

    # Pagination
    per_page: int = Field(default=1000, description="Company listing rows per widget call")
    notice_batch_size: int = Field(default=100, description="Notices per CSV append")
    notice_grid_rows: int = Field(default=2000, description="Rows requested from the notice grid")
    scrape_notices: bool = Field(default=True, description="Fetch notice detail pages after the listing")

    # Storage
    output_dir: str = Field(default="files", description="Root folder for per-query output")
    credentials_file: str = Field(default="credentials.json")
    company_csv: str = Field(default="company_data.csv")
    notice_csv: str = Field(default="extracted_data.csv")

    # Company listing column aliases (record field -> report column header)
    company_columns: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_COMPANY_COLUMNS))

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('base_url must start with http:// or https://')
        return v.rstrip('/')

    @field_validator('per_page', 'max_retries', 'notice_batch_size', 'notice_grid_rows')
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError('must be a positive integer')
        return v

    @property
    def search_page(self) -> str:
        return f"{self.base_url}{self.app_path}/{self.search_page_alias}"

    @property
    def home_url(self) -> str:
        return f"{self.base_url}{self.app_path}/{self.home_page_alias}"

    @property
    def search_url(self) -> str:
        return f"{self.base_url}/ords/wwv_flow.accept?p_context={self.context}/"

    @property
    def ajax_url(self) -> str:
        return f"{self.base_url}/ords/wwv_flow.ajax?p_context={self.context}/"

    @property
    def common_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "Accept-Language": "en-US,en;q=0.5",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "X-Requested-With": "XMLHttpRequest",
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "same-origin",
        }

    @property
    def cache_headers(self) -> Dict[str, str]:
        return {"Cache-Control": "no-cache", "Pragma": "no-cache"}

    @property
    def post_headers(self) -> Dict[str, str]:
        return {
            "Origin": self.base_url,
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "Referer": self.base_url,
        }

    @property
    def html_headers(self) -> Dict[str, str]:
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "Upgrade-Insecure-Requests": "1",
        }


# ─────────────────────────────────────────────────────────────────────────────
# SESSION CREDENTIALS
# ─────────────────────────────────────────────────────────────────────────────

class CamelModel(BaseModel):
    """Models persisted with the portal's camelCase keys"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

class CheckedValue(CamelModel):
    """An item value with its APEX checksum"""
    value: Optional[str] = None
    ck: Optional[str] = None

class GridConfig(CamelModel):
    report_id: str
    view: str = "grid"
    ajax_columns: List[Any] = Field(default_factory=list)
    id: str
    ajax_identifier: str

class CompanyRegionData(CamelModel):
    region_id: Optional[str] = None
    worksheet_id: Optional[str] = None
    report_id: Optional[str] = None
    ajax_identifier: Optional[str] = None

class FormCredentials(CamelModel):
    """Tokens harvested from one APEX page"""
    flow_id: Optional[str] = None
    flow_step_id: Optional[str] = None
    instance: Optional[str] = None
    page_submission_id: Optional[str] = None
    salt: Optional[str] = None
    protected: Optional[str] = None
    page_items_row_version: Optional[str] = None
    order_price: Optional[str] = None
    banner: Optional[str] = None
    link_banner: Optional[str] = None
    current_date: Optional[str] = None
    mt: Optional[str] = None
    p_page_items_protected: Optional[str] = None
    tooltip_banner: Optional[CheckedValue] = None
    current_page_id: Optional[CheckedValue] = None
    order_id: Optional[CheckedValue] = None
    grid_config: Optional[GridConfig] = None
    ajax_identifiers: Dict[str, str] = Field(default_factory=dict)
    company_region_data: CompanyRegionData = Field(default_factory=CompanyRegionData)

class UrlCredentials(CamelModel):
    """Stored credentials for one page URL"""
    cookies: Optional[str] = None
    form_data: Optional[FormCredentials] = None


# ─────────────────────────────────────────────────────────────────────────────
# CHECKPOINTS
# ─────────────────────────────────────────────────────────────────────────────

class CombinationState(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

class PaginationStatus(CamelModel):
    """Resume point of a company listing scan"""
    current_min_row: int = 1
    per_page: int
    total_processed: int = 0
    is_first_batch: bool = True
    last_updated: datetime = Field(default_factory=datetime.now)

class CombinationStatus(CamelModel):
    """Progress of one query string"""
    combination: str
    status: CombinationState = CombinationState.PENDING
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    worker_id: Optional[str] = None
    pagination_status: Optional[PaginationStatus] = None


# ─────────────────────────────────────────────────────────────────────────────
# SCRAPED RECORDS
# ─────────────────────────────────────────────────────────────────────────────

NOTICE_COLUMNS = [
    "url",
    "scrapedAt",
    "trackingNumber",
    "letterNumber",
    "letterDate",
    "newspaperNumber",
    "newspaperDate",
    "pageNumber",
    "publishCount",
    "title",
    "content",
    "companyName",
    "companyNationalId",
    "companyRegisterNumber",
    "letterPublisher",
]

COMPANY_COLUMNS = [
    "searchQuery",
    "companyId",
    "companyName",
    "nationalId",
    "registrationNumber",
    "postalCode",
    "address",
    "detailUrl",
    "scrapedAt",
]

class NoticeRecord(CamelModel):
    """Fields of a published notice detail page"""
    url: Optional[str] = None
    scraped_at: Optional[str] = None
    tracking_number: Optional[str] = None      # شماره پیگیری
    letter_number: Optional[str] = None        # شماره نامه
    letter_date: Optional[str] = None          # تاریخ نامه
    newspaper_number: Optional[str] = None     # شماره روزنامه
    newspaper_date: Optional[str] = None       # تاریخ روزنامه
    page_number: Optional[str] = None          # شماره صفحه روزنامه
    publish_count: Optional[str] = None        # تعداد نوبت انتشار
    title: Optional[str] = None                # عنوان آگهی
    content: Optional[str] = None              # متن آگهی
    company_name: Optional[str] = None
    company_national_id: Optional[str] = None
    company_register_number: Optional[str] = None
    letter_publisher: Optional[str] = None

class CompanyRecord(CamelModel):
    """A row of the company listing report"""
    search_query: Optional[str] = None
    company_id: Optional[str] = None
    company_name: Optional[str] = None
    national_id: Optional[str] = None
    registration_number: Optional[str] = None
    postal_code: Optional[str] = None
    address: Optional[str] = None
    detail_url: Optional[str] = None
    scraped_at: Optional[str] = None

class LegalNoteSummary(BaseModel):
    """Structured fields parsed out of a notice's free text"""
    company_name: str = ""
    registration_number: str = ""
    registration_date: str = ""
    company_type: str = ""
    business_scope: List[str] = Field(default_factory=list)
    capital: int = 0
    address: str = ""
    postal_code: str = ""
    national_ids: List[str] = Field(default_factory=list)
    phone_numbers: List[str] = Field(default_factory=list)
    registration_authority: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# RESULTS
# ─────────────────────────────────────────────────────────────────────────────

class SearchResult(BaseModel):
    """Result of one query execution"""
    search_query: str
    total_companies: int = 0
    total_notices: int = 0
    notice_errors: int = 0
    resumed_from_row: Optional[int] = None
    execution_time: float = Field(default=0.0, description="Execution time in seconds")

class WorkerSummary(BaseModel):
    """Outcome of one worker's share of the combinations"""
    worker_id: str
    assigned: int = 0
    completed: int = 0
    skipped: int = 0
    failed: List[str] = Field(default_factory=list)
