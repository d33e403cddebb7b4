"""
APEX Flow Runner
================

Replays the portal's Oracle APEX session protocol over plain HTTP:

- cookie acquisition (home page, then the search page bound to the session)
- hidden-field harvesting after every page load (see credential_extractor)
- page submits to ``wwv_flow.accept`` and plugin calls to ``wwv_flow.ajax``,
  each carrying the fixed protocol fields plus a ``p_json`` envelope with the
  page items, their checksums and the page salt

Cookies are kept in the CredentialStore rather than in aiohttp's cookie jar,
so that a crashed run can pick its session back up from disk.

Dependencies:
- aiohttp (async HTTP client)
- backoff (exponential retry of each step)
"""

import asyncio
import json
from http.cookies import SimpleCookie
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar
from urllib.parse import urljoin

import aiohttp
import backoff

from config_schemas import (
    AjaxIdentifierMissingError, CredentialsMissingError, FormCredentials,
    PortalConfig, SessionExpiredError
)
from credential_extractor import extract_form_credentials
from credential_store import CredentialStore
from log_utils import get_logger
from session_guard import is_session_expired

T = TypeVar("T")

RETRYABLE_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def is_permanent_error(exc: Exception) -> bool:
    """4xx responses are not worth retrying"""
    return isinstance(exc, aiohttp.ClientResponseError) and exc.status < 500


def decode_payload(text: str) -> Any:
    """JSON bodies become objects; anything else is returned as text"""
    stripped = text.strip()
    if stripped[:1] in ("{", "["):
        try:
            return json.loads(stripped)
        except ValueError:
            pass
    return text


def cookie_header(responses: List[aiohttp.ClientResponse]) -> str:
    """Join the cookies set along a redirect chain into a Cookie header"""
    jar: Dict[str, str] = {}
    for response in responses:
        cookies: SimpleCookie = response.cookies
        for name, morsel in cookies.items():
            jar[name] = morsel.value
    return "; ".join(f"{name}={value}" for name, value in jar.items())


def page_item(name: str, value: Optional[str] = "", ck: Optional[str] = None) -> Dict[str, str]:
    item = {"n": name, "v": value or ""}
    if ck is not None:
        item["ck"] = ck
    return item


def page_items_envelope(items: List[Dict[str, str]], form: FormCredentials,
                        regions: Optional[List[Dict[str, Any]]] = None) -> str:
    """Build the p_json envelope APEX expects alongside a submit or plugin call"""
    envelope: Dict[str, Any] = {}
    if regions is not None:
        envelope["regions"] = regions
    envelope["pageItems"] = {
        "itemsToSubmit": items,
        "protected": form.p_page_items_protected or "",
        "rowVersion": "",
        "formRegionChecksums": [],
    }
    envelope["salt"] = form.salt or ""
    return json.dumps(envelope, ensure_ascii=False, separators=(",", ":"))


def search_page_items(form: FormCredentials, search_query: str) -> List[Dict[str, str]]:
    """Every item the search page submits, in page order"""
    step = form.flow_step_id or ""
    current_page = form.current_page_id
    order = form.order_id
    tooltip = form.tooltip_banner

    def p(suffix: str, value: str = "") -> Dict[str, str]:
        return page_item(f"P{step}_{suffix}", value)

    return [
        p("SINGLE_SEARCH", search_query),
        p("SINGLE_SEARCH_1"),
        page_item("P0_CURRENT_PAGE_ID",
                  current_page.value if current_page else "",
                  (current_page.ck if current_page else None) or ""),
        p("FOOTER"),
        p("FOOTER_1"),
        p("FOOTER_2"),
        p("MATN_1"),
        p("COMPANY_NAME"),
        p("NATIONALCODECOMPANY"),
        p("SABTNOCOMPANY"),
        p("NOE_AGAHI"),
        p("INDIKATORNUMBER"),
        p("NEWSPAPERTYPE"),
        p("NEWSPAPERNO"),
        p("PAGENUMBER"),
        p("CODEPEYGIRI"),
        p("EZHARNAMEHNO"),
        p("CITYCODE"),
        p("SABTNODATE_AZ"),
        p("SABTNODATE_TA"),
        p("NEWSSTATUS"),
        p("NEWSPAPERDATE_AZ"),
        p("NEWSPAPER_TA"),
        page_item("P0_ORDER_ID",
                  order.value if order else "",
                  (order.ck if order else None) or ""),
        page_item("P0_ORDER_PRICE", form.order_price),
        page_item("P0_BANNER", form.banner),
        page_item("P0_LINK_BANNER", form.link_banner),
        page_item("P0_TOOLTIP_BANNER",
                  tooltip.value if tooltip else "",
                  (tooltip.ck if tooltip else None) or ""),
        page_item("P0_CURRENTDATE", form.current_date),
        page_item("P0_MT", form.mt),
        p("CNT_RETURN_ROW"),
        p("AMOUT_PER_ROW", "50000"),
        p("TAX", "10"),
        p("FINAL_COST"),
        p("TOKEN"),
        p("RESCODE", "0"),
        p("ACTDIACT", "0"),
        p("FREE_NON_FREE", "0"),
        p("ERROR_MESSAGE"),
        p("CODE"),
        p("TYPEPAY", "1"),
        p("TYPE"),
    ]


class ApexClient:
    """Session-bound client for the portal's search page"""

    def __init__(self, config: PortalConfig, store: CredentialStore, worker_id: Optional[str] = None):
        self.config = config
        self.store = store
        self.worker_id = worker_id
        self.session: Optional[aiohttp.ClientSession] = None
        self.log = get_logger(__name__, worker_id=worker_id)

    async def __aenter__(self):
        """Async context manager entry"""
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            cookie_jar=aiohttp.DummyCookieJar(),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        if self.session:
            await self.session.close()
            self.session = None

    # ─────────────────────────────────────────────────────────────────────
    # TRANSPORT
    # ─────────────────────────────────────────────────────────────────────

    async def with_retry(self, operation: Callable[[], Awaitable[T]], step: str) -> T:
        """Run one step with exponential backoff on network errors and 5xx"""
        log = self.log.bind(component=step)

        def on_backoff(details):
            log.warning(
                f"Attempt {details['tries']} failed ({details['exception']!r}), "
                f"retrying in {details['wait']:.1f}s"
            )

        def on_giveup(details):
            log.error(f"Giving up after {details['tries']} attempts: {details['exception']!r}")

        @backoff.on_exception(
            backoff.expo,
            RETRYABLE_ERRORS,
            max_tries=self.config.max_retries,
            max_time=self.config.retry_max_time,
            giveup=is_permanent_error,
            on_backoff=on_backoff,
            on_giveup=on_giveup,
            factor=self.config.retry_base_delay,
        )
        async def attempt():
            return await operation()

        return await attempt()

    async def _send(self, method: str, url: str, headers: Dict[str, str],
                    data: Optional[Dict[str, str]] = None) -> Tuple[Any, str, str]:
        """
        Send a request and decode the body.

        Returns:
            (payload, raw text, Cookie header built from Set-Cookie)

        Raises:
            SessionExpiredError: the portal reported the session as ended
            aiohttp.ClientResponseError: any other 4xx/5xx status
        """
        if self.session is None:
            raise RuntimeError("Session not initialized. Use 'async with' context manager.")

        async with self.session.request(method, url, headers=headers, data=data) as response:
            text = await response.text()
            payload = decode_payload(text)
            if is_session_expired(payload):
                raise SessionExpiredError(payload)
            response.raise_for_status()
            cookies = cookie_header([*response.history, response])
            return payload, text, cookies

    def _post_headers(self, cookies: str) -> Dict[str, str]:
        return {
            **self.config.common_headers,
            **self.config.post_headers,
            "Referer": self.config.base_url,
            "Cookie": cookies,
        }

    @staticmethod
    def _protocol_fields(form: FormCredentials) -> Dict[str, str]:
        return {
            "p_flow_id": form.flow_id or "",
            "p_flow_step_id": form.flow_step_id or "",
            "p_instance": form.instance or "",
            "p_debug": "",
        }

    # ─────────────────────────────────────────────────────────────────────
    # CREDENTIALS
    # ─────────────────────────────────────────────────────────────────────

    async def request_and_save_credentials(self, url: str, credentials_key: Optional[str] = None,
                                           headers: Optional[Dict[str, str]] = None
                                           ) -> Tuple[str, str, FormCredentials]:
        """
        Load a page, harvest its tokens and store them under the page URL.

        Args:
            url: Page to load
            credentials_key: Page whose stored cookies are sent along
            headers: Extra headers

        Returns:
            (html, cookies, form credentials)
        """
        existing = self.store.get(credentials_key) if credentials_key else None
        existing_cookies = existing.cookies if existing else None

        request_headers = dict(self.config.common_headers)
        if existing_cookies:
            request_headers["Cookie"] = existing_cookies
        request_headers.update(headers or {})

        try:
            _, html, set_cookies = await self._send("GET", url, request_headers)
        except aiohttp.ClientError as e:
            self.log.bind(component="Request", url=url).error(f"Request failed: {e}")
            raise

        cookies = set_cookies or existing_cookies or ""
        form = extract_form_credentials(html)
        self.store.save(url, cookies=cookies, form_data=form)
        return html, cookies, form

    async def get_initial_cookies(self) -> str:
        """Open a fresh APEX session: home page first, then the search page bound to it"""
        log = self.log.bind(component="Auth", url=self.config.home_url)
        log.debug("Getting initial cookies")

        _, cookies, form = await self.request_and_save_credentials(self.config.home_url)

        if form.instance:
            await self.request_and_save_credentials(
                f"{self.config.search_page}?session={form.instance}",
                self.config.home_url,
                headers=self.config.cache_headers,
            )
        else:
            log.warning("Home page did not expose a session instance")
        return cookies

    async def page_context(self, search_query: Optional[str] = None) -> Tuple[str, FormCredentials]:
        """Stored search-page cookies and tokens, acquiring a session if needed"""
        credentials = self.store.get(self.config.search_page)
        if credentials is None or not credentials.cookies:
            self.log.bind(component="Auth", search_query=search_query).info(
                "No existing cookies found, fetching new ones"
            )
            await self.get_initial_cookies()
            credentials = self.store.get(self.config.search_page)

        if credentials is None or credentials.form_data is None:
            raise CredentialsMissingError("No form credentials found")
        return credentials.cookies or "", credentials.form_data

    # ─────────────────────────────────────────────────────────────────────
    # PORTAL CALLS
    # ─────────────────────────────────────────────────────────────────────

    async def flow_accept(self, search_query: str) -> Any:
        """Submit the search page with the query (p_request=SEARCH)"""
        cookies, form = await self.page_context(search_query)

        fields = self._protocol_fields(form)
        fields.update({
            "p_request": "SEARCH",
            "p_reload_on_submit": "S",
            "p_page_submission_id": form.page_submission_id or "",
            "p_json": page_items_envelope(search_page_items(form, search_query), form),
        })

        payload, _, _ = await self._send(
            "POST", f"{self.config.search_url}{form.instance or ''}",
            self._post_headers(cookies), data=fields,
        )
        self.log.bind(component="Search", search_query=search_query).info("Flow accept completed")
        return payload

    async def follow_redirect(self, redirect_url: str) -> FormCredentials:
        """Load the page a submit redirected to and refresh the search-page tokens"""
        url = urljoin(self.config.base_url, redirect_url)
        _, _, form = await self.request_and_save_credentials(
            url, self.config.search_page, headers=self.config.cache_headers
        )
        return form

    async def flow_ajax(self, element: str, items: List[Tuple[str, str]],
                        search_query: Optional[str] = None) -> Any:
        """
        Call a dynamic-action plugin.

        Args:
            element: Element name template, e.g. "P{step}_SINGLE_SEARCH"
            items: (name template, value) pairs to submit
        """
        cookies, form = await self.page_context(search_query)
        step = form.flow_step_id or ""
        element_id = element.format(step=step)

        ajax_identifier = form.ajax_identifiers.get(element_id)
        if not ajax_identifier:
            raise AjaxIdentifierMissingError(element_id)

        fields = self._protocol_fields(form)
        fields["p_request"] = f"PLUGIN={ajax_identifier}"
        fields["p_json"] = page_items_envelope(
            [page_item(name.format(step=step), value) for name, value in items], form
        )

        payload, _, _ = await self._send(
            "POST", f"{self.config.ajax_url}{form.instance or ''}",
            self._post_headers(cookies), data=fields,
        )
        return payload

    async def refine_search(self, search_query: str) -> Any:
        """Fire the SINGLE_SEARCH dynamic action the page runs after a search"""
        payload = await self.flow_ajax(
            "P{step}_SINGLE_SEARCH",
            [("P{step}_SINGLE_SEARCH", search_query), ("P{step}_SINGLE_SEARCH_1", "")],
            search_query=search_query,
        )
        self.log.bind(component="Search", search_query=search_query).info("Flow ajax refine completed")
        return payload

    async def fetch_company_page(self, search_query: str, per_page: int, min_row: int = 1) -> Any:
        """Page through the company listing interactive report"""
        cookies, form = await self.page_context(search_query)
        region = form.company_region_data
        if not region.ajax_identifier:
            raise AjaxIdentifierMissingError("company listing report")

        step = form.flow_step_id or ""
        fields = self._protocol_fields(form)
        fields.update({
            "p_request": f"PLUGIN={region.ajax_identifier}",
            "p_widget_name": "worksheet",
            "p_widget_mod": "ACTION",
            "p_widget_action": "PAGE",
            "p_widget_action_mod": f"pgR_min_row={min_row}max_rows={per_page}rows_fetched={per_page}",
            "p_widget_num_return": str(per_page),
            "x01": region.worksheet_id or "",
            "x02": region.report_id or "",
            "p_json": page_items_envelope([
                page_item(f"P{step}_SINGLE_SEARCH", search_query),
                page_item(f"P{step}_FOOTER"),
                page_item(f"P{step}_COMPANY_NAME"),
                page_item(f"P{step}_NATIONALCODECOMPANY"),
                page_item(f"P{step}_SABTNOCOMPANY"),
            ], form),
        })

        payload, _, _ = await self._send(
            "POST", f"{self.config.ajax_url}{form.instance or ''}",
            self._post_headers(cookies), data=fields,
        )
        self.log.bind(component="Search", search_query=search_query).info(
            f"Flow ajax company completed (rows {min_row}-{min_row + per_page - 1})"
        )
        return payload

    async def fetch_notice_grid(self, search_query: str, first_row: int = 1,
                                max_rows: Optional[int] = None) -> Any:
        """Fetch the notice grid rows (each row links to a notice detail page)"""
        cookies, form = await self.page_context(search_query)
        grid = form.grid_config
        if grid is None:
            raise AjaxIdentifierMissingError("notice grid")

        step = form.flow_step_id or ""
        regions = [{
            "reportId": grid.report_id,
            "view": grid.view,
            "ajaxColumns": grid.ajax_columns,
            "id": grid.id,
            "ajaxIdentifier": grid.ajax_identifier,
            "fetchData": {
                "version": 1,
                "firstRow": first_row,
                "maxRows": max_rows or self.config.notice_grid_rows,
            },
        }]

        fields = self._protocol_fields(form)
        fields["p_json"] = page_items_envelope([
            page_item(f"P{step}_SINGLE_SEARCH", search_query),
            page_item(f"P{step}_FOOTER"),
        ], form, regions=regions)

        payload, _, _ = await self._send(
            "POST", f"{self.config.ajax_url}{form.instance or ''}",
            self._post_headers(cookies), data=fields,
        )
        self.log.bind(component="Search", search_query=search_query).info("Flow ajax grid completed")
        return payload

    async def fetch_html(self, url: str) -> str:
        """GET a detail page with the search-page session cookies"""
        cookies, _ = await self.page_context()
        headers = {
            **self.config.common_headers,
            **self.config.cache_headers,
            **self.config.html_headers,
            "Cookie": cookies,
        }
        _, html, _ = await self._send("GET", url, headers)
        return html
