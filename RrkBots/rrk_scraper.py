"""
RRK Registry Notice Scraper

Searches the Official Gazette registry portal for companies and published
notices matching a query string and exports them to CSV.

Website: https://rrk.ir/ords/r/rrs/rrs-front/big_data11

Features:
- Replays the APEX search flow (submit, redirect, dynamic action refresh)
- Pages through the company listing with a resumable checkpoint
- Fetches every notice detail page linked from the notice grid
- Runs many query strings in parallel workers, each with its own session

Dependencies:
- aiohttp (async HTTP client)
- beautifulsoup4 (HTML parsing)
- backoff (retries)
- pandas (CSV export)
"""

import asyncio
import time
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

from apex_client import ApexClient
from combinations import chunked, partition
from config_schemas import (
    COMPANY_COLUMNS, NOTICE_COLUMNS, PortalConfig, SearchResult, WorkerSummary
)
from credential_store import CredentialStore, write_json_file
from csv_export import append_rows, truncate_rows
from extractors import extract_page_info, extract_urls, parse_company_rows
from log_utils import get_logger
from pagination import CheckpointManager
from session_guard import with_session_retry

WORKER_CHUNK_SIZE = 10

SearchFn = Callable[[str, str], Awaitable[Any]]


def worker_id_for(index: int) -> str:
    return f"Worker-{index}"


def credentials_path(config: PortalConfig, worker_id: Optional[str] = None) -> Path:
    """credentials.json, or credentials-Worker-<i>.json for a worker"""
    path = Path(config.output_dir) / config.credentials_file
    if worker_id is None:
        return path
    return path.with_name(f"{path.stem}-{worker_id}{path.suffix}")


class RrkSearchScraper:
    """Runs the full search flow for one query string at a time"""

    def __init__(self, client: ApexClient, checkpoints: CheckpointManager,
                 config: PortalConfig, worker_id: Optional[str] = None):
        self.client = client
        self.checkpoints = checkpoints
        self.config = config
        self.worker_id = worker_id
        self.log = get_logger(__name__, worker_id=worker_id)

    async def _step(self, component: str, operation: Callable[[], Awaitable[Any]], log) -> Any:
        """Retry on network errors, renew the session once if it ended"""
        return await with_session_retry(
            self.client,
            partial(self.client.with_retry, operation, component),
            log.bind(component=component),
        )

    async def execute_search(self, search_query: str) -> SearchResult:
        """
        Search one query and export its companies (and notices).

        Raises:
            Whatever stopped the search; the query is marked failed first
        """
        started = time.monotonic()
        log = self.log.bind(search_query=search_query)
        log.info("🔍 Starting search")

        self.checkpoints.mark_started(search_query, self.worker_id)
        folder = self.checkpoints.get_query_folder(search_query)

        try:
            accept = await self._step("Search", partial(self.client.flow_accept, search_query), log)
            if isinstance(accept, dict) and accept.get("redirectURL"):
                await self._step("Search", partial(self.client.follow_redirect, accept["redirectURL"]), log)

            await self._step("Search", partial(self.client.refine_search, search_query), log)

            total_companies, resumed_from = await self._scrape_companies(search_query, folder, log)

            total_notices, notice_errors = 0, 0
            if self.config.scrape_notices:
                total_notices, notice_errors = await self._scrape_notices(search_query, folder, log)

            write_json_file(folder / "search_results.json", {
                "totalCompanies": total_companies,
                "totalNotices": total_notices,
            })
            self.checkpoints.mark_completed(search_query)
        except Exception as e:
            log.error(f"❌ Search failed: {e}", exc_info=True)
            self.checkpoints.mark_failed(search_query, str(e))
            raise

        result = SearchResult(
            search_query=search_query,
            total_companies=total_companies,
            total_notices=total_notices,
            notice_errors=notice_errors,
            resumed_from_row=resumed_from,
            execution_time=time.monotonic() - started,
        )
        log.info(
            f"✅ Search completed: {total_companies} companies, {total_notices} notices "
            f"in {result.execution_time:.1f}s"
        )
        return result

    async def _scrape_companies(self, search_query: str, folder: Path, log) -> Tuple[int, Optional[int]]:
        """
        Page through the company listing, checkpointing after every batch.

        The first batch of a scan replaces any earlier company CSV. On resume,
        rows appended after the last saved checkpoint are dropped before the
        next batch is fetched, so an interrupted batch is not written twice.
        """
        per_page = self.config.per_page
        min_row, total, resumed_from, is_first_batch = 1, 0, None, True
        csv_path = folder / self.config.company_csv

        checkpoint = self.checkpoints.get_pagination_status(search_query)
        if checkpoint is not None:
            per_page = checkpoint.per_page
            min_row = checkpoint.current_min_row
            total = checkpoint.total_processed
            is_first_batch = checkpoint.is_first_batch
            resumed_from = min_row
            log.info(f"⏯️ Resuming from row {min_row} ({total} companies already saved)")
            if not is_first_batch:
                truncate_rows(csv_path, total)

        plog = log.bind(component="Pagination")

        while True:
            html = await self._step(
                "Pagination",
                partial(self.client.fetch_company_page, search_query, per_page, min_row),
                log,
            )
            records = parse_company_rows(html, self.config.company_columns, self.config.base_url, search_query)
            if is_first_batch:
                csv_path.unlink(missing_ok=True)
            append_rows(csv_path, [r.to_json_dict() for r in records], COMPANY_COLUMNS)

            total += len(records)
            min_row += per_page
            is_first_batch = False
            self.checkpoints.save_pagination_status(search_query, min_row, per_page, total, is_first_batch)
            plog.info(f"Saved batch of {len(records)} companies ({total} total)")

            if len(records) < per_page:
                break
            await asyncio.sleep(self.config.delay_between_requests)

        return total, resumed_from

    async def _scrape_notices(self, search_query: str, folder: Path, log) -> Tuple[int, int]:
        """Fetch every notice linked from the grid; per-notice failures are collected"""
        _, form = await self.client.page_context(search_query)
        if form.grid_config is None:
            log.info("No notice grid on the page, skipping notices")
            return 0, 0

        grid = await self._step("Grid", partial(self.client.fetch_notice_grid, search_query), log)
        urls = extract_urls(grid, self.config.base_url)
        log.info(f"Found {len(urls)} notice URLs")

        # Notices are not checkpointed; a rerun rewrites them
        csv_path = folder / self.config.notice_csv
        csv_path.unlink(missing_ok=True)
        (folder / "errors.json").unlink(missing_ok=True)

        batch: List[dict] = []
        errors: List[dict] = []
        written = 0

        for index, url in enumerate(urls, 1):
            ulog = log.bind(component="Notice", url=url)
            ulog.debug(f"Processing notice {index}/{len(urls)}")
            try:
                html = await self._step("Notice", partial(self.client.fetch_html, url), log.bind(url=url))
                batch.append(extract_page_info(html, url, self.config.detail_page_id).to_json_dict())
            except Exception as e:
                ulog.error(f"Failed to process notice: {e}")
                errors.append({"url": url, "error": str(e)})

            if len(batch) >= self.config.notice_batch_size:
                written += append_rows(csv_path, batch, NOTICE_COLUMNS)
                batch = []

        if batch:
            written += append_rows(csv_path, batch, NOTICE_COLUMNS)

        if errors:
            log.warning(f"⚠️ {len(errors)} notices failed, see errors.json")
            write_json_file(folder / "errors.json", errors)
        return written, len(errors)


# ─────────────────────────────────────────────────────────────────────────────
# WORKERS
# ─────────────────────────────────────────────────────────────────────────────

async def _process_queries(worker_id: str, queries: Sequence[str], checkpoints: CheckpointManager,
                           search: Callable[[str], Awaitable[Any]]) -> WorkerSummary:
    log = get_logger(__name__, worker_id=worker_id)
    summary = WorkerSummary(worker_id=worker_id, assigned=len(queries))
    log.info(f"🚀 Starting with {len(queries)} combinations")

    for chunk_number, chunk in enumerate(chunked(queries, WORKER_CHUNK_SIZE), 1):
        for query in chunk:
            if checkpoints.is_completed(query):
                log.bind(search_query=query).info("⏭️ Already completed, skipping")
                summary.skipped += 1
                continue
            try:
                await search(query)
                summary.completed += 1
            except Exception as e:
                log.bind(search_query=query).error(f"❌ Combination failed: {e}")
                checkpoints.mark_failed(query, str(e))
                summary.failed.append(query)
        log.info(f"Finished chunk {chunk_number} ({summary.completed} completed, {len(summary.failed)} failed)")

    log.info(f"🏁 Done: {summary.completed} completed, {summary.skipped} skipped, {len(summary.failed)} failed")
    return summary


async def run_worker(worker_id: str, queries: Sequence[str], config: PortalConfig,
                     checkpoints: CheckpointManager, search_fn: Optional[SearchFn] = None) -> WorkerSummary:
    """Process one worker's share sequentially on its own portal session"""
    if search_fn is not None:
        return await _process_queries(worker_id, queries, checkpoints, partial(_call_search, search_fn, worker_id))

    store = CredentialStore(credentials_path(config, worker_id))
    async with ApexClient(config, store, worker_id) as client:
        scraper = RrkSearchScraper(client, checkpoints, config, worker_id)
        return await _process_queries(worker_id, queries, checkpoints, scraper.execute_search)


async def _call_search(search_fn: SearchFn, worker_id: str, query: str) -> Any:
    return await search_fn(query, worker_id)


async def run_workers(combinations: Sequence[str], workers: int, config: PortalConfig,
                      search_fn: Optional[SearchFn] = None) -> List[WorkerSummary]:
    """
    Spread combinations over ``workers`` concurrent workers.

    Args:
        combinations: Query strings, in order
        workers: Number of workers; each gets a contiguous share
        config: Portal configuration
        search_fn: Replaces the portal search, called as search_fn(query, worker_id)

    Returns:
        One WorkerSummary per worker
    """
    checkpoints = CheckpointManager(config.output_dir)
    shares = partition(list(combinations), workers)
    tasks = [
        run_worker(worker_id_for(i), share, config, checkpoints, search_fn)
        for i, share in enumerate(shares)
    ]
    return list(await asyncio.gather(*tasks))


async def search_once(search_query: str, config: PortalConfig, force: bool = False) -> SearchResult:
    """Run a single query outside the worker pool"""
    checkpoints = CheckpointManager(config.output_dir)
    if force:
        checkpoints.reset(search_query)
        folder = Path(config.output_dir) / search_query
        for name in (config.company_csv, config.notice_csv, "errors.json", "search_results.json"):
            (folder / name).unlink(missing_ok=True)
    store = CredentialStore(credentials_path(config))
    async with ApexClient(config, store) as client:
        return await RrkSearchScraper(client, checkpoints, config).execute_search(search_query)
