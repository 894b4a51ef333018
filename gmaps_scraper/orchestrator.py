"""
Google Maps Extraction Orchestrator

Flow:
1. INIT             - open a browser session, load the search results, wait for the feed
2. DISCOVERING_FEED - scroll the feed until the target count or a stop condition
3. SNAPSHOTTING     - collect place URLs from the loaded feed
4. DISPATCHING      - visit every place, sequentially or in concurrent batches
5. AGGREGATING      - drop failed records and finalize run statistics
6. DONE / FAILED

One orchestrator instance serves exactly one ExtractionRequest. The browser
session and every page opened on it are released on all exit paths.

Usage:
    orchestrator = GMapsExtractionOrchestrator(BrowserManager(config), config)
    result = await orchestrator.run(request)

    # Or use the convenience function
    result = await scrape_gmaps_businesses("restaurants in Miami", 10)
"""

import asyncio
import math
import random
from enum import Enum
from typing import Any, Callable, List, Optional
from urllib.parse import quote

from loguru import logger
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from gmaps_scraper.browser_manager import BrowserManager, BrowserSession, SessionProvider
from gmaps_scraper.config import SEARCH_URL_TEMPLATE, GMapsSelectors, ScrapingConfig, load_config
from gmaps_scraper.data_models.models import (
    DiscoveredItem,
    ExtractionMode,
    ExtractionRequest,
    ExtractionResult,
    FeedState,
    ItemOutcome,
    ItemStatus,
    RunStats,
)
from gmaps_scraper.errors import (
    ErrorType,
    GMapsScraperError,
    NavigationError,
    PoolInitError,
    ZeroProgressError,
    classify_error,
)
from gmaps_scraper.extractors.field_extractor import FieldExtractor
from gmaps_scraper.extractors.item_discovery import ItemDiscovery
from gmaps_scraper.scrapers.feed_scroller import FeedDriver, FeedScroller, PlaywrightFeedDriver, Sleep
from gmaps_scraper.utils.anti_detection import calculate_item_delay


class OrchestratorState(str, Enum):
    INIT = "init"
    DISCOVERING_FEED = "discovering_feed"
    SNAPSHOTTING = "snapshotting"
    DISPATCHING = "dispatching"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


def build_search_url(query: str) -> str:
    return SEARCH_URL_TEMPLATE.format(query=quote(query, safe=''))


def _log_navigation_retry(retry_state: RetryCallState) -> None:
    logger.warning(f"🔄 Search page not ready (attempt {retry_state.attempt_number}): "
                   f"{retry_state.outcome.exception()}")


class WorkerPool:
    """Fixed set of isolated worker pages for concurrent dispatch"""

    def __init__(self, session: BrowserSession, size: int):
        self.session = session
        self.size = size
        self.pages: List[Any] = []

    async def start(self) -> None:
        try:
            for _ in range(self.size):
                self.pages.append(await self.session.new_page(isolated=True))
        except Exception as e:
            await self.close()
            raise PoolInitError(f"Could not open {self.size} worker pages: {e}") from e
        logger.info(f"✅ Worker pool initialized with {self.size} pages")

    async def replace(self, slot: int) -> None:
        """Swap the page in `slot` for a fresh isolated one; the old page is closed first"""
        old_page = self.pages[slot]
        try:
            await old_page.close()
        except Exception as e:
            logger.debug(f"Worker page close failed: {e}")
        try:
            self.pages[slot] = await self.session.new_page(isolated=True)
        except Exception as e:
            logger.warning(f"⚠️ Could not replace worker page {slot + 1}: {e}")
            return
        logger.info(f"🔄 Worker page {slot + 1} replaced after a failed item")

    async def close(self) -> None:
        for page in self.pages:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Worker page close failed: {e}")
        self.pages = []


class GMapsExtractionOrchestrator:
    """
    Scroll-and-extract state machine for one search query.

    Args:
        provider: supplies the browser session for this run
        config: delays, timeouts and thresholds
        selectors: DOM selectors for feed and detail views
        sleep: awaitable delay function (asyncio.sleep by default)
        rng: random source for the sequential inter-item delay
        feed_driver_factory: builds the FeedDriver for the search page
    """

    def __init__(self,
                 provider: SessionProvider,
                 config: Optional[ScrapingConfig] = None,
                 selectors: Optional[GMapsSelectors] = None,
                 sleep: Optional[Sleep] = None,
                 rng: Optional[random.Random] = None,
                 feed_driver_factory: Optional[Callable[[Any], FeedDriver]] = None):
        self.provider = provider
        self.config = config or ScrapingConfig()
        self.selectors = selectors or GMapsSelectors()
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()
        self._feed_driver_factory = feed_driver_factory or (
            lambda page: PlaywrightFeedDriver(page, self.selectors, self.config.bottom_tolerance_px)
        )

        self.field_extractor = FieldExtractor(self.selectors)
        self.item_discovery = ItemDiscovery(self.selectors)

        self.state = OrchestratorState.INIT
        self.stats = RunStats()
        self._started = False
        self._session: Optional[BrowserSession] = None
        self._page: Any = None
        self._worker_pool: Optional[WorkerPool] = None

    def _transition(self, new_state: OrchestratorState) -> None:
        logger.debug(f"State {self.state.value} → {new_state.value}")
        self.state = new_state

    async def run(self, request: ExtractionRequest) -> ExtractionResult:
        """
        Execute the full extraction for a validated request.

        Raises:
            NavigationError: search results or feed never became available
            ZeroProgressError: the feed produced no items or no place links
            GMapsScraperError: any other fatal error during the run
        """
        if self._started:
            raise RuntimeError("GMapsExtractionOrchestrator is single-use; create a new instance per request")
        self._started = True

        self.stats.requested = request.target_count
        self.stats.mode = request.mode
        self.stats.requested_mode = request.mode
        self.stats.start()

        logger.info(f"🚀 Starting {request.mode.value} Google Maps scraping...")
        logger.info(f"Query: \"{request.query}\", Max Results: {request.target_count}")

        try:
            await self._open_search(request)

            self._transition(OrchestratorState.DISCOVERING_FEED)
            await self._load_feed(request)

            self._transition(OrchestratorState.SNAPSHOTTING)
            items = await self._snapshot(request)

            self._transition(OrchestratorState.DISPATCHING)
            outcomes = await self._dispatch(request, items)

            self._transition(OrchestratorState.AGGREGATING)
            result = self._aggregate(request, outcomes)
        except GMapsScraperError as e:
            self._fail(e)
            raise
        except asyncio.CancelledError:
            self._fail("run cancelled")
            raise
        except Exception as e:
            self._fail(e)
            raise GMapsScraperError(f"Extraction failed: {e}") from e
        finally:
            await self._release_resources()

        self._transition(OrchestratorState.DONE)
        return result

    async def run_with_timeout(self, request: ExtractionRequest, timeout_seconds: Optional[float] = None) -> ExtractionResult:
        """Run with a caller-side timeout; resources are released when it fires"""
        timeout = self.config.request_timeout_seconds if timeout_seconds is None else timeout_seconds
        try:
            return await asyncio.wait_for(self.run(request), timeout)
        except asyncio.TimeoutError:
            raise GMapsScraperError(f"Extraction timed out after {timeout:.0f}s", ErrorType.TIMEOUT)

    # ==================== INIT ====================

    async def _open_search(self, request: ExtractionRequest) -> None:
        search_url = build_search_url(request.query)
        try:
            self._session = await self.provider.acquire_session()
            self._page = await self._session.new_page()

            logger.info(f"🌐 Navigating to: {search_url}")
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.navigation_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=self.config.navigation_retry_max_wait),
                sleep=self._sleep,
                before_sleep=_log_navigation_retry,
                reraise=True,
            ):
                with attempt:
                    await self._page.goto(search_url, wait_until='networkidle',
                                          timeout=self.config.navigation_timeout_ms)
                    await self._page.wait_for_selector(self.selectors.feed_container,
                                                       timeout=self.config.feed_wait_timeout_ms)
        except Exception as e:
            raise NavigationError(f"Could not load search results for '{request.query}': {e}") from e

        if request.mode == ExtractionMode.CONCURRENT:
            await self._sleep(self.config.concurrent_initial_delay)
        else:
            await self._sleep(self.config.initial_delay)

    # ==================== DISCOVERING_FEED ====================

    async def _load_feed(self, request: ExtractionRequest) -> FeedState:
        if request.mode == ExtractionMode.CONCURRENT:
            threshold = self.config.concurrent_stagnation_threshold
        else:
            threshold = self.config.stagnation_threshold

        scroller = FeedScroller(self._feed_driver_factory(self._page), self.config, threshold, self._sleep)
        logger.info(f"📜 Starting double-scroll for {request.target_count} results...")

        state = await scroller.run(request.target_count)
        self.stats.scroll_attempts = state.scroll_attempts
        logger.info(f"🎯 Scroll complete: {state.item_count} results after "
                    f"{state.scroll_attempts} attempts ({state.stop_reason.value})")

        if state.item_count == 0:
            raise ZeroProgressError("Failed to load any results during scrolling")
        if state.item_count < request.target_count:
            logger.warning(f"Feed exhausted early: {state.item_count}/{request.target_count} results, continuing")
        return state

    # ==================== SNAPSHOTTING ====================

    async def _snapshot(self, request: ExtractionRequest) -> List[DiscoveredItem]:
        items = await self.item_discovery.snapshot(self._page, request.target_count)
        if not items:
            raise ZeroProgressError("No business URLs found in the results feed")
        self.stats.discovered = len(items)
        return items

    # ==================== DISPATCHING ====================

    async def _dispatch(self, request: ExtractionRequest, items: List[DiscoveredItem]) -> List[ItemOutcome]:
        if request.mode == ExtractionMode.CONCURRENT:
            try:
                pool = await self._start_worker_pool(min(request.concurrency_limit, len(items)))
            except PoolInitError as e:
                logger.warning(f"⚠️ Parallel mode failed to start: {e}")
                logger.info("🔄 Falling back to sequential mode...")
                self.stats.mode = ExtractionMode.SEQUENTIAL
                self.stats.fallback_reason = str(e)
            else:
                return await self._dispatch_concurrent(request, items, pool)
        return await self._dispatch_sequential(request, items)

    async def _start_worker_pool(self, size: int) -> WorkerPool:
        pool = WorkerPool(self._session, size)
        await pool.start()
        self._worker_pool = pool
        return pool

    async def _dispatch_sequential(self, request: ExtractionRequest, items: List[DiscoveredItem]) -> List[ItemOutcome]:
        logger.info("⚡ Using sequential processing")
        outcomes: List[ItemOutcome] = []
        total = len(items)

        for index, item in enumerate(items):
            logger.info(f"🏢 Processing Business {item.ordinal}/{total}: {item.url[:80]}...")
            outcome = await self._process_item(
                self._page, item, request.query,
                wait_timeout_ms=self.config.detail_wait_timeout_ms,
                settle_delay=self.config.detail_settle_delay,
            )
            self.stats.record_outcome(outcome)
            outcomes.append(outcome)

            if index < total - 1:
                await self._sleep(calculate_item_delay(self.config.item_delay, self.config.item_delay_jitter, self._rng))

        return outcomes

    async def _dispatch_concurrent(self,
                                   request: ExtractionRequest,
                                   items: List[DiscoveredItem],
                                   pool: WorkerPool) -> List[ItemOutcome]:
        """
        Fixed-size batches, each awaited jointly before the next one starts.
        Outcomes keep discovery order; stats are written only here, after a batch resolves.
        """
        batch_size = request.concurrency_limit
        total_batches = math.ceil(len(items) / batch_size)
        outcomes: List[ItemOutcome] = []
        logger.info(f"🚀 Using parallel processing with {pool.size} workers")

        for batch_number, start in enumerate(range(0, len(items), batch_size), start=1):
            batch = items[start:start + batch_size]
            logger.info(f"📦 Processing batch {batch_number}/{total_batches} ({len(batch)} businesses)")

            results = await asyncio.gather(
                *[
                    self._process_item(
                        pool.pages[slot], item, request.query,
                        wait_timeout_ms=self.config.concurrent_detail_wait_timeout_ms,
                        settle_delay=self.config.concurrent_detail_settle_delay,
                    )
                    for slot, item in enumerate(batch)
                ],
                return_exceptions=True,
            )

            failed_slots = []
            for slot, (item, result) in enumerate(zip(batch, results)):
                if isinstance(result, BaseException):
                    result = ItemOutcome.from_error(item, result, classify_error(result))
                if result.status == ItemStatus.ERROR:
                    failed_slots.append(slot)
                self.stats.record_outcome(result)
                outcomes.append(result)

            # A page that errored may be crashed or closed; the next batch gets a fresh one
            if batch_number < total_batches:
                for slot in failed_slots:
                    await pool.replace(slot)

            logger.info(f"🚀 Batch {batch_number} completed: {self.stats.successful} total results")
            if batch_number < total_batches and self.config.batch_delay > 0:
                await self._sleep(self.config.batch_delay)

        return outcomes

    async def _process_item(self,
                            page,
                            item: DiscoveredItem,
                            query: str,
                            wait_timeout_ms: int,
                            settle_delay: float) -> ItemOutcome:
        """Navigate, wait for the detail view and extract; errors stay with this item"""
        try:
            await page.goto(item.url, wait_until='networkidle', timeout=self.config.detail_timeout_ms)
            await page.wait_for_selector(self.selectors.business_name, timeout=wait_timeout_ms)
            await self._sleep(settle_delay)
            record = await self.field_extractor.extract(page, query, item.ordinal)
        except Exception as e:
            logger.warning(f"❌ Error processing business {item.ordinal}: {e}")
            return ItemOutcome.from_error(item, e, classify_error(e))

        outcome = ItemOutcome.from_record(item, record)
        if outcome.succeeded:
            logger.info(f"✅ Successfully extracted: {record.name}")
        else:
            logger.warning(f"❌ Failed to extract valid business data for result {item.ordinal}")
        return outcome

    # ==================== AGGREGATING ====================

    def _aggregate(self, request: ExtractionRequest, outcomes: List[ItemOutcome]) -> ExtractionResult:
        records = [outcome.record for outcome in outcomes if outcome.succeeded]
        self.stats.finalize()

        seconds = (self.stats.processing_time_ms or 0) / 1000
        logger.info(f"🎉 {self.stats.mode.value.title()} scraping completed! {len(records)} businesses extracted "
                    f"in {seconds:.1f}s ({self.stats.avg_time_per_result_ms or 0:.0f}ms per business)")
        if self.stats.fallback_reason:
            logger.warning(f"Run used sequential fallback (requested {self.stats.requested_mode.value})")

        return ExtractionResult(query=request.query, records=records, stats=self.stats)

    def _fail(self, reason: Any) -> None:
        self._transition(OrchestratorState.FAILED)
        self.stats.finalize()
        logger.error(f"❌ Fatal error during Google Maps scraping: {reason}")

    async def _release_resources(self) -> None:
        if self._worker_pool is not None:
            await self._worker_pool.close()
            self._worker_pool = None
        if self._page is not None:
            try:
                await self._page.close()
            except Exception as e:
                logger.debug(f"Search page close failed: {e}")
            self._page = None
        if self._session is not None:
            try:
                await self._session.close()
            except Exception as e:
                logger.warning(f"Browser session close failed: {e}")
            self._session = None


async def scrape_gmaps_businesses(query: str,
                                  max_results: int,
                                  mode: str = 'sequential',
                                  concurrency: Optional[int] = None,
                                  config: Optional[ScrapingConfig] = None,
                                  provider: Optional[SessionProvider] = None,
                                  timeout_seconds: Optional[float] = None) -> ExtractionResult:
    """
    Convenience function: validate, then run a fresh orchestrator.

    Validation happens before any browser is launched.
    """
    config = config or load_config()
    payload = {'query': query, 'maxResults': max_results, 'mode': mode}
    request = ExtractionRequest.from_payload(
        payload,
        concurrency=config.concurrency_limit if concurrency is None else concurrency,
    )

    orchestrator = GMapsExtractionOrchestrator(provider or BrowserManager(config), config)
    return await orchestrator.run_with_timeout(request, timeout_seconds)
