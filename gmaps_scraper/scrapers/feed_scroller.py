"""
Feed scroller: progressively loads the results feed.

Each advance() is one scroll cycle. The feed only lazy-loads reliably with
a two-stage scroll: a large offset to trigger the loader, then after a short
pause a small offset that reveals the inserted entries. Item counts are
re-measured only after a settle delay because insertion is asynchronous.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

from loguru import logger

from gmaps_scraper.config import GMapsSelectors, ScrapingConfig
from gmaps_scraper.data_models.models import FeedState, FeedStopReason

Sleep = Callable[[float], Awaitable[Any]]

SCROLL_FEED_SCRIPT = """
({selector, offset}) => {
    const container = document.querySelector(selector);
    if (!container) return null;
    const before = container.scrollTop;
    container.scrollTop += offset;
    return {before: before, after: container.scrollTop, height: container.scrollHeight};
}
"""

FEED_AT_BOTTOM_SCRIPT = """
({selector, tolerance}) => {
    const container = document.querySelector(selector);
    if (!container) return false;
    return container.scrollTop + container.clientHeight >= container.scrollHeight - tolerance;
}
"""


@dataclass(frozen=True)
class ScrollPosition:
    before: int
    after: int
    height: int


class FeedDriver(Protocol):
    async def count_items(self) -> int:
        ...

    async def scroll_feed(self, offset: int) -> Optional[ScrollPosition]:
        ...

    async def is_at_bottom(self) -> bool:
        ...


class PlaywrightFeedDriver:
    """Feed operations on a live search results page"""

    def __init__(self, page, selectors: GMapsSelectors, bottom_tolerance_px: int = 100):
        self.page = page
        self.selectors = selectors
        self.bottom_tolerance_px = bottom_tolerance_px

    async def count_items(self) -> int:
        return await self.page.locator(self.selectors.result_container).count()

    async def scroll_feed(self, offset: int) -> Optional[ScrollPosition]:
        result = await self.page.evaluate(
            SCROLL_FEED_SCRIPT,
            {'selector': self.selectors.feed_container, 'offset': offset},
        )
        if not result:
            return None
        return ScrollPosition(
            before=int(result.get('before', 0)),
            after=int(result.get('after', 0)),
            height=int(result.get('height', 0)),
        )

    async def is_at_bottom(self) -> bool:
        return bool(await self.page.evaluate(
            FEED_AT_BOTTOM_SCRIPT,
            {'selector': self.selectors.feed_container, 'tolerance': self.bottom_tolerance_px},
        ))


class FeedScroller:
    """
    Scroll/convergence state machine over a FeedDriver.

    Stop conditions, checked after every cycle in this order:
        1. item count reached the target
        2. too many consecutive cycles without growth
        3. container scrolled to the bottom and this cycle added nothing
        4. hard cap on scroll attempts
    A cycle that cannot find the feed container counts as a stagnant attempt.
    """

    def __init__(self,
                 driver: FeedDriver,
                 config: ScrapingConfig,
                 stagnation_threshold: Optional[int] = None,
                 sleep: Optional[Sleep] = None):
        self.driver = driver
        self.config = config
        self.stagnation_threshold = stagnation_threshold or config.stagnation_threshold
        self._sleep = sleep or asyncio.sleep
        self.state = FeedState()

    async def advance(self, target_count: int) -> FeedState:
        state = self.state
        if state.stopped:
            return state

        try:
            state.item_count = await self.driver.count_items()
        except Exception as e:
            logger.warning(f"Could not count feed items: {e}")

        logger.debug(f"📊 Attempt {state.scroll_attempts + 1}: {state.item_count}/{target_count} results")
        if state.item_count >= target_count:
            state.stop_reason = FeedStopReason.TARGET_REACHED
            logger.info(f"🎯 Target reached: {state.item_count}/{target_count} results")
            return state

        growth = None
        try:
            growth = await self._double_scroll(state.item_count)
        except Exception as e:
            logger.warning(f"❌ Scroll error: {e}")

        state.scroll_attempts += 1
        if growth is not None and growth > 0:
            state.consecutive_stagnant_attempts = 0
            state.last_growth = growth
            logger.debug(f"🎉 Loaded {growth} new results! Total: {state.item_count}")
        else:
            state.consecutive_stagnant_attempts += 1
            state.last_growth = 0
            logger.debug("⏸️ No new results this round")

        state.at_bottom = False
        if growth is not None:
            try:
                state.at_bottom = await self.driver.is_at_bottom()
            except Exception as e:
                logger.debug(f"Bottom check failed: {e}")

        self._apply_stop_conditions(target_count, scrolled=growth is not None)
        return state

    async def run(self, target_count: int) -> FeedState:
        """Advance until a stop condition is hit"""
        state = await self.advance(target_count)
        while not state.stopped:
            state = await self.advance(target_count)
        return state

    async def _double_scroll(self, count_before: int) -> Optional[int]:
        """Run both scroll stages; returns item growth, or None when the feed is missing"""
        first = await self.driver.scroll_feed(self.config.primary_scroll_offset)
        if first is None:
            logger.warning("❌ Scroll failed: no feed container found")
            return None

        await self._sleep(self.config.scroll_stage_delay)
        second = await self.driver.scroll_feed(self.config.secondary_scroll_offset)
        after = second.after if second else first.after
        logger.debug(f"✅ Double scroll: {first.before} → {after}")

        await self._sleep(self.config.scroll_delay)
        new_count = await self.driver.count_items()
        self.state.item_count = new_count
        return new_count - count_before

    def _apply_stop_conditions(self, target_count: int, scrolled: bool) -> None:
        state = self.state
        if state.item_count >= target_count:
            state.stop_reason = FeedStopReason.TARGET_REACHED
            logger.info(f"🎯 Target reached: {state.item_count}/{target_count} results")
        elif state.consecutive_stagnant_attempts >= self.stagnation_threshold:
            state.stop_reason = FeedStopReason.STAGNATED
            logger.warning(f"🛑 Feed stopped growing after {state.consecutive_stagnant_attempts} attempts")
        elif scrolled and state.at_bottom and state.last_growth == 0:
            state.stop_reason = FeedStopReason.END_OF_FEED
            logger.info("🏁 Reached bottom of results")
        elif state.scroll_attempts >= self.config.max_scroll_attempts:
            state.stop_reason = FeedStopReason.MAX_ATTEMPTS
            logger.warning(f"🛑 Scroll attempt limit reached ({state.scroll_attempts})")
