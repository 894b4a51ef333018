"""
Feed scroller convergence: every stop condition, the order they are
checked in, and the double-scroll pacing.
"""

import asyncio

import pytest

from gmaps_scraper.data_models.models import FeedStopReason
from gmaps_scraper.scrapers.feed_scroller import (
    FEED_AT_BOTTOM_SCRIPT,
    SCROLL_FEED_SCRIPT,
    FeedScroller,
    PlaywrightFeedDriver,
)
from tests.fakes import SELECTORS, FakeFeedDriver


def run_until_stopped(scroller: FeedScroller, target: int):
    return asyncio.run(scroller.run(target))


# ---------------------------------------------------------------------------
# Stop conditions
# ---------------------------------------------------------------------------

class TestStopConditions:
    def test_target_already_loaded_needs_no_scroll(self, config, sleep):
        driver = FakeFeedDriver([12])
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 10)

        assert state.stop_reason == FeedStopReason.TARGET_REACHED
        assert state.scroll_attempts == 0
        assert driver.scroll_calls == 0

    def test_scrolls_until_target_reached(self, config, sleep):
        driver = FakeFeedDriver([5, 10, 15, 20])
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 20)

        assert state.stop_reason == FeedStopReason.TARGET_REACHED
        assert state.item_count == 20
        assert state.scroll_attempts == 3

    def test_stagnation_after_consecutive_empty_cycles(self, config, sleep):
        driver = FakeFeedDriver([5, 8])
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 50)

        assert state.stop_reason == FeedStopReason.STAGNATED
        assert state.item_count == 8
        assert state.scroll_attempts == 3
        assert state.consecutive_stagnant_attempts == 2

    def test_custom_stagnation_threshold(self, config, sleep):
        driver = FakeFeedDriver([5])
        state = run_until_stopped(FeedScroller(driver, config, stagnation_threshold=3, sleep=sleep), 50)

        assert state.stop_reason == FeedStopReason.STAGNATED
        assert state.scroll_attempts == 3

    def test_bottom_without_growth_ends_feed(self, config, sleep):
        driver = FakeFeedDriver([5], bottom_when_exhausted=True)
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 50)

        assert state.stop_reason == FeedStopReason.END_OF_FEED
        assert state.scroll_attempts == 1
        assert state.at_bottom is True

    def test_bottom_with_growth_keeps_scrolling(self, config, sleep):
        driver = FakeFeedDriver([5, 9], bottom_when_exhausted=True)
        scroller = FeedScroller(driver, config, sleep=sleep)

        state = asyncio.run(scroller.advance(50))
        assert state.at_bottom is True
        assert state.last_growth == 4
        assert not state.stopped

        state = run_until_stopped(scroller, 50)
        assert state.stop_reason == FeedStopReason.END_OF_FEED
        assert state.item_count == 9

    def test_hard_cap_on_attempts(self, config, sleep):
        config = config.model_copy(update={'max_scroll_attempts': 4})
        driver = FakeFeedDriver(list(range(1, 40)))
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 100)

        assert state.stop_reason == FeedStopReason.MAX_ATTEMPTS
        assert state.scroll_attempts == 4
        assert state.item_count == 5

    def test_target_wins_over_other_conditions(self, config, sleep):
        driver = FakeFeedDriver([5, 10], bottom_when_exhausted=True)
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 10)

        assert state.stop_reason == FeedStopReason.TARGET_REACHED


# ---------------------------------------------------------------------------
# Failed scroll cycles
# ---------------------------------------------------------------------------

class TestFailedCycles:
    def test_missing_container_counts_as_stagnant_attempt(self, config, sleep):
        driver = FakeFeedDriver([5], bottom_when_exhausted=True, missing_container=True)
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 50)

        assert state.stop_reason == FeedStopReason.STAGNATED
        assert state.scroll_attempts == 2
        assert state.at_bottom is False
        assert driver.bottom_checks == 0

    def test_scroll_exception_does_not_escape(self, config, sleep):
        driver = FakeFeedDriver([3], scroll_error=RuntimeError("Execution context was destroyed"))
        state = run_until_stopped(FeedScroller(driver, config, sleep=sleep), 50)

        assert state.stop_reason == FeedStopReason.STAGNATED
        assert state.item_count == 3

    def test_advance_after_stop_is_a_no_op(self, config, sleep):
        driver = FakeFeedDriver([5])
        scroller = FeedScroller(driver, config, sleep=sleep)
        state = run_until_stopped(scroller, 50)
        calls = driver.scroll_calls

        again = asyncio.run(scroller.advance(50))

        assert again is state
        assert driver.scroll_calls == calls


# ---------------------------------------------------------------------------
# Pacing and counters
# ---------------------------------------------------------------------------

class TestPacing:
    def test_double_scroll_waits_between_stages_and_before_recount(self, config, sleep):
        driver = FakeFeedDriver([5, 10])
        asyncio.run(FeedScroller(driver, config, sleep=sleep).advance(50))

        assert driver.scroll_calls == 2
        assert sleep.calls == [config.scroll_stage_delay, config.scroll_delay]

    def test_attempts_and_count_never_decrease(self, config, sleep):
        driver = FakeFeedDriver([2, 4, 4, 7, 7, 7])
        scroller = FeedScroller(driver, config, stagnation_threshold=5, sleep=sleep)
        attempts, counts = [], []

        async def _run():
            state = await scroller.advance(100)
            while not state.stopped:
                attempts.append(state.scroll_attempts)
                counts.append(state.item_count)
                state = await scroller.advance(100)

        asyncio.run(_run())

        assert attempts == sorted(attempts)
        assert counts == sorted(counts)
        assert scroller.state.scroll_attempts <= config.max_scroll_attempts


# ---------------------------------------------------------------------------
# Playwright driver wiring
# ---------------------------------------------------------------------------

class _ScriptPage:
    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    async def evaluate(self, script, arg):
        self.calls.append((script, arg))
        return self.results.pop(0)


class TestPlaywrightFeedDriver:
    def test_scroll_passes_selector_and_offset(self):
        page = _ScriptPage([{'before': 0, 'after': 800, 'height': 4000}])
        driver = PlaywrightFeedDriver(page, SELECTORS)

        position = asyncio.run(driver.scroll_feed(800))

        assert position.after == 800
        assert page.calls == [(SCROLL_FEED_SCRIPT, {'selector': '[role="feed"]', 'offset': 800})]

    def test_scroll_without_container_returns_none(self):
        driver = PlaywrightFeedDriver(_ScriptPage([None]), SELECTORS)
        assert asyncio.run(driver.scroll_feed(800)) is None

    @pytest.mark.parametrize("raw,expected", [(True, True), (False, False), (None, False)])
    def test_bottom_check_uses_tolerance(self, raw, expected):
        page = _ScriptPage([raw])
        driver = PlaywrightFeedDriver(page, SELECTORS, bottom_tolerance_px=100)

        assert asyncio.run(driver.is_at_bottom()) is expected
        assert page.calls[0] == (FEED_AT_BOTTOM_SCRIPT, {'selector': '[role="feed"]', 'tolerance': 100})
