import pytest

from gmaps_scraper.config import ScrapingConfig
from tests.fakes import RecordingSleep


@pytest.fixture
def config() -> ScrapingConfig:
    return ScrapingConfig(
        initial_delay=3.0,
        concurrent_initial_delay=1.0,
        detail_settle_delay=1.5,
        concurrent_detail_settle_delay=1.0,
        item_delay=7.0,
        item_delay_jitter=1.0,
        max_scroll_attempts=10,
        scroll_delay=2.5,
        scroll_stage_delay=0.5,
        stagnation_threshold=2,
        concurrent_stagnation_threshold=3,
        concurrency_limit=2,
    )


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
