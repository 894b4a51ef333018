import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()

SEARCH_URL_TEMPLATE = 'https://www.google.com/maps/search/{query}'
MAX_RESULTS_LIMIT = 500
MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class GMapsSelectors:
    """DOM selectors for the results feed and the place detail view"""
    feed_container: str = '[role="feed"]'
    result_container: str = '.Nv2PK'
    result_links: str = 'a[href*="/place/"]'
    business_name: str = 'h1.DUwDvf.lfPIob'
    business_category: str = 'button.DkEaL'
    website_link: str = 'a[data-item-id="authority"]'
    phone_number: str = 'button[aria-label^="Phone:"]'
    address: str = 'button[data-item-id="address"]'
    rating: str = 'div.F7nice span[aria-hidden="true"]'
    review_count: str = 'button[aria-label*="reviews"]'
    hours: str = 'div[aria-label*="Hours"]'
    price_level: str = 'span[aria-label*="Price"]'


class ScrapingConfig(BaseModel):
    """Configuration for Google Maps scraping runs (delays are in seconds)"""
    headless: bool = Field(default=True, description="Run Chromium without a window")
    production: bool = Field(default=False, description="Use container-friendly browser flags")
    user_agent: Optional[str] = Field(default=None, description="Fixed user agent; random desktop UA when unset")

    concurrency_limit: int = Field(default=2, ge=1, le=MAX_CONCURRENCY,
                                   description="Worker pages per batch in parallel mode")
    batch_delay: float = Field(default=0.0, ge=0, description="Pause between concurrent batches")

    navigation_timeout_ms: int = Field(default=30000, description="Timeout for the search results navigation")
    navigation_attempts: int = Field(default=2, ge=1, description="Tries for the search results navigation")
    navigation_retry_max_wait: float = Field(default=8.0, ge=0, description="Cap on the backoff between search navigation tries")
    feed_wait_timeout_ms: int = Field(default=20000, description="Timeout waiting for the feed container")
    detail_timeout_ms: int = Field(default=45000, description="Timeout for a place detail navigation")
    detail_wait_timeout_ms: int = Field(default=10000, description="Wait for the business name (sequential)")
    concurrent_detail_wait_timeout_ms: int = Field(default=15000, description="Wait for the business name (parallel)")

    initial_delay: float = Field(default=3.0, ge=0, description="Settle time after the feed appears")
    concurrent_initial_delay: float = Field(default=1.0, ge=0)
    detail_settle_delay: float = Field(default=1.5, ge=0, description="Settle time after the detail view loads")
    concurrent_detail_settle_delay: float = Field(default=1.0, ge=0)
    item_delay: float = Field(default=3.0, ge=0, description="Base pause between sequential items")
    item_delay_jitter: float = Field(default=1.0, ge=0, description="Random extra pause between sequential items")

    max_scroll_attempts: int = Field(default=10, ge=1)
    scroll_delay: float = Field(default=2.5, ge=0, description="Wait after a scroll before re-counting")
    scroll_stage_delay: float = Field(default=0.5, ge=0, description="Gap between the two scroll stages")
    primary_scroll_offset: int = Field(default=800, description="First stage offset, triggers lazy loading")
    secondary_scroll_offset: int = Field(default=200, description="Second stage offset, reveals new items")
    bottom_tolerance_px: int = Field(default=100, ge=0)
    stagnation_threshold: int = Field(default=2, ge=1)
    concurrent_stagnation_threshold: int = Field(default=3, ge=1)

    request_timeout_seconds: float = Field(default=900.0, gt=0, description="Caller-side timeout for one run")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# Environment variable -> config field
ENV_OVERRIDES = {
    'GMAPS_CONCURRENCY': 'concurrency_limit',
    'GMAPS_BATCH_DELAY': 'batch_delay',
    'GMAPS_ITEM_DELAY': 'item_delay',
    'GMAPS_INITIAL_DELAY': 'initial_delay',
    'GMAPS_SCROLL_DELAY': 'scroll_delay',
    'GMAPS_MAX_SCROLL_ATTEMPTS': 'max_scroll_attempts',
    'GMAPS_DETAIL_TIMEOUT_MS': 'detail_timeout_ms',
    'GMAPS_NAVIGATION_ATTEMPTS': 'navigation_attempts',
    'GMAPS_REQUEST_TIMEOUT': 'request_timeout_seconds',
    'GMAPS_USER_AGENT': 'user_agent',
}


def load_config(**overrides: Any) -> ScrapingConfig:
    """
    Build a ScrapingConfig from defaults, GMAPS_* environment variables and
    explicit keyword overrides (highest priority).
    """
    values: Dict[str, Any] = {
        'headless': _env_bool('GMAPS_HEADLESS', True),
        'production': _env_bool('GMAPS_PRODUCTION', False) or os.getenv('NODE_ENV') == 'production' or bool(os.getenv('RENDER')),
    }
    for env_name, field_name in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip() != '':
            values[field_name] = raw.strip()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return ScrapingConfig(**values)


def get_config_summary(config: ScrapingConfig) -> Dict[str, Any]:
    """
    Return a summary of current configuration (without sensitive data)
    """
    return {
        'headless': config.headless,
        'production': config.production,
        'concurrency_limit': config.concurrency_limit,
        'max_scroll_attempts': config.max_scroll_attempts,
        'max_results_limit': MAX_RESULTS_LIMIT,
        'max_concurrency': MAX_CONCURRENCY,
        'request_timeout_seconds': config.request_timeout_seconds,
        'custom_user_agent': bool(config.user_agent),
    }
