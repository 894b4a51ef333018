"""
Anti-detection helpers for Google Maps scraping:
browser launch flags, desktop user agents and randomized pacing.
"""

import random
from typing import Any, Dict, Optional

from fake_useragent import UserAgent
from loguru import logger

from gmaps_scraper.config import ScrapingConfig

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36'
)

DEFAULT_VIEWPORT = {'width': 1366, 'height': 768}

PRODUCTION_BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-dev-shm-usage',
    '--disable-accelerated-2d-canvas',
    '--no-first-run',
    '--disable-gpu',
    '--disable-web-security',
    '--disable-features=VizDisplayCompositor',
]

DEVELOPMENT_BROWSER_ARGS = [
    '--disable-blink-features=AutomationControlled',
]


def get_browser_launch_options(config: ScrapingConfig) -> Dict[str, Any]:
    """Chromium launch options for the current environment"""
    if config.production:
        logger.info("🌐 Running in production - using container browser settings")
        return {'headless': True, 'args': list(PRODUCTION_BROWSER_ARGS)}

    logger.info("💻 Running in development mode")
    return {'headless': config.headless, 'args': list(DEVELOPMENT_BROWSER_ARGS)}


def pick_user_agent(config: ScrapingConfig) -> str:
    """Configured user agent, else a random Chrome one"""
    if config.user_agent:
        return config.user_agent
    try:
        return UserAgent().chrome
    except Exception as e:
        logger.warning(f"Random user agent unavailable, using default: {e}")
        return DEFAULT_USER_AGENT


def calculate_item_delay(base: float, jitter: float, rng: Optional[random.Random] = None) -> float:
    """Base delay plus uniform jitter, to space out detail page visits"""
    rng = rng or random
    return base + rng.uniform(0, jitter) if jitter > 0 else base
