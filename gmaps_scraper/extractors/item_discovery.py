from typing import Iterable, List

from loguru import logger

from gmaps_scraper.config import GMapsSelectors
from gmaps_scraper.data_models.models import DiscoveredItem

PLACE_PATH_MARKER = '/place/'

COLLECT_HREFS_SCRIPT = "links => links.map(link => link.href)"


def build_discovered_items(urls: Iterable[str], target_count: int) -> List[DiscoveredItem]:
    """
    Keep place links in DOM order, drop duplicates (first occurrence wins),
    truncate to target_count and number them from 1.
    """
    seen = set()
    items: List[DiscoveredItem] = []
    for url in urls:
        if not url or PLACE_PATH_MARKER not in url or url in seen:
            continue
        seen.add(url)
        items.append(DiscoveredItem(url=url, ordinal=len(items) + 1))
        if len(items) >= target_count:
            break
    return items


async def collect_place_urls(page, selectors: GMapsSelectors) -> List[str]:
    """All place link hrefs currently materialized in the feed, in DOM order"""
    hrefs = await page.eval_on_selector_all(selectors.result_links, COLLECT_HREFS_SCRIPT)
    return [href for href in hrefs or [] if isinstance(href, str)]


class ItemDiscovery:
    """Snapshots the loaded feed into an ordered list of detail URLs"""

    def __init__(self, selectors: GMapsSelectors):
        self.selectors = selectors

    async def snapshot(self, page, target_count: int) -> List[DiscoveredItem]:
        urls = await collect_place_urls(page, self.selectors)
        items = build_discovered_items(urls, target_count)
        logger.info(f"🔗 Found {len(items)} business URLs to process ({len(urls)} links in feed)")
        return items
