"""
Field extractor for place detail pages.

Every field is looked up on its own. A lookup that matches nothing, or that
raises, yields NOT_FOUND for that field only; the rest of the record is still
extracted. Coordinates come from the '@lat,lng' part of the current URL and
are None when absent.
"""

import re
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from loguru import logger

from gmaps_scraper.config import GMapsSelectors
from gmaps_scraper.data_models.models import NOT_FOUND, BusinessRecord, Coordinates, utc_now

COORDINATES_PATTERN = re.compile(r'@(-?\d+\.\d+),(-?\d+\.\d+)')
PHONE_LABEL_PREFIX = 'Phone: '


def _isolated(field_name: str, lookup: Callable[[], Optional[str]]) -> str:
    try:
        value = lookup()
    except Exception as e:
        logger.debug(f"Lookup for '{field_name}' failed: {e}")
        return NOT_FOUND
    return value if value else NOT_FOUND


def _text(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    return element.get_text().strip()


def _href(soup: BeautifulSoup, selector: str, base_url: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None or not element.get('href'):
        return None
    return urljoin(base_url, element['href'])


def _phone_from_aria(soup: BeautifulSoup, selector: str) -> Optional[str]:
    element = soup.select_one(selector)
    if element is None:
        return None
    label = element.get('aria-label')
    if not label:
        return None
    return label.replace(PHONE_LABEL_PREFIX, '', 1).strip()


def parse_coordinates(url: str) -> Optional[Coordinates]:
    match = COORDINATES_PATTERN.search(url or '')
    if not match:
        return None
    return Coordinates(lat=float(match.group(1)), lng=float(match.group(2)))


def parse_business_html(html: str,
                        current_url: str,
                        query: str,
                        ordinal: int,
                        selectors: Optional[GMapsSelectors] = None,
                        extracted_at: Optional[datetime] = None) -> BusinessRecord:
    """Map a loaded detail page (HTML + address bar URL) to a BusinessRecord"""
    selectors = selectors or GMapsSelectors()
    soup = BeautifulSoup(html or '', 'html.parser')

    try:
        coordinates = parse_coordinates(current_url)
    except Exception as e:
        logger.debug(f"Coordinate parsing failed for {current_url}: {e}")
        coordinates = None

    return BusinessRecord(
        name=_isolated('name', lambda: _text(soup, selectors.business_name)),
        category=_isolated('category', lambda: _text(soup, selectors.business_category)),
        website=_isolated('website', lambda: _href(soup, selectors.website_link, current_url)),
        phone=_isolated('phone', lambda: _phone_from_aria(soup, selectors.phone_number)),
        address=_isolated('address', lambda: _text(soup, selectors.address)),
        rating=_isolated('rating', lambda: _text(soup, selectors.rating)),
        review_count=_isolated('review_count', lambda: _text(soup, selectors.review_count)),
        hours=_isolated('hours', lambda: _text(soup, selectors.hours)),
        price_level=_isolated('price_level', lambda: _text(soup, selectors.price_level)),
        coordinates=coordinates,
        search_query=query,
        result_ordinal=ordinal,
        source_url=current_url,
        extracted_at=extracted_at or utc_now(),
    )


class FieldExtractor:
    """Reads the current page of a live session and extracts one record"""

    def __init__(self, selectors: Optional[GMapsSelectors] = None):
        self.selectors = selectors or GMapsSelectors()

    async def extract(self, page, query: str, ordinal: int) -> BusinessRecord:
        html = await page.content()
        return parse_business_html(html, page.url, query, ordinal, self.selectors)
