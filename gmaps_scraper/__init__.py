"""
Google Maps business scraper package
"""

from .config import GMapsSelectors, ScrapingConfig, load_config
from .data_models.models import (
    NOT_FOUND,
    BusinessRecord,
    ExtractionMode,
    ExtractionRequest,
    ExtractionResult,
    RunStats,
)
from .errors import (
    GMapsScraperError,
    NavigationError,
    PoolInitError,
    RequestValidationError,
    ZeroProgressError,
)
from .orchestrator import GMapsExtractionOrchestrator, scrape_gmaps_businesses

__all__ = [
    'NOT_FOUND',
    'BusinessRecord',
    'ExtractionMode',
    'ExtractionRequest',
    'ExtractionResult',
    'RunStats',
    'GMapsSelectors',
    'ScrapingConfig',
    'load_config',
    'GMapsScraperError',
    'NavigationError',
    'PoolInitError',
    'RequestValidationError',
    'ZeroProgressError',
    'GMapsExtractionOrchestrator',
    'scrape_gmaps_businesses',
]
