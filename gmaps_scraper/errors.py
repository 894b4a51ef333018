"""
Error taxonomy for Google Maps extraction runs.

Only VALIDATION, NAVIGATION and ZERO_PROGRESS abort a run. POOL_INIT is
downgraded to a sequential fallback and per-item errors end up in RunStats.
"""

import asyncio
from enum import Enum
from typing import Optional


class ErrorType(Enum):
    """Types of errors that can occur"""
    VALIDATION = "validation"
    NAVIGATION = "navigation"
    ZERO_PROGRESS = "zero_progress"
    POOL_INIT = "pool_init"
    TIMEOUT = "timeout"
    NETWORK_ERROR = "network_error"
    NO_DATA = "no_data"
    UNKNOWN = "unknown"


class GMapsScraperError(Exception):
    """Base exception for Google Maps scraper errors"""

    error_type = ErrorType.UNKNOWN

    def __init__(self, message: str, error_type: Optional[ErrorType] = None):
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type


class RequestValidationError(GMapsScraperError):
    """Bad query or result count, raised before any browser work"""
    error_type = ErrorType.VALIDATION


class NavigationError(GMapsScraperError):
    """Search results could not be reached or the feed never appeared"""
    error_type = ErrorType.NAVIGATION


class ZeroProgressError(GMapsScraperError):
    """The feed loaded but produced no items or no place links"""
    error_type = ErrorType.ZERO_PROGRESS


class PoolInitError(GMapsScraperError):
    """Worker pages for parallel mode could not be opened"""
    error_type = ErrorType.POOL_INIT


def classify_error(exception: BaseException) -> ErrorType:
    """Classify a per-item exception for failure statistics"""
    if isinstance(exception, GMapsScraperError):
        return exception.error_type
    if isinstance(exception, asyncio.TimeoutError):
        return ErrorType.TIMEOUT

    error_message = str(exception).lower()
    if type(exception).__name__ == 'TimeoutError' or "timeout" in error_message or "timed out" in error_message:
        return ErrorType.TIMEOUT
    if any(err in error_message for err in [
        "net::err_", "connection", "network", "name not resolved",
        "target closed", "browser has been closed",
    ]):
        return ErrorType.NETWORK_ERROR
    return ErrorType.UNKNOWN
