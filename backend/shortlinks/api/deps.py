"""Access to the wired components and boundary-level store retries."""

import logging
import time
from typing import Callable, TypeVar

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..core.errors import Unavailable
from ..core.resolver import ResolutionEngine
from ..services.click_recorder import ClickRecorder
from ..services.links import LinkService

logger = logging.getLogger(__name__)

T = TypeVar("T")

limiter = Limiter(key_func=get_remote_address)


# Replaced by create_app with the value from its own Settings
rate_limit_per_hour = settings.RATE_LIMIT_PER_HOUR


def configure_rate_limit(per_hour: int) -> None:
    global rate_limit_per_hour
    rate_limit_per_hour = per_hour


def create_rate_limit() -> str:
    """Per-IP creation limit, evaluated on every request"""
    return f"{rate_limit_per_hour}/hour"


def get_link_service(request: Request) -> LinkService:
    return request.app.state.link_service


def get_resolver(request: Request) -> ResolutionEngine:
    return request.app.state.resolver


def get_recorder(request: Request) -> ClickRecorder:
    return request.app.state.recorder


def with_store_retry(request: Request, operation: Callable[[], T]) -> T:
    """
    Run a store-backed operation, retrying Unavailable with exponential backoff.

    The last Unavailable propagates once the attempts are used up.
    """
    app_settings = request.app.state.settings
    attempts = max(1, app_settings.STORE_RETRY_ATTEMPTS)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Unavailable:
            if attempt == attempts:
                logger.error(f"Link store unavailable after {attempts} attempts")
                raise
            delay = app_settings.STORE_RETRY_BASE_DELAY * 2 ** (attempt - 1)
            logger.warning(f"Link store unavailable (attempt {attempt}/{attempts}), retrying in {delay:.2f}s")
            time.sleep(delay)
