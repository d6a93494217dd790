"""Short code resolution.

A request walks LOOKUP, CHECK_ACTIVE, CHECK_EXPIRY, CHECK_CLICK_BUDGET and
CHECK_PASSWORD in order and ends in GRANT or a denial. The grant itself is
the store's conditional click increment, so the pre-checks only decide which
denial a caller sees; they never authorize a click on their own.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from ..database import utcnow
from ..models import Link
from .errors import Gone, NotFound, PasswordRequired, ResolutionError
from .store import LinkStore

logger = logging.getLogger(__name__)


class ResolutionState(str, enum.Enum):
    LOOKUP = "lookup"
    CHECK_ACTIVE = "check_active"
    CHECK_EXPIRY = "check_expiry"
    CHECK_CLICK_BUDGET = "check_click_budget"
    CHECK_PASSWORD = "check_password"
    GRANT = "grant"


@dataclass(frozen=True)
class Resolution:
    """A granted resolution"""
    destination_url: str
    link: Link
    granted_at: datetime

    @property
    def short_code(self) -> str:
        return self.link.short_code

    @property
    def domain(self) -> str:
        return self.link.domain


def is_expired(link: Link, now: datetime) -> bool:
    return link.expires_at is not None and link.expires_at <= now


def is_exhausted(link: Link) -> bool:
    return link.max_clicks is not None and link.click_count >= link.max_clicks


class ResolutionEngine:
    """Map (domain, short code, password) to a destination URL"""

    def __init__(
        self,
        store: LinkStore,
        verify_password: Callable[[str, str], bool],
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.verify_password = verify_password
        self.clock = clock

    def _deny(self, state: ResolutionState, error: ResolutionError,
              domain: Optional[str], short_code: str) -> ResolutionError:
        logger.debug(f"Denied {domain or '*'}/{short_code} at {state.value}: {error.error_code}")
        error.state = state
        return error

    def resolve(self, domain: Optional[str], short_code: str,
                password: Optional[str] = None) -> Resolution:
        """
        Resolve a short code and count the click.

        Raises:
            NotFound: No active link holds the code
            Gone: The link expired or its click budget is spent
            PasswordRequired: The password is missing or wrong
        """
        now = self.clock()

        link = self.store.get_active(domain, short_code)
        if link is None:
            raise self._deny(ResolutionState.LOOKUP, NotFound(), domain, short_code)

        if not link.is_active:
            raise self._deny(ResolutionState.CHECK_ACTIVE, NotFound(), domain, short_code)

        if is_expired(link, now):
            raise self._deny(ResolutionState.CHECK_EXPIRY, Gone(), domain, short_code)

        if is_exhausted(link):
            raise self._deny(
                ResolutionState.CHECK_CLICK_BUDGET,
                Gone("Link has reached its click limit"),
                domain, short_code
            )

        if link.password_hash is not None:
            if not password or not self.verify_password(password, link.password_hash):
                raise self._deny(ResolutionState.CHECK_PASSWORD, PasswordRequired(), domain, short_code)

        if not self.store.increment_clicks(link.domain, link.short_code, now=now):
            # Another request changed the link after it was read
            raise self._deny(ResolutionState.GRANT, self._refused_error(link), domain, short_code)

        logger.debug(f"Granted {link.domain or '*'}/{link.short_code}")
        return Resolution(destination_url=link.destination_url, link=link, granted_at=now)

    def _refused_error(self, link: Link) -> ResolutionError:
        current = self.store.get_by_id(link.id)
        if current is None or not current.is_active:
            return NotFound()
        if is_exhausted(current):
            return Gone("Link has reached its click limit")
        return Gone()
