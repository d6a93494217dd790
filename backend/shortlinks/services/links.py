import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..core.errors import (
    AliasConflict,
    DuplicateKey,
    GenerationExhausted,
    LinkValidationError,
    NotFound,
    QuotaExceeded,
)
from ..core.security import MAX_PASSWORD_BYTES, PasswordHasher
from ..core.shortener import CodeGenerator
from ..core.store import LinkStore, domain_key
from ..database import to_naive_utc, utcnow
from ..models import Link
from ..schemas.link import LinkCreate, LinkUpdate
from ..utils.validators import is_spam_url, is_valid_domain, is_valid_url

logger = logging.getLogger(__name__)


class LinkService:
    """Create and manage links on behalf of their owners"""

    def __init__(
        self,
        store: LinkStore,
        generator: CodeGenerator,
        hasher: PasswordHasher,
        daily_link_limit: int = 0,
        block_spam: bool = True,
        default_domain: str = "",
        clock: Callable[[], datetime] = utcnow,
        max_put_attempts: int = 3,
    ):
        self.store = store
        self.generator = generator
        self.hasher = hasher
        self.daily_link_limit = daily_link_limit
        self.block_spam = block_spam
        self.default_domain = domain_key(default_domain)
        self.clock = clock
        self.max_put_attempts = max_put_attempts

    def _validate_destination(self, url: Optional[str]) -> None:
        is_valid, error_msg = is_valid_url(url)
        if not is_valid:
            raise LinkValidationError(error_msg)

        if self.block_spam and is_spam_url(url):
            raise LinkValidationError("URL appears to be spam and cannot be shortened")

    def _hash_password(self, password: Optional[str]) -> Optional[str]:
        if not password:
            return None
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise LinkValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
        return self.hasher.hash(password)

    def _check_quota(self, owner_id: Optional[str], now: datetime) -> None:
        """Owner quota; anonymous callers are limited per IP at the HTTP layer"""
        if owner_id is None or self.daily_link_limit <= 0:
            return

        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        created_today = self.store.count_created_since(owner_id, day_start)

        if created_today >= self.daily_link_limit:
            logger.info(f"Owner {owner_id} reached the daily limit of {self.daily_link_limit} links")
            raise QuotaExceeded(
                f"Daily limit of {self.daily_link_limit} links reached"
            )

    def create_link(self, data: LinkCreate, owner_id: Optional[str] = None,
                    client_ip: Optional[str] = None) -> Link:
        """
        Create a short link.

        Raises:
            LinkValidationError: Destination, alias, expiry or budget is invalid
            AliasConflict: The custom alias is taken
            QuotaExceeded: The owner reached the daily limit
            GenerationExhausted: No free short code could be found
        """
        self._validate_destination(data.destination_url)

        now = self.clock()

        expires_at = to_naive_utc(data.expires_at)
        if expires_at is not None and expires_at <= now:
            raise LinkValidationError("Expiration time must be in the future")

        max_clicks = data.max_clicks
        if data.is_one_time:
            if max_clicks not in (None, 1):
                raise LinkValidationError("One-time links accept exactly one click")
            max_clicks = 1
        elif max_clicks is not None and max_clicks < 1:
            raise LinkValidationError("maxClicks must be at least 1")

        domain = domain_key(data.domain)
        if domain == self.default_domain:
            domain = ""
        if domain and not is_valid_domain(domain):
            raise LinkValidationError(f"Invalid domain: {data.domain}")

        self._check_quota(owner_id, now)

        custom_alias = data.custom_alias or None
        password_hash = self._hash_password(data.password)

        for attempt in range(self.max_put_attempts):
            short_code = self.generator.generate(custom_alias=custom_alias, domain=domain)

            link = Link(
                short_code=short_code,
                domain=domain,
                destination_url=data.destination_url,
                owner_id=owner_id,
                created_by=client_ip,
                password_hash=password_hash,
                expires_at=expires_at,
                max_clicks=max_clicks,
                click_count=0,
                unique_clicks_count=0,
                is_one_time=data.is_one_time,
                is_active=True,
                created_at=now,
                updated_at=now,
            )

            try:
                self.store.put(link)
            except DuplicateKey:
                if custom_alias is not None:
                    raise AliasConflict(f"Alias '{custom_alias}' is already taken")
                logger.debug(f"Generated code {short_code} was taken concurrently, retrying")
                continue

            logger.info(f"Created short link {domain or '*'}/{short_code} for owner {owner_id or 'anonymous'}")
            return link

        raise GenerationExhausted()

    def get_link(self, owner_id: str, short_code: str) -> Link:
        """Owner's link; links of other owners are reported as not found"""
        link = self.store.get_by_owner(owner_id, short_code)
        if link is None:
            raise NotFound()
        return link

    def list_links(self, owner_id: str, skip: int = 0, limit: int = 100,
                   active_only: bool = False) -> List[Link]:
        return self.store.list_by_owner(owner_id, skip=skip, limit=limit, active_only=active_only)

    def update_link(self, owner_id: str, short_code: str, changes: LinkUpdate) -> Link:
        """
        Apply the fields present in ``changes`` to an active link.

        Raises:
            NotFound: The owner has no such link
            LinkValidationError: The link is deactivated or a field is invalid
        """
        link = self.get_link(owner_id, short_code)
        if not link.is_active:
            raise LinkValidationError("Deactivated links cannot be changed")

        fields = changes.model_dump(exclude_unset=True)
        values = {}

        if "destination_url" in fields:
            self._validate_destination(fields["destination_url"])
            values["destination_url"] = fields["destination_url"]

        if "password" in fields:
            password = fields["password"]
            values["password_hash"] = self._hash_password(password)

        if "expires_at" in fields:
            expires_at = to_naive_utc(fields["expires_at"])
            if expires_at is not None and expires_at <= self.clock():
                raise LinkValidationError("Expiration time must be in the future")
            values["expires_at"] = expires_at

        if "max_clicks" in fields:
            max_clicks = fields["max_clicks"]
            if link.is_one_time:
                raise LinkValidationError("The click limit of a one-time link cannot be changed")
            if max_clicks is not None and max_clicks < max(1, link.click_count):
                raise LinkValidationError(
                    f"maxClicks must be at least {max(1, link.click_count)}"
                )
            values["max_clicks"] = max_clicks

        if not values:
            return link

        updated = self.store.update(link.id, **values)
        logger.info(f"Updated link {link.domain or '*'}/{short_code}: {sorted(values)}")
        return updated

    def deactivate_link(self, owner_id: str, short_code: str) -> None:
        """Soft-delete an owner's link. Idempotent."""
        link = self.get_link(owner_id, short_code)

        if link.is_active and self.store.deactivate(link.domain, link.short_code):
            logger.info(f"Deactivated link {link.domain or '*'}/{short_code}")
