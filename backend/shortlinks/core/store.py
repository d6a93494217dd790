"""Durable link store keyed by (domain, short code).

Every mutation that other requests can race on is a single conditional
UPDATE, so click budgets and one-time deactivation hold across replicas
without any in-process locking.
"""

import functools
import logging
from collections import Counter
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator, List, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from ..database import utcnow
from ..models import Click, CodeSequence, Link
from .errors import DuplicateKey, LinkValidationError, Unavailable

logger = logging.getLogger(__name__)

UNIQUE_CLICK_WINDOW = timedelta(hours=24)


def domain_key(domain: Optional[str]) -> str:
    """Storage key for a domain; the shared default domain is the empty string"""
    return (domain or "").strip().lower()


def _translate_errors(method):
    """Surface connectivity failures as Unavailable"""
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except OperationalError as e:
            logger.warning(f"Link store call {method.__name__} failed: {e}")
            raise Unavailable() from e
    return wrapper


class LinkStore:
    """SQLAlchemy-backed link store"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @contextmanager
    def read_session(self) -> Iterator[Session]:
        """Session for ad-hoc read queries such as analytics"""
        try:
            with self.session_factory() as session:
                yield session
        except OperationalError as e:
            logger.warning(f"Link store read failed: {e}")
            raise Unavailable() from e

    @staticmethod
    def _find_active(session: Session, domain: str, short_code: str) -> Optional[Link]:
        return session.execute(
            select(Link).where(
                Link.domain == domain,
                Link.short_code == short_code,
                Link.is_active.is_(True)
            )
        ).scalars().first()

    @_translate_errors
    def put(self, link: Link) -> Link:
        """
        Insert a new link.

        Raises:
            DuplicateKey: An active link already holds the key
        """
        link.domain = domain_key(link.domain)

        with self.session_factory() as session:
            if self._find_active(session, link.domain, link.short_code) is not None:
                raise DuplicateKey(link.domain, link.short_code)

            session.add(link)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                # A concurrent insert took the key between the check and the commit
                if self._find_active(session, link.domain, link.short_code) is not None:
                    raise DuplicateKey(link.domain, link.short_code) from e
                raise

        logger.debug(f"Stored link {link!r}")
        return link

    @_translate_errors
    def get_active(self, domain: Optional[str], short_code: str) -> Optional[Link]:
        """
        Get an active link by key.

        When the domain has no record of its own for the code, the record on
        the shared default domain is returned instead.
        """
        key = domain_key(domain)

        with self.session_factory() as session:
            link = self._find_active(session, key, short_code)
            if link is None and key:
                link = self._find_active(session, "", short_code)
            return link

    @_translate_errors
    def exists(self, domain: Optional[str], short_code: str) -> bool:
        """Check whether an active link holds exactly this key"""
        with self.session_factory() as session:
            return self._find_active(session, domain_key(domain), short_code) is not None

    @_translate_errors
    def increment_clicks(self, domain: Optional[str], short_code: str,
                         now: Optional[datetime] = None) -> bool:
        """
        Atomically count one click against the link.

        The increment applies only while the link is active, unexpired and
        under its click budget. One-time links are deactivated by the same
        statement.

        Returns:
            True if the click was counted, False if the link could not take it
        """
        now = now or utcnow()

        stmt = (
            update(Link)
            .where(
                Link.domain == domain_key(domain),
                Link.short_code == short_code,
                Link.is_active.is_(True),
                or_(Link.expires_at.is_(None), Link.expires_at > now),
                or_(Link.max_clicks.is_(None), Link.click_count < Link.max_clicks),
            )
            .values(
                click_count=Link.click_count + 1,
                is_active=case((Link.is_one_time.is_(True), False), else_=Link.is_active),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

        with self.session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    @_translate_errors
    def deactivate(self, domain: Optional[str], short_code: str) -> bool:
        """
        Soft-delete the active link holding the key. Idempotent.

        Returns:
            True if a link was deactivated by this call
        """
        stmt = (
            update(Link)
            .where(
                Link.domain == domain_key(domain),
                Link.short_code == short_code,
                Link.is_active.is_(True),
            )
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        with self.session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount > 0

    @_translate_errors
    def get_by_id(self, link_id: int) -> Optional[Link]:
        with self.session_factory() as session:
            return session.get(Link, link_id)

    @_translate_errors
    def get_by_owner(self, owner_id: str, short_code: str) -> Optional[Link]:
        """Owner's link with the given code, the active one first"""
        with self.session_factory() as session:
            return session.execute(
                select(Link)
                .where(Link.owner_id == owner_id, Link.short_code == short_code)
                .order_by(Link.is_active.desc(), Link.created_at.desc())
                .limit(1)
            ).scalars().first()

    @_translate_errors
    def list_by_owner(self, owner_id: str, skip: int = 0, limit: int = 100,
                      active_only: bool = False) -> List[Link]:
        query = select(Link).where(Link.owner_id == owner_id)

        if active_only:
            query = query.where(Link.is_active.is_(True))

        query = query.order_by(Link.created_at.desc(), Link.id.desc()).offset(skip).limit(limit)

        with self.session_factory() as session:
            return list(session.execute(query).scalars().all())

    @_translate_errors
    def count_created_since(self, owner_id: str, since: datetime) -> int:
        with self.session_factory() as session:
            return session.execute(
                select(func.count(Link.id)).where(
                    Link.owner_id == owner_id,
                    Link.created_at >= since
                )
            ).scalar_one()

    @_translate_errors
    def update(self, link_id: int, **changes) -> Link:
        """
        Update mutable link fields.

        Raises:
            LinkValidationError: The change violates a link constraint
        """
        with self.session_factory() as session:
            link = session.get(Link, link_id)
            for field, value in changes.items():
                setattr(link, field, value)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise LinkValidationError("Update conflicts with the link's current state") from e
            return link

    @_translate_errors
    def next_sequence(self) -> int:
        """Issue the next ticket for counter-based codes"""
        with self.session_factory() as session:
            ticket = CodeSequence()
            session.add(ticket)
            session.commit()
            return ticket.id

    @_translate_errors
    def add_clicks(self, clicks: List[Click]) -> int:
        """
        Persist click rows in one transaction.

        A click is unique when its IP has no earlier click on the same link
        inside the last 24 hours; unique clicks also bump the link's
        unique counter.

        Returns:
            Number of clicks written
        """
        unique_by_link = Counter()

        with self.session_factory() as session:
            for click in clicks:
                since = click.clicked_at - UNIQUE_CLICK_WINDOW
                seen = session.execute(
                    select(Click.id).where(
                        Click.link_id == click.link_id,
                        Click.ip_address == click.ip_address,
                        Click.clicked_at >= since
                    ).limit(1)
                ).first()

                click.is_unique = seen is None
                session.add(click)
                session.flush()

                if click.is_unique:
                    unique_by_link[click.link_id] += 1

            for link_id, count in unique_by_link.items():
                session.execute(
                    update(Link)
                    .where(Link.id == link_id)
                    .values(unique_clicks_count=Link.unique_clicks_count + count)
                    .execution_options(synchronize_session=False)
                )

            session.commit()

        return len(clicks)

    @_translate_errors
    def ping(self) -> bool:
        with self.session_factory() as session:
            session.execute(select(1))
        return True
