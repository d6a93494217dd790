from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index, CheckConstraint
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class Link(Base):
    """Short link model"""
    __tablename__ = "links"

    id = Column(Integer, primary_key=True, index=True)
    short_code = Column(String(20), nullable=False)
    # Empty string is the shared default domain
    domain = Column(String(255), nullable=False, default="")
    destination_url = Column(String(2048), nullable=False)
    owner_id = Column(String(100), nullable=True, index=True)
    created_by = Column(String(100), nullable=True)  # client IP
    password_hash = Column(String(255), nullable=True)
    expires_at = Column(DateTime, nullable=True)
    max_clicks = Column(Integer, nullable=True)
    click_count = Column(Integer, nullable=False, default=0)
    unique_clicks_count = Column(Integer, nullable=False, default=0)
    is_one_time = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationship with clicks
    clicks = relationship("Click", back_populates="link", cascade="all, delete-orphan")

    __table_args__ = (
        # A code may be reused on a domain only after the previous link is deactivated
        Index(
            'uix_links_domain_code_active', domain, short_code,
            unique=True,
            sqlite_where=is_active.is_(True),
            postgresql_where=is_active.is_(True),
        ),
        Index('idx_links_domain_code', domain, short_code),
        CheckConstraint('click_count >= 0', name='ck_links_click_count_positive'),
        CheckConstraint(
            'max_clicks IS NULL OR click_count <= max_clicks',
            name='ck_links_click_budget'
        ),
        CheckConstraint('NOT is_one_time OR max_clicks = 1', name='ck_links_one_time_budget'),
    )

    @property
    def is_password_protected(self) -> bool:
        return self.password_hash is not None

    def __repr__(self):
        return f"<Link {self.domain or '*'}/{self.short_code} -> {self.destination_url}>"
