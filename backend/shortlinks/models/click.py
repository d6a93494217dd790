from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from ..database import Base, utcnow


class Click(Base):
    """Click statistics model, written once per recorded click event"""
    __tablename__ = "clicks"

    id = Column(Integer, primary_key=True, index=True)
    link_id = Column(Integer, ForeignKey("links.id", ondelete="CASCADE"), nullable=False)
    short_code = Column(String(20), nullable=False)
    domain = Column(String(255), nullable=False, default="")
    clicked_at = Column(DateTime, nullable=False, default=utcnow)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    user_agent = Column(String(512), nullable=True)
    referer = Column(String(512), nullable=True)
    referer_domain = Column(String(255), nullable=True)
    country_code = Column(String(2), nullable=True)
    country_name = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    is_unique = Column(Boolean, nullable=False, default=True)
    is_qr_click = Column(Boolean, nullable=False, default=False)

    # Relationship with link
    link = relationship("Link", back_populates="clicks")

    __table_args__ = (
        Index('idx_clicks_link_time', link_id, clicked_at),
        Index('idx_clicks_link_ip', link_id, ip_address),
    )

    def __repr__(self):
        return f"<Click {self.id} for link {self.link_id}>"
