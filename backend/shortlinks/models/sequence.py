from sqlalchemy import Column, Integer, DateTime
from ..database import Base, utcnow


class CodeSequence(Base):
    """Ticket table backing counter-based short codes"""
    __tablename__ = "code_sequence"

    id = Column(Integer, primary_key=True, autoincrement=True)
    issued_at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<CodeSequence {self.id}>"
