"""Monitor model - HTTP(S) endpoints under observation."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from ..database import Base


class Monitor(Base):
    """A user-registered endpoint checked once per round while active."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(String, nullable=True, index=True)  # Enforced by the auth layer
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    check_interval = Column(Integer, default=60)  # seconds, advisory only
    created_at = Column(DateTime, default=datetime.utcnow)
