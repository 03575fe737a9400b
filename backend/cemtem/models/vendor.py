from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from cemtem.db.base import Base


class Vendor(Base):
    """
    Registered supplier of cement and/or TMT bars.

    Lifecycle:
        1. Created by a completed vendor-registration conversation
        2. Counters bumped on every inquiry fan-out and every quote submission
        3. Never hard-deleted; is_active=False takes a vendor out of matching
    """
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(String(64), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(64), nullable=False)
    telegram_id = Column(String(64), nullable=True, index=True)  # channel address
    channel = Column(String(16), nullable=False, default="telegram")
    city = Column(String(255), nullable=False)
    materials = Column(JSON, nullable=False, default=list)  # ["cement", "tmt"]
    is_active = Column(Boolean, default=True)
    response_count = Column(Integer, default=0)
    inquiries_received = Column(Integer, default=0)
    response_rate = Column(Numeric(5, 2), default=0)  # % of contacted inquiries answered
    last_quoted = Column(DateTime(timezone=True), nullable=True)
    last_contacted = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Vendor vendor_id={self.vendor_id} name={self.name} city={self.city}>"
