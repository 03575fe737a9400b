from sqlalchemy import Column, Integer, String, DateTime, Numeric
from sqlalchemy.sql import func
from cemtem.db.base import Base


class PriceResponse(Base):
    """One priced line item from one vendor for one inquiry. Append-only."""
    __tablename__ = "price_responses"

    id = Column(Integer, primary_key=True, index=True)
    vendor_id = Column(String(64), nullable=False, index=True)
    inquiry_id = Column(String(64), nullable=False, index=True)
    material = Column(String(255), nullable=False)  # e.g. "cement - OPC Grade 43"
    price = Column(Numeric(10, 2), nullable=False)  # 0 means unavailable
    unit = Column(String(32), nullable=False, default="unit")
    gst = Column(Numeric(5, 2), nullable=False, default=0)
    delivery_charge = Column(Numeric(10, 2), nullable=True)  # NULL = not specified
    created_at = Column(DateTime(timezone=True), server_default=func.now())
