from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from cemtem.db.base import Base


class Inquiry(Base):
    """
    One buyer request for pricing, addressed to a snapshot set of vendors.

    vendors_contacted is fixed at creation. Only response_count and status
    change afterwards; rows are kept indefinitely as an audit trail.
    """
    __tablename__ = "inquiries"

    id = Column(Integer, primary_key=True, index=True)
    inquiry_id = Column(String(64), unique=True, nullable=False, index=True)
    user_name = Column(String(255), nullable=False)
    user_phone = Column(String(64), nullable=True)
    buyer_address = Column(String(128), nullable=False)  # telegram chat id or web session id
    platform = Column(String(16), nullable=False, default="telegram")
    city = Column(String(255), nullable=False)
    material = Column(String(16), nullable=False)  # cement | tmt | both
    cement_company = Column(String(128), nullable=True)
    cement_types = Column(JSON, nullable=True, default=list)
    tmt_company = Column(String(128), nullable=True)
    tmt_sizes = Column(JSON, nullable=True, default=list)
    quantity = Column(String(255), nullable=True)
    vendors_contacted = Column(JSON, nullable=False, default=list)
    response_count = Column(Integer, default=0)
    status = Column(String(16), nullable=False, default="pending")  # pending | responded | completed | cancelled
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Inquiry inquiry_id={self.inquiry_id} material={self.material} status={self.status}>"
