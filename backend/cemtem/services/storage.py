"""
Storage: the persistence seam consumed by the matcher, relay and router.

The core only depends on the `Storage` protocol. `SqlStorage` is the
SQLAlchemy implementation used in production and in tests (in-memory SQLite).
Every method is async so callers await it before replying; the work itself is
a short-lived sync session, same as the rest of the backend.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from cemtem.core.exceptions import StorageError
from cemtem.models.inquiry import Inquiry
from cemtem.models.price_response import PriceResponse
from cemtem.models.vendor import Vendor
from cemtem.services.location_manager import city_matches

logger = logging.getLogger(__name__)


class Storage(Protocol):
    async def create_vendor(self, **fields: Any) -> Vendor: ...

    async def get_vendors_by_material_and_city(self, material: str, city: str) -> List[Vendor]: ...

    async def get_vendor_by_channel_id(self, address: str) -> Optional[Vendor]: ...

    async def update_vendor(self, vendor_id: str, patch: Dict[str, Any]) -> Optional[Vendor]: ...

    async def create_inquiry(self, **fields: Any) -> Inquiry: ...

    async def get_inquiry_by_id(self, inquiry_id: str) -> Optional[Inquiry]: ...

    async def increment_inquiry_responses(self, inquiry_id: str) -> None: ...

    async def create_price_response(self, **fields: Any) -> PriceResponse: ...


class SqlStorage:
    """SQLAlchemy-backed Storage."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str):
        db: Session = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[Storage] {operation} failed: {type(e).__name__}: {e}")
            raise StorageError(f"{operation} failed") from e
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------

    async def create_vendor(self, **fields: Any) -> Vendor:
        with self._session("create_vendor") as db:
            vendor = Vendor(**fields)
            db.add(vendor)
            db.commit()
            db.refresh(vendor)
            logger.info(f"[Storage] Vendor created: {vendor.vendor_id} ({vendor.name}, {vendor.city})")
            return vendor

    async def get_vendors_by_material_and_city(self, material: str, city: str) -> List[Vendor]:
        """Active vendors listing `material` whose city loosely matches `city`.

        Order is registration order (primary key), which keeps fan-out
        selection deterministic.
        """
        with self._session("get_vendors_by_material_and_city") as db:
            vendors = (
                db.query(Vendor)
                .filter(Vendor.is_active.is_(True))
                .order_by(Vendor.id)
                .all()
            )
            return [
                v for v in vendors
                if material in (v.materials or []) and city_matches(v.city, city)
            ]

    async def get_vendor_by_channel_id(self, address: str) -> Optional[Vendor]:
        with self._session("get_vendor_by_channel_id") as db:
            return (
                db.query(Vendor)
                .filter(Vendor.telegram_id == str(address))
                .order_by(Vendor.id)
                .first()
            )

    async def update_vendor(self, vendor_id: str, patch: Dict[str, Any]) -> Optional[Vendor]:
        with self._session("update_vendor") as db:
            vendor = db.query(Vendor).filter(Vendor.vendor_id == vendor_id).first()
            if not vendor:
                logger.warning(f"[Storage] update_vendor: {vendor_id} not found")
                return None
            for key, value in patch.items():
                setattr(vendor, key, value)
            db.commit()
            db.refresh(vendor)
            return vendor

    async def list_vendors(self) -> List[Vendor]:
        with self._session("list_vendors") as db:
            return db.query(Vendor).order_by(Vendor.id).all()

    # ------------------------------------------------------------------
    # Inquiries
    # ------------------------------------------------------------------

    async def create_inquiry(self, **fields: Any) -> Inquiry:
        with self._session("create_inquiry") as db:
            inquiry = Inquiry(**fields)
            db.add(inquiry)
            db.commit()
            db.refresh(inquiry)
            logger.info(
                f"[Storage] Inquiry created: {inquiry.inquiry_id} "
                f"(material={inquiry.material}, city={inquiry.city}, vendors={inquiry.vendors_contacted})"
            )
            return inquiry

    async def get_inquiry_by_id(self, inquiry_id: str) -> Optional[Inquiry]:
        with self._session("get_inquiry_by_id") as db:
            return db.query(Inquiry).filter(Inquiry.inquiry_id == inquiry_id).first()

    async def increment_inquiry_responses(self, inquiry_id: str) -> None:
        with self._session("increment_inquiry_responses") as db:
            db.query(Inquiry).filter(Inquiry.inquiry_id == inquiry_id).update(
                {
                    Inquiry.response_count: Inquiry.response_count + 1,
                    Inquiry.status: "responded",
                },
                synchronize_session=False,
            )
            db.commit()

    async def list_inquiries(self, limit: int = 50) -> List[Inquiry]:
        with self._session("list_inquiries") as db:
            return (
                db.query(Inquiry)
                .order_by(Inquiry.id.desc())
                .limit(limit)
                .all()
            )

    # ------------------------------------------------------------------
    # Price responses
    # ------------------------------------------------------------------

    async def create_price_response(self, **fields: Any) -> PriceResponse:
        with self._session("create_price_response") as db:
            response = PriceResponse(**fields)
            db.add(response)
            db.commit()
            db.refresh(response)
            return response

    async def get_price_responses_by_inquiry(self, inquiry_id: str) -> List[PriceResponse]:
        with self._session("get_price_responses_by_inquiry") as db:
            return (
                db.query(PriceResponse)
                .filter(PriceResponse.inquiry_id == inquiry_id)
                .order_by(PriceResponse.id)
                .all()
            )
