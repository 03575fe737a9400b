import asyncio
import os
import sys
from dataclasses import dataclass
from typing import List, Optional

import pytest

# Ensure backend dir is on sys.path for `import cemtem`
BACKEND_DIR = os.path.abspath(os.path.dirname(__file__))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from cemtem.db.base import Base  # noqa: E402
from cemtem.db.session import make_engine, make_session_factory  # noqa: E402
from cemtem.models import Inquiry, PriceResponse, Vendor  # noqa: E402,F401 - register models
from cemtem.schemas.messaging import Channel, DeliveryResult, Keyboard  # noqa: E402
from cemtem.services.storage import SqlStorage  # noqa: E402


@dataclass
class SentMessage:
    channel: Channel
    address: str
    text: str
    keyboard: Optional[Keyboard] = None

    @property
    def button_data(self) -> List[str]:
        return [b.data for row in (self.keyboard or []) for b in row]


class FakeMessenger:
    """Records every send. Addresses in `unreachable` fail like a dead chat."""

    def __init__(self, unreachable=()):
        self.sent: List[SentMessage] = []
        self.unreachable = {str(a) for a in unreachable}

    async def send(self, channel, address, text, keyboard=None) -> DeliveryResult:
        channel, address = Channel(channel), str(address)
        if address in self.unreachable:
            return DeliveryResult(channel=channel, address=address, ok=False, error="chat not found")
        self.sent.append(SentMessage(channel, address, text, keyboard))
        return DeliveryResult(channel=channel, address=address, ok=True)

    def to(self, address) -> List[SentMessage]:
        return [m for m in self.sent if m.address == str(address)]

    def last(self, address) -> SentMessage:
        messages = self.to(address)
        assert messages, f"nothing was sent to {address}"
        return messages[-1]


SEED_VENDORS = [
    dict(vendor_id="VEN-1", name="Ganeshguri Cement House", phone="9000000001", telegram_id="1001",
         city="Ganeshguri, Guwahati", materials=["cement"]),
    dict(vendor_id="VEN-2", name="Assam Steel Traders", phone="9000000002", telegram_id="1002",
         city="Guwahati", materials=["tmt"]),
    dict(vendor_id="VEN-3", name="Beltola Build Mart", phone="9000000003", telegram_id="1003",
         city="Beltola, Guwahati", materials=["cement", "tmt"]),
    dict(vendor_id="VEN-4", name="Shillong Supplies", phone="9000000004", telegram_id="1004",
         city="Shillong", materials=["cement"]),
    dict(vendor_id="VEN-5", name="Dormant Traders", phone="9000000005", telegram_id="1005",
         city="Guwahati", materials=["cement"], is_active=False),
]


@pytest.fixture
def storage():
    """SqlStorage over a private in-memory SQLite database."""
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield SqlStorage(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def seeded_storage(storage):
    for fields in SEED_VENDORS:
        asyncio.run(storage.create_vendor(**fields))
    return storage


@pytest.fixture
def make_inquiry(storage):
    """Insert an inquiry directly; keyword overrides replace the defaults."""
    def _make(**overrides):
        fields = dict(
            inquiry_id="INQ-100",
            user_name="Ravi",
            user_phone="9876543210",
            buyer_address="555",
            platform="telegram",
            city="Guwahati",
            material="cement",
            cement_company="UltraTech",
            cement_types=["OPC Grade 43", "OPC Grade 53"],
            tmt_sizes=[],
            quantity="50 bags",
            vendors_contacted=["VEN-1"],
        )
        fields.update(overrides)
        return asyncio.run(storage.create_inquiry(**fields))
    return _make
