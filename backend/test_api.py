"""HTTP and websocket surface, wired to an in-memory database."""
import asyncio

import pytest
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient

from cemtem.agent.conversation_flow import WELCOME_MESSAGE
from cemtem.agent.session_router import SessionRouter
from cemtem.agent.vendor_response_flow import VendorResponseFlow
from cemtem.main import app
from cemtem.schemas.messaging import Channel
from cemtem.services.inquiry_matcher import InquiryMatcher
from cemtem.services.messenger import ChannelMessenger, WebSessionHub
from cemtem.services.quote_relay import QuoteRelay


@pytest.fixture
def client(seeded_storage):
    # No lifespan: state is wired by hand so the real database and bot stay untouched
    hub = WebSessionHub()
    messenger = ChannelMessenger({Channel.WEB: hub})
    app.state.storage = seeded_storage
    app.state.web_hub = hub
    app.state.session_router = SessionRouter(
        storage=seeded_storage,
        messenger=messenger,
        matcher=InquiryMatcher(seeded_storage, messenger),
        relay=QuoteRelay(seeded_storage, messenger),
        vendor_flow=VendorResponseFlow(seeded_storage),
        relay_chat_id=None,
    )
    return TestClient(app)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_create_chat_session(client):
    first = client.post("/chat/sessions").json()["session_id"]
    second = client.post("/chat/sessions").json()["session_id"]
    assert first and second and first != second


def test_list_and_deactivate_vendors(client):
    vendors = client.get("/vendors").json()
    assert [v["vendor_id"] for v in vendors] == ["VEN-1", "VEN-2", "VEN-3", "VEN-4", "VEN-5"]
    assert "telegram_id" not in vendors[0]

    response = client.post("/vendors/VEN-1/deactivate")
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert client.post("/vendors/VEN-404/deactivate").status_code == 404


def test_inquiry_detail_with_responses(client, seeded_storage, make_inquiry):
    make_inquiry()
    asyncio.run(seeded_storage.create_price_response(
        vendor_id="VEN-1", inquiry_id="INQ-100", material="cement - OPC Grade 43", price=0, gst=18,
    ))

    listed = client.get("/inquiries").json()
    assert [i["inquiry_id"] for i in listed] == ["INQ-100"]
    assert "user_phone" not in listed[0]

    detail = client.get("/inquiries/inq-100").json()
    assert detail["inquiry_id"] == "INQ-100"
    assert [r["material"] for r in detail["responses"]] == ["cement - OPC Grade 43"]

    assert client.get("/inquiries/INQ-404").status_code == 404
    assert client.get("/inquiries/ABC-1").status_code == 400


def test_websocket_chat(client):
    with client.websocket_connect("/chat/ws/web-1") as ws:
        ws.send_json({"type": "text", "text": "/start"})
        frame = ws.receive_json()
        assert frame["sessionId"] == "web-1"
        assert frame["message"] == WELCOME_MESSAGE
        assert frame["options"][0] == [{"label": "Buy Materials", "data": "1"}]

        ws.send_json({"type": "button", "data": "1"})
        assert "What material" in ws.receive_json()["message"]

        ws.send_text("not json")
        assert ws.receive_json()["error"] == "Invalid frame"


class RecordingSocket:
    def __init__(self):
        self.frames = []

    async def send_json(self, payload):
        self.frames.append(payload)


class ClosedSocket:
    def __init__(self):
        self.attempts = 0

    async def send_json(self, payload):
        self.attempts += 1
        raise WebSocketDisconnect(code=1001)


def test_hub_drops_closed_socket_and_keeps_delivering():
    hub = WebSessionHub()
    closed, open_tab = ClosedSocket(), RecordingSocket()
    hub.connect("web-9", closed)
    hub.connect("web-9", open_tab)
    messenger = ChannelMessenger({Channel.WEB: hub})

    assert asyncio.run(messenger.send(Channel.WEB, "web-9", "hello")).ok
    assert asyncio.run(messenger.send(Channel.WEB, "web-9", "again")).ok
    assert [f["message"] for f in open_tab.frames] == ["hello", "again"]
    assert closed.attempts == 1


def test_hub_reports_session_with_only_closed_sockets():
    hub = WebSessionHub()
    hub.connect("web-9", ClosedSocket())
    result = asyncio.run(ChannelMessenger({Channel.WEB: hub}).send(Channel.WEB, "web-9", "hello"))
    assert result.ok is False
    assert "closed" in result.error
