"""End-to-end routing: conversation, actions, both quote paths, relay chat, error boundary."""
import asyncio

from cemtem.agent.conversation_flow import WELCOME_MESSAGE
from cemtem.agent.quote_parser import FORMAT_REMINDER
from cemtem.agent.session_router import HELP_MESSAGE, RELAY_USAGE, SessionRouter
from cemtem.agent.session_store import SessionStore
from cemtem.agent.vendor_response_flow import VendorResponseFlow
from cemtem.core.exceptions import CemTemError, SessionExpiredError, StorageError, VendorNotFoundError
from cemtem.schemas.conversation import ConversationStep
from cemtem.schemas.messaging import Channel
from cemtem.services.inquiry_matcher import InquiryMatcher
from cemtem.services.quote_relay import QuoteRelay

WEB = Channel.WEB
TG = Channel.TELEGRAM

BUYER_WEB = ["/start", "1", "1", "2", "2", "Guwahati", "50 bags", "9876543210"]


class SpyMatcher(InquiryMatcher):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookups = []

    async def find_vendors(self, city, material):
        self.lookups.append((material, city))
        return await super().find_vendors(city, material)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_router(storage, messenger, relay_chat_id=None, sessions=None):
    return SessionRouter(
        storage=storage,
        messenger=messenger,
        matcher=SpyMatcher(storage, messenger, max_vendors=3),
        relay=QuoteRelay(storage, messenger),
        vendor_flow=VendorResponseFlow(storage),
        sessions=sessions,
        relay_chat_id=relay_chat_id,
    )


def say(router, session_id, *texts, channel=TG, name=None):
    for text in texts:
        asyncio.run(router.on_text(channel, session_id, text, name))


def press(router, session_id, *tokens, channel=TG):
    for token in tokens:
        asyncio.run(router.on_button_press(channel, session_id, token))


def only_inquiry(storage):
    [inquiry] = asyncio.run(storage.list_inquiries())
    return inquiry


def test_buyer_conversation_creates_inquiry(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "web-1", *BUYER_WEB, channel=WEB)

    inquiry = only_inquiry(seeded_storage)
    assert router.matcher.lookups == [("cement", "Guwahati")]
    assert inquiry.material == "cement"
    assert inquiry.cement_company == "UltraTech"
    assert inquiry.cement_types == ["OPC Grade 43"]
    assert inquiry.city == "Guwahati"
    assert inquiry.quantity == "50 bags"
    assert inquiry.user_phone == "9876543210"
    assert inquiry.platform == "web"
    assert inquiry.buyer_address == "web-1"

    assert f"Inquiry ID: {inquiry.inquiry_id}" in messenger.last("web-1").text
    assert len(messenger.to("1001")) == len(messenger.to("1003")) == 1
    assert len(router.sessions) == 0


def test_buyer_told_when_no_vendor_matches(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "web-1", "/start", "1", "1", "2", "2", "Mumbai", "10 bags", "9876543210", channel=WEB)

    assert "no vendors supplying Cement in Mumbai" in messenger.last("web-1").text
    assert only_inquiry(seeded_storage).vendors_contacted == []


def test_start_twice_gives_same_prompt(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "77", "/start", "1", "3", "/start", "/start")
    replies = [m.text for m in messenger.to("77")]
    assert replies[-1] == replies[-2] == WELCOME_MESSAGE
    assert router.sessions.get(("telegram", "77")).data.material is None


def test_help(storage, messenger):
    router = make_router(storage, messenger)
    say(router, "77", "/help")
    assert messenger.last("77").text == HELP_MESSAGE


def test_vendor_registration_with_buttons(storage, messenger):
    router = make_router(storage, messenger)
    say(router, "2001", "/start", "2", "Kaziranga Cement", "9876500000")
    press(router, "2001", "vcity_tezpur", "vloc_kacharigaon", "vmat_cement")

    [vendor] = asyncio.run(storage.list_vendors())
    assert vendor.vendor_id.startswith("VEN-")
    assert vendor.telegram_id == "2001"
    assert vendor.city == "Kacharigaon, Tezpur"
    assert vendor.materials == ["cement"]
    assert f"Vendor ID: {vendor.vendor_id}" in messenger.last("2001").text

    # registering again from the same chat updates the record
    say(router, "2001", "/start", "2", "Kaziranga Cement & Steel", "9876500000")
    press(router, "2001", "vcity_tezpur", "vloc_kacharigaon", "vmat_both")
    [vendor_again] = asyncio.run(storage.list_vendors())
    assert vendor_again.vendor_id == vendor.vendor_id
    assert vendor_again.name == "Kaziranga Cement & Steel"
    assert vendor_again.materials == ["cement", "tmt"]


def test_free_text_quote_reaches_web_buyer(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "web-1", *BUYER_WEB, channel=WEB)
    inquiry_id = only_inquiry(seeded_storage).inquiry_id

    say(router, "1001", f"RATE: 350 per bag\nGST: 18%\nDELIVERY: 50\nInquiry ID: {inquiry_id}")

    assert "Thank you" in messenger.last("1001").text
    buyer = messenger.last("web-1")
    assert buyer.channel == WEB
    assert "New Quote Received" in buyer.text
    assert "₹350 per bag" in buyer.text
    assert only_inquiry(seeded_storage).response_count == 1


def test_malformed_quote_gets_format_reminder(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "1001", "RATE: 350 per bag")
    assert messenger.last("1001").text == FORMAT_REMINDER
    assert ("telegram", "1001") not in router.sessions


def test_quote_from_unregistered_chat(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    router = make_router(seeded_storage, messenger)
    say(router, "31337", "RATE: 350\nInquiry ID: INQ-100")
    assert messenger.last("31337").text == VendorNotFoundError.user_message


def test_guided_quote_through_router(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    say(router, "web-1", *BUYER_WEB, channel=WEB)
    inquiry_id = only_inquiry(seeded_storage).inquiry_id

    press(router, "1001", f"qstart:{inquiry_id}", f"qrate:{inquiry_id}:0")
    say(router, "1001", "300")
    press(router, "1001", f"qdone:{inquiry_id}", f"qgst:{inquiry_id}:18", f"qdel:{inquiry_id}:0")

    assert "Quote submitted successfully" in messenger.last("1001").text
    assert "• OPC Grade 43: ₹300 per unit" in messenger.last("web-1").text
    # the typed rate never reached the onboarding conversation
    assert ("telegram", "1001") not in router.sessions


def test_stale_quote_button(seeded_storage, messenger):
    router = make_router(seeded_storage, messenger)
    press(router, "1001", "qgst:INQ-100:18")
    assert messenger.last("1001").text == SessionExpiredError.user_message


def test_early_free_delivery_press_keeps_draft(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    router = make_router(seeded_storage, messenger)
    press(router, "1001", "qstart:INQ-100", "qdel:INQ-100:0")

    reply = messenger.last("1001")
    assert "no longer active" in reply.text
    assert "qrate:INQ-100:0" in reply.button_data
    assert router.vendor_flow.get_draft("1001") is not None
    assert messenger.to("555") == []
    assert asyncio.run(seeded_storage.get_price_responses_by_inquiry("INQ-100")) == []


def test_operator_relay_chat(storage, messenger):
    router = make_router(storage, messenger, relay_chat_id="999")
    say(router, "web-7", "hello, anyone there?", channel=WEB)
    assert messenger.to("999")[0].text == "🔗 Session: web-7\nhello, anyone there?"

    say(router, "999", "🔗 Session: web-7\nYes, how can we help?")
    assert messenger.last("web-7").text == "Yes, how can we help?"
    assert messenger.last("999").text == "✅ Sent to session web-7"

    say(router, "999", "just chatting")
    assert messenger.last("999").text == RELAY_USAGE


def test_sessions_are_scoped_by_channel(storage, messenger):
    router = make_router(storage, messenger)
    say(router, "42", "/start", "1")
    say(router, "42", "/start", channel=WEB)
    assert router.sessions.get(("telegram", "42")).step == ConversationStep.BUYER_MATERIAL
    assert router.sessions.get(("web", "42")).step == ConversationStep.USER_TYPE


def test_expired_session_starts_over(storage, messenger):
    clock = Clock()
    router = make_router(storage, messenger, sessions=SessionStore(ttl_seconds=60, clock=clock))
    say(router, "42", "/start", "1")
    clock.now = 120
    say(router, "42", "1")
    assert messenger.last("42").text == WELCOME_MESSAGE


def test_storage_failure_keeps_conversation_step(seeded_storage, messenger):
    async def broken_create_inquiry(**fields):
        raise StorageError("create_inquiry failed")

    router = make_router(seeded_storage, messenger)
    seeded_storage.create_inquiry = broken_create_inquiry
    say(router, "web-1", *BUYER_WEB, channel=WEB)

    assert messenger.last("web-1").text == StorageError.user_message
    assert router.sessions.get(("web", "web-1")).step == ConversationStep.BUYER_PHONE


def test_unexpected_error_never_escapes(storage, messenger):
    class ExplodingFlow:
        def process_message(self, context, raw_input):
            raise RuntimeError("boom")

    router = make_router(storage, messenger)
    router.flow = ExplodingFlow()
    say(router, "42", "hello")
    assert messenger.last("42").text == CemTemError.user_message
