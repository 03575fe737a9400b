"""Quote persistence, counters and the buyer-facing relay."""
import asyncio

import pytest

from conftest import FakeMessenger
from cemtem.agent.quote_parser import parse_quote, to_vendor_quote
from cemtem.agent.vendor_response_flow import VendorResponseFlow
from cemtem.core.exceptions import InquiryNotFoundError, VendorNotFoundError
from cemtem.schemas.messaging import Channel
from cemtem.schemas.quote import QuoteLineItem, VendorQuote
from cemtem.services.quote_relay import QuoteRelay

FREE_TEXT = "RATE: 350 per bag\nGST: 18%\nDELIVERY: 50\nInquiry ID: {}"


def bullet_lines(text):
    return [line for line in text.splitlines() if line.startswith("•")]


def responses_for(storage, inquiry_id):
    return asyncio.run(storage.get_price_responses_by_inquiry(inquiry_id))


def vendor(storage, vendor_id):
    return next(v for v in asyncio.run(storage.list_vendors()) if v.vendor_id == vendor_id)


def test_free_text_quote_is_saved_and_forwarded(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    relay = QuoteRelay(seeded_storage, messenger)
    quote = to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100")), "1001")

    result = asyncio.run(relay.relay(quote))

    assert result.vendor_id == "VEN-1"
    assert result.responses_saved == 1
    [row] = responses_for(seeded_storage, "INQ-100")
    assert row.material == "cement"
    assert float(row.price) == 350
    assert row.unit == "bag"
    assert float(row.gst) == 18
    assert float(row.delivery_charge) == 50

    inquiry = asyncio.run(seeded_storage.get_inquiry_by_id("INQ-100"))
    assert inquiry.response_count == 1
    assert inquiry.status == "responded"

    buyer = messenger.last("555")
    assert buyer.channel == Channel.TELEGRAM
    assert "• Cement: ₹350 per bag" in buyer.text
    assert "GST: 18%" in buyer.text
    assert "Delivery: ₹50" in buyer.text
    assert "Ganeshguri Cement House" in buyer.text


def test_guided_quote_lines_match_vendor_confirmation(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    flow = VendorResponseFlow(seeded_storage)
    for token, typed in (("qstart:INQ-100", None), ("qrate:INQ-100:0", "0"), ("qrate:INQ-100:1", "300")):
        asyncio.run(flow.handle_button("1001", token))
        if typed is not None:
            flow.process_text("1001", typed)
    asyncio.run(flow.handle_button("1001", "qdone:INQ-100"))
    asyncio.run(flow.handle_button("1001", "qgst:INQ-100:12"))
    done = asyncio.run(flow.handle_button("1001", "qdel:INQ-100:0"))

    asyncio.run(QuoteRelay(seeded_storage, messenger).relay(done.quote))

    buyer_text = messenger.last("555").text
    assert bullet_lines(buyer_text) == bullet_lines(done.message) == [
        "• OPC Grade 43: Unavailable",
        "• OPC Grade 53: ₹300 per unit",
    ]
    assert "Delivery: Free" in buyer_text

    rows = responses_for(seeded_storage, "INQ-100")
    assert [(r.material, float(r.price)) for r in rows] == [
        ("cement - OPC Grade 43", 0),
        ("cement - OPC Grade 53", 300),
    ]
    # one vendor quote, one response
    assert asyncio.run(seeded_storage.get_inquiry_by_id("INQ-100")).response_count == 1


def test_web_buyer_is_reached_through_session(seeded_storage, make_inquiry, messenger):
    make_inquiry(platform="web", buyer_address="9f1c-session")
    asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
        to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100")), "1001")
    ))
    buyer = messenger.last("9f1c-session")
    assert buyer.channel == Channel.WEB
    assert messenger.to("1001") == []


def test_suffixed_inquiry_id(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    result = asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
        to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100-CEMENT")), "1001")
    ))
    assert result.inquiry_id == "INQ-100"


def test_unregistered_sender(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    with pytest.raises(VendorNotFoundError):
        asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
            to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100")), "424242")
        ))
    assert responses_for(seeded_storage, "INQ-100") == []


def test_unknown_inquiry(seeded_storage, messenger):
    with pytest.raises(InquiryNotFoundError):
        asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
            to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-999")), "1001")
        ))
    assert messenger.sent == []


def test_vendor_stats_updated(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    asyncio.run(seeded_storage.update_vendor("VEN-1", {"inquiries_received": 2}))

    asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
        to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100")), "1001")
    ))

    stats = vendor(seeded_storage, "VEN-1")
    assert stats.response_count == 1
    assert float(stats.response_rate) == 50.0
    assert stats.last_quoted is not None


def test_buyer_unreachable_keeps_the_quote(seeded_storage, make_inquiry):
    make_inquiry()
    messenger = FakeMessenger(unreachable={"555"})
    result = asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
        VendorQuote(
            vendor_address="1001",
            inquiry_id="INQ-100",
            line_items=[QuoteLineItem(material="cement", item="OPC Grade 53", rate=310, gst=18, delivery=0)],
        )
    ))
    assert result.buyer_delivery.ok is False
    assert len(responses_for(seeded_storage, "INQ-100")) == 1
    assert asyncio.run(seeded_storage.get_inquiry_by_id("INQ-100")).response_count == 1


def test_last_quoted_is_timezone_aware(seeded_storage, make_inquiry, messenger):
    make_inquiry()
    patches = []
    update_vendor = seeded_storage.update_vendor

    async def recording_update(vendor_id, patch):
        patches.append(patch)
        return await update_vendor(vendor_id, patch)

    seeded_storage.update_vendor = recording_update
    asyncio.run(QuoteRelay(seeded_storage, messenger).relay(
        to_vendor_quote(parse_quote(FREE_TEXT.format("INQ-100")), "1001")
    ))

    [patch] = patches
    assert patch["last_quoted"].tzinfo is not None
