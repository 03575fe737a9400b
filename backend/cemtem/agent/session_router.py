"""
Session Router — the single entry point for inbound chat traffic.

Telegram handlers and the web chat socket both call `on_text` /
`on_button_press`; replies go out through the Messenger, never as return
values. Routing order for text:

1. operator relay chat (forward "🔗 Session: <id>" replies to a web session)
2. /help, /start
3. guided quote draft waiting for typed input
4. free-text quote (RATE: / Inquiry ID:)
5. onboarding conversation

This is the handler boundary: every error is converted into a reply for
whoever sent the message.
"""
import logging
import re
from typing import Optional

from cemtem.agent.conversation_flow import ConversationFlow, conversation_flow
from cemtem.agent.quote_parser import FORMAT_REMINDER, looks_like_quote, missing_fields, parse_quote, to_vendor_quote
from cemtem.agent.session_store import SessionStore
from cemtem.agent.vendor_response_flow import VendorFlowResponse, VendorResponseFlow
from cemtem.core.config import settings
from cemtem.core.exceptions import CemTemError, LookupMissError, SessionExpiredError
from cemtem.schemas.conversation import ConversationContext, ConversationStep, FlowAction, FlowResponse
from cemtem.schemas.messaging import Channel, DeliveryResult, Keyboard
from cemtem.services.identifiers import new_vendor_id
from cemtem.services.inquiry_matcher import InquiryMatcher
from cemtem.services.messenger import Messenger
from cemtem.services.quote_format import format_delivery, format_rate, material_label
from cemtem.services.quote_relay import QuoteRelay
from cemtem.services.storage import Storage

logger = logging.getLogger(__name__)

RELAY_HEADER = re.compile(r"^🔗 Session:\s*(\S+)\s*(.*)$", re.DOTALL)

HELP_MESSAGE = (
    "🤖 CemTemBot Help\n\n"
    "Commands:\n"
    "/start - Start a new buyer inquiry or vendor registration\n"
    "/help - Show this help\n\n"
    "Vendors can answer an inquiry with the \"Enter Rate Amount\" button, "
    "or by replying in this format:\n\n"
    "RATE: 350 per bag\n"
    "GST: 18%\n"
    "DELIVERY: 50\n"
    "Inquiry ID: INQ-123456789"
)

RELAY_USAGE = (
    "ℹ️ To reply to a web chat, start your message with the session header:\n\n"
    "🔗 Session: <session-id>\n"
    "<your reply>"
)


class SessionRouter:
    def __init__(
        self,
        storage: Storage,
        messenger: Messenger,
        matcher: InquiryMatcher,
        relay: QuoteRelay,
        vendor_flow: VendorResponseFlow,
        flow: ConversationFlow = conversation_flow,
        sessions: Optional[SessionStore] = None,
        relay_chat_id: Optional[str] = settings.RELAY_CHAT_ID,
    ):
        self.storage = storage
        self.messenger = messenger
        self.matcher = matcher
        self.relay = relay
        self.vendor_flow = vendor_flow
        self.flow = flow
        self.sessions: SessionStore[ConversationContext] = (
            sessions if sessions is not None else SessionStore(name="conversations")
        )
        self.relay_chat_id = str(relay_chat_id) if relay_chat_id else None

    @staticmethod
    def _key(channel: Channel, session_id: str) -> tuple:
        return (channel.value, session_id)

    async def _reply(
        self, channel: Channel, session_id: str, text: str, keyboard: Optional[Keyboard] = None
    ) -> DeliveryResult:
        return await self.messenger.send(channel, session_id, text, keyboard)

    async def _fail(self, channel: Channel, session_id: str, e: Exception) -> None:
        if isinstance(e, (LookupMissError, SessionExpiredError)):
            logger.info(f"[Router] {channel.value}:{session_id} {e}")
            message = e.user_message
        elif isinstance(e, CemTemError):
            logger.error(f"[Router] {channel.value}:{session_id} {type(e).__name__}: {e}", exc_info=True)
            message = e.user_message
        else:
            logger.error(f"[Router] Unhandled error for {channel.value}:{session_id}: {e}", exc_info=True)
            message = CemTemError.user_message
        await self._reply(channel, session_id, message)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_text(self, channel: Channel, session_id: str, text: str, display_name: Optional[str] = None) -> None:
        channel, session_id = Channel(channel), str(session_id)
        try:
            await self._route_text(channel, session_id, (text or "").strip(), display_name)
        except Exception as e:
            await self._fail(channel, session_id, e)

    async def on_button_press(
        self, channel: Channel, session_id: str, token: str, display_name: Optional[str] = None
    ) -> None:
        channel, session_id = Channel(channel), str(session_id)
        token = (token or "").strip()
        try:
            if VendorResponseFlow.owns_token(token):
                response = await self.vendor_flow.handle_button(session_id, token)
                await self._vendor_response(channel, session_id, response)
            else:
                # Conversation buttons carry the same tokens a user could type
                await self._converse(channel, session_id, token, display_name)
        except Exception as e:
            await self._fail(channel, session_id, e)

    # ------------------------------------------------------------------
    # Text routing
    # ------------------------------------------------------------------

    def _is_relay_chat(self, channel: Channel, session_id: str) -> bool:
        return channel == Channel.TELEGRAM and self.relay_chat_id is not None and session_id == self.relay_chat_id

    async def _route_text(self, channel: Channel, session_id: str, text: str, display_name: Optional[str]) -> None:
        if self._is_relay_chat(channel, session_id):
            await self._operator_reply(text)
            return

        if text == "/help":
            await self._reply(channel, session_id, HELP_MESSAGE)
            return

        if text == "/start":
            self.sessions.delete(self._key(channel, session_id))
            self.vendor_flow.drafts.delete(session_id)
            await self._converse(channel, session_id, text, display_name)
            return

        if channel == Channel.WEB and self.relay_chat_id:
            await self.messenger.send(Channel.TELEGRAM, self.relay_chat_id, f"🔗 Session: {session_id}\n{text}")

        draft_response = self.vendor_flow.process_text(session_id, text)
        if draft_response is not None:
            await self._vendor_response(channel, session_id, draft_response)
            return

        if looks_like_quote(text):
            await self._free_text_quote(channel, session_id, text)
            return

        await self._converse(channel, session_id, text, display_name)

    async def _operator_reply(self, text: str) -> None:
        match = RELAY_HEADER.match(text)
        body = match.group(2).strip() if match else ""
        if not match or not body:
            await self._reply(Channel.TELEGRAM, self.relay_chat_id, RELAY_USAGE)
            return

        web_session = match.group(1)
        delivery = await self.messenger.send(Channel.WEB, web_session, body)
        ack = f"✅ Sent to session {web_session}" if delivery.ok else f"❌ Session {web_session} is not connected"
        await self._reply(Channel.TELEGRAM, self.relay_chat_id, ack)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def _free_text_quote(self, channel: Channel, session_id: str, text: str) -> None:
        parsed = parse_quote(text)
        if parsed is None:
            logger.info(f"[Router] Malformed quote from {session_id}, missing {missing_fields(text)}")
            await self._reply(channel, session_id, FORMAT_REMINDER)
            return

        await self.relay.relay(to_vendor_quote(parsed, session_id))
        await self._reply(
            channel,
            session_id,
            "✅ Thank you! Your quote has been sent to the buyer.\n\n"
            f"💰 Rate: {format_rate(parsed.rate, parsed.unit)}\n"
            f"📊 GST: {parsed.gst:g}%\n"
            f"🚚 Delivery: {format_delivery(parsed.delivery, parsed.delivery_note)}\n\n"
            f"Inquiry ID: {parsed.inquiry_id}",
        )

    async def _vendor_response(self, channel: Channel, session_id: str, response: VendorFlowResponse) -> None:
        if response.quote is not None:
            await self.relay.relay(response.quote)
        await self._reply(channel, session_id, response.message, response.keyboard)

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def _converse(self, channel: Channel, session_id: str, text: str, display_name: Optional[str]) -> None:
        key = self._key(channel, session_id)
        context = self.sessions.get(key) or ConversationContext(channel=channel, chat_id=session_id)
        response = self.flow.process_message(context, text)

        message = response.message
        if response.action is not None:
            # A failed action leaves the session on its previous step
            message = await self._execute(channel, session_id, response, display_name)

        if response.next_step == ConversationStep.COMPLETED:
            self.sessions.delete(key)
        else:
            self.sessions.set(
                key,
                ConversationContext(channel=channel, chat_id=session_id, step=response.next_step, data=response.data),
            )
        await self._reply(channel, session_id, message, response.keyboard)

    async def _execute(
        self, channel: Channel, session_id: str, response: FlowResponse, display_name: Optional[str]
    ) -> str:
        data = response.data
        if response.action == FlowAction.CREATE_INQUIRY:
            user_name = display_name or f"{channel.value.title()} User"
            result = await self.matcher.dispatch(data, channel, session_id, user_name)
            inquiry_id = result.inquiry.inquiry_id
            if result.vendors_matched == 0:
                return (
                    f"📋 Your inquiry {inquiry_id} has been recorded.\n\n"
                    f"😔 Sorry, no vendors supplying {material_label(data.material)} in {data.city} "
                    "are registered yet. Send /start to try another city."
                )
            return f"{response.message}\n\n📋 Inquiry ID: {inquiry_id}"

        if response.action == FlowAction.REGISTER_VENDOR:
            fields = {
                "name": data.company,
                "phone": data.phone,
                "city": data.city,
                "materials": list(data.materials),
                "channel": channel.value,
                "is_active": True,
            }
            existing = await self.storage.get_vendor_by_channel_id(session_id)
            if existing:
                vendor = await self.storage.update_vendor(existing.vendor_id, fields)
                logger.info(f"[Router] Vendor {existing.vendor_id} re-registered from {session_id}")
            else:
                vendor = await self.storage.create_vendor(vendor_id=new_vendor_id(), telegram_id=session_id, **fields)
            vendor_id = vendor.vendor_id if vendor else existing.vendor_id
            return f"{response.message}\n\n🆔 Vendor ID: {vendor_id}"

        return response.message
