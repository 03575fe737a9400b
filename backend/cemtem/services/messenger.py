"""
Messenger: outbound delivery to channel-typed addresses.

The core never reaches for a global bot or socket server. It is handed a
`ChannelMessenger` that routes each send to the transport registered for the
channel:

- Channel.TELEGRAM → TelegramTransport (python-telegram-bot Bot)
- Channel.WEB      → WebSessionHub (one logical session id may have several
                     open websockets, e.g. two browser tabs; every reply goes
                     to all of them)

Delivery is best-effort and at-most-once. Failures come back as a failed
DeliveryResult and are logged; they never raise into the caller.
"""
import logging
from typing import Dict, Optional, Protocol, Set

from fastapi import WebSocket, WebSocketDisconnect
from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from cemtem.core.exceptions import DeliveryError
from cemtem.schemas.messaging import Channel, DeliveryResult, Keyboard

logger = logging.getLogger(__name__)


class Messenger(Protocol):
    async def send(
        self,
        channel: Channel,
        address: str,
        text: str,
        keyboard: Optional[Keyboard] = None,
    ) -> DeliveryResult: ...


class Transport(Protocol):
    async def deliver(self, address: str, text: str, keyboard: Optional[Keyboard] = None) -> None:
        """Deliver or raise DeliveryError."""
        ...


class TelegramTransport:
    def __init__(self, bot: Bot):
        self._bot = bot

    @staticmethod
    def build_markup(keyboard: Optional[Keyboard]) -> Optional[InlineKeyboardMarkup]:
        if not keyboard:
            return None
        return InlineKeyboardMarkup([
            [InlineKeyboardButton(button.label, callback_data=button.data) for button in row]
            for row in keyboard
        ])

    async def deliver(self, address: str, text: str, keyboard: Optional[Keyboard] = None) -> None:
        try:
            await self._bot.send_message(
                chat_id=address,
                text=text,
                reply_markup=self.build_markup(keyboard),
            )
        except TelegramError as e:
            raise DeliveryError(f"telegram send to {address} failed: {e}") from e


class WebSessionHub:
    """Maps web chat session ids to their open websockets."""

    def __init__(self):
        self._sockets: Dict[str, Set[WebSocket]] = {}

    def connect(self, session_id: str, websocket: WebSocket) -> None:
        self._sockets.setdefault(session_id, set()).add(websocket)
        logger.info(f"[WebHub] Socket joined session {session_id} ({len(self._sockets[session_id])} open)")

    def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        sockets = self._sockets.get(session_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._sockets[session_id]
        logger.info(f"[WebHub] Socket left session {session_id}")

    async def deliver(self, address: str, text: str, keyboard: Optional[Keyboard] = None) -> None:
        sockets = list(self._sockets.get(address, ()))
        if not sockets:
            raise DeliveryError(f"no open websocket for session {address}")

        payload = {
            "sessionId": address,
            "message": text,
            "options": [[button.model_dump() for button in row] for row in keyboard] if keyboard else [],
        }
        delivered = 0
        for websocket in sockets:
            try:
                await websocket.send_json(payload)
                delivered += 1
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.warning(f"[WebHub] Dropping dead socket for session {address}: {e}")
                self.disconnect(address, websocket)

        if delivered == 0:
            raise DeliveryError(f"all websockets for session {address} are closed")


class ChannelMessenger:
    """Routes sends to the transport registered for each channel."""

    def __init__(self, transports: Optional[Dict[Channel, Transport]] = None):
        self._transports: Dict[Channel, Transport] = dict(transports or {})

    def register(self, channel: Channel, transport: Transport) -> None:
        self._transports[channel] = transport

    async def send(
        self,
        channel: Channel,
        address: str,
        text: str,
        keyboard: Optional[Keyboard] = None,
    ) -> DeliveryResult:
        channel = Channel(channel)
        address = str(address)
        transport = self._transports.get(channel)
        if transport is None:
            logger.error(f"[Messenger] No transport for channel={channel.value}; dropping message to {address}")
            return DeliveryResult(channel=channel, address=address, ok=False, error="channel not configured")

        try:
            await transport.deliver(address, text, keyboard)
        except DeliveryError as e:
            logger.error(f"[Messenger] Delivery failed channel={channel.value} address={address}: {e}")
            return DeliveryResult(channel=channel, address=address, ok=False, error=str(e))

        logger.debug(f"[Messenger] Delivered channel={channel.value} address={address}")
        return DeliveryResult(channel=channel, address=address, ok=True)
