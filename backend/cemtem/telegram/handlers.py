"""
Telegram update handlers.

Thin adapters: every update is turned into a SessionRouter call keyed by the
chat id. Replies are pushed by the router through the Messenger.
"""
import logging
from typing import Optional

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from cemtem.agent.session_router import SessionRouter
from cemtem.schemas.messaging import Channel

logger = logging.getLogger(__name__)


def _router(context: ContextTypes.DEFAULT_TYPE) -> SessionRouter:
    return context.application.bot_data["router"]


def _display_name(update: Update) -> Optional[str]:
    user = update.effective_user
    return user.full_name if user else None


async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/start - reset and show the welcome menu."""
    if not update.effective_chat:
        return
    await _router(context).on_text(Channel.TELEGRAM, str(update.effective_chat.id), "/start", _display_name(update))


async def handle_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if not update.effective_chat:
        return
    await _router(context).on_text(Channel.TELEGRAM, str(update.effective_chat.id), "/help", _display_name(update))


async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if not message or not message.text or not update.effective_chat:
        return

    chat_id = str(update.effective_chat.id)
    logger.debug(f"[Telegram] Text from {chat_id}: {message.text[:80]!r}")
    await _router(context).on_text(Channel.TELEGRAM, chat_id, message.text, _display_name(update))


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Inline keyboard press. The button's callback data is the router token."""
    query = update.callback_query
    if not query or not query.data:
        return

    try:
        await query.answer()
    except TelegramError as e:
        # Old queries can no longer be answered; the press itself is still valid
        logger.warning(f"[Telegram] Could not answer callback query: {e}")

    chat = update.effective_chat
    if not chat:
        return
    await _router(context).on_button_press(Channel.TELEGRAM, str(chat.id), query.data, _display_name(update))
