import asyncio
import logging
from typing import Optional

from telegram import error
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from cemtem.agent.session_router import SessionRouter
from cemtem.core.config import settings
from cemtem.telegram.handlers import handle_callback, handle_help, handle_start, handle_text

logger = logging.getLogger(__name__)

_bot_app: Optional[Application] = None


def build_application() -> Application:
    """Application with handlers registered. The router is attached once the messenger exists."""
    global _bot_app
    _bot_app = Application.builder().token(settings.TELEGRAM_BOT_TOKEN).build()

    _bot_app.add_handler(CommandHandler("start", handle_start))
    _bot_app.add_handler(CommandHandler("help", handle_help))
    _bot_app.add_handler(CallbackQueryHandler(handle_callback))
    _bot_app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    return _bot_app


def attach_router(app: Application, router: SessionRouter) -> None:
    app.bot_data["router"] = router


async def _start_polling_with_retry(app: Application, max_retries: int = 3, initial_backoff: int = 2) -> bool:
    for attempt in range(max_retries):
        try:
            print(f"[Telegram] Starting polling (attempt {attempt + 1}/{max_retries})...")
            await app.updater.start_polling(drop_pending_updates=True)
            print("[Telegram] ✓ Polling started successfully")
            return True
        except error.Conflict as e:
            if attempt < max_retries - 1:
                backoff = initial_backoff * (2 ** attempt)
                logger.warning(f"[Telegram] Conflict detected: {e}. Retrying in {backoff}s")
                await asyncio.sleep(backoff)
            else:
                logger.error(f"[Telegram] Failed after {max_retries} retries. Bot disabled. Error: {e}")
                return False
        except error.TelegramError as e:
            logger.error(f"[Telegram] Could not start polling: {e}")
            return False
    return False


async def start_bot(app: Application) -> bool:
    """Run the bot inside the server's event loop so the messenger shares its client."""
    await app.initialize()
    await app.start()
    return await _start_polling_with_retry(app)


async def stop_bot() -> None:
    """Stop polling. Called on FastAPI shutdown."""
    global _bot_app
    if not _bot_app:
        return
    try:
        if _bot_app.updater and _bot_app.updater.running:
            await _bot_app.updater.stop()
        if _bot_app.running:
            await _bot_app.stop()
        await _bot_app.shutdown()
    except error.TelegramError as e:
        logger.error(f"[Telegram] Shutdown error: {e}")
    finally:
        _bot_app = None
