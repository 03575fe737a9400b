"""
CemTemBot Backend — construction-material lead routing.

ARCHITECTURE:
- Telegram Bot + Web chat widget: buyer and vendor conversations
- SessionRouter: single entry point for inbound messages from either channel
- InquiryMatcher / QuoteRelay: vendor fan-out and quote forwarding
- SQLite DB (SQLAlchemy): vendors, inquiries, price responses

Conversation state lives in memory with an inactivity TTL; everything a
buyer or vendor commits to lives in the database.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cemtem.agent.session_router import SessionRouter
from cemtem.agent.session_store import SessionStore
from cemtem.agent.session_sweeper import start_session_sweeper, stop_session_sweeper
from cemtem.agent.vendor_response_flow import VendorResponseFlow
from cemtem.api.routes import chat, inquiries, vendors
from cemtem.core.config import settings
from cemtem.db.init_db import init_db
from cemtem.db.session import SessionLocal
from cemtem.schemas.messaging import Channel
from cemtem.services.inquiry_matcher import InquiryMatcher
from cemtem.services.messenger import ChannelMessenger, TelegramTransport, WebSessionHub
from cemtem.services.quote_relay import QuoteRelay
from cemtem.services.storage import SqlStorage
from cemtem.telegram.bot import attach_router, build_application, start_bot, stop_bot

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(app: FastAPI) -> None:
    """Wire the core onto app.state. The Telegram transport is registered later, once the bot exists."""
    storage = SqlStorage(SessionLocal)
    web_hub = WebSessionHub()
    messenger = ChannelMessenger({Channel.WEB: web_hub})

    vendor_flow = VendorResponseFlow(
        storage,
        drafts=SessionStore(ttl_seconds=settings.QUOTE_DRAFT_TTL_MINUTES * 60, name="quote_drafts"),
    )
    session_router = SessionRouter(
        storage=storage,
        messenger=messenger,
        matcher=InquiryMatcher(storage, messenger),
        relay=QuoteRelay(storage, messenger),
        vendor_flow=vendor_flow,
        sessions=SessionStore(ttl_seconds=settings.SESSION_TTL_MINUTES * 60, name="conversations"),
    )

    app.state.storage = storage
    app.state.web_hub = web_hub
    app.state.messenger = messenger
    app.state.session_router = session_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
    1. Initialize database tables
    2. Build storage, messenger and the session router
    3. Start Telegram bot polling (if token provided)
    4. Start the session sweeper

    Shutdown: stop sweeper and bot.
    """
    print("[*] Initializing database...")
    init_db()
    print("[OK] Database initialized")

    build_services(app)
    router: SessionRouter = app.state.session_router

    if settings.TELEGRAM_BOT_TOKEN:
        print("[*] Starting Telegram bot...")
        bot_app = build_application()
        app.state.messenger.register(Channel.TELEGRAM, TelegramTransport(bot_app.bot))
        attach_router(bot_app, router)
        if await start_bot(bot_app):
            print("[OK] Telegram bot started")
        else:
            print("[WARN] Telegram bot failed to start polling")
    else:
        print("[WARN] Telegram bot disabled (no token)")

    start_session_sweeper(
        [router.sessions, router.vendor_flow.drafts],
        settings.SESSION_SWEEP_INTERVAL_SECONDS,
    )
    print("[OK] Session sweeper started")

    yield

    stop_session_sweeper()
    if settings.TELEGRAM_BOT_TOKEN:
        await stop_bot()
    print("[OK] Shutdown complete")


app = FastAPI(
    title="CemTemBot API",
    description="Buyer inquiries → matched vendors → quotes back to the buyer.",
    version="0.1.0",
    lifespan=lifespan,
)

# Restrict CORS to configured origins (no wildcards)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "Origin"],
    max_age=600,
)

app.include_router(chat.router, prefix="/chat", tags=["chat"])
app.include_router(inquiries.router, prefix="/inquiries", tags=["inquiries"])
app.include_router(vendors.router, prefix="/vendors", tags=["vendors"])


@app.get("/health")
def health():
    return {"status": "ok", "telegram": "enabled" if settings.TELEGRAM_BOT_TOKEN else "disabled"}
