"""Engine and session factory. SQLite for local runs, pooled connections elsewhere."""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from cemtem.core.config import settings


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # In-memory databases live on a single connection; files get a fresh one per session
        in_memory = url in ("sqlite://", "sqlite:///:memory:")
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool if in_memory else NullPool,
        )

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=3600,
        pool_pre_ping=True,
    )


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=bind)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = make_session_factory(engine)
