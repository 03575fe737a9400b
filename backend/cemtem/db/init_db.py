"""Create all tables. Run on app startup."""
from cemtem.db.base import Base
from cemtem.db.session import engine
from cemtem.models import vendor, inquiry, price_response  # noqa: F401 - register models


def init_db():
    Base.metadata.create_all(bind=engine)
