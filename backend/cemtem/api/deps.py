"""FastAPI dependencies: the services built in the app lifespan."""
from fastapi import Request

from cemtem.services.storage import SqlStorage


def get_storage(request: Request) -> SqlStorage:
    """Storage shared with the bot core."""
    return request.app.state.storage
