"""FastAPI dependencies for the long-lived collaborators built in create_app()."""

from fastapi import Request

from app.core.cache import TTLCache
from app.integrations.storage import FileStorage
from app.integrations.telegram import TelegramNotifier


def get_cache(request: Request) -> TTLCache:
    return request.app.state.cache


def get_notifier(request: Request) -> TelegramNotifier:
    return request.app.state.notifier


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage
