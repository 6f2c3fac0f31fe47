from .notification_service import NotificationScheduler
from .response_service import ResponseService
from .response_store import SQLAlchemyResponseStore, SupabaseResponseStore

__all__ = [
    "NotificationScheduler",
    "ResponseService",
    "SQLAlchemyResponseStore",
    "SupabaseResponseStore",
]
