"""Notification sink - append-only log of reconciliation events."""

from datetime import datetime, timezone
from typing import Optional

from leadroute.models.notification import Notification
from leadroute.services.store import LeadStore
from leadroute.utils.config import RoutingConfig
from leadroute.utils.errors import ValidationError
from leadroute.utils.ids import generate_id
from leadroute.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class NotificationSink:
    """Records and lists notifications."""

    def __init__(self, store: LeadStore):
        self.store = store

    @staticmethod
    def build(message: str) -> Notification:
        """Validated, unsaved notification for writes that carry their own insert."""
        if not message or not message.strip():
            raise ValidationError("Notification message must not be empty")

        return Notification(
            id=generate_id(),
            message=message.strip(),
            created_at=datetime.now(timezone.utc),
        )

    async def record(self, message: str) -> Notification:
        saved = await self.store.insert_notification(self.build(message))
        logger.info("Notification recorded", notification_id=saved.id, notification_message=saved.message)
        return saved

    async def list_recent(self, limit: Optional[int] = None) -> list[Notification]:
        """Most recent notifications, newest first."""
        if limit is None:
            limit = RoutingConfig.NOTIFICATION_LIST_LIMIT
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        return await self.store.list_notifications(limit)
