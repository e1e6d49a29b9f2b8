from typing import Optional
from uuid import UUID

from .logger import get_logger
from .models import Notification, NotificationType
from .storage import InMemoryStorage

log = get_logger(__name__)


class NotificationEmitter:
    """
    Appends domain events to a user's notification feed.

    ``emit`` is fire-and-forget: a failure is logged and swallowed so it can
    never fail or roll back the ledger mutation that triggered it.
    """

    def __init__(self, storage: InMemoryStorage, limit: int = 200):
        self.storage = storage
        self.limit = limit

    def emit(
        self,
        user_id: UUID,
        type: NotificationType,
        message: str,
        metadata: Optional[dict] = None,
    ) -> Optional[Notification]:
        try:
            if not self.storage.get_user(user_id):
                log.info("notification_recipient_missing", user_id=str(user_id), type=type.value)
                return None
            row = self.storage.insert_notification({
                "user_id": user_id,
                "type": type,
                "message": message,
                "metadata": _jsonable(metadata or {}),
            })
        except Exception:
            log.exception("notification_failed", user_id=str(user_id), type=type.value)
            return None
        log.debug("notification_emitted", user_id=str(user_id), type=type.value)
        return Notification(**row)

    def list_for_user(self, user_id: UUID, limit: Optional[int] = None) -> list[Notification]:
        rows = sorted(
            self.storage.notifications_for_user(user_id),
            key=lambda n: n["created_at"],
            reverse=True,
        )
        return [Notification(**n) for n in rows[: limit or self.limit]]

    def mark_read(self, user_id: UUID, ids: Optional[list[UUID]] = None) -> int:
        wanted = set(ids) if ids else None
        count = 0
        for row in self.storage.notifications_for_user(user_id):
            if wanted is not None and row["id"] not in wanted:
                continue
            if not row["read"]:
                self.storage.update_notification(row["id"], {"read": True})
                count += 1
        return count

    def clear(self, user_id: UUID) -> int:
        rows = self.storage.notifications_for_user(user_id)
        for row in rows:
            self.storage.delete_notification(row["id"])
        log.info("notifications_cleared", user_id=str(user_id), count=len(rows))
        return len(rows)


def _jsonable(metadata: dict) -> dict:
    return {k: str(v) if isinstance(v, UUID) else v for k, v in metadata.items()}
