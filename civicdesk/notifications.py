"""
Notification Module - In-app inbox and Slack alerts

Provides:
- Per-user in-app notifications about their issues
- Optional Slack webhook mirror for staff-facing alerts
"""

import json
import logging
import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from civicdesk.issues.storage import InMemoryStorage, StorageBackend
from civicdesk.utils.time import ensure_aware, utcnow

logger = logging.getLogger(__name__)


class NotificationType(Enum):
    STATUS_UPDATE = "status_update"
    COMMENT = "comment"
    ASSIGNMENT = "assignment"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass
class Notification:
    """Notification data structure."""
    user_id: str
    type: NotificationType
    title: str
    message: str
    issue_id: str
    id: str = field(default_factory=lambda: f"notif-{uuid.uuid4().hex[:12]}")
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "issue_id": self.issue_id,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Notification":
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            type=NotificationType(data["type"]),
            title=data.get("title", ""),
            message=data.get("message", ""),
            issue_id=data.get("issue_id", ""),
            is_read=data.get("is_read", False),
            created_at=ensure_aware(data.get("created_at")),
        )


class SlackNotifier:
    """
    Slack notification handler using webhooks.

    Set SLACK_WEBHOOK_URL environment variable to enable.
    """

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url or os.environ.get("SLACK_WEBHOOK_URL")
        self.enabled = bool(self.webhook_url)

    def send(self, notification: Notification) -> Dict[str, Any]:
        """Send notification to Slack."""
        if not self.enabled:
            return {"success": False, "error": "Slack webhook not configured"}

        try:
            import urllib.request

            payload = {
                "attachments": [
                    {
                        "color": "#ff0000" if notification.type == NotificationType.REJECTED else "#36a64f",
                        "title": notification.title,
                        "text": notification.message,
                        "footer": "CivicDesk",
                        "ts": int(notification.created_at.timestamp()),
                        "fields": [
                            {"title": "Issue", "value": notification.issue_id, "short": True},
                            {"title": "Type", "value": notification.type.value, "short": True},
                        ],
                    }
                ]
            }

            req = urllib.request.Request(
                self.webhook_url,
                data=json.dumps(payload).encode("utf-8"),
                headers={"Content-Type": "application/json"},
                method="POST",
            )

            with urllib.request.urlopen(req, timeout=10) as response:
                return {"success": True, "status_code": response.status}

        except Exception as e:
            logger.error(f"Failed to send Slack notification: {e}")
            return {"success": False, "error": str(e)}


class NotificationCenter:
    """
    Per-user notification inboxes.

    Example:
        center = NotificationCenter()
        center.notify("user-1", NotificationType.RESOLVED, "Resolved",
                      "Your report was resolved", issue_id)
        center.unread_count("user-1")  # 1
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        slack: Optional[SlackNotifier] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.storage = storage or InMemoryStorage()
        self.slack = slack
        self._clock = clock

    def notify(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        message: str,
        issue_id: str,
        mirror_to_slack: bool = False,
    ) -> Notification:
        """Create a notification in the user's inbox."""
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            issue_id=issue_id,
            created_at=self._clock(),
        )
        self.storage.put(notification.id, notification.to_dict())
        logger.debug(f"Notified {user_id}: {title}")

        if mirror_to_slack and self.slack and self.slack.enabled:
            self.slack.send(notification)

        return notification

    def for_user(self, user_id: str) -> List[Notification]:
        """User's notifications, newest first."""
        notifications = [
            Notification.from_dict(r) for r in self.storage.list() if r["user_id"] == user_id
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications

    def unread_count(self, user_id: str) -> int:
        return sum(1 for n in self.for_user(user_id) if not n.is_read)

    def mark_read(self, notification_id: str) -> bool:
        record = self.storage.get(notification_id)
        if record is None:
            return False
        record["is_read"] = True
        self.storage.put(notification_id, record)
        return True

    def mark_all_read(self, user_id: str) -> int:
        count = 0
        for notification in self.for_user(user_id):
            if not notification.is_read:
                notification.is_read = True
                self.storage.put(notification.id, notification.to_dict())
                count += 1
        return count

