import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class Notification:
    id: str
    title: str
    body: str
    severity: Severity = Severity.INFO
    source: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    read: bool = False

    def __post_init__(self):
        if self.created_at is None:
            self.created_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "severity": self.severity.value,
            "source": self.source,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "read": self.read,
        }


class NotificationService:
    """Operator notifications (budget and monitoring alerts).

    Kept in memory, newest last, oldest evicted past ``max_stored``.
    """

    def __init__(self, max_stored: int = 1000):
        self._notifications: List[Notification] = []
        self._max_stored = max_stored

    async def send(self, notification: Notification) -> None:
        self._notifications.append(notification)
        while len(self._notifications) > self._max_stored:
            self._notifications.pop(0)
        logger.info(
            "Notification sent: %s", notification.title,
            extra={"severity": notification.severity.value, "source": notification.source},
        )

    async def notify(
        self,
        title: str,
        body: str,
        severity: Severity = Severity.INFO,
        source: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = self.create_notification(title, body, severity, source, metadata)
        await self.send(notification)
        return notification

    async def list(
        self,
        severity: Optional[Severity] = None,
        read: Optional[bool] = None,
        limit: int = 50,
    ) -> List[Notification]:
        """List notifications with optional filters, newest first."""
        results = list(reversed(self._notifications))
        if severity is not None:
            results = [n for n in results if n.severity == severity]
        if read is not None:
            results = [n for n in results if n.read == read]
        return results[:limit]

    async def mark_read(self, notification_id: str) -> bool:
        """Mark a notification as read. Returns True if found."""
        for n in self._notifications:
            if n.id == notification_id:
                n.read = True
                return True
        return False

    async def count_unread(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    def create_notification(
        self,
        title: str,
        body: str,
        severity: Severity = Severity.INFO,
        source: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        """Create a Notification with a generated ID."""
        return Notification(
            id=str(uuid.uuid4()),
            title=title,
            body=body,
            severity=severity,
            source=source,
            metadata=metadata or {},
        )
