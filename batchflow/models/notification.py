"""
Notification models.

NotificationOutbox rows are written in the same transaction as the workflow
change that produces them; a separate delivery pass fans each entry out to
one Notification per user holding the target role.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    Index,
    JSON,
    CheckConstraint,
)

from .base import BaseModel
from .enums import NotificationStatus, OutboxStatus


class NotificationOutbox(BaseModel):
    """
    A role notification awaiting delivery.

    Attributes:
        role: Target role name
        notification_type: e.g. "batch_handover", "fg_dispatch_ready"
        message: Human-readable text
        data: JSON payload (ids, release codes)
        status: OutboxStatus value
        attempts: Delivery attempts so far
        last_error: Message of the most recent failure
    """

    __tablename__ = "notification_outbox"

    role = Column(String(50), nullable=False)
    notification_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=OutboxStatus.PENDING.value)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    recipient_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_outbox_status", "status"),
        CheckConstraint(
            "status IN ('pending', 'delivered', 'failed')",
            name="ck_outbox_status_valid",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"NotificationOutbox(id={self.id}, type='{self.notification_type}', "
            f"status='{self.status}', attempts={self.attempts})"
        )


class Notification(BaseModel):
    """An in-app message for one user."""

    __tablename__ = "notifications"

    uid = Column(String(128), nullable=False, index=True)
    outbox_id = Column(Integer, nullable=True)
    notification_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default=NotificationStatus.UNREAD.value)
    read_at = Column(DateTime, nullable=True)
