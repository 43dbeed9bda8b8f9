"""
Role notifications as a transactional outbox.

Workflow operations call enqueue_role_notification() inside their own
transaction, so a notification exists exactly when the change that caused
it was committed. deliver_pending_notifications() later fans each pending
outbox entry out to one Notification per user holding the role.

Delivery failures never propagate into the workflow: they are logged,
recorded on the outbox entry (attempts, last_error) and retried on the next
run until the configured attempt limit, after which the entry is failed.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models import Notification, NotificationOutbox
from ..models.enums import NotificationStatus, OutboxStatus
from ..utils.config import get_config
from ..utils.datetime_utils import utc_now
from . import document_store as store
from .database import session_scope
from .exceptions import DatabaseError, NotificationNotFound
from .logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)

NOTIFY_BATCH_HANDOVER = "batch_handover"
NOTIFY_FG_DISPATCH_READY = "fg_dispatch_ready"
NOTIFY_FG_UNIT_DISPATCH = "fg_unit_dispatch"


def enqueue_role_notification(
    role: str,
    notification_type: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    session,
) -> int:
    """
    Queue a notification for every user holding `role`.

    Transaction boundary: joins the caller's session; the entry is committed
    or rolled back with the caller's change.

    Returns:
        Outbox entry id
    """
    entry_id = store.push_document(
        session,
        "notificationOutbox",
        {
            "role": role,
            "notification_type": notification_type,
            "message": message,
            "data": dict(data or {}),
            "status": OutboxStatus.PENDING.value,
            "attempts": 0,
        },
    )
    log_operation(
        logger,
        "enqueue_role_notification",
        "queued",
        level=logging.DEBUG,
        outbox_id=entry_id,
        role=role,
        notification_type=notification_type,
    )
    return entry_id


def _fan_out(role: str, notification_type: str, message: str, data, outbox_id, session) -> int:
    """Push one Notification per active user holding `role`; returns the count."""
    users = store.list_documents(session, "users", role=role, status="active")
    for user in users:
        store.push_document(
            session,
            "notifications",
            {
                "uid": user.uid,
                "outbox_id": outbox_id,
                "notification_type": notification_type,
                "message": message,
                "data": dict(data or {}),
                "status": NotificationStatus.UNREAD.value,
            },
        )
    return len(users)


def deliver_pending_notifications(max_attempts: Optional[int] = None, session=None) -> Dict[str, int]:
    """
    Deliver every pending outbox entry.

    Each entry is delivered in isolation: its own transaction when this
    function manages the session, a savepoint when the caller passes one.
    A failing entry does not affect the others.

    Args:
        max_attempts: Attempts before an entry is marked failed
            (default: Config.notify_max_attempts)
        session: Optional SQLAlchemy session

    Returns:
        Dict with counts: delivered, failed, retrying, notifications
    """
    if max_attempts is None:
        max_attempts = get_config().notify_max_attempts

    counts = {"delivered": 0, "failed": 0, "retrying": 0, "notifications": 0}

    if session is not None:
        for entry in _pending_entries(session):
            _deliver_entry_nested(entry, max_attempts, counts, session)
        _log_delivery(counts)
        return counts

    with session_scope() as session:
        entry_ids = [entry.id for entry in _pending_entries(session)]

    for entry_id in entry_ids:
        try:
            with session_scope() as session:
                entry = store.get_document(session, "notificationOutbox", entry_id)
                if entry is None or entry.status != OutboxStatus.PENDING.value:
                    continue
                delivered = _fan_out(
                    entry.role,
                    entry.notification_type,
                    entry.message,
                    entry.data,
                    entry.id,
                    session,
                )
                _mark_delivered(entry, delivered, session)
            counts["delivered"] += 1
            counts["notifications"] += delivered
        except Exception as e:
            with session_scope() as session:
                entry = store.get_document(session, "notificationOutbox", entry_id)
                _record_failure(entry, e, max_attempts, counts, session)

    _log_delivery(counts)
    return counts


def _pending_entries(session) -> List[NotificationOutbox]:
    return store.list_documents(session, "notificationOutbox", status=OutboxStatus.PENDING.value)


def _deliver_entry_nested(entry, max_attempts, counts, session) -> None:
    try:
        with session.begin_nested():
            delivered = _fan_out(
                entry.role,
                entry.notification_type,
                entry.message,
                entry.data,
                entry.id,
                session,
            )
            _mark_delivered(entry, delivered, session)
        counts["delivered"] += 1
        counts["notifications"] += delivered
    except Exception as e:
        _record_failure(entry, e, max_attempts, counts, session)


def _mark_delivered(entry, recipient_count: int, session) -> None:
    entry.status = OutboxStatus.DELIVERED.value
    entry.attempts = (entry.attempts or 0) + 1
    entry.delivered_at = utc_now()
    entry.recipient_count = recipient_count
    entry.last_error = None
    store.flush_changes(session, "NotificationOutbox")
    log_operation(
        logger,
        "deliver_notification",
        "delivered",
        outbox_id=entry.id,
        role=entry.role,
        recipients=recipient_count,
    )


def _record_failure(entry, error: Exception, max_attempts: int, counts, session) -> None:
    entry.attempts = (entry.attempts or 0) + 1
    entry.last_error = str(error)
    if entry.attempts >= max_attempts:
        entry.status = OutboxStatus.FAILED.value
        counts["failed"] += 1
        outcome = "failed"
    else:
        counts["retrying"] += 1
        outcome = "retry_scheduled"
    store.flush_changes(session, "NotificationOutbox")
    log_operation(
        logger,
        "deliver_notification",
        outcome,
        level=logging.ERROR,
        outbox_id=entry.id,
        role=entry.role,
        attempts=entry.attempts,
        error=str(error),
    )


def _log_delivery(counts: Dict[str, int]) -> None:
    if any(counts.values()):
        log_operation(logger, "deliver_pending_notifications", "complete", **counts)


def notify_role(
    role: str,
    notification_type: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
) -> int:
    """
    Immediately notify every user holding `role`, best effort.

    Errors are logged and swallowed; the caller's work never fails because
    a notification could not be written.

    Returns:
        Number of notifications written (0 on failure)
    """
    try:
        with session_scope() as session:
            count = _fan_out(role, notification_type, message, data, None, session)
        log_operation(logger, "notify_role", "success", role=role, recipients=count)
        return count
    except Exception as e:
        log_operation(
            logger,
            "notify_role",
            "error",
            level=logging.ERROR,
            role=role,
            notification_type=notification_type,
            error=str(e),
        )
        return 0


def get_user_notifications(uid: str, unread_only: bool = False, session=None) -> List[Dict[str, Any]]:
    """Notifications for a user, newest first."""
    if session is not None:
        return _get_user_notifications_impl(uid, unread_only, session)
    with session_scope() as session:
        return _get_user_notifications_impl(uid, unread_only, session)


def _get_user_notifications_impl(uid, unread_only, session) -> List[Dict[str, Any]]:
    status = NotificationStatus.UNREAD.value if unread_only else None
    notifications = store.list_documents(
        session, "notifications", order_by=Notification.id.desc(), uid=uid, status=status
    )
    return [n.to_dict() for n in notifications]


def mark_notification_read(notification_id: int, session=None) -> Dict[str, Any]:
    """
    Mark a notification as read.

    Raises:
        NotificationNotFound: If the id does not exist
    """
    try:
        if session is not None:
            return _mark_notification_read_impl(notification_id, session)
        with session_scope() as session:
            return _mark_notification_read_impl(notification_id, session)
    except SQLAlchemyError as e:
        raise DatabaseError("Failed to mark notification read", e)


def _mark_notification_read_impl(notification_id, session) -> Dict[str, Any]:
    notification = store.update_document(
        session,
        "notifications",
        notification_id,
        {"status": NotificationStatus.READ.value, "read_at": utc_now()},
    )
    if notification is None:
        raise NotificationNotFound(notification_id)
    return notification.to_dict()


def get_outbox(status: Optional[str] = None, session=None) -> List[Dict[str, Any]]:
    """Outbox entries, optionally filtered by status, oldest first."""
    if session is not None:
        return [e.to_dict() for e in store.list_documents(session, "notificationOutbox", status=status)]
    with session_scope() as session:
        return [e.to_dict() for e in store.list_documents(session, "notificationOutbox", status=status)]
