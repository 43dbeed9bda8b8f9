"""Tests for the notification outbox and its delivery."""

import logging

import pytest

from batchflow.services import notification_service, production_service
from batchflow.services.database import session_scope
from batchflow.services.exceptions import NotificationNotFound
from batchflow.utils.constants import ROLE_FG_STORE_MANAGER, ROLE_PACKING_AREA_MANAGER


def _enqueue(role=ROLE_PACKING_AREA_MANAGER, message="Batch ready"):
    with session_scope() as session:
        return notification_service.enqueue_role_notification(
            role, notification_service.NOTIFY_BATCH_HANDOVER, message, {"batch_id": 1}, session=session
        )


def _broken_fan_out(*args, **kwargs):
    raise RuntimeError("mail relay down")


class TestEnqueue:
    def test_entry_is_pending(self, test_db):
        entry_id = _enqueue()
        outbox = notification_service.get_outbox()
        assert [entry["id"] for entry in outbox] == [entry_id]
        assert outbox[0]["status"] == "pending"
        assert outbox[0]["attempts"] == 0
        assert outbox[0]["data"] == {"batch_id": 1}

    def test_rolled_back_with_caller(self, test_db):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                notification_service.enqueue_role_notification(
                    ROLE_PACKING_AREA_MANAGER, "batch_handover", "Batch ready", session=session
                )
                raise RuntimeError("workflow step failed")
        assert notification_service.get_outbox() == []

    def test_handover_queues_for_packing(self, completed_batch, production_manager):
        production_service.handover_batch_to_packing(
            completed_batch["id"], {"quantity": 95}, principal=production_manager
        )
        outbox = notification_service.get_outbox(status="pending")
        assert len(outbox) == 1
        assert outbox[0]["role"] == ROLE_PACKING_AREA_MANAGER
        assert outbox[0]["notification_type"] == "batch_handover"


class TestDeliverPendingNotifications:
    def test_fans_out_to_role(self, role_users):
        _enqueue()
        counts = notification_service.deliver_pending_notifications()
        assert counts == {"delivered": 1, "failed": 0, "retrying": 0, "notifications": 2}

        entry = notification_service.get_outbox()[0]
        assert entry["status"] == "delivered"
        assert entry["recipient_count"] == 2
        assert entry["delivered_at"] is not None

        for uid in ("u-pack", "u-pack-2"):
            notifications = notification_service.get_user_notifications(uid)
            assert len(notifications) == 1
            assert notifications[0]["message"] == "Batch ready"
            assert notifications[0]["outbox_id"] == entry["id"]
            assert notifications[0]["status"] == "unread"
        assert notification_service.get_user_notifications("u-fg") == []

    def test_delivered_entries_are_not_resent(self, role_users):
        _enqueue()
        notification_service.deliver_pending_notifications()
        counts = notification_service.deliver_pending_notifications()
        assert counts["delivered"] == 0
        assert len(notification_service.get_user_notifications("u-pack")) == 1

    def test_role_without_users(self, test_db):
        _enqueue(role=ROLE_FG_STORE_MANAGER)
        counts = notification_service.deliver_pending_notifications()
        assert counts["delivered"] == 1
        assert counts["notifications"] == 0

    def test_failure_retries_then_fails(self, role_users, monkeypatch, caplog):
        _enqueue()
        monkeypatch.setattr(notification_service, "_fan_out", _broken_fan_out)

        with caplog.at_level(logging.ERROR, logger="batchflow.services"):
            first = notification_service.deliver_pending_notifications(max_attempts=2)
        assert first["retrying"] == 1
        entry = notification_service.get_outbox()[0]
        assert entry["status"] == "pending"
        assert entry["attempts"] == 1
        assert entry["last_error"] == "mail relay down"
        assert any("retry_scheduled" in r.getMessage() for r in caplog.records)

        second = notification_service.deliver_pending_notifications(max_attempts=2)
        assert second["failed"] == 1
        assert notification_service.get_outbox(status="failed")[0]["attempts"] == 2

        # failed entries are left alone
        monkeypatch.undo()
        assert notification_service.deliver_pending_notifications()["delivered"] == 0

    def test_one_failure_does_not_block_others(self, role_users, monkeypatch):
        _enqueue(message="first")
        _enqueue(message="second")
        real_fan_out = notification_service._fan_out

        def flaky(role, notification_type, message, data, outbox_id, session):
            if message == "first":
                raise RuntimeError("boom")
            return real_fan_out(role, notification_type, message, data, outbox_id, session)

        monkeypatch.setattr(notification_service, "_fan_out", flaky)
        counts = notification_service.deliver_pending_notifications(max_attempts=3)
        assert counts["delivered"] == 1
        assert counts["retrying"] == 1
        assert [n["message"] for n in notification_service.get_user_notifications("u-pack")] == ["second"]


class TestNotifyRole:
    def test_immediate_fan_out(self, role_users):
        assert notification_service.notify_role(ROLE_PACKING_AREA_MANAGER, "info", "Shift change") == 2
        assert notification_service.get_user_notifications("u-pack-2")[0]["outbox_id"] is None

    def test_errors_are_swallowed(self, role_users, monkeypatch, caplog):
        monkeypatch.setattr(notification_service, "_fan_out", _broken_fan_out)
        with caplog.at_level(logging.ERROR, logger="batchflow.services"):
            assert notification_service.notify_role(ROLE_PACKING_AREA_MANAGER, "info", "Shift change") == 0
        assert any(r.getMessage() == "notify_role: error" for r in caplog.records)


class TestUserNotifications:
    def test_mark_read(self, role_users):
        notification_service.notify_role(ROLE_PACKING_AREA_MANAGER, "info", "One")
        notification_service.notify_role(ROLE_PACKING_AREA_MANAGER, "info", "Two")
        newest, oldest = notification_service.get_user_notifications("u-pack")
        assert newest["message"] == "Two"

        read = notification_service.mark_notification_read(oldest["id"])
        assert read["status"] == "read"
        assert read["read_at"] is not None

        unread = notification_service.get_user_notifications("u-pack", unread_only=True)
        assert [n["id"] for n in unread] == [newest["id"]]

    def test_mark_unknown(self, test_db):
        with pytest.raises(NotificationNotFound):
            notification_service.mark_notification_read(404)
