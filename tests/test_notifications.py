from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from taskflow.domain_errors import NotFoundError
from taskflow.models import Notification
from taskflow.services.notifications import NotificationEvent, dispatch_best_effort, notify
from taskflow.use_cases.notification_use_cases import (
    delete_notification_use_case,
    list_notifications_use_case,
    mark_all_read_use_case,
    mark_notification_read_use_case,
    unread_count,
)

BASE = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def _event(title: str = "Heads up") -> NotificationEvent:
    return NotificationEvent(type="comment", title=title, message="Someone commented")


def _seed_inbox(db, user, count: int) -> list[Notification]:
    rows = []
    for i in range(count):
        rows.extend(notify(db, [user.id], _event(f"Note {i}"), at=BASE + timedelta(minutes=i)))
    return rows


def test_notify_without_recipients_creates_nothing(db) -> None:
    assert notify(db, [], _event()) == []
    assert db.query(Notification).count() == 0


def test_notify_rejects_unknown_type(db, member) -> None:
    event = NotificationEvent(type="task_exploded", title="?", message="?")

    with pytest.raises(ValueError, match="Unknown notification type"):
        notify(db, [member.id], event)


def test_notify_creates_one_unread_row_per_recipient(db, member, manager) -> None:
    rows = notify(db, [member.id, manager.id], _event())

    assert {row.recipient_id for row in rows} == {member.id, manager.id}
    assert all(row.is_read is False and row.read_at is None for row in rows)


def test_inbox_is_newest_first_and_paginated(db, member, manager) -> None:
    _seed_inbox(db, member, 5)
    notify(db, [manager.id], _event("Not for member"))

    page, total, unread = list_notifications_use_case(db=db, current_user=member, limit=2, offset=1)

    assert total == 5
    assert unread == 5
    assert [row.title for row in page] == ["Note 3", "Note 2"]


def test_unread_filter_and_counts(db, member) -> None:
    rows = _seed_inbox(db, member, 3)
    mark_notification_read_use_case(db=db, notification_id=rows[0].id, current_user=member)

    unread_page, unread_total, unread = list_notifications_use_case(db=db, current_user=member, unread_only=True)

    assert unread_total == 2
    assert unread == 2
    assert rows[0].id not in {row.id for row in unread_page}
    assert unread_count(db=db, current_user=member) == 2


def test_mark_read_keeps_first_timestamp(db, member) -> None:
    (row,) = _seed_inbox(db, member, 1)

    first = mark_notification_read_use_case(db=db, notification_id=row.id, current_user=member)
    read_at = first.read_at
    again = mark_notification_read_use_case(db=db, notification_id=row.id, current_user=member)

    assert again.is_read is True
    assert again.read_at == read_at


def test_mark_all_read_only_touches_own_unread(db, member, manager) -> None:
    rows = _seed_inbox(db, member, 3)
    mark_notification_read_use_case(db=db, notification_id=rows[0].id, current_user=member)
    notify(db, [manager.id], _event())

    assert mark_all_read_use_case(db=db, current_user=member) == 2
    assert unread_count(db=db, current_user=member) == 0
    assert unread_count(db=db, current_user=manager) == 1


def test_other_users_notifications_are_not_found(db, member, manager) -> None:
    (row,) = _seed_inbox(db, member, 1)

    with pytest.raises(NotFoundError) as exc_info:
        mark_notification_read_use_case(db=db, notification_id=row.id, current_user=manager)
    assert exc_info.value.code == "NOTIFICATION_NOT_FOUND"

    with pytest.raises(NotFoundError):
        delete_notification_use_case(db=db, notification_id=row.id, current_user=manager)
    with pytest.raises(NotFoundError):
        delete_notification_use_case(db=db, notification_id=uuid4(), current_user=member)


def test_delete_notification(db, member) -> None:
    (row,) = _seed_inbox(db, member, 1)

    delete_notification_use_case(db=db, notification_id=row.id, current_user=member)

    assert db.query(Notification).count() == 0


def test_dispatch_best_effort_logs_and_swallows_failures(db, caplog) -> None:
    def _explode():
        raise RuntimeError("smtp unavailable")

    with caplog.at_level(logging.ERROR, logger="taskflow.services.notifications"):
        result = dispatch_best_effort(db, "send_digest", _explode)

    assert result is None
    assert "automation.failed step=send_digest" in caplog.text


def test_dispatch_best_effort_returns_result(db) -> None:
    assert dispatch_best_effort(db, "add", lambda a, b: a + b, 2, 3) == 5
