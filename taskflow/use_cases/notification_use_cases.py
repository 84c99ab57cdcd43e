"""Notification inbox use-cases; every query is scoped to the recipient."""
from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from ..domain_errors import NotFoundError
from ..models import Notification, User
from ..timeutils import now_utc


def _get_own_notification_or_404(*, db: Session, notification_id: UUID, current_user: User) -> Notification:
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.recipient_id == current_user.id,
    ).first()
    if not notification:
        raise NotFoundError("Notification not found", code="NOTIFICATION_NOT_FOUND")
    return notification


def unread_count(*, db: Session, current_user: User) -> int:
    return db.query(Notification).filter(
        Notification.recipient_id == current_user.id,
        Notification.is_read.is_(False),
    ).count()


def list_notifications_use_case(
    *,
    db: Session,
    current_user: User,
    unread_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Notification], int, int]:
    """Return (page, total matching, unread total), newest first."""
    query = db.query(Notification).filter(Notification.recipient_id == current_user.id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    total = query.count()
    items = (
        query.options(selectinload(Notification.triggered_by))
        .order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total, unread_count(db=db, current_user=current_user)


def mark_notification_read_use_case(*, db: Session, notification_id: UUID, current_user: User) -> Notification:
    notification = _get_own_notification_or_404(db=db, notification_id=notification_id, current_user=current_user)

    # Idempotent: keep the first read timestamp.
    if notification.is_read:
        return notification

    notification.is_read = True
    notification.read_at = now_utc()
    db.commit()
    return notification


def mark_all_read_use_case(*, db: Session, current_user: User) -> int:
    updated = db.query(Notification).filter(
        Notification.recipient_id == current_user.id,
        Notification.is_read.is_(False),
    ).update(
        {Notification.is_read: True, Notification.read_at: now_utc()},
        synchronize_session=False,
    )
    db.commit()
    return updated


def delete_notification_use_case(*, db: Session, notification_id: UUID, current_user: User) -> None:
    notification = _get_own_notification_or_404(db=db, notification_id=notification_id, current_user=current_user)
    db.delete(notification)
    db.commit()
