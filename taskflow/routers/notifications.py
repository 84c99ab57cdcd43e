"""Notification inbox endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from uuid import UUID
from ..database import get_db
from ..models import User
from ..schemas import (
    MarkAllReadResponse, NotificationListResponse, NotificationResponse,
    PaginationResponse, UnreadCountResponse,
)
from ..auth import get_current_user
from ..use_cases.notification_use_cases import (
    delete_notification_use_case,
    list_notifications_use_case,
    mark_all_read_use_case,
    mark_notification_read_use_case,
    unread_count,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def get_notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the current user's notifications, newest first."""
    items, total, unread = list_notifications_use_case(
        db=db,
        current_user=current_user,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        data=[NotificationResponse.model_validate(item) for item in items],
        pagination=PaginationResponse(total=total, limit=limit, offset=offset),
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return UnreadCountResponse(unread_count=unread_count(db=db, current_user=current_user))


@router.patch("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Mark every unread notification as read."""
    return MarkAllReadResponse(updated=mark_all_read_use_case(db=db, current_user=current_user))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = mark_notification_read_use_case(
        db=db,
        notification_id=notification_id,
        current_user=current_user,
    )
    return NotificationResponse.model_validate(notification)


@router.delete("/{notification_id}", status_code=204)
def delete_notification(
    notification_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    delete_notification_use_case(db=db, notification_id=notification_id, current_user=current_user)
