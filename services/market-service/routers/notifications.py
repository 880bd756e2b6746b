"""Notifications API router."""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import require_roles
from database import get_db
from dependencies import get_notification_service
from models import ADMIN_ROLES, User
from schemas import (
    MessageResponse,
    NotificationRequest,
    NotificationResponse,
    SubscribeRequest,
    SubscriberResponse
)
from services.notification_service import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])

require_admin = require_roles(*ADMIN_ROLES)


@router.post("/subscribers", response_model=SubscriberResponse, status_code=201)
async def subscribe(
    request: SubscribeRequest,
    db: Session = Depends(get_db),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Register a browser push subscription for an email."""
    return notification_service.new_subscriber(db, request)


@router.get("/subscribers", response_model=List[SubscriberResponse])
async def get_all_subscribers(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    return notification_service.get_all_subscribers(db)


@router.get("/subscribers/{subscriber_id}", response_model=SubscriberResponse)
async def get_subscriber(
    subscriber_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    return notification_service.get_subscriber_by_id(db, subscriber_id)


@router.delete("/subscribers/{subscriber_id}", response_model=MessageResponse)
async def delete_subscriber(
    subscriber_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    notification_service.delete_subscriber(db, subscriber_id)
    return {"message": f"Subscriber {subscriber_id} deleted"}


@router.get("", response_model=List[NotificationResponse])
async def get_all_notifications(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    return notification_service.get_all_notifications(db)


@router.post("", response_model=NotificationResponse, status_code=201)
async def send_notification(
    request: NotificationRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    notification_service: NotificationService = Depends(get_notification_service)
):
    """Broadcast a notification to every active subscriber by push and email."""
    return await notification_service.send_new_notification(
        db, request.title, request.html_body, request.plain_text
    )
