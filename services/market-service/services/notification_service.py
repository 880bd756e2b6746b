"""Subscriber management and notification fan-out service."""
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
from opentelemetry import trace

from config import NOTIFICATION_ICON_URL
from errors import ConflictError, not_found
from models import Notification, Subscriber, SubscribersNotifications
from monitoring import notification_deliveries_counter
from schemas import SubscribeRequest
from services.external_service import ExternalServiceClient

logger = logging.getLogger(__name__)

VIBRATE_PATTERN = [100, 50, 100]


class NotificationService:
    """Service for push/email subscribers and broadcast notifications."""

    def __init__(self, external_service: ExternalServiceClient):
        self.external_service = external_service
        self.tracer = trace.get_tracer(__name__)

    def get_all_subscribers(self, db: Session) -> List[Subscriber]:
        return db.query(Subscriber).order_by(Subscriber.id).all()

    def get_all_notifications(self, db: Session) -> List[Notification]:
        return db.query(Notification).order_by(Notification.id).all()

    def get_subscriber_by_id(self, db: Session, subscriber_id: int) -> Subscriber:
        subscriber = db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()
        if subscriber is None:
            raise not_found("Subscriber", subscriber_id)
        return subscriber

    def get_subscriber_by_email(self, db: Session, email: str) -> Optional[Subscriber]:
        return db.query(Subscriber).filter(Subscriber.email == email).first()

    def new_subscriber(self, db: Session, request: SubscribeRequest) -> Subscriber:
        """
        Register a push subscription for an email.

        Raises:
            ConflictError: If the email already subscribed
        """
        if self.get_subscriber_by_email(db, request.email) is not None:
            raise ConflictError(
                "You already have subscribed to our newsletter, "
                "you can use another email for subscription"
            )
        subscriber = Subscriber(
            email=request.email,
            endpoint=request.sub.endpoint,
            expiration_time=request.sub.expiration_time,
            keys=request.sub.keys.model_dump()
        )
        db.add(subscriber)
        db.commit()
        db.refresh(subscriber)

        logger.info("New subscriber", extra={"subscriber_id": subscriber.id})
        return subscriber

    def delete_subscriber_data(self, db: Session, subscriber: Subscriber) -> None:
        """Delete a subscriber's delivery history. Does not commit."""
        db.query(SubscribersNotifications).filter(
            SubscribersNotifications.subscriber_id == subscriber.id
        ).delete(synchronize_session=False)

    def delete_subscriber(self, db: Session, subscriber_id: int) -> None:
        subscriber = self.get_subscriber_by_id(db, subscriber_id)
        try:
            self.delete_subscriber_data(db, subscriber)
            db.delete(subscriber)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Deleted subscriber", extra={"subscriber_id": subscriber_id})

    @staticmethod
    def build_payload(title: str, plain_text: str) -> Dict[str, Any]:
        """Build the web push payload shown by the browser."""
        return {
            "notification": {
                "title": title,
                "body": plain_text,
                "icon": NOTIFICATION_ICON_URL,
                "vibrate": VIBRATE_PATTERN,
                "actions": [{"action": "explore", "title": title}],
                "data": {
                    "date_of_arrival": datetime.utcnow().isoformat(),
                    "primary_key": str(uuid.uuid4())
                }
            }
        }

    async def send_new_notification(
        self,
        db: Session,
        title: str,
        html_body: str,
        plain_text: str
    ) -> Notification:
        """
        Broadcast a notification to every active subscriber.

        One delivery record is stored per subscriber, then the push message
        and the email are sent. Failed deliveries are logged and counted and
        do not stop the fan-out.
        """
        payload = self.build_payload(title, plain_text)
        content = payload["notification"]
        now = datetime.utcnow()

        with self.tracer.start_as_current_span("notification.fan_out") as span:
            subscribers = [s for s in self.get_all_subscribers(db) if s.is_active(now)]
            span.set_attribute("notification.subscribers", len(subscribers))

            try:
                notification = Notification(title=title, body=plain_text)
                db.add(notification)
                db.flush()
                for subscriber in subscribers:
                    db.add(SubscribersNotifications(
                        title=content["title"],
                        body=content["body"],
                        data=content["data"],
                        actions=content["actions"],
                        vibrate=content["vibrate"],
                        subscriber_id=subscriber.id,
                        notification_id=notification.id
                    ))
                db.commit()
            except Exception:
                db.rollback()
                raise

            deliveries = [
                {"email": s.email, "subscription": {"endpoint": s.endpoint, "keys": s.keys}}
                for s in subscribers
            ]
            for delivery in deliveries:
                pushed = await self.external_service.send_push(delivery["subscription"], payload)
                notification_deliveries_counter.add(1, {
                    "channel": "push",
                    "status": "sent" if pushed else "failed"
                })
                emailed = await self.external_service.send_email(
                    to=delivery["email"],
                    subject=title,
                    html=html_body,
                    text=plain_text
                )
                notification_deliveries_counter.add(1, {
                    "channel": "email",
                    "status": "sent" if emailed else "failed"
                })

        logger.info("Notification sent", extra={
            "notification_id": notification.id,
            "subscribers": len(subscribers)
        })
        return notification
