"""External service communication layer."""
import httpx
import logging
import time
from typing import Dict, Any, Optional

from config import (
    EMAIL_VERIFIER_API_KEY,
    EMAIL_VERIFIER_URL,
    MAIL_FROM,
    MAIL_SERVICE_URL,
    PAYMENT_PROVIDER_URL,
    PUSH_SERVICE_URL
)
from monitoring import external_call_duration_histogram

logger = logging.getLogger(__name__)


class ExternalServiceClient:
    """Client for the payment provider, email verifier and delivery relays."""

    def __init__(self, http_client: httpx.AsyncClient):
        """
        Initialize external service client.

        Args:
            http_client: Async HTTP client
        """
        self.http_client = http_client

    @staticmethod
    def _record_duration(operation: str, start_time: float, status: str, status_code: Optional[int]) -> None:
        external_call_duration_histogram.record(
            time.time() - start_time,
            {
                "operation": operation,
                "status": status,
                "status_code": str(status_code) if status_code else "0"
            }
        )

    async def verify_email(self, email: str) -> Optional[Dict[str, Any]]:
        """
        Ask the email verifier whether an address can receive mail.

        Args:
            email: Address to check

        Returns:
            Verifier response (``status`` is ``"passed"`` for usable
            addresses), or None when the verifier could not be reached
        """
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.get(
                EMAIL_VERIFIER_URL,
                headers={"x-rapidapi-key": EMAIL_VERIFIER_API_KEY},
                params={"email": email}
            )
            status_code = response.status_code
            if response.status_code == 200:
                return response.json()
            status = "error"
            logger.warning("Email verifier returned non-200 status", extra={
                "status_code": response.status_code,
                "email": email
            })
            return None
        except httpx.HTTPError as e:
            status = "error"
            logger.error("Failed to verify email", extra={
                "email": email,
                "error": str(e)
            })
            return None
        finally:
            self._record_duration("verify_email", start_time, status, status_code)

    async def process_payment(
        self,
        customer_email: str,
        amount: float,
        currency: str,
        payment_method: str,
        order_id: int
    ) -> Dict[str, Any]:
        """
        Charge an order through the payment provider.

        Args:
            customer_email: Email of the paying user
            amount: Payment amount
            currency: Currency code
            payment_method: Payment method
            order_id: Order identifier

        Returns:
            Provider response with ``transaction_id`` and ``customer_id``

        Raises:
            httpx.HTTPError: If the provider is unavailable or rejects the charge
        """
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.post(
                f"{PAYMENT_PROVIDER_URL}/api/payments/process",
                json={
                    "customer_email": customer_email,
                    "amount": amount,
                    "currency": currency,
                    "payment_method": payment_method,
                    "order_id": order_id
                }
            )
            status_code = response.status_code
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError:
            status = "error"
            raise
        finally:
            self._record_duration("process_payment", start_time, status, status_code)

    async def send_push(self, subscription: Dict[str, Any], payload: Dict[str, Any]) -> bool:
        """
        Deliver a web push message through the push relay.

        Args:
            subscription: Push subscription (endpoint, keys)
            payload: Notification payload

        Returns:
            True if the relay accepted the message
        """
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.post(
                f"{PUSH_SERVICE_URL}/api/push/send",
                json={"subscription": subscription, "payload": payload}
            )
            status_code = response.status_code
            if response.status_code >= 400:
                status = "error"
                logger.warning("Push relay returned error status", extra={
                    "status_code": response.status_code,
                    "endpoint": subscription.get("endpoint")
                })
                return False
            return True
        except httpx.HTTPError as e:
            status = "error"
            logger.error("Failed to send push notification", extra={
                "endpoint": subscription.get("endpoint"),
                "error": str(e)
            })
            return False
        finally:
            self._record_duration("send_push", start_time, status, status_code)

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
        sender: str = MAIL_FROM
    ) -> bool:
        """
        Deliver an email through the mail relay.

        Returns:
            True if the relay accepted the message
        """
        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.post(
                f"{MAIL_SERVICE_URL}/api/mail/send",
                json={
                    "from": sender,
                    "to": to,
                    "subject": subject,
                    "html": html,
                    "text": text
                }
            )
            status_code = response.status_code
            if response.status_code >= 400:
                status = "error"
                logger.warning("Mail relay returned error status", extra={
                    "status_code": response.status_code,
                    "to": to,
                    "subject": subject
                })
                return False
            return True
        except httpx.HTTPError as e:
            status = "error"
            logger.error("Failed to send email", extra={
                "to": to,
                "subject": subject,
                "error": str(e)
            })
            return False
        finally:
            self._record_duration("send_email", start_time, status, status_code)
