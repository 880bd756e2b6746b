"""Payment and invoice service."""
import logging
import time
from typing import Any, Dict
import httpx
from sqlalchemy.orm import Session

from errors import PaymentError
from models import Invoice, Order, Payment, User
from monitoring import payment_duration_histogram
from schemas import PaymentInfo
from services.external_service import ExternalServiceClient

logger = logging.getLogger(__name__)


class PaymentService:
    """Charges orders through the payment provider and records the result."""

    def __init__(self, external_service: ExternalServiceClient):
        self.external_service = external_service

    async def create_payment(
        self,
        db: Session,
        user: User,
        payment_info: PaymentInfo,
        order: Order
    ) -> Dict[str, Any]:
        """
        Charge an order and persist its payment and invoice.

        Flushes but does not commit; the checkout owns the transaction.

        Returns:
            ``payment``, ``invoice`` and the provider's ``customer_id``

        Raises:
            PaymentError: If the provider is unavailable or rejects the charge
        """
        payment_start = time.time()
        try:
            payment_data = await self.external_service.process_payment(
                customer_email=user.email,
                amount=order.total_price,
                currency=payment_info.currency,
                payment_method=payment_info.payment_method,
                order_id=order.id
            )
        except httpx.HTTPError as e:
            logger.error("Payment service error", extra={
                "user_id": user.id,
                "order_id": order.id,
                "amount": order.total_price,
                "payment_method": payment_info.payment_method,
                "error": str(e)
            })
            raise PaymentError("Payment service unavailable") from e
        finally:
            payment_duration_histogram.record(
                time.time() - payment_start,
                {"payment_method": payment_info.payment_method}
            )

        payment = Payment(
            user_id=user.id,
            order_id=order.id,
            amount=order.total_price,
            currency=payment_info.currency,
            payment_method=payment_info.payment_method,
            transaction_id=payment_data.get("transaction_id"),
            customer_id=payment_data.get("customer_id"),
            status="completed"
        )
        db.add(payment)
        db.flush()

        invoice = Invoice(
            user_id=user.id,
            order_id=order.id,
            payment_id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            status="paid"
        )
        db.add(invoice)
        order.status = "paid"
        db.flush()

        logger.info("Payment completed", extra={
            "user_id": user.id,
            "order_id": order.id,
            "payment_id": payment.id,
            "invoice_id": invoice.id,
            "amount": payment.amount,
            "payment_transaction_id": payment.transaction_id
        })

        return {
            "payment": payment,
            "invoice": invoice,
            "customer_id": payment.customer_id
        }
