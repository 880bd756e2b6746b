"""Order management service."""
import logging
from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from errors import not_found
from models import CartProduct, Order, OrderItem, User
from schemas import OrderInfo
from services.product_service import ProductService

logger = logging.getLogger(__name__)


class OrderService:
    """Service for managing orders.

    ``create_order`` and ``create_order_item`` only flush; the checkout that
    calls them owns the transaction.
    """

    def __init__(self, product_service: ProductService):
        self.product_service = product_service
        self.tracer = trace.get_tracer(__name__)

    def create_order(self, db: Session, user: User, order_info: OrderInfo) -> Order:
        with self.tracer.start_as_current_span("db.query.insert_order") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user.id)

            order = Order(
                user_id=user.id,
                status="pending",
                total_price=0.0,
                address=order_info.address,
                city=order_info.city,
                country=order_info.country,
                phone=order_info.phone,
                comments=order_info.comments,
                order_items=[]
            )
            db.add(order)
            db.flush()

            db_span.set_attribute("order.id", order.id)
        return order

    def create_order_item(self, db: Session, order: Order, cart_product: CartProduct) -> OrderItem:
        """Copy a cart line into the order and count the units as sold."""
        order_item = OrderItem(
            product_id=cart_product.product_id,
            quantity=cart_product.quantity,
            total_price=cart_product.total_price
        )
        order.order_items.append(order_item)
        order.total_price = (order.total_price or 0.0) + cart_product.total_price
        self.product_service.record_sale(db, cart_product.product_id, cart_product.quantity)
        db.flush()
        return order_item

    def get_user_orders(self, db: Session, user: User) -> List[Order]:
        return (
            db.query(Order)
            .options(selectinload(Order.order_items))
            .filter(Order.user_id == user.id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    def get_order_by_id(self, db: Session, user: User, order_id: int) -> Order:
        order = (
            db.query(Order)
            .options(selectinload(Order.order_items))
            .filter(Order.id == order_id, Order.user_id == user.id)
            .first()
        )
        if order is None:
            raise not_found("Order", order_id)
        return order

    def get_total_orders(self, db: Session) -> int:
        return db.query(func.count(Order.id)).scalar()
