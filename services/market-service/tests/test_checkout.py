"""Tests for checkout: orders, payments, invoices and rollback on failure."""

import asyncio

import pytest

from errors import NotFoundError, PaymentError
from models import CartProduct, Invoice, Order, OrderItem, Payment, Product
from schemas import OrderInfo, PaymentInfo

ORDER_INFO = OrderInfo(address="1 Main St", city="Cairo", country="Egypt", phone="555-0100")
PAYMENT_INFO = PaymentInfo(payment_method="card", currency="USD")


@pytest.fixture()
def shopper(db, user_factory, cart_service, catalog):
    user = user_factory()
    cart_service.create_cart(db, user)
    cart_service.add_product_to_cart(db, user, catalog["laptop_id"], 2)
    cart_service.add_product_to_cart(db, user, catalog["mouse_id"], 2)
    return user


def _product(db, product_id):
    db.expire_all()
    return db.get(Product, product_id)


class TestCheckoutOnCart:
    def test_checkout_creates_paid_order(self, db, shopper, catalog, cart_service, external):
        result = asyncio.run(cart_service.checkout_on_cart(db, shopper, ORDER_INFO, PAYMENT_INFO))

        order = result["order"]
        assert order.status == "paid"
        assert order.total_price == 25.0
        assert order.address == "1 Main St"
        assert sorted(item.product_id for item in order.order_items) == sorted(
            [catalog["laptop_id"], catalog["mouse_id"]]
        )
        assert result["payment"].transaction_id == f"txn-{order.id}"
        assert result["payment"].amount == 25.0
        assert result["invoice"].payment_id == result["payment"].id
        assert result["invoice"].status == "paid"

        [charge] = external.bodies_to("/api/payments/process")
        assert charge["amount"] == 25.0
        assert charge["order_id"] == order.id
        assert charge["customer_email"] == shopper.email

    def test_checkout_empties_cart_without_restock(self, db, shopper, catalog, cart_service):
        result = asyncio.run(cart_service.checkout_on_cart(db, shopper, ORDER_INFO, PAYMENT_INFO))

        assert result["cart"].cart_products == []
        assert result["cart"].total_items == 0
        laptop = _product(db, catalog["laptop_id"])
        assert laptop.quantity == 8
        assert laptop.sales == 2

    def test_checkout_on_empty_cart(self, db, user_factory, cart_service, external):
        user = user_factory()
        cart_service.create_cart(db, user)

        with pytest.raises(NotFoundError):
            asyncio.run(cart_service.checkout_on_cart(db, user, ORDER_INFO, PAYMENT_INFO))

        assert db.query(Order).count() == 0
        assert external.calls_to("/api/payments/process") == []

    def test_payment_failure_rolls_everything_back(self, db, shopper, catalog, cart_service, external):
        external.payment_status = 500

        with pytest.raises(PaymentError):
            asyncio.run(cart_service.checkout_on_cart(db, shopper, ORDER_INFO, PAYMENT_INFO))

        db.expire_all()
        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0
        assert db.query(Payment).count() == 0
        assert db.query(Invoice).count() == 0
        assert db.query(CartProduct).count() == 2
        cart = cart_service.get_user_cart(db, user=shopper)
        assert cart.total_items == 2
        laptop = _product(db, catalog["laptop_id"])
        assert laptop.quantity == 8
        assert laptop.sales == 0

    def test_orders_are_listed_for_their_owner(self, db, shopper, user_factory, cart_service, order_service):
        result = asyncio.run(cart_service.checkout_on_cart(db, shopper, ORDER_INFO, PAYMENT_INFO))
        order_id = result["order"].id

        assert [order.id for order in order_service.get_user_orders(db, shopper)] == [order_id]
        assert order_service.get_order_by_id(db, shopper, order_id).id == order_id
        assert order_service.get_total_orders(db) == 1

        stranger = user_factory()
        with pytest.raises(NotFoundError):
            order_service.get_order_by_id(db, stranger, order_id)


class TestCheckoutOnSingleProduct:
    def test_single_line_is_ordered(self, db, shopper, catalog, cart_service):
        cart = cart_service.get_user_cart(db, user=shopper)
        mouse_line = next(line for line in cart.cart_products if line.product_id == catalog["mouse_id"])

        result = asyncio.run(cart_service.checkout_on_single_product(
            db, shopper, mouse_line.id, ORDER_INFO, PAYMENT_INFO
        ))

        assert result["order"].total_price == 5.0
        assert [item.product_id for item in result["order"].order_items] == [catalog["mouse_id"]]
        assert result["customer_id"] == "cus-001"
        assert [line.product_id for line in result["cart"].cart_products] == [catalog["laptop_id"]]
        assert result["cart"].total_items == 1
        assert _product(db, catalog["mouse_id"]).sales == 2

    def test_line_outside_the_users_cart(self, db, shopper, user_factory, catalog, cart_service):
        other = user_factory()
        cart_service.create_cart(db, other)
        other_cart = cart_service.add_product_to_cart(db, other, catalog["laptop_id"], 1)
        foreign_line_id = other_cart.cart_products[0].id

        with pytest.raises(NotFoundError):
            asyncio.run(cart_service.checkout_on_single_product(
                db, shopper, foreign_line_id, ORDER_INFO, PAYMENT_INFO
            ))

        db.expire_all()
        assert db.query(Order).count() == 0
        assert len(cart_service.get_user_cart(db, user=other).cart_products) == 1
        assert len(cart_service.get_user_cart(db, user=shopper).cart_products) == 2

    def test_payment_failure_keeps_the_line(self, db, shopper, cart_service, external):
        external.payment_status = 402
        cart = cart_service.get_user_cart(db, user=shopper)
        line_id = cart.cart_products[0].id

        with pytest.raises(PaymentError):
            asyncio.run(cart_service.checkout_on_single_product(
                db, shopper, line_id, ORDER_INFO, PAYMENT_INFO
            ))

        db.expire_all()
        assert db.query(Order).count() == 0
        assert db.get(CartProduct, line_id) is not None
