"""Cart management and checkout service."""
import logging
from typing import Any, Dict, Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
import redis
from opentelemetry import trace

from errors import BadRequestError, ConflictError, NotFoundError, not_found
from models import Cart, CartProduct, User
from monitoring import (
    cart_mutations_counter,
    checkout_amount_histogram,
    checkout_counter,
    restocked_units_counter
)
from schemas import OrderInfo, PaymentInfo, RemoveCartItem
from services.order_service import OrderService
from services.payment_service import PaymentService
from services.product_service import ProductService

logger = logging.getLogger(__name__)

CART_CACHE_TTL_SECONDS = 3600


class CartService:
    """Service for shopping carts and the checkout workflow.

    Every public method is one unit of work: it commits on success and rolls
    back on failure. Checkout creates the order, its items, the cart changes,
    the payment and the invoice in a single transaction.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        order_service: OrderService,
        payment_service: PaymentService,
        product_service: ProductService
    ):
        """
        Initialize cart service.

        Args:
            redis_client: Redis client for the cart size cache
            order_service: Creates orders and order items
            payment_service: Charges orders
            product_service: Price lookups and stock counters
        """
        self.redis_client = redis_client
        self.order_service = order_service
        self.payment_service = payment_service
        self.product_service = product_service
        self.tracer = trace.get_tracer(__name__)

    # Lookups

    def get_user_cart(
        self,
        db: Session,
        user: Optional[User] = None,
        cart_id: Optional[int] = None,
        lock: bool = False
    ) -> Cart:
        """
        Load a cart with its line items, by owner or by id.

        Args:
            db: Database session
            user: Owner of the cart; takes precedence over cart_id
            cart_id: Cart identifier
            lock: Lock the cart row until the transaction ends

        Raises:
            NotFoundError: If no cart matches
        """
        target_id = user.cart_id if user is not None else cart_id
        if target_id is None:
            raise NotFoundError("Cart not found, create a cart first")

        query = (
            db.query(Cart)
            .options(selectinload(Cart.cart_products))
            .filter(Cart.id == target_id)
        )
        if lock:
            query = query.with_for_update()
        cart = query.first()
        if cart is None:
            raise not_found("Cart", target_id)
        return cart

    def get_total_carts(self, db: Session) -> int:
        return db.query(func.count(Cart.id)).scalar()

    @staticmethod
    def _find_cart_product(cart: Cart, cart_product_id: int) -> CartProduct:
        for cart_product in cart.cart_products:
            if cart_product.id == cart_product_id:
                return cart_product
        raise not_found("Cart Product", cart_product_id)

    # Internal mutations (no commit)

    @staticmethod
    def _sync_total_items(cart: Cart) -> None:
        cart.total_items = len(cart.cart_products)

    def _remove_items(
        self,
        db: Session,
        cart: Cart,
        cart_products: Iterable[CartProduct],
        restock: bool
    ) -> None:
        for cart_product in list(cart_products):
            if restock:
                self.product_service.restock(db, cart_product.product_id, cart_product.quantity)
                restocked_units_counter.add(cart_product.quantity)
            cart.cart_products.remove(cart_product)
        self._sync_total_items(cart)
        db.flush()

    def _cache_total_items(self, cart_id: int, total_items: int) -> None:
        cache_key = f"cart:{cart_id}:total_items"
        with self.tracer.start_as_current_span("cache.set") as cache_span:
            cache_span.set_attribute("cache.system", "redis")
            cache_span.set_attribute("cache.key", cache_key)
            try:
                self.redis_client.setex(cache_key, CART_CACHE_TTL_SECONDS, total_items)
            except redis.RedisError as e:
                logger.error("Failed to update cart cache", extra={
                    "cart_id": cart_id,
                    "error": str(e)
                })

    def _commit(self, db: Session, cart: Cart, operation: str) -> Cart:
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        self._cache_total_items(cart.id, cart.total_items)
        cart_mutations_counter.add(1, {"operation": operation})
        return cart

    # Cart operations

    def create_cart(self, db: Session, user: User) -> Cart:
        """
        Create an empty cart for a user.

        Raises:
            ConflictError: If the user already has a cart
        """
        if user.cart_id is not None:
            raise ConflictError("You already have a cart")

        cart = Cart(total_items=0, cart_products=[])
        db.add(cart)
        db.flush()
        user.cart_id = cart.id
        self._commit(db, cart, "create")

        logger.info("Created cart", extra={"user_id": user.id, "cart_id": cart.id})
        return cart

    def add_product_to_cart(self, db: Session, user: User, product_id: int, quantity: int) -> Cart:
        """
        Reserve stock for a product and add it to the user's cart.

        A product already in the cart gets its line item's quantity raised.

        Raises:
            BadRequestError: If quantity is not positive or stock is insufficient
            NotFoundError: If the cart or the product does not exist
        """
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1")

        cart = self.get_user_cart(db, user=user)
        product = self.product_service.get_product_by_id(db, product_id)
        available = product.quantity

        if not self.product_service.reserve_stock(db, product_id, quantity):
            db.rollback()
            raise BadRequestError(f"Only {available} units of {product.name} are in stock")

        cart_product = next(
            (item for item in cart.cart_products if item.product_id == product_id),
            None
        )
        if cart_product is None:
            cart_product = CartProduct(product_id=product_id, quantity=quantity)
            cart.cart_products.append(cart_product)
        else:
            cart_product.quantity += quantity
        cart_product.total_price = product.current_price * cart_product.quantity
        self._sync_total_items(cart)
        self._commit(db, cart, "add")

        logger.info("Added product to cart", extra={
            "user_id": user.id,
            "cart_id": cart.id,
            "product_id": product_id,
            "quantity": quantity
        })
        return cart

    def update_cart_product_quantity(
        self,
        db: Session,
        cart_id: int,
        cart_product_id: int,
        new_quantity: int
    ) -> Cart:
        """
        Set a line item's quantity and reprice it at the product's current price.

        Stock is not adjusted.

        Raises:
            BadRequestError: If new_quantity is not positive
            NotFoundError: If the cart, line item or product does not exist
        """
        if new_quantity < 1:
            raise BadRequestError("Quantity must be at least 1")

        cart = self.get_user_cart(db, cart_id=cart_id)
        cart_product = self._find_cart_product(cart, cart_product_id)
        product = self.product_service.get_product_by_id(db, cart_product.product_id)

        cart_product.quantity = new_quantity
        cart_product.total_price = product.current_price * new_quantity
        return self._commit(db, cart, "update")

    def remove_cart_product(self, db: Session, cart_id: int, cart_product_id: int) -> Cart:
        """
        Remove one line item without restocking.

        Raises:
            NotFoundError: If the cart or line item does not exist
        """
        cart = self.get_user_cart(db, cart_id=cart_id)
        cart_product = self._find_cart_product(cart, cart_product_id)
        try:
            self._remove_items(db, cart, [cart_product], restock=False)
        except Exception:
            db.rollback()
            raise
        return self._commit(db, cart, "remove")

    def remove_products_from_cart(
        self,
        db: Session,
        cart_id: int,
        items: List[RemoveCartItem],
        restock: bool
    ) -> Cart:
        """
        Remove several line items, optionally returning their units to stock.

        All items are resolved before anything is removed. A line listed more
        than once is removed, and restocked, once.

        Raises:
            NotFoundError: If the cart or any of the line items does not exist
        """
        cart = self.get_user_cart(db, cart_id=cart_id)
        cart_product_ids = list(dict.fromkeys(item.cart_product_id for item in items))
        cart_products = [self._find_cart_product(cart, cart_product_id) for cart_product_id in cart_product_ids]
        try:
            self._remove_items(db, cart, cart_products, restock=restock)
        except Exception:
            db.rollback()
            raise
        return self._commit(db, cart, "remove")

    def clear_cart(
        self,
        db: Session,
        cart: Optional[Cart] = None,
        cart_id: Optional[int] = None,
        restock: bool = False
    ) -> Cart:
        """
        Remove every line item from a cart.

        Raises:
            NotFoundError: If neither a cart nor an existing cart id is given
        """
        if cart is None:
            cart = self.get_user_cart(db, cart_id=cart_id)
        try:
            self._remove_items(db, cart, cart.cart_products, restock=restock)
        except Exception:
            db.rollback()
            raise
        return self._commit(db, cart, "clear")

    def delete_cart(self, db: Session, user: User) -> None:
        """Restock and delete a user's cart. Does not commit."""
        if user.cart_id is None:
            return
        cart = self.get_user_cart(db, user=user)
        self._remove_items(db, cart, cart.cart_products, restock=True)
        user.cart_id = None
        db.flush()
        db.delete(cart)
        db.flush()

    # Checkout

    async def checkout_on_cart(
        self,
        db: Session,
        user: User,
        order_info: OrderInfo,
        payment_info: PaymentInfo
    ) -> Dict[str, Any]:
        """
        Turn the whole cart into an order and pay for it.

        Purchased items leave the cart without being restocked.

        Returns:
            ``order``, ``invoice``, ``payment`` and the emptied ``cart``

        Raises:
            NotFoundError: If the user has no cart or the cart is empty
            PaymentError: If the payment provider fails; nothing is persisted
        """
        with self.tracer.start_as_current_span("checkout.cart") as span:
            span.set_attribute("user.id", user.id)
            span.set_attribute("payment.method", payment_info.payment_method)
            try:
                cart = self.get_user_cart(db, user=user, lock=True)
                if not cart.cart_products:
                    raise NotFoundError("Your cart has no products to checkout")

                order = self.order_service.create_order(db, user, order_info)
                for cart_product in cart.cart_products:
                    self.order_service.create_order_item(db, order, cart_product)
                self._remove_items(db, cart, cart.cart_products, restock=False)

                data = await self.payment_service.create_payment(db, user, payment_info, order)
                db.commit()
            except Exception as e:
                db.rollback()
                self._record_checkout_failure("cart", payment_info, e)
                raise

            span.set_attribute("order.id", order.id)

        return self._complete_checkout("cart", user, cart, order, payment_info, data)

    async def checkout_on_single_product(
        self,
        db: Session,
        user: User,
        cart_product_id: int,
        order_info: OrderInfo,
        payment_info: PaymentInfo
    ) -> Dict[str, Any]:
        """
        Turn one line item of the user's cart into an order and pay for it.

        Returns:
            ``order``, ``invoice``, ``payment``, the trimmed ``cart`` and the
            provider's ``customer_id``

        Raises:
            NotFoundError: If the line item is not in the user's cart
            PaymentError: If the payment provider fails; nothing is persisted
        """
        with self.tracer.start_as_current_span("checkout.single_product") as span:
            span.set_attribute("user.id", user.id)
            span.set_attribute("cart_product.id", cart_product_id)
            span.set_attribute("payment.method", payment_info.payment_method)
            try:
                cart = self.get_user_cart(db, user=user, lock=True)
                cart_product = self._find_cart_product(cart, cart_product_id)

                order = self.order_service.create_order(db, user, order_info)
                self.order_service.create_order_item(db, order, cart_product)
                self._remove_items(db, cart, [cart_product], restock=False)

                data = await self.payment_service.create_payment(db, user, payment_info, order)
                db.commit()
            except Exception as e:
                db.rollback()
                self._record_checkout_failure("single_product", payment_info, e)
                raise

            span.set_attribute("order.id", order.id)

        result = self._complete_checkout("single_product", user, cart, order, payment_info, data)
        result["customer_id"] = data["customer_id"]
        return result

    @staticmethod
    def _record_checkout_failure(mode: str, payment_info: PaymentInfo, error: Exception) -> None:
        checkout_counter.add(1, {
            "mode": mode,
            "payment_method": payment_info.payment_method,
            "status": "failed"
        })
        logger.warning("Checkout failed", extra={
            "mode": mode,
            "payment_method": payment_info.payment_method,
            "error": str(error)
        })

    def _complete_checkout(
        self,
        mode: str,
        user: User,
        cart: Cart,
        order,
        payment_info: PaymentInfo,
        data: Dict[str, Any]
    ) -> Dict[str, Any]:
        self._cache_total_items(cart.id, cart.total_items)
        checkout_counter.add(1, {
            "mode": mode,
            "payment_method": payment_info.payment_method,
            "status": "completed"
        })
        checkout_amount_histogram.record(order.total_price, {
            "payment_method": payment_info.payment_method
        })
        logger.info("Checkout completed", extra={
            "mode": mode,
            "user_id": user.id,
            "order_id": order.id,
            "amount": order.total_price,
            "payment_method": payment_info.payment_method,
            "payment_transaction_id": data["payment"].transaction_id,
            "item_count": len(order.order_items)
        })
        return {
            "order": order,
            "invoice": data["invoice"],
            "payment": data["payment"],
            "cart": cart
        }
