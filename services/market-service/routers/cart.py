"""Cart API router."""
from typing import List
from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from auth import require_roles
from database import get_db
from dependencies import get_cart_service
from errors import not_found
from models import User, UserRole
from schemas import (
    AddToCartRequest,
    CartResponse,
    CheckoutRequest,
    CheckoutResponse,
    CountResponse,
    RemoveCartItem
)
from services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])

require_user = require_roles(UserRole.USER)


def _ensure_own_cart(user: User, cart_id: int) -> None:
    if user.cart_id != cart_id:
        raise not_found("Cart", cart_id)


@router.post("/create-user-cart", response_model=CartResponse, status_code=201)
async def create_user_cart(
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    return cart_service.create_cart(db, user)


@router.get("/count", response_model=CountResponse)
async def get_total_carts(
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    return {"count": cart_service.get_total_carts(db)}


@router.get("/user-cart", response_model=CartResponse)
async def get_user_cart(
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    return cart_service.get_user_cart(db, user=user)


@router.post("/add-product", response_model=CartResponse)
async def add_product_to_cart(
    request: AddToCartRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Add a product to the caller's cart, reserving its stock."""
    return cart_service.add_product_to_cart(db, user, request.product_id, request.quantity)


@router.post("/checkout-on-cart", response_model=CheckoutResponse)
async def checkout_on_cart(
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Order and pay for everything in the caller's cart."""
    return await cart_service.checkout_on_cart(db, user, request.order_info, request.payment_info)


@router.post("/checkout-on-single-product/{cart_product_id}", response_model=CheckoutResponse)
async def checkout_on_single_product(
    cart_product_id: int,
    request: CheckoutRequest,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Order and pay for one line item of the caller's cart."""
    return await cart_service.checkout_on_single_product(
        db, user, cart_product_id, request.order_info, request.payment_info
    )


@router.delete("/clear-cart", response_model=CartResponse)
async def clear_cart(
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Empty the caller's cart and return the units to stock."""
    return cart_service.clear_cart(db, cart_id=user.cart_id, restock=True)


@router.delete("/remove-products-from-cart", response_model=CartResponse)
async def remove_products_from_cart(
    cart_products: List[RemoveCartItem] = Body(..., embed=True),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    """Remove several line items from the caller's cart and restock them."""
    return cart_service.remove_products_from_cart(db, user.cart_id, cart_products, restock=True)


@router.delete("/{cart_id}/remove-product-from-cart/{cart_product_id}", response_model=CartResponse)
async def remove_cart_product(
    cart_id: int,
    cart_product_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    _ensure_own_cart(user, cart_id)
    return cart_service.remove_cart_product(db, cart_id, cart_product_id)


@router.put("/{cart_id}/update-product-cart-quantity/{cart_product_id}", response_model=CartResponse)
async def update_cart_product_quantity(
    cart_id: int,
    cart_product_id: int,
    new_quantity: int = Query(..., ge=1),
    db: Session = Depends(get_db),
    user: User = Depends(require_user),
    cart_service: CartService = Depends(get_cart_service)
):
    _ensure_own_cart(user, cart_id)
    return cart_service.update_cart_product_quantity(db, cart_id, cart_product_id, new_quantity)
