"""Dependency injection for services."""
from typing import Any
from fastapi import Depends, Request

from auth import SessionStore, get_session_store
from services.auth_service import AuthService
from services.cart_service import CartService
from services.category_service import CategoryService
from services.external_service import ExternalServiceClient
from services.notification_service import NotificationService
from services.order_service import OrderService
from services.payment_service import PaymentService
from services.product_service import ProductService
from services.profile_service import ProfileService
from services.sub_category_service import SubCategoryService


def get_redis_client(request: Request) -> Any:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_http_client(request: Request) -> Any:
    """Get HTTP client from app state."""
    return request.app.state.http_client


def get_external_service(http_client: Any = Depends(get_http_client)) -> ExternalServiceClient:
    """Get external service client."""
    return ExternalServiceClient(http_client)


def get_product_service() -> ProductService:
    return ProductService()


def get_sub_category_service() -> SubCategoryService:
    return SubCategoryService()


def get_category_service(
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
) -> CategoryService:
    return CategoryService(sub_category_service)


def get_profile_service() -> ProfileService:
    return ProfileService()


def get_order_service(product_service: ProductService = Depends(get_product_service)) -> OrderService:
    """Get order service instance."""
    return OrderService(product_service)


def get_payment_service(
    external_service: ExternalServiceClient = Depends(get_external_service)
) -> PaymentService:
    return PaymentService(external_service)


def get_cart_service(
    redis_client: Any = Depends(get_redis_client),
    order_service: OrderService = Depends(get_order_service),
    payment_service: PaymentService = Depends(get_payment_service),
    product_service: ProductService = Depends(get_product_service)
) -> CartService:
    """Get cart service instance."""
    return CartService(redis_client, order_service, payment_service, product_service)


def get_notification_service(
    external_service: ExternalServiceClient = Depends(get_external_service)
) -> NotificationService:
    return NotificationService(external_service)


def get_auth_service(
    sessions: SessionStore = Depends(get_session_store),
    external_service: ExternalServiceClient = Depends(get_external_service),
    profile_service: ProfileService = Depends(get_profile_service),
    cart_service: CartService = Depends(get_cart_service)
) -> AuthService:
    """Get authentication service instance."""
    return AuthService(sessions, external_service, profile_service, cart_service)
