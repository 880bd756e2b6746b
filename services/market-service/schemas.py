"""Pydantic schemas for request/response validation."""
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from models import UserRole


# Authentication

class AuthCredentials(BaseModel):
    """Schema for sign-up requests."""
    username: str = Field(..., min_length=3, max_length=50)
    email: str
    password: str = Field(..., min_length=6)


class EmailLogin(BaseModel):
    """Schema for sign-in requests."""
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    new_password_token: str
    new_password: str = Field(..., min_length=6)


class EditRolesRequest(BaseModel):
    roles: List[UserRole]


class UserResponse(BaseModel):
    """Public view of a user account."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    email_verified: bool
    roles: List[str]


class AuthResponse(BaseModel):
    user: UserResponse
    token: str
    token_type: str = "bearer"


class VerifyEmailResponse(BaseModel):
    is_fully_verified: bool
    user: UserResponse


class ProcessResponse(BaseModel):
    process_completed: bool


class MessageResponse(BaseModel):
    message: str


class CountResponse(BaseModel):
    count: int


# Profiles

class ProfileUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None


class ProfileResponse(ProfileUpdate):
    model_config = ConfigDict(from_attributes=True)

    id: int


# Catalog

class CategoryCreate(BaseModel):
    """Schema for creating a category."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    icon: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    icon: Optional[str] = None


class SubCategoryCreate(CategoryCreate):
    """Schema for creating a sub-category."""
    references: Optional[List[int]] = None


class SubCategoryUpdate(CategoryUpdate):
    references: Optional[List[int]] = None


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1)


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class ProductCreate(BaseModel):
    """Schema for creating a product."""
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    current_price: float = Field(..., gt=0)
    quantity: int = Field(0, ge=0)
    image: Optional[str] = None
    tags: List[str] = []


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    current_price: Optional[float] = Field(None, gt=0)
    quantity: Optional[int] = Field(None, ge=0)
    image: Optional[str] = None


class ProductResponse(BaseModel):
    """Schema for product response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    current_price: float
    previous_price: Optional[float] = None
    quantity: int
    sales: int
    in_stock: bool
    image: Optional[str] = None
    sub_category_id: Optional[int] = None
    product_tags: List[TagResponse] = []


class CategoryResponse(BaseModel):
    """Schema for category response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CategoryNameResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str


class SubCategoryResponse(CategoryResponse):
    references: List[int] = []
    category_id: int
    sub_category_tags: List[TagResponse] = []
    products: List[ProductResponse] = []


class CategoryDetailResponse(CategoryResponse):
    sub_categories: List[SubCategoryResponse] = []


# Cart

class AddToCartRequest(BaseModel):
    """Schema for add to cart request."""
    product_id: int
    quantity: int = Field(1, ge=1)


class RemoveCartItem(BaseModel):
    """A line item to remove from the cart."""
    cart_product_id: int
    product_id: Optional[int] = None


class CartProductResponse(BaseModel):
    """Schema for cart line item in response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    total_price: float


class CartResponse(BaseModel):
    """Schema for cart response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    total_items: int
    cart_products: List[CartProductResponse] = []


# Orders and payments

class OrderInfo(BaseModel):
    """Shipping details supplied at checkout."""
    address: str
    city: str
    country: str
    phone: Optional[str] = None
    comments: Optional[str] = None


class PaymentInfo(BaseModel):
    """Payment details supplied at checkout."""
    payment_method: str
    currency: str = "USD"


class CheckoutRequest(BaseModel):
    """Schema for checkout request."""
    order_info: OrderInfo
    payment_info: PaymentInfo


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    quantity: int
    total_price: float


class OrderResponse(BaseModel):
    """Schema for order response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    total_price: float
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    comments: Optional[str] = None
    created_at: Optional[datetime] = None
    order_items: List[OrderItemResponse] = []


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    amount: float
    currency: str
    payment_method: str
    transaction_id: Optional[str] = None
    status: str


class InvoiceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    payment_id: int
    amount: float
    currency: str
    status: str


class CheckoutResponse(BaseModel):
    """Schema for checkout response."""
    order: OrderResponse
    invoice: InvoiceResponse
    payment: PaymentResponse
    cart: Optional[CartResponse] = None
    customer_id: Optional[str] = None


# Notifications

class SubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscription(BaseModel):
    """Browser push subscription as produced by the Push API."""
    endpoint: str
    expiration_time: Optional[datetime] = None
    keys: SubscriptionKeys


class SubscribeRequest(BaseModel):
    email: str
    sub: PushSubscription


class SubscriberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    endpoint: str
    expiration_time: Optional[datetime] = None


class NotificationRequest(BaseModel):
    """Schema for broadcasting a notification."""
    title: str = Field(..., min_length=1)
    html_body: str
    plain_text: str


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    body: Optional[str] = None
    created_at: Optional[datetime] = None
