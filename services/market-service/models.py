"""Database models for the market service."""
import enum
from datetime import datetime
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class UserRole(str, enum.Enum):
    """Roles a user account can hold."""
    USER = "USER"
    WEAK_ADMIN = "WEAK_ADMIN"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = (UserRole.WEAK_ADMIN, UserRole.ADMIN, UserRole.SUPER_ADMIN)


class User(Base):
    """User account model."""
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("username", "email"),)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password = Column(String)
    salt = Column(String)
    roles = Column(JSON, default=list)
    email_verified = Column(Boolean, default=False)
    profile_id = Column(Integer, ForeignKey("profiles.id"), nullable=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    profile = relationship("Profile")
    cart = relationship("Cart")
    orders = relationship("Order", back_populates="user")
    payments = relationship("Payment", back_populates="user")
    invoices = relationship("Invoice", back_populates="user")

    def has_role(self, *roles: UserRole) -> bool:
        return any(role.value in (self.roles or []) for role in roles)


class Profile(Base):
    """Profile model, one per user."""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    country = Column(String, nullable=True)
    city = Column(String, nullable=True)
    address = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)


class EmailVerification(Base):
    """Outstanding email verification token."""
    __tablename__ = "email_verifications"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    email_token = Column(String, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow)


class ForgottenPassword(Base):
    """Outstanding password reset token."""
    __tablename__ = "forgotten_passwords"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    new_password_token = Column(String, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow)


class Cart(Base):
    """Shopping cart model."""
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    total_items = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    cart_products = relationship(
        "CartProduct",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartProduct.id"
    )


class CartProduct(Base):
    """Cart line item model."""
    __tablename__ = "cart_products"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id"), index=True, nullable=False)
    product_id = Column(Integer, index=True, nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    cart = relationship("Cart", back_populates="cart_products")


class CategoryMixin:
    """Columns shared by categories and sub-categories."""
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)


class Category(CategoryMixin, Base):
    """Top-level catalog category."""
    __tablename__ = "categories"

    sub_categories = relationship(
        "SubCategory",
        back_populates="category",
        order_by="SubCategory.id"
    )


class SubCategory(CategoryMixin, Base):
    """Second-level catalog category."""
    __tablename__ = "sub_categories"

    references = Column(JSON, default=list)
    category_id = Column(Integer, ForeignKey("categories.id"), index=True, nullable=False)

    category = relationship("Category", back_populates="sub_categories")
    products = relationship("Product", back_populates="sub_category", order_by="Product.id")
    sub_category_tags = relationship(
        "SubCategoryTag",
        back_populates="sub_category",
        order_by="SubCategoryTag.id"
    )


class SubCategoryTag(Base):
    """Tag attached to a sub-category."""
    __tablename__ = "sub_category_tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id"), index=True, nullable=False)

    sub_category = relationship("SubCategory", back_populates="sub_category_tags")


class Product(Base):
    """Product model."""
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    description = Column(Text, nullable=True)
    current_price = Column(Float, nullable=False)
    previous_price = Column(Float, nullable=True)
    quantity = Column(Integer, default=0, nullable=False)
    sales = Column(Integer, default=0, nullable=False)
    image = Column(String, nullable=True)
    sub_category_id = Column(Integer, ForeignKey("sub_categories.id"), index=True, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    sub_category = relationship("SubCategory", back_populates="products")
    product_tags = relationship(
        "ProductTag",
        back_populates="product",
        cascade="all, delete-orphan",
        order_by="ProductTag.id"
    )

    @hybrid_property
    def in_stock(self):
        return self.quantity > 0


class ProductTag(Base):
    """Tag attached to a product."""
    __tablename__ = "product_tags"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, index=True, nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), index=True, nullable=False)

    product = relationship("Product", back_populates="product_tags")


class Order(Base):
    """Order model."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    status = Column(String, default="pending")
    total_price = Column(Float, default=0.0, nullable=False)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)
    country = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    comments = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="orders")
    order_items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id"
    )


class OrderItem(Base):
    """Order line, a snapshot of a cart product at checkout."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(Integer, nullable=False)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="order_items")


class Payment(Base):
    """Payment model."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String, default="USD")
    payment_method = Column(String)
    transaction_id = Column(String, nullable=True)
    customer_id = Column(String, nullable=True)
    status = Column(String, default="completed")
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="payments")


class Invoice(Base):
    """Invoice model."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True, nullable=False)
    payment_id = Column(Integer, ForeignKey("payments.id"), index=True, nullable=False)
    amount = Column(Float, nullable=False)
    currency = Column(String, default="USD")
    status = Column(String, default="paid")
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="invoices")


class Subscriber(Base):
    """Push/email notification subscriber."""
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    endpoint = Column(String, nullable=False)
    expiration_time = Column(DateTime, nullable=True)
    keys = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    subscribers_notifications = relationship(
        "SubscribersNotifications",
        back_populates="subscriber",
        order_by="SubscribersNotifications.id"
    )

    def is_active(self, now: datetime) -> bool:
        return self.expiration_time is None or self.expiration_time > now


class Notification(Base):
    """A broadcast notification."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    subscribers_notifications = relationship(
        "SubscribersNotifications",
        back_populates="notification",
        order_by="SubscribersNotifications.id"
    )


class SubscribersNotifications(Base):
    """Delivery record of one notification to one subscriber."""
    __tablename__ = "subscribers_notifications"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String)
    body = Column(Text, nullable=True)
    data = Column(JSON, default=dict)
    actions = Column(JSON, default=list)
    vibrate = Column(JSON, default=list)
    subscriber_id = Column(Integer, ForeignKey("subscribers.id"), index=True, nullable=False)
    notification_id = Column(Integer, ForeignKey("notifications.id"), index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    subscriber = relationship("Subscriber", back_populates="subscribers_notifications")
    notification = relationship("Notification", back_populates="subscribers_notifications")
