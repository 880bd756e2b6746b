import asyncio
import json
import os

# Settings are read at import time, so the test environment goes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TELEMETRY_ENABLED"] = "false"
os.environ["SEED_DATA"] = "false"
os.environ["EMAIL_VERIFIER_ENABLED"] = "true"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"

import httpx
import pytest
import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

import database
from auth import SessionStore
from errors import register_exception_handlers
from models import Base, Category, Product, ProductTag, SubCategory, SubCategoryTag, User, UserRole
from routers import (
    auth as auth_router,
    cart,
    categories,
    notifications,
    orders,
    products,
    profile,
    sub_categories
)
from security import generate_salt, hash_password
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

DEFAULT_PASSWORD = "secret-password"


class InMemoryRedis:
    """Redis double holding strings, sets and sorted sets in dictionaries."""

    def __init__(self):
        self.values = {}
        self.sets = {}
        self.sorted_sets = {}

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = str(value)
        return True

    def setex(self, key, ttl, value):
        self.values[key] = str(value)
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            for store in (self.values, self.sets, self.sorted_sets):
                if store.pop(key, None) is not None:
                    removed += 1
        return removed

    def expire(self, key, ttl):
        return True

    def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    def srem(self, key, *members):
        self.sets.get(key, set()).difference_update(members)
        return len(members)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def zadd(self, key, mapping):
        self.sorted_sets.setdefault(key, {}).update(mapping)
        return len(mapping)

    def zremrangebyscore(self, key, low, high):
        entries = self.sorted_sets.get(key, {})
        stale = [member for member, score in entries.items() if low <= score <= high]
        for member in stale:
            del entries[member]
        return len(stale)

    def zcard(self, key):
        return len(self.sorted_sets.get(key, {}))

    def zcount(self, key, low, high):
        return sum(1 for score in self.sorted_sets.get(key, {}).values() if low <= score <= high)

    def pipeline(self):
        return _Pipeline(self)

    def close(self):
        pass


class _Pipeline:
    def __init__(self, redis_double):
        self._redis = redis_double
        self._calls = []

    def __getattr__(self, name):
        method = getattr(self._redis, name)

        def queue(*args, **kwargs):
            self._calls.append((method, args, kwargs))
            return self

        return queue

    def execute(self):
        results = [method(*args, **kwargs) for method, args, kwargs in self._calls]
        self._calls = []
        return results


class UnavailableRedis(InMemoryRedis):
    """Redis double whose writes and pipelines fail like a lost connection."""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    setex = _fail
    zadd = _fail
    pipeline = _fail


class ExternalSystems:
    """Stands in for the payment provider, email verifier, push and mail relays."""

    def __init__(self):
        self.requests = []
        self.payment_status = 200
        self.verifier_status_code = 200
        self.verifier_result = "passed"
        self.push_status = 201
        self.mail_status = 200

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/api/payments/process"):
            if self.payment_status >= 400:
                return httpx.Response(self.payment_status, json={"error": "card declined"})
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "status": "completed",
                "transaction_id": f"txn-{body['order_id']}",
                "customer_id": "cus-001"
            })
        if path.endswith("/api/push/send"):
            return httpx.Response(self.push_status, json={})
        if path.endswith("/api/mail/send"):
            return httpx.Response(self.mail_status, json={})
        return httpx.Response(self.verifier_status_code, json={"status": self.verifier_result})

    def calls_to(self, path_suffix):
        return [request for request in self.requests if request.url.path.endswith(path_suffix)]

    def bodies_to(self, path_suffix):
        return [json.loads(request.content) for request in self.calls_to(path_suffix)]


def run(coroutine):
    return asyncio.run(coroutine)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=database.engine)

    yield

    Base.metadata.drop_all(bind=database.engine)


@pytest.fixture()
def db():
    session = database.SessionLocal()

    yield session

    session.close()


@pytest.fixture()
def redis_client():
    return InMemoryRedis()


@pytest.fixture()
def unavailable_redis():
    return UnavailableRedis()


@pytest.fixture()
def external():
    return ExternalSystems()


@pytest.fixture()
def http_client(external):
    client = httpx.AsyncClient(transport=httpx.MockTransport(external.handler))

    yield client

    run(client.aclose())


@pytest.fixture()
def external_service(http_client):
    return ExternalServiceClient(http_client)


@pytest.fixture()
def product_service():
    return ProductService()


@pytest.fixture()
def sub_category_service():
    return SubCategoryService()


@pytest.fixture()
def category_service(sub_category_service):
    return CategoryService(sub_category_service)


@pytest.fixture()
def profile_service():
    return ProfileService()


@pytest.fixture()
def order_service(product_service):
    return OrderService(product_service)


@pytest.fixture()
def cart_service(redis_client, order_service, external_service, product_service):
    return CartService(redis_client, order_service, PaymentService(external_service), product_service)


@pytest.fixture()
def sessions(redis_client):
    return SessionStore(redis_client)


@pytest.fixture()
def auth_service(sessions, external_service, profile_service, cart_service):
    return AuthService(sessions, external_service, profile_service, cart_service)


@pytest.fixture()
def notification_service(external_service):
    return NotificationService(external_service)


@pytest.fixture()
def user_factory(db, profile_service):
    """Create committed accounts with a profile and a known password."""
    counter = {"value": 0}

    def create(roles=(UserRole.USER,), username=None, email=None, password=DEFAULT_PASSWORD):
        counter["value"] += 1
        salt = generate_salt()
        profile = profile_service.create_profile(db)
        user = User(
            username=username or f"user{counter['value']}",
            email=email or f"user{counter['value']}@example.com",
            salt=salt,
            password=hash_password(password, salt),
            roles=[role.value for role in roles],
            email_verified=True,
            profile_id=profile.id
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return create


@pytest.fixture()
def catalog(db):
    """A small committed catalog: one category, one sub-category, three products."""
    electronics = Category(name="Electronics", description="Devices")
    computers = SubCategory(name="Computers", category=electronics, references=[])
    computers.sub_category_tags = [SubCategoryTag(name="laptops")]
    laptop = Product(name="Laptop", current_price=10.0, quantity=10, sales=0, sub_category=computers,
                     product_tags=[ProductTag(name="computers")])
    mouse = Product(name="Mouse", current_price=2.5, quantity=5, sales=0, sub_category=computers,
                    product_tags=[ProductTag(name="accessories")])
    cable = Product(name="Cable", current_price=1.0, quantity=0, sales=0, sub_category=computers,
                    product_tags=[ProductTag(name="accessories")])
    db.add_all([electronics, computers, laptop, mouse, cable])
    db.commit()
    return {
        "category_id": electronics.id,
        "sub_category_id": computers.id,
        "laptop_id": laptop.id,
        "mouse_id": mouse.id,
        "cable_id": cable.id,
    }


@pytest.fixture()
def app(redis_client, http_client):
    application = FastAPI()
    register_exception_handlers(application)
    for module in (auth_router, profile, categories, sub_categories, products, cart, orders, notifications):
        application.include_router(module.router)
    application.state.redis_client = redis_client
    application.state.http_client = http_client
    return application


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def auth_headers(sessions):
    """Open a session for a user and return its Authorization header."""

    def headers(user):
        return {"Authorization": f"Bearer {sessions.create(user.id)}"}

    return headers
