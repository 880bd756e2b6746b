"""Database connection and session management."""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Any, Dict, Generator
import logging

from config import DATABASE_URL, SEED_DATA
from models import Base, Category, Product, ProductTag, SubCategory

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool settings for the configured backend."""
    if url.startswith("sqlite"):
        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,  # Verify connections before use
        "pool_recycle": 3600,
        "pool_timeout": 30,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def seed_catalog(db: Session) -> None:
    """Insert a starter catalog into an empty database."""
    if db.query(Category).count() > 0:
        return

    electronics = Category(name="Electronics", description="Devices and accessories", icon="devices")
    furniture = Category(name="Furniture", description="Home and office furniture", icon="chair")
    computers = SubCategory(name="Computers", description="Laptops and monitors", category=electronics, references=[])
    audio = SubCategory(name="Audio", description="Headphones and speakers", category=electronics, references=[])
    office = SubCategory(name="Office", description="Desks and chairs", category=furniture, references=[])

    products = [
        Product(name="Laptop", current_price=999.99, quantity=50, sub_category=computers,
                product_tags=[ProductTag(name="computers")]),
        Product(name="Monitor", current_price=299.99, quantity=75, sub_category=computers,
                product_tags=[ProductTag(name="computers")]),
        Product(name="Keyboard", current_price=79.99, quantity=150, sub_category=computers,
                product_tags=[ProductTag(name="accessories")]),
        Product(name="Headphones", current_price=99.99, quantity=200, sub_category=audio,
                product_tags=[ProductTag(name="audio")]),
        Product(name="Desk Chair", current_price=199.99, quantity=30, sub_category=office,
                product_tags=[ProductTag(name="office")]),
    ]
    db.add_all([electronics, furniture, computers, audio, office, *products])
    db.commit()
    logger.info("Seeded database with starter catalog")


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    if not SEED_DATA:
        return

    db = SessionLocal()
    try:
        seed_catalog(db)
    finally:
        db.close()
