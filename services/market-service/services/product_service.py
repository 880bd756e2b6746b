"""Product catalog service."""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func, update
from sqlalchemy.orm import Session, selectinload

from errors import BadRequestError, not_found
from models import Product, ProductTag, SubCategory
from schemas import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


class ProductService:
    """Service for reading and maintaining products and their stock."""

    def _query(self, db: Session):
        return db.query(Product).options(selectinload(Product.product_tags))

    def get_product_by_id(self, db: Session, product_id: int) -> Product:
        """
        Get a product by id.

        Raises:
            NotFoundError: If the product does not exist
        """
        product = self._query(db).filter(Product.id == product_id).first()
        if product is None:
            raise not_found("Product", product_id)
        return product

    def create_product(self, db: Session, sub_category_id: int, data: ProductCreate) -> Product:
        sub_category = db.query(SubCategory).filter(SubCategory.id == sub_category_id).first()
        if sub_category is None:
            raise not_found("SubCategory", sub_category_id)

        product = Product(
            name=data.name,
            description=data.description,
            current_price=data.current_price,
            quantity=data.quantity,
            image=data.image,
            sub_category=sub_category,
            product_tags=[ProductTag(name=tag) for tag in data.tags]
        )
        db.add(product)
        db.commit()
        db.refresh(product)

        logger.info("Created product", extra={
            "product_id": product.id,
            "sub_category_id": sub_category_id
        })
        return product

    def update_product(self, db: Session, product_id: int, data: ProductUpdate) -> Product:
        product = self.get_product_by_id(db, product_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "current_price" in changes and changes["current_price"] != product.current_price:
            product.previous_price = product.current_price
        for field, value in changes.items():
            setattr(product, field, value)
        product.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(product)
        return product

    def delete_product(self, db: Session, product_id: int) -> None:
        product = self.get_product_by_id(db, product_id)
        db.delete(product)
        db.commit()
        logger.info("Deleted product", extra={"product_id": product_id})

    def get_shop_products(self, db: Session, take: Optional[int] = None) -> List[Product]:
        query = self._query(db).order_by(Product.id)
        if take:
            query = query.limit(take)
        return query.all()

    def get_products_by_tag_name(self, db: Session, tag: str) -> List[Product]:
        return (
            self._query(db)
            .join(Product.product_tags)
            .filter(ProductTag.name.ilike(tag))
            .distinct()
            .order_by(Product.id)
            .all()
        )

    def get_latest_products(self, db: Session, take: int = 10) -> List[Product]:
        return self._query(db).order_by(Product.created_at.desc(), Product.id.desc()).limit(take).all()

    def get_current_month_products(self, db: Session, take: int = 16) -> List[Product]:
        """Products created since the start of the current calendar month (UTC), newest first."""
        month_start = datetime.utcnow().replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return (
            self._query(db)
            .filter(Product.created_at >= month_start)
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(take)
            .all()
        )

    def get_most_sales_products(self, db: Session, take: int = 10) -> List[Product]:
        return self._query(db).order_by(Product.sales.desc(), Product.id).limit(take).all()

    def filter_by_range_price(
        self,
        db: Session,
        low: float,
        high: float,
        skip: Optional[int] = None,
        take: Optional[int] = None
    ) -> List[Product]:
        if low > high:
            raise BadRequestError("Lower price bound must not exceed the upper bound")
        query = (
            self._query(db)
            .filter(Product.current_price >= low, Product.current_price <= high)
            .order_by(Product.current_price, Product.id)
        )
        if skip:
            query = query.offset(skip)
        if take:
            query = query.limit(take)
        return query.all()

    def filter_by_existence_in_stock(self, db: Session, limit: int, in_stock: bool = True) -> List[Product]:
        condition = Product.in_stock if in_stock else ~Product.in_stock
        return self._query(db).filter(condition).order_by(Product.id).limit(limit).all()

    def get_total_products(self, db: Session) -> int:
        return db.query(func.count(Product.id)).scalar()

    def get_total_sales(self, db: Session) -> int:
        return db.query(func.sum(Product.sales)).scalar() or 0

    # Stock counters only change through single UPDATE statements.

    def reserve_stock(self, db: Session, product_id: int, quantity: int) -> bool:
        """Take units out of stock if enough are available. Does not commit."""
        result = db.execute(
            update(Product)
            .where(Product.id == product_id, Product.quantity >= quantity)
            .values(quantity=Product.quantity - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount == 1

    def restock(self, db: Session, product_id: int, quantity: int) -> None:
        """Return units to stock. Does not commit."""
        result = db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(quantity=Product.quantity + quantity)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            logger.warning("Restock skipped for missing product", extra={
                "product_id": product_id,
                "quantity": quantity
            })

    def record_sale(self, db: Session, product_id: int, quantity: int) -> None:
        """Add sold units to the product's sales counter. Does not commit."""
        db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(sales=Product.sales + quantity)
            .execution_options(synchronize_session="fetch")
        )
