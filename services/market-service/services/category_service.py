"""Category management service."""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from opentelemetry import trace

from errors import ConflictError, not_found
from models import Category, Product, SubCategory
from schemas import CategoryCreate, CategoryUpdate, SubCategoryCreate
from services.sub_category_service import SubCategoryService

logger = logging.getLogger(__name__)


class CategoryService:
    """Service for the two-level category taxonomy."""

    def __init__(self, sub_category_service: SubCategoryService):
        """
        Initialize category service.

        Args:
            sub_category_service: Service used to delete child sub-categories
        """
        self.sub_category_service = sub_category_service
        self.tracer = trace.get_tracer(__name__)

    def get_all_categories(self, db: Session) -> List[Category]:
        return db.query(Category).order_by(Category.id).all()

    def get_total_categories(self, db: Session) -> int:
        return db.query(func.count(Category.id)).scalar()

    def get_category_by_id(self, db: Session, category_id: int) -> Category:
        category = (
            db.query(Category)
            .options(selectinload(Category.sub_categories))
            .filter(Category.id == category_id)
            .first()
        )
        if category is None:
            raise not_found("Category", category_id)
        return category

    def search_by_name(self, db: Session, name: str, take: Optional[int] = None) -> List[Category]:
        """
        Case-insensitive substring search over category names.

        Sub-categories and their products are loaded with each match.
        """
        query = (
            db.query(Category)
            .options(
                selectinload(Category.sub_categories)
                .selectinload(SubCategory.products)
                .selectinload(Product.product_tags),
                selectinload(Category.sub_categories).selectinload(SubCategory.sub_category_tags)
            )
            .filter(Category.name.ilike(f"%{name}%"))
            .order_by(Category.id)
        )
        if take:
            query = query.limit(take)
        return query.all()

    def get_matching_by_names(self, db: Session, name: str, take: Optional[int] = None) -> List[str]:
        """Names of the categories matching a case-insensitive substring."""
        query = (
            db.query(Category.name)
            .filter(Category.name.ilike(f"%{name}%"))
            .order_by(Category.name)
        )
        if take:
            query = query.limit(take)
        return [row.name for row in query.all()]

    def _ensure_unique_name(self, db: Session, model, name: str) -> None:
        if db.query(model.id).filter(model.name == name).first():
            raise ConflictError(f"{name} already exists, please choose another name")

    def new_category(self, db: Session, data: CategoryCreate) -> Category:
        self._ensure_unique_name(db, Category, data.name)
        category = Category(
            name=data.name,
            description=data.description,
            icon=data.icon,
            sub_categories=[]
        )
        db.add(category)
        db.commit()
        db.refresh(category)

        logger.info("Created category", extra={"category_id": category.id, "name": category.name})
        return category

    def update_category(self, db: Session, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get_category_by_id(db, category_id)
        if data.name and data.name != category.name:
            self._ensure_unique_name(db, Category, data.name)
            category.name = data.name
        if data.description:
            category.description = data.description
        if data.icon:
            category.icon = data.icon
        category.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(category)
        return category

    def add_sub_category(self, db: Session, category_id: int, data: SubCategoryCreate) -> SubCategory:
        category = self.get_category_by_id(db, category_id)
        self._ensure_unique_name(db, SubCategory, data.name)
        sub_category = SubCategory(
            category=category,
            name=data.name,
            description=data.description,
            icon=data.icon,
            references=data.references or [],
            sub_category_tags=[],
            products=[]
        )
        db.add(sub_category)
        db.commit()
        db.refresh(sub_category)

        logger.info("Created sub-category", extra={
            "category_id": category_id,
            "sub_category_id": sub_category.id
        })
        return sub_category

    def delete_category(self, db: Session, category_id: int) -> None:
        """
        Delete a category after deleting each of its sub-categories.

        Raises:
            NotFoundError: If the category does not exist, or was deleted
                concurrently before this delete ran
        """
        category = self.get_category_by_id(db, category_id)
        sub_category_ids = [sub.id for sub in category.sub_categories]

        with self.tracer.start_as_current_span("db.transaction.delete_category") as span:
            span.set_attribute("category.id", category_id)
            span.set_attribute("category.sub_categories", len(sub_category_ids))
            try:
                for sub_category_id in sub_category_ids:
                    self.sub_category_service.delete_sub_category(db, sub_category_id)

                deleted = db.query(Category).filter(
                    Category.id == category_id
                ).delete(synchronize_session=False)
                if deleted == 0:
                    raise not_found("Category", category_id)
                db.commit()
            except Exception:
                db.rollback()
                raise

        logger.info("Deleted category", extra={
            "category_id": category_id,
            "deleted_sub_categories": len(sub_category_ids)
        })
