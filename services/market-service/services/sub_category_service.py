"""Sub-category management service."""
import logging
from datetime import datetime
from typing import List
from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from errors import ConflictError, not_found
from models import Product, SubCategory, SubCategoryTag
from schemas import SubCategoryUpdate

logger = logging.getLogger(__name__)


class SubCategoryService:
    """Service for sub-categories and their tags."""

    def _query(self, db: Session):
        return db.query(SubCategory).options(
            selectinload(SubCategory.sub_category_tags),
            selectinload(SubCategory.products).selectinload(Product.product_tags)
        )

    def get_all_sub_categories(self, db: Session) -> List[SubCategory]:
        return self._query(db).order_by(SubCategory.id).all()

    def get_sub_category_by_id(self, db: Session, sub_category_id: int) -> SubCategory:
        sub_category = self._query(db).filter(SubCategory.id == sub_category_id).first()
        if sub_category is None:
            raise not_found("SubCategory", sub_category_id)
        return sub_category

    def update_sub_category(self, db: Session, sub_category_id: int, data: SubCategoryUpdate) -> SubCategory:
        sub_category = self.get_sub_category_by_id(db, sub_category_id)
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        if "name" in changes and changes["name"] != sub_category.name:
            taken = db.query(SubCategory.id).filter(SubCategory.name == changes["name"]).first()
            if taken:
                raise ConflictError(f"Sub-category {changes['name']} already exists")
        for field, value in changes.items():
            setattr(sub_category, field, value)
        sub_category.updated_at = datetime.utcnow()
        db.commit()
        db.refresh(sub_category)
        return sub_category

    def delete_sub_category(self, db: Session, sub_category_id: int) -> None:
        """
        Delete a sub-category and its tags.

        Products are kept and detached from the sub-category, since cart
        lines and order items may still reference them. Does not commit.

        Raises:
            NotFoundError: If no row was deleted
        """
        db.query(SubCategoryTag).filter(
            SubCategoryTag.sub_category_id == sub_category_id
        ).delete(synchronize_session=False)
        db.execute(
            update(Product)
            .where(Product.sub_category_id == sub_category_id)
            .values(sub_category_id=None)
            .execution_options(synchronize_session=False)
        )
        deleted = db.query(SubCategory).filter(
            SubCategory.id == sub_category_id
        ).delete(synchronize_session=False)
        if deleted == 0:
            raise not_found("SubCategory", sub_category_id)

        logger.info("Deleted sub-category", extra={"sub_category_id": sub_category_id})

    def remove_sub_category(self, db: Session, sub_category_id: int) -> None:
        """Delete a single sub-category as its own unit of work."""
        try:
            self.delete_sub_category(db, sub_category_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

    def add_tag(self, db: Session, sub_category_id: int, name: str) -> SubCategoryTag:
        sub_category = self.get_sub_category_by_id(db, sub_category_id)
        tag = SubCategoryTag(name=name, sub_category=sub_category)
        db.add(tag)
        db.commit()
        db.refresh(tag)
        return tag

    def remove_tag(self, db: Session, sub_category_id: int, tag_id: int) -> None:
        deleted = db.query(SubCategoryTag).filter(
            SubCategoryTag.id == tag_id,
            SubCategoryTag.sub_category_id == sub_category_id
        ).delete(synchronize_session=False)
        if deleted == 0:
            raise not_found("SubCategoryTag", tag_id)
        db.commit()
