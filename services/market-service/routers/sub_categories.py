"""Sub-category API router."""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import require_roles
from database import get_db
from dependencies import get_product_service, get_sub_category_service
from models import ADMIN_ROLES, User
from schemas import (
    MessageResponse,
    ProductCreate,
    ProductResponse,
    SubCategoryResponse,
    SubCategoryUpdate,
    TagCreate,
    TagResponse
)
from services.product_service import ProductService
from services.sub_category_service import SubCategoryService

router = APIRouter(prefix="/sub-categories", tags=["sub-categories"])

require_admin = require_roles(*ADMIN_ROLES)


@router.get("", response_model=List[SubCategoryResponse])
async def get_all_sub_categories(
    db: Session = Depends(get_db),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    return sub_category_service.get_all_sub_categories(db)


@router.get("/{sub_category_id}", response_model=SubCategoryResponse)
async def get_sub_category(
    sub_category_id: int,
    db: Session = Depends(get_db),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    return sub_category_service.get_sub_category_by_id(db, sub_category_id)


@router.put("/{sub_category_id}", response_model=SubCategoryResponse)
async def update_sub_category(
    sub_category_id: int,
    request: SubCategoryUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    return sub_category_service.update_sub_category(db, sub_category_id, request)


@router.delete("/{sub_category_id}", response_model=MessageResponse)
async def delete_sub_category(
    sub_category_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    sub_category_service.remove_sub_category(db, sub_category_id)
    return {"message": f"Sub-category {sub_category_id} deleted"}


@router.post("/{sub_category_id}/tags", response_model=TagResponse, status_code=201)
async def add_tag(
    sub_category_id: int,
    request: TagCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    return sub_category_service.add_tag(db, sub_category_id, request.name)


@router.delete("/{sub_category_id}/tags/{tag_id}", response_model=MessageResponse)
async def remove_tag(
    sub_category_id: int,
    tag_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    sub_category_service: SubCategoryService = Depends(get_sub_category_service)
):
    sub_category_service.remove_tag(db, sub_category_id, tag_id)
    return {"message": f"Tag {tag_id} removed"}


@router.post("/{sub_category_id}/products", response_model=ProductResponse, status_code=201)
async def create_product(
    sub_category_id: int,
    request: ProductCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    """Create a product inside a sub-category."""
    return product_service.create_product(db, sub_category_id, request)
