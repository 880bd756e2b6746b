"""Category API router."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth import require_roles
from database import get_db
from dependencies import get_category_service
from models import ADMIN_ROLES, User
from schemas import (
    CategoryCreate,
    CategoryDetailResponse,
    CategoryNameResponse,
    CategoryResponse,
    CategoryUpdate,
    CountResponse,
    MessageResponse,
    SubCategoryCreate,
    SubCategoryResponse
)
from services.category_service import CategoryService

router = APIRouter(prefix="/categories", tags=["categories"])

require_admin = require_roles(*ADMIN_ROLES)


@router.get("", response_model=List[CategoryResponse])
async def get_all_categories(
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    return category_service.get_all_categories(db)


@router.get("/count", response_model=CountResponse)
async def get_total_categories(
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    return {"count": category_service.get_total_categories(db)}


@router.get("/search", response_model=List[CategoryDetailResponse])
async def search_by_name(
    name: str = Query(..., min_length=1),
    take: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    """Case-insensitive search with sub-categories and products included."""
    return category_service.search_by_name(db, name, take)


@router.get("/names", response_model=List[CategoryNameResponse])
async def get_matching_by_names(
    name: str = Query(..., min_length=1),
    take: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    names = category_service.get_matching_by_names(db, name, take)
    return [{"name": match} for match in names]


@router.get("/{category_id}", response_model=CategoryDetailResponse)
async def get_category(
    category_id: int,
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    return category_service.get_category_by_id(db, category_id)


@router.post("", response_model=CategoryResponse, status_code=201)
async def new_category(
    request: CategoryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service)
):
    return category_service.new_category(db, request)


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(
    category_id: int,
    request: CategoryUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service)
):
    return category_service.update_category(db, category_id, request)


@router.post("/{category_id}/sub-categories", response_model=SubCategoryResponse, status_code=201)
async def add_sub_category(
    category_id: int,
    request: SubCategoryCreate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service)
):
    return category_service.add_sub_category(db, category_id, request)


@router.delete("/{category_id}", response_model=MessageResponse)
async def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    category_service: CategoryService = Depends(get_category_service)
):
    """Delete a category together with its sub-categories."""
    category_service.delete_category(db, category_id)
    return {"message": f"Category {category_id} deleted"}
