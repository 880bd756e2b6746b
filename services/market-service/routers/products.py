"""Products API router."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth import require_roles
from database import get_db
from dependencies import get_product_service
from models import ADMIN_ROLES, User
from schemas import CountResponse, MessageResponse, ProductResponse, ProductUpdate
from services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])

require_admin = require_roles(*ADMIN_ROLES)


@router.get("", response_model=List[ProductResponse])
async def get_shop_products(
    take: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_shop_products(db, take)


@router.get("/count", response_model=CountResponse)
async def get_total_products(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return {"count": product_service.get_total_products(db)}


@router.get("/total-sales", response_model=CountResponse)
async def get_total_sales(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return {"count": product_service.get_total_sales(db)}


@router.get("/latest", response_model=List[ProductResponse])
async def get_latest_products(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_latest_products(db)


@router.get("/current-month", response_model=List[ProductResponse])
async def get_current_month_products(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_current_month_products(db)


@router.get("/most-sales", response_model=List[ProductResponse])
async def get_most_sales_products(
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_most_sales_products(db)


@router.get("/by-tag/{tag}", response_model=List[ProductResponse])
async def get_products_by_tag(
    tag: str,
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_products_by_tag_name(db, tag)


@router.get("/price-range", response_model=List[ProductResponse])
async def filter_by_range_price(
    low: float = Query(..., ge=0),
    high: float = Query(..., ge=0),
    skip: Optional[int] = Query(None, ge=0),
    take: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.filter_by_range_price(db, low, high, skip, take)


@router.get("/stock", response_model=List[ProductResponse])
async def filter_by_existence_in_stock(
    limit: int = Query(20, ge=1),
    in_stock: bool = True,
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.filter_by_existence_in_stock(db, limit, in_stock)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: Session = Depends(get_db),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.get_product_by_id(db, product_id)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    request: ProductUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    return product_service.update_product(db, product_id, request)


@router.delete("/{product_id}", response_model=MessageResponse)
async def delete_product(
    product_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
    product_service: ProductService = Depends(get_product_service)
):
    product_service.delete_product(db, product_id)
    return {"message": f"Product {product_id} deleted"}
