"""Orders API router."""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user, require_roles
from database import get_db
from dependencies import get_order_service
from models import ADMIN_ROLES, User
from schemas import CountResponse, OrderResponse
from services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("", response_model=List[OrderResponse])
async def get_orders(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    """Get the caller's orders - requires authentication."""
    return order_service.get_user_orders(db, user)


@router.get("/count", response_model=CountResponse)
async def get_total_orders(
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    order_service: OrderService = Depends(get_order_service)
):
    return {"count": order_service.get_total_orders(db)}


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    order_service: OrderService = Depends(get_order_service)
):
    return order_service.get_order_by_id(db, user, order_id)
