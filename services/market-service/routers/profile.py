"""Profile API router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_profile_service
from models import User
from schemas import ProfileResponse, ProfileUpdate
from services.profile_service import ProfileService

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse)
async def get_profile(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service)
):
    return profile_service.get_profile_data(db, user)


@router.put("", response_model=ProfileResponse)
async def update_profile(
    request: ProfileUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service)
):
    return profile_service.update_profile(db, user, request)
