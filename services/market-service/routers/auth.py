"""Authentication API router."""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user, require_roles, verify_token
from database import get_db
from dependencies import get_auth_service
from models import ADMIN_ROLES, User, UserRole
from schemas import (
    AuthCredentials,
    AuthResponse,
    CountResponse,
    EditRolesRequest,
    EmailLogin,
    ForgotPasswordRequest,
    MessageResponse,
    ProcessResponse,
    ResetPasswordRequest,
    UserResponse,
    VerifyEmailResponse
)
from services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/signup", response_model=AuthResponse, status_code=201)
async def sign_up_user(
    request: AuthCredentials,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a customer account."""
    return await auth_service.sign_up_user(db, request)


@router.post("/admin/signup", response_model=AuthResponse, status_code=201)
async def sign_up_admin(
    request: AuthCredentials,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register an administrator account."""
    return await auth_service.sign_up_admin(db, request)


@router.post("/signin", response_model=AuthResponse)
async def sign_in_user(
    request: EmailLogin,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Authenticate a customer and return a session token."""
    return auth_service.sign_in_user(db, request)


@router.post("/admin/signin", response_model=AuthResponse)
async def sign_in_admin(
    request: EmailLogin,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Authenticate an administrator and return a session token."""
    return auth_service.sign_in_admin(db, request)


@router.post("/signout", response_model=MessageResponse)
async def sign_out(
    token: str = Depends(verify_token),
    auth_service: AuthService = Depends(get_auth_service)
):
    auth_service.sign_out(token)
    return {"message": "Signed out"}


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    return user


@router.get("/verify-email/{token}", response_model=VerifyEmailResponse)
async def verify_email(
    token: str,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Consume the email verification code sent at sign-up."""
    return auth_service.verify_email(db, token)


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Email a password reset code."""
    await auth_service.send_email_forgotten_password(db, request.email)
    return {"message": "Password reset email sent"}


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    request: ResetPasswordRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    auth_service.set_new_password(db, request.new_password_token, request.new_password)
    return {"message": "Password changed"}


@router.get("/users", response_model=List[UserResponse])
async def get_system_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    auth_service: AuthService = Depends(get_auth_service)
):
    return auth_service.get_system_users(db)


@router.get("/users/count", response_model=CountResponse)
async def get_total_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(*ADMIN_ROLES)),
    auth_service: AuthService = Depends(get_auth_service)
):
    return {"count": auth_service.get_total_users(db)}


@router.put("/users/{user_id}/roles", response_model=ProcessResponse)
async def edit_user_roles(
    user_id: int,
    request: EditRolesRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_roles(UserRole.ADMIN, UserRole.SUPER_ADMIN)),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Replace a user's roles - requires a full admin role."""
    return auth_service.edit_user_roles(db, user_id, request.roles)


@router.delete("/account", response_model=MessageResponse)
async def delete_account(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Delete the caller's account, cart and profile."""
    auth_service.delete_user_account(db, user)
    return {"message": "Account deleted"}
