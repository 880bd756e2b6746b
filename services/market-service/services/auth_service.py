"""Account, credential and token management service."""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Type, Union
import redis
from sqlalchemy import func
from sqlalchemy.orm import Session

from auth import SessionStore
from config import (
    EMAIL_VERIFIER_ENABLED,
    FRONTEND_URL,
    RESET_PASSWORD_PATH,
    TOKEN_REQUEST_INTERVAL_MINUTES,
    VERIFY_EMAIL_PATH
)
from errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
    UnauthorizedError,
    not_found
)
from models import (
    ADMIN_ROLES,
    EmailVerification,
    ForgottenPassword,
    User,
    UserRole
)
from monitoring import auth_attempts_counter, auth_failures_counter, tokens_issued_counter
from schemas import AuthCredentials, EmailLogin
from security import generate_numeric_token, generate_salt, hash_password, verify_password
from services.cart_service import CartService
from services.external_service import ExternalServiceClient
from services.profile_service import ProfileService

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(
    r'^(([^<>()\[\]\\.,;:\s@"]+(\.[^<>()\[\]\\.,;:\s@"]+)*)|(".+"))@'
    r'((\[[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}\.[0-9]{1,3}])|(([a-zA-Z\-0-9]+\.)+[a-zA-Z]{2,}))$'
)

TokenModel = Union[Type[EmailVerification], Type[ForgottenPassword]]


class AuthService:
    """Service for sign-up, sign-in, email verification and password reset."""

    def __init__(
        self,
        sessions: SessionStore,
        external_service: ExternalServiceClient,
        profile_service: ProfileService,
        cart_service: CartService
    ):
        self.sessions = sessions
        self.external_service = external_service
        self.profile_service = profile_service
        self.cart_service = cart_service
        self.token_interval = timedelta(minutes=TOKEN_REQUEST_INTERVAL_MINUTES)

    # Validation

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        if not email:
            return False
        return EMAIL_PATTERN.match(email) is not None

    async def is_email_activated(self, email: str) -> bool:
        """
        Ask the external verifier whether the address is usable.

        An unreachable verifier does not block sign-ups.
        """
        if not EMAIL_VERIFIER_ENABLED:
            return True
        result = await self.external_service.verify_email(email)
        if result is None:
            logger.warning("Email verifier unavailable, accepting address", extra={"email": email})
            return True
        return result.get("status") == "passed"

    def username_taken(self, db: Session, username: str) -> bool:
        return db.query(User.id).filter(User.username == username).first() is not None

    def check_if_email_exist(self, db: Session, email: str) -> bool:
        return db.query(User.id).filter(func.lower(User.email) == email.lower()).first() is not None

    # Accounts

    async def _build_account(self, db: Session, credentials: AuthCredentials) -> User:
        email = credentials.email
        if not self.is_valid_email(email):
            raise BadRequestError("You have entered invalid email")
        if not await self.is_email_activated(email):
            raise ConflictError(
                "Your email is not valid to use in our environment, "
                "please check that it is valid with its service provider"
            )
        if self.username_taken(db, credentials.username):
            raise ConflictError(f"Username {credentials.username} is not available, please try another one")
        if self.check_if_email_exist(db, email):
            raise ConflictError(f"Email {email} is not available, please try another one")

        salt = generate_salt()
        profile = self.profile_service.create_profile(db)
        user = User(
            username=credentials.username,
            email=email,
            salt=salt,
            password=hash_password(credentials.password, salt),
            email_verified=False,
            profile_id=profile.id
        )
        return user

    def _open_session(self, user_id: int) -> str:
        try:
            return self.sessions.create(user_id)
        except redis.RedisError as e:
            logger.error("Failed to open session", extra={"user_id": user_id, "error": str(e)})
            raise ServiceUnavailableError("Session store unavailable, please sign in again later")

    async def sign_up_user(self, db: Session, credentials: AuthCredentials) -> Dict[str, Any]:
        """
        Register a customer account and email it a verification code.

        Raises:
            BadRequestError: If the email is malformed
            ConflictError: If the email is rejected or the username/email is taken
        """
        try:
            user = await self._build_account(db, credentials)
            user.roles = [UserRole.USER.value]
            db.add(user)
            db.flush()
            self._issue_token(db, EmailVerification, "email_token", user.email)
            db.commit()
        except Exception:
            db.rollback()
            raise

        await self.send_email_verification(db, user.email)
        token = self._open_session(user.id)

        logger.info("User signed up", extra={"user_id": user.id, "username": user.username})
        return {"user": user, "token": token}

    async def sign_up_admin(self, db: Session, credentials: AuthCredentials) -> Dict[str, Any]:
        """Register an administrator account with the lowest admin role."""
        try:
            admin = await self._build_account(db, credentials)
            admin.roles = [UserRole.WEAK_ADMIN.value]
            db.add(admin)
            db.commit()
        except Exception:
            db.rollback()
            raise

        token = self._open_session(admin.id)

        logger.info("Admin signed up", extra={"user_id": admin.id, "username": admin.username})
        return {"user": admin, "token": token}

    def _authenticate(self, db: Session, login: EmailLogin, roles, attempt_type: str) -> User:
        auth_attempts_counter.add(1, {"type": attempt_type})
        if not self.is_valid_email(login.email):
            auth_failures_counter.add(1, {"reason": "invalid_email"})
            raise BadRequestError("Invalid email signature")

        user = self.find_user_by_email(db, login.email)
        if user is None or not verify_password(login.password, user.salt, user.password):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed: Invalid credentials", extra={"email": login.email})
            raise UnauthorizedError("Invalid credentials")
        if not user.has_role(*roles):
            auth_failures_counter.add(1, {"reason": "missing_role"})
            logger.warning("Login failed: Missing role", extra={"user_id": user.id, "type": attempt_type})
            raise UnauthorizedError("Invalid credentials")
        return user

    def sign_in_user(self, db: Session, login: EmailLogin) -> Dict[str, Any]:
        user = self._authenticate(db, login, (UserRole.USER,), "user_login")
        token = self._open_session(user.id)
        logger.info("User logged in successfully", extra={"user_id": user.id})
        return {"user": user, "token": token}

    def sign_in_admin(self, db: Session, login: EmailLogin) -> Dict[str, Any]:
        admin = self._authenticate(db, login, ADMIN_ROLES, "admin_login")
        token = self._open_session(admin.id)
        logger.info("Admin logged in successfully", extra={"user_id": admin.id})
        return {"user": admin, "token": token}

    def sign_out(self, token: str) -> None:
        self.sessions.revoke(token)

    # Verification and reset tokens

    def _issue_token(self, db: Session, model: TokenModel, token_field: str, email: str):
        """
        Create or replace the outstanding token row for an email.

        Raises:
            ConflictError: If the current row is younger than the request interval
        """
        now = datetime.utcnow()
        record = db.query(model).filter(model.email == email).first()
        if record is not None and now - record.timestamp < self.token_interval:
            raise ConflictError(
                f"A request for {email} was sent recently, "
                f"please check your inbox or retry in {TOKEN_REQUEST_INTERVAL_MINUTES} minutes"
            )
        if record is None:
            record = model(email=email)
            db.add(record)
        setattr(record, token_field, generate_numeric_token())
        record.timestamp = now
        db.flush()

        tokens_issued_counter.add(1, {"kind": model.__tablename__})
        return record

    def create_email_token(self, db: Session, email: str) -> EmailVerification:
        try:
            record = self._issue_token(db, EmailVerification, "email_token", email)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return record

    def create_forgotten_password_token(self, db: Session, email: str) -> ForgottenPassword:
        try:
            record = self._issue_token(db, ForgottenPassword, "new_password_token", email)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return record

    async def send_email_verification(self, db: Session, email: str) -> bool:
        """
        Email the outstanding verification code for an address.

        Raises:
            ConflictError: If the address has no verification code
        """
        record = db.query(EmailVerification).filter(EmailVerification.email == email).first()
        if record is None or not record.email_token:
            raise ConflictError("This email is not registered")

        url = f"{FRONTEND_URL}/{VERIFY_EMAIL_PATH}/{record.email_token}"
        return await self.external_service.send_email(
            to=email,
            subject="Verify Email",
            text=f"Verify your email: {url}",
            html=(
                "<h1>Hi User</h1><h2>Thanks for your registration</h2>"
                "<h3>Please verify your email by clicking the following link</h3>"
                f"<a style='text-decoration:none;' href='{url}'>Click here to confirm your email</a>"
            )
        )

    def verify_email(self, db: Session, token: str) -> Dict[str, Any]:
        """
        Consume an email verification code.

        Raises:
            BadRequestError: If the code is unknown or already used
        """
        record = db.query(EmailVerification).filter(EmailVerification.email_token == token).first()
        if record is None:
            raise BadRequestError("Email verification code is not valid")

        user = self.find_user_by_email(db, record.email)
        if user is None:
            raise NotFoundError("User not found")

        user.email_verified = True
        db.delete(record)
        db.commit()

        logger.info("Email verified", extra={"user_id": user.id})
        return {"is_fully_verified": True, "user": user}

    async def send_email_forgotten_password(self, db: Session, email: str) -> bool:
        """
        Issue a password reset code and email it.

        Raises:
            NotFoundError: If no account uses the email
            ConflictError: If a code was issued within the request interval
        """
        if self.find_user_by_email(db, email) is None:
            raise NotFoundError("User not found")

        record = self.create_forgotten_password_token(db, email)
        url = f"{FRONTEND_URL}/{RESET_PASSWORD_PATH}/{record.new_password_token}"
        return await self.external_service.send_email(
            to=email,
            subject="Reset Your Password",
            text=f"Reset your password: {url}",
            html=(
                "<h1>Hi User</h1><h2>You have requested to reset your password</h2>"
                "<h3>Please click the following link</h3>"
                f"<a style='text-decoration:none;' href='{url}'>Click here to reset your password</a>"
            )
        )

    def set_password(self, db: Session, email: str, new_password: str) -> User:
        """Re-hash a user's password with their salt. Does not commit."""
        user = self.find_user_by_email(db, email)
        if user is None:
            raise NotFoundError("User not found")
        user.password = hash_password(new_password, user.salt)
        return user

    def set_new_password(self, db: Session, new_password_token: str, new_password: str) -> bool:
        """
        Consume a password reset code and set the new password.

        Every open session of the user is ended.

        Raises:
            BadRequestError: If the code is empty, unknown or already used
        """
        if not new_password_token:
            raise BadRequestError("You have entered invalid token")

        record = db.query(ForgottenPassword).filter(
            ForgottenPassword.new_password_token == new_password_token
        ).first()
        if record is None:
            raise BadRequestError("You did not send a forgot password request, try to send a new request")

        try:
            user = self.set_password(db, record.email, new_password)
            db.delete(record)
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.sessions.revoke_all(user.id)
        logger.info("Password reset", extra={"user_id": user.id})
        return True

    # Administration

    def find_user_by_email(self, db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == email.lower()).first()

    def get_total_users(self, db: Session) -> int:
        return db.query(func.count(User.id)).scalar()

    def get_system_users(self, db: Session) -> List[User]:
        return db.query(User).order_by(User.id).all()

    def get_user_by_id(self, db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise not_found("User", user_id)
        return user

    def edit_user_roles(self, db: Session, user_id: int, roles: List[UserRole]) -> Dict[str, bool]:
        user = self.get_user_by_id(db, user_id)
        user.roles = [role.value for role in roles]
        db.commit()
        logger.info("Edited user roles", extra={"user_id": user_id, "roles": user.roles})
        return {"process_completed": True}

    def delete_user_account(self, db: Session, user: User) -> bool:
        """Delete an account with its cart (restocked) and its profile."""
        user_id = user.id
        profile_id = user.profile_id
        try:
            self.cart_service.delete_cart(db, user)
            db.delete(user)
            db.flush()
            if profile_id is not None:
                self.profile_service.delete_profile(db, profile_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        self.sessions.revoke_all(user_id)
        logger.info("Deleted user account", extra={"user_id": user_id})
        return True
