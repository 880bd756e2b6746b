"""Password hashing and token generation."""
import hashlib
import hmac
import secrets

from config import PASSWORD_HASH_ITERATIONS


def generate_salt() -> str:
    """Create a random per-user salt."""
    return secrets.token_hex(16)


def hash_password(password: str, salt: str) -> str:
    """Hash a password with PBKDF2-HMAC-SHA256 and the user's salt."""
    digest = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode(),
        salt.encode(),
        PASSWORD_HASH_ITERATIONS
    )
    return digest.hex()


def verify_password(password: str, salt: str, hashed_password: str) -> bool:
    """Check a plain password against a stored hash."""
    if not salt or not hashed_password:
        return False
    return hmac.compare_digest(hash_password(password, salt), hashed_password)


def generate_numeric_token() -> str:
    """Six-digit code used for email verification and password reset."""
    return str(secrets.randbelow(900000) + 100000)


def generate_session_token() -> str:
    """Opaque bearer token for an authenticated session."""
    return secrets.token_urlsafe(32)
