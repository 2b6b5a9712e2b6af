import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Header
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from voiceover.config import Settings, get_settings
from voiceover.dependencies import get_db
from voiceover.errors import AuthError, ProviderError
from voiceover.models import Admin
from voiceover.repository import OrderRepository

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def password_verified(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _secret(settings: Settings) -> str:
    if not settings.jwt_secret:
        raise ProviderError("configuration", "JWT_SECRET is not set")
    return settings.jwt_secret


def create_access_token(email: str, settings: Settings) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    claims = {"sub": email, "role": "admin", "exp": expire}
    return jwt.encode(claims, _secret(settings), algorithm=ALGORITHM)


def authenticate_admin(db: Session, email: str, password: str, settings: Settings) -> str:
    """Check the single admin's credentials and mint a bearer token."""
    email = (email or "").strip().lower()
    if email != settings.admin_email.lower():
        raise AuthError("Invalid credentials")

    admin = OrderRepository(db).get_admin(email)
    if admin is None or not password_verified(password or "", admin.password):
        logger.warning(f"Failed admin login for {email}")
        raise AuthError("Invalid credentials")
    return create_access_token(admin.email, settings)


def require_admin(
    authorization: str = Header(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> Admin:
    try:
        scheme, token = (authorization or "").split()
    except ValueError:
        raise AuthError("Invalid or missing token")
    if scheme.lower() != "bearer":
        raise AuthError("Invalid or missing token")

    try:
        claims = jwt.decode(token, _secret(settings), algorithms=[ALGORITHM])
    except JWTError:
        raise AuthError("Invalid or expired token")
    if claims.get("role") != "admin":
        raise AuthError("Not authorized as admin")

    admin = OrderRepository(db).get_admin(claims.get("sub", ""))
    if admin is None:
        raise AuthError("Admin not found")
    return admin
