"""
Password hashing and vendor session tokens.

Passwords are stored as bcrypt hashes. Sessions are HS256 JWTs carrying the
vendor id and canteen id; get_current_vendor() is the FastAPI dependency that
guards every vendor endpoint.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Header

from canteen.core.config import Settings, get_settings
from canteen.core.errors import AuthenticationError, TokenError, ValidationError

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


@dataclass(frozen=True)
class VendorIdentity:
    """Who is calling, as carried by a valid session token."""
    vendor_id: int
    canteen_id: int


def hash_password(password: str, rounds: int = 12) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"password: must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """Constant-time check of a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


class TokenService:
    """Issues and validates vendor session tokens."""

    def __init__(self, settings: Settings):
        if not settings.jwt_secret:
            raise RuntimeError("JWT_SECRET is not configured")
        self.secret = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.lifetime = timedelta(hours=settings.jwt_expire_hours)

    def issue(self, vendor_id: int, canteen_id: int, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "vendor_id": vendor_id,
            "canteen_id": canteen_id,
            "iat": issued_at,
            "exp": issued_at + self.lifetime,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> VendorIdentity:
        """
        Validate a token and return the identity it carries.

        Raises:
            TokenError: bad signature, expired, or missing claims
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "vendor_id", "canteen_id"]},
            )
            return VendorIdentity(
                vendor_id=int(payload["vendor_id"]),
                canteen_id=int(payload["canteen_id"]),
            )
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.debug(f"Rejected session token: {e}")
            raise TokenError()


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(settings)


async def get_current_vendor(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> VendorIdentity:
    """
    Resolve the calling vendor from the Authorization header.

    Missing header or a header with no token value → 401; a wrong scheme or
    anything wrong with the token itself → 403.
    """
    if not authorization:
        raise AuthenticationError("No token provided. Please log in.")

    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if not token:
        raise AuthenticationError("Malformed token.")
    if scheme.lower() != "bearer":
        raise TokenError()

    return tokens.decode(token)
