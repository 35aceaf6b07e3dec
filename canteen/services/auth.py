"""
Vendor registration and login.
"""

import asyncio
import logging
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.core.config import Settings
from canteen.core.errors import AuthenticationError, CanteenError, ConflictError
from canteen.core.security import TokenService, hash_password, verify_password
from canteen.models import Vendor

logger = logging.getLogger(__name__)

DUPLICATE_USERNAME = "Registration failed. Username already exists."
INVALID_CREDENTIALS = "Invalid credentials."


@lru_cache()
def _dummy_hash(rounds: int) -> str:
    """Hash checked for unknown usernames so both login failures cost one bcrypt check."""
    return hash_password("not-a-real-password", rounds=rounds)


class VendorAuthService:
    """
    Creates vendor accounts and exchanges credentials for session tokens.

    Every bcrypt hash and check runs in a worker thread, off the event loop.
    """

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.settings = settings

    async def register(self, canteen_id: int, username: str, password: str, name: str) -> Vendor:
        """
        Create a vendor account.

        Raises:
            ConflictError: the username is taken
        """
        existing = await self.db.execute(select(Vendor.id).where(Vendor.username == username))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(DUPLICATE_USERNAME)

        vendor = Vendor(
            name=name,
            username=username,
            password_hash=await asyncio.to_thread(hash_password, password, self.settings.bcrypt_rounds),
            canteen_id=canteen_id,
        )
        self.db.add(vendor)
        try:
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name
            await self.db.rollback()
            raise ConflictError(DUPLICATE_USERNAME)
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"❌ Error registering vendor: {e}")
            raise CanteenError("Registration failed.") from e

        logger.info(f"Vendor #{vendor.id} ({username}) registered for canteen {canteen_id}")
        return vendor

    async def login(self, username: str, password: str, tokens: TokenService) -> str:
        """
        Verify credentials and issue a session token.

        Raises:
            AuthenticationError: unknown username or wrong password (same message)
        """
        result = await self.db.execute(select(Vendor).where(Vendor.username == username))
        vendor = result.scalar_one_or_none()

        if vendor is None:
            dummy = await asyncio.to_thread(_dummy_hash, self.settings.bcrypt_rounds)
            await asyncio.to_thread(verify_password, password, dummy)
            logger.info("Login failed: unknown username")
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not await asyncio.to_thread(verify_password, password, vendor.password_hash):
            logger.info(f"Login failed for vendor #{vendor.id}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        logger.info(f"Vendor #{vendor.id} logged in")
        return tokens.issue(vendor.id, vendor.canteen_id)
