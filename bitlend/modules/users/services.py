from fastapi import HTTPException, status
from typing import Optional
import logging
import secrets

from bitlend.core.exceptions import ValidationError
from bitlend.core.security import (
    generate_random_password, generate_reference_suffix, get_password_hash, verify_password
)
from bitlend.modules.stats.schemas import StatsCreate
from bitlend.modules.users.schemas import UserCreate, UserRecord
from bitlend.store.base import DuplicateRecordError, LedgerStore

logger = logging.getLogger(__name__)

WALLET_INITIALS = "BT"


def get_initials(username: str) -> str:
    """Up to two initials from the words of a username"""
    parts = [part for part in username.split() if part]
    if not parts:
        return WALLET_INITIALS
    return "".join(part[0] for part in parts[:2]).upper()


class UserService:
    """Service layer for user accounts"""

    def __init__(self, store: LedgerStore):
        self.store = store

    async def _create_with_stats(self, user_in: UserCreate) -> UserRecord:
        """Insert a user and the stats record it always owns"""
        async with self.store.atomic():
            try:
                user = await self.store.create_user(user_in)
            except DuplicateRecordError as exc:
                raise ValidationError(f"Account already exists ({exc})")
            await self.store.create_stats(StatsCreate(user_id=user.id))
        return user

    async def register_user(
        self,
        username: str,
        email: str,
        password: str,
        wallet_address: Optional[str] = None
    ) -> UserRecord:
        """Register a new user with a password"""

        # Check if email already exists
        if await self.store.get_user_by_email(email):
            raise ValidationError("Email already registered")

        # Check if wallet already linked
        if wallet_address and await self.store.get_user_by_wallet_address(wallet_address):
            raise ValidationError("Wallet address already registered")

        user = await self._create_with_stats(UserCreate(
            username=username,
            email=email,
            hashed_password=get_password_hash(password),
            wallet_address=wallet_address,
            avatar_initials=get_initials(username)
        ))

        logger.info(f"User {user.id} registered")
        return user

    async def authenticate_user(self, email: str, password: str) -> UserRecord:
        """Check credentials"""
        user = await self.store.get_user_by_email(email)
        if not user or not verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )
        return user

    async def connect_wallet(self, wallet_address: str) -> UserRecord:
        """Get the user owning a wallet, creating a wallet-only account on first use"""
        user = await self.store.get_user_by_wallet_address(wallet_address)
        if user:
            return user

        user = await self._create_with_stats(UserCreate(
            username=f"User-{generate_reference_suffix(6)}",
            email=f"{secrets.token_hex(6)}@wallet.user",
            hashed_password=get_password_hash(generate_random_password()),
            wallet_address=wallet_address,
            avatar_initials=WALLET_INITIALS
        ))

        logger.info(f"User {user.id} created from wallet connection")
        return user
