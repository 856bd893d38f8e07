"""
User Repository

Database operations for user accounts.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.users.models import User, UserRole

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for user database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        username: str,
        password_hash: str,
        role: UserRole,
        email: str | None = None,
        is_active: bool = True,
    ) -> User:
        """
        Create a new user record.

        Args:
            db: Database session
            username: Login name (unique)
            password_hash: Hashed password
            role: User's role
            email: Email address (optional, unique)
            is_active: Whether the account can log in

        Returns:
            Created User instance
        """
        user = User(
            username=username,
            email=email,
            password_hash=password_hash,
            role=role,
            is_active=is_active,
        )

        db.add(user)
        await db.flush()
        await db.refresh(user)

        logger.info(f"Created user: {user.id} - {user.username} ({user.role.value})")
        return user

    @staticmethod
    async def get_by_login(db: AsyncSession, identifier: str) -> User | None:
        """
        Get a user by username or email address.

        Args:
            db: Database session
            identifier: Username or email entered at login

        Returns:
            User instance or None if not found
        """
        result = await db.execute(
            select(User).where(or_(User.username == identifier, User.email == identifier))
        )
        return result.scalars().first()
