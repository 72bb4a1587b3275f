import uuid
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import MagicLink, User


class MagicLinkRepository:
    """SQL persistence for magic links.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_active_by_email(self, email: str, now: datetime) -> MagicLink | None:
        stmt = (
            select(MagicLink)
            .where(
                MagicLink.email == email,
                MagicLink.consumed.is_(False),
                MagicLink.expires_at > now,
            )
            .order_by(MagicLink.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def invalidate_all_for_email(self, email: str, now: datetime) -> int:
        result = await self.session.execute(
            update(MagicLink)
            .where(MagicLink.email == email, MagicLink.consumed.is_(False))
            .values(consumed=True, consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def insert(self, magic_link: MagicLink) -> MagicLink:
        self.session.add(magic_link)
        await self.session.flush()
        return magic_link

    async def find_and_consume_by_token(self, token_hash: str, now: datetime) -> MagicLink | None:
        # Single conditional UPDATE: of two racing redemptions only one matches the row.
        stmt = (
            update(MagicLink)
            .where(
                MagicLink.token_hash == token_hash,
                MagicLink.consumed.is_(False),
                MagicLink.expires_at > now,
            )
            .values(consumed=True, consumed_at=now)
            .returning(MagicLink)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(MagicLink).where(MagicLink.expires_at <= now)
        )
        return result.rowcount


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_email(self, email: str) -> User | None:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def create(self, email: str, name: str | None, verified_at: datetime | None) -> User:
        user = User(email=email, name=name, email_verified_at=verified_at)
        self.session.add(user)
        await self.session.flush()
        return user
