"""SQLAlchemy (PostgreSQL) implementation of CredentialStore."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.core.errors import DuplicateIdentity, StorageUnavailable
from authcore.models.refresh_token import RefreshToken
from authcore.models.user import User
from authcore.stores.base import RefreshTokenRecord, RotationOutcome, RotationResult, UserRecord

logger = logging.getLogger(__name__)


def _user_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        password_hash=user.password_hash,
        name=user.name,
        role=user.role,
        created_at=user.created_at,
    )


def _token_record(row: RefreshToken) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=row.expires_at,
        revoked=row.revoked,
        created_at=row.created_at,
    )


class SqlCredentialStore:
    """One session and one transaction per call; commit on success, rollback on error."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    yield session
        except IntegrityError:
            raise
        except (OperationalError, InterfaceError, DBAPIError, OSError) as e:
            logger.warning("Credential store unavailable: %s", type(e).__name__)
            raise StorageUnavailable("Credential store unavailable") from e

    async def get_user_by_email(self, email: str) -> UserRecord | None:
        async with self._transaction() as session:
            r = await session.execute(select(User).where(User.email == email))
            user = r.scalar_one_or_none()
            return _user_record(user) if user else None

    async def get_user_by_id(self, user_id: int) -> UserRecord | None:
        async with self._transaction() as session:
            user = await session.get(User, user_id)
            return _user_record(user) if user else None

    async def create_user(
        self,
        email: str,
        password_hash: str | None,
        name: str | None,
        role: str = "user",
    ) -> UserRecord:
        try:
            async with self._transaction() as session:
                user = User(email=email, password_hash=password_hash, name=name, role=role)
                session.add(user)
                await session.flush()
                await session.refresh(user)
                return _user_record(user)
        except IntegrityError as e:
            logger.warning("create_user IntegrityError for existing email")
            raise DuplicateIdentity("Email already registered") from e

    async def add_refresh_token(self, user_id: int, token_hash: str, expires_at: datetime) -> RefreshTokenRecord:
        async with self._transaction() as session:
            row = RefreshToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at, revoked=False)
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return _token_record(row)

    async def get_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        async with self._transaction() as session:
            r = await session.execute(select(RefreshToken).where(RefreshToken.token_hash == token_hash))
            row = r.scalar_one_or_none()
            return _token_record(row) if row else None

    async def rotate_refresh_token(
        self,
        token_hash: str,
        replacement_hash: str,
        replacement_expires_at: datetime,
        now: datetime,
    ) -> RotationResult:
        async with self._transaction() as session:
            # Conditional update: of two concurrent callers, the second re-evaluates
            # the WHERE clause after the first commits and matches nothing.
            stmt = (
                update(RefreshToken)
                .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked.is_(False))
                .values(revoked=True)
                .returning(RefreshToken.user_id, RefreshToken.expires_at)
                .execution_options(synchronize_session=False)
            )
            claimed = (await session.execute(stmt)).one_or_none()
            if claimed is None:
                return RotationResult(RotationOutcome.INVALID)
            user_id, expires_at = claimed
            if now >= expires_at:
                return RotationResult(RotationOutcome.EXPIRED, user_id=user_id)
            row = RefreshToken(
                user_id=user_id,
                token_hash=replacement_hash,
                expires_at=replacement_expires_at,
                revoked=False,
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return RotationResult(RotationOutcome.ROTATED, user_id=user_id, replacement=_token_record(row))

    async def revoke_refresh_token(self, token_hash: str) -> bool:
        async with self._transaction() as session:
            stmt = (
                update(RefreshToken)
                .where(RefreshToken.token_hash == token_hash, RefreshToken.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount > 0
