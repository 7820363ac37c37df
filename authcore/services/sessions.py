"""Register, login, refresh (rotation) and logout.

Refresh token lifecycle: ACTIVE -> ROTATED | EXPIRED (revoked on detection) | LOGGED_OUT.
Every exit from ACTIVE is terminal; a token that left ACTIVE can never be
exchanged again, so whichever party presents a stolen copy second gets
InvalidToken.

login() does not revoke the user's other refresh tokens; several sessions per
user can be active at once.
"""

from __future__ import annotations

import logging

from authcore.core.auth import create_refresh_token, hash_password, hash_refresh_token, verify_password
from authcore.core.errors import DuplicateIdentity, InvalidCredential, InvalidToken, TokenExpired
from authcore.schemas.auth import AuthResult, UserOut
from authcore.services.token_issuer import TokenIssuer
from authcore.stores.base import CredentialStore, RotationOutcome, UserRecord, bounded

logger = logging.getLogger(__name__)


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _user_out(user: UserRecord) -> UserOut:
    return UserOut(id=user.id, email=user.email, name=user.name, role=user.role, created_at=user.created_at)


class SessionRotationEngine:
    def __init__(self, store: CredentialStore, issuer: TokenIssuer):
        self.store = store
        self.issuer = issuer
        self.timeout = issuer.config.storage_timeout_seconds

    def _result(self, user: UserRecord, access: str, refresh: str) -> AuthResult:
        return AuthResult(
            access_token=access,
            refresh_token=refresh,
            expires_in=self.issuer.access_token_ttl_seconds,
            user=_user_out(user),
        )

    async def _issue_tokens(self, user: UserRecord) -> AuthResult:
        access, refresh = await self.issuer.issue_pair(user.id)
        return self._result(user, access, refresh)

    async def register(self, email: str, password: str, name: str | None = None) -> AuthResult:
        """Create a password account and open its first session. Raises DuplicateIdentity."""
        email = normalize_email(email)
        if not email or not password:
            raise InvalidCredential("Email and password required")
        existing = await bounded(self.store.get_user_by_email(email), self.timeout, "get_user_by_email")
        if existing is not None:
            raise DuplicateIdentity("Email already registered")
        password_hash = hash_password(password, rounds=self.issuer.config.bcrypt_rounds)
        # the unique constraint still decides a concurrent registration race
        user = await bounded(
            self.store.create_user(email, password_hash, name),
            self.timeout,
            "create_user",
        )
        logger.info("Registered user id=%s", user.id)
        return await self._issue_tokens(user)

    async def login(self, email: str, password: str) -> AuthResult:
        email = normalize_email(email)
        if not email or not password:
            raise InvalidCredential("Email and password required")
        user = await bounded(self.store.get_user_by_email(email), self.timeout, "get_user_by_email")
        if user is None or not user.password_hash:
            raise InvalidCredential("Invalid email or password")
        if not verify_password(password, user.password_hash):
            raise InvalidCredential("Invalid email or password")
        logger.info("Login user id=%s", user.id)
        return await self._issue_tokens(user)

    async def refresh(self, refresh_token: str) -> AuthResult:
        """Exchange a refresh token for a new pair, revoking the presented one."""
        if not refresh_token or not refresh_token.strip():
            raise InvalidToken("Refresh token required")
        now = self.issuer.clock()
        replacement = create_refresh_token()
        result = await bounded(
            self.store.rotate_refresh_token(
                hash_refresh_token(refresh_token.strip()),
                hash_refresh_token(replacement),
                self.issuer.refresh_expiry(now),
                now,
            ),
            self.timeout,
            "rotate_refresh_token",
        )
        if result.outcome is RotationOutcome.INVALID:
            logger.warning("Refresh rejected: unknown or already revoked token")
            raise InvalidToken("Invalid refresh token")
        if result.outcome is RotationOutcome.EXPIRED:
            logger.warning("Refresh rejected: expired token for user id=%s (now revoked)", result.user_id)
            raise TokenExpired("Refresh token expired")
        user = await bounded(self.store.get_user_by_id(result.user_id), self.timeout, "get_user_by_id")
        if user is None:
            raise InvalidToken("User not found")
        logger.info("Rotated refresh token for user id=%s", user.id)
        return self._result(user, self.issuer.issue_access_token(user.id), replacement)

    async def logout(self, refresh_token: str) -> None:
        """Revoke the refresh token. Idempotent: absent or revoked tokens are not an error."""
        if not refresh_token or not refresh_token.strip():
            return
        revoked = await bounded(
            self.store.revoke_refresh_token(hash_refresh_token(refresh_token.strip())),
            self.timeout,
            "revoke_refresh_token",
        )
        if revoked:
            logger.info("Logout: refresh token revoked")

    async def get_user(self, user_id: int) -> UserOut | None:
        user = await bounded(self.store.get_user_by_id(user_id), self.timeout, "get_user_by_id")
        return _user_out(user) if user else None
