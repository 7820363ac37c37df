"""Password hashing, refresh token generation and JWT creation/verification."""

import hashlib
import secrets
from datetime import datetime, timezone, timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from authcore.config import Settings, settings

ACCESS_TOKEN_TYPE = "access"


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash password with bcrypt. Bytes truncated to 72 (bcrypt limit); no passlib re-encoding."""
    pwd_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(pwd_bytes, bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify password with bcrypt. Plain password truncated to 72 bytes."""
    plain_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(plain_bytes, password_hash.encode("utf-8"))
    except ValueError:
        # stored hash is not a bcrypt hash
        return False


def _get_jwt_signing_key_and_algorithm(config: Settings) -> tuple[str, str]:
    """Return (key, algorithm) for signing access tokens."""
    if config.use_rs256:
        return config.jwt_private_key.strip(), "RS256"
    return config.secret_key, config.jwt_algorithm


def create_access_token(user_id: int, now: datetime | None = None, config: Settings | None = None) -> str:
    config = config or settings
    issued_at = now or datetime.now(timezone.utc)
    expire = issued_at + timedelta(minutes=config.access_token_expire_minutes)
    payload = {"sub": str(user_id), "iat": issued_at, "exp": expire, "type": ACCESS_TOKEN_TYPE}
    key, algorithm = _get_jwt_signing_key_and_algorithm(config)
    result = jwt.encode(payload, key, algorithm=algorithm)
    return result if isinstance(result, str) else result.decode("utf-8")


def create_refresh_token() -> str:
    """Generate a new refresh token (plain string; caller must hash and store)."""
    return secrets.token_urlsafe(32)


def hash_refresh_token(token: str) -> str:
    """SHA256 hash of refresh token for storage."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _get_jwt_verification_key_and_algorithms(config: Settings) -> tuple[str, list[str]]:
    """Return (key, algorithms) for verifying access tokens."""
    if config.use_rs256:
        return config.jwt_public_key.strip(), ["RS256"]
    return config.secret_key, [config.jwt_algorithm]


def decode_token(token: str, config: Settings | None = None) -> dict[str, Any]:
    """Decode and verify signature and expiry. Raises JWTError."""
    key, algorithms = _get_jwt_verification_key_and_algorithms(config or settings)
    return jwt.decode(token, key, algorithms=algorithms)


__all__ = [
    "ACCESS_TOKEN_TYPE",
    "JWTError",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
    "hash_password",
    "hash_refresh_token",
    "verify_password",
]
