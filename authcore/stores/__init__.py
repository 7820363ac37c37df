from authcore.stores.base import (
    CredentialStore,
    EphemeralStore,
    RefreshTokenRecord,
    RotationOutcome,
    RotationResult,
    UserRecord,
)
from authcore.stores.memory import MemoryCredentialStore, MemoryEphemeralStore

__all__ = [
    "CredentialStore",
    "EphemeralStore",
    "MemoryCredentialStore",
    "MemoryEphemeralStore",
    "RefreshTokenRecord",
    "RotationOutcome",
    "RotationResult",
    "UserRecord",
]
