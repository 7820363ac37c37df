from authcore.models.user import User
from authcore.models.refresh_token import RefreshToken

__all__ = [
    "User",
    "RefreshToken",
]
