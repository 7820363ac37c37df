from authcore.services.oauth_state import ExternalIdentityStateManager
from authcore.services.sessions import SessionRotationEngine
from authcore.services.token_issuer import TokenIssuer

__all__ = ["ExternalIdentityStateManager", "SessionRotationEngine", "TokenIssuer"]
