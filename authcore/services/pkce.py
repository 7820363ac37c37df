"""PKCE (RFC 7636) code verifier and challenge helpers."""

import base64
import hashlib
import hmac
import secrets
import string

VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128


def generate_code_verifier(length: int = 64) -> str:
    if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
        raise ValueError(f"code verifier length must be {MIN_VERIFIER_LENGTH}-{MAX_VERIFIER_LENGTH}")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def code_challenge(verifier: str, method: str = "S256") -> str:
    if method == "plain":
        return verifier
    if method != "S256":
        raise ValueError(f"unsupported code challenge method: {method}")
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def verify_code_challenge(verifier: str, challenge: str, method: str = "S256") -> bool:
    return hmac.compare_digest(code_challenge(verifier, method), challenge)
