import hashlib
import secrets

API_KEY_PREFIX = "br_"


def generate_api_key() -> tuple[str, str]:
    """Generate a raw API key and its SHA-256 hash.

    Returns:
        (raw_key, key_hash); raw_key is shown once, key_hash is stored.
    """
    raw_key = f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"
    return raw_key, hash_api_key(raw_key)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def extract_api_key(x_api_key: str | None, authorization: str | None) -> str | None:
    """Pick the caller's key: X-API-Key header first, then "Authorization: Bearer <key>"."""
    if x_api_key and x_api_key.strip():
        return x_api_key.strip()
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        return token or None
    return None
