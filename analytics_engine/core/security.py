"""
Security utilities: API key generation and hashing
"""
import secrets
import string
from passlib.context import CryptContext

from analytics_engine.core.config import settings

API_KEY_ALPHABET = string.ascii_uppercase + string.digits

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.API_KEY_HASH_ROUNDS,
)


def generate_api_key(length: int = None) -> str:
    """Generate a random API key from the uppercase alphanumeric alphabet"""
    length = length or settings.API_KEY_LENGTH
    return "".join(secrets.choice(API_KEY_ALPHABET) for _ in range(length))


def hash_api_key(api_key: str) -> str:
    """Salted one-way hash of an API key"""
    return pwd_context.hash(api_key)


def verify_api_key(plain_key: str, hashed_key: str) -> bool:
    """
    Verify a presented key against a stored hash.
    Comparison is constant-time; malformed hashes never match.
    """
    if not plain_key or not hashed_key:
        return False
    try:
        return pwd_context.verify(plain_key, hashed_key)
    except ValueError:
        return False
