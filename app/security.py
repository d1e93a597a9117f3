"""
Security utilities: password hashing, JWT tokens, refresh-token hashing,
and card number encryption.

This module centralizes all cryptographic operations so they're easy to
audit and update. Four concerns are handled here:

1. PASSWORD HASHING (Argon2)
   - Passwords are never stored in plaintext
   - passlib's CryptContext handles hashing and verification; "deprecated=auto"
     lets a future scheme replace argon2 while old hashes keep verifying

2. ACCESS TOKENS (JWT)
   - After login, the user receives a signed JWT carrying:
       "sub"   - the username
       "roles" - comma-joined role names, e.g. "ADMIN,USER"
       "iat" / "exp"
   - Signed with JWT_ACCESS_SECRET using HS256

3. REFRESH TOKENS
   - Opaque UUIDv4 strings handed to the client once
   - Only the SHA-256 hex digest is stored and used as the lookup key

4. CARD NUMBER ENCRYPTION (AES-CBC, fixed IV)
   - CardCodec encrypts PANs deterministically: the same number always yields
     the same ciphertext, which makes the encrypted column usable as a
     uniqueness key and for equality lookups
   - The fixed IV reveals equality of plaintexts to anyone who can read the
     column. This is an at-rest envelope, not protection against an attacker
     able to submit chosen card numbers. A randomized IV would need a separate
     blind index (e.g. HMAC of the PAN) for lookups.
"""

import base64
import binascii
import hashlib
import uuid
from datetime import datetime, timedelta, timezone

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from jose import jwt
from passlib.context import CryptContext

from app.config import settings
from app.exceptions import CryptoError


# ---------------------------------------------------------------------------
# 1. Password Hashing (Argon2)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(plain_password: str) -> str:
    """
    Hash a plaintext password using Argon2id.

    Returns:
        An Argon2 hash string (e.g., "$argon2id$v=19$m=65536,t=3,p=4$...").
    """
    return pwd_context.hash(plain_password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against a stored Argon2 hash."""
    return pwd_context.verify(plain_password, hashed_password)


# ---------------------------------------------------------------------------
# 2. Access Tokens (JWT)
# ---------------------------------------------------------------------------


def create_access_token(
    username: str,
    roles: list[str],
    expires_delta: timedelta | None = None,
) -> str:
    """
    Create a signed JWT access token for a user.

    Args:
        username: Stored in the standard "sub" claim.
        roles: Role names, joined with commas into the "roles" claim.
        expires_delta: Optional custom lifetime. Defaults to
                       JWT_ACCESS_EXPIRATION_MS from settings.

    Returns:
        An encoded JWT string.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or settings.access_token_ttl)
    claims = {
        "sub": username,
        "roles": ",".join(sorted(roles)),
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(claims, settings.JWT_ACCESS_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.
    """
    return jwt.decode(
        token, settings.JWT_ACCESS_SECRET, algorithms=[settings.JWT_ALGORITHM]
    )


# ---------------------------------------------------------------------------
# 3. Refresh Tokens
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    return str(uuid.uuid4())


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw refresh token (64 characters)."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# 4. Card Number Encryption
# ---------------------------------------------------------------------------


class CardCodec:
    """
    Deterministic AES-CBC/PKCS7 codec for card numbers.

    Key and IV are read once at construction and never change. A new Cipher
    object is built for every call, so one instance can be shared by all
    requests.
    """

    BLOCK_SIZE_BITS = 128

    def __init__(self, key: bytes, iv: bytes):
        if len(key) not in (16, 32):
            raise ValueError("Card encryption key must be 16 or 32 bytes")
        if len(iv) != 16:
            raise ValueError("Card encryption IV must be 16 bytes")
        self._key = key
        self._iv = iv

    @classmethod
    def from_base64(cls, key_b64: str, iv_b64: str) -> "CardCodec":
        try:
            key = base64.b64decode(key_b64, validate=True)
            iv = base64.b64decode(iv_b64, validate=True)
        except binascii.Error as exc:
            raise ValueError("Card encryption key and IV must be base64 encoded") from exc
        return cls(key, iv)

    def _cipher(self) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(self._iv))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a card number; returns base64 of the raw ciphertext."""
        try:
            padder = padding.PKCS7(self.BLOCK_SIZE_BITS).padder()
            data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = self._cipher().encryptor()
            ciphertext = encryptor.update(data) + encryptor.finalize()
        except (ValueError, TypeError, AttributeError) as exc:
            raise CryptoError("Failed to encrypt card number") from exc
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            CryptoError: If the value is not valid base64, has a bad length
                or padding (typically a wrong key), or is not UTF-8.
        """
        try:
            raw = base64.b64decode(ciphertext, validate=True)
            decryptor = self._cipher().decryptor()
            padded = decryptor.update(raw) + decryptor.finalize()
            unpadder = padding.PKCS7(self.BLOCK_SIZE_BITS).unpadder()
            data = unpadder.update(padded) + unpadder.finalize()
            return data.decode("utf-8")
        except (ValueError, TypeError, binascii.Error, UnicodeDecodeError) as exc:
            raise CryptoError("Failed to decrypt card number") from exc
