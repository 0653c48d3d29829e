"""Password and token hashing for the credential store."""

import hashlib
import hmac
import secrets
from base64 import b64decode, b64encode
from binascii import Error as DecodeError

ITERATIONS = 100_000
SALT_SIZE = 16


def _hash_salt_and_password(salt: bytes, password: str,
                            iterations: int = ITERATIONS) -> bytes:
    return hashlib.pbkdf2_hmac('sha256', password.encode('utf-8'), salt,
                               iterations)


def hash_password(password: str) -> str:
    """Generate a salted hash of a password."""
    salt = secrets.token_bytes(SALT_SIZE)
    hashed = _hash_salt_and_password(salt, password)
    return b64encode(salt + hashed).decode('ascii')


def check_password(password: str, encrypted: str) -> bool:
    """Check a password against a hash from :func:`hash_password`."""
    try:
        decoded = b64decode(encrypted.encode('ascii'), validate=True)
    except (DecodeError, UnicodeEncodeError):
        return False
    salt = decoded[:SALT_SIZE]
    enc_hashed = decoded[SALT_SIZE:]
    pass_hashed = _hash_salt_and_password(salt, password)
    return hmac.compare_digest(pass_hashed, enc_hashed)


def new_security_stamp() -> str:
    """A fresh random value that changes whenever credentials change."""
    return secrets.token_hex(16)


def new_token() -> str:
    """A URL-safe single-use token."""
    return secrets.token_urlsafe(32)


def digest_token(token: str) -> str:
    """The form in which a token is stored and looked up."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()
