"""
Password hashing and strength rules for user accounts.

Usage:
    from app.utils.password_hash import hash_password, verify_password

    hashed = hash_password("Secret123")
    is_valid = verify_password("Secret123", hashed)
"""
import re
import bcrypt
import logging

logger = logging.getLogger(__name__)

# At least one lowercase, one uppercase and one digit; 8+ characters
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")


def hash_password(plaintext: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        plaintext: Plain text password

    Returns:
        Bcrypt hash as string (UTF-8 decoded)
    """
    if not plaintext:
        raise ValueError("Cannot hash empty password")

    hashed_bytes = bcrypt.hashpw(plaintext.encode('utf-8'), bcrypt.gensalt())
    return hashed_bytes.decode('utf-8')


def verify_password(plaintext: str, password_hash: str) -> bool:
    """
    Verify a password against a stored bcrypt hash.

    Returns False for users without a password (login-code accounts).
    """
    if not plaintext or not password_hash:
        logger.warning("Attempted to verify with empty password or hash")
        return False

    try:
        return bcrypt.checkpw(plaintext.encode('utf-8'), password_hash.encode('utf-8'))
    except Exception as e:
        logger.error(f"Error verifying password hash: {e}")
        return False


def is_strong_password(plaintext: str) -> bool:
    return bool(plaintext) and PASSWORD_PATTERN.match(plaintext) is not None
