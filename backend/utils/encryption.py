import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from config import settings

logger = logging.getLogger(__name__)


def _get_fernet() -> Fernet:
    # Derive a 32-byte key from the encryption key setting
    key = hashlib.sha256(settings.ENCRYPTION_KEY.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key))


def encrypt_secret(secret: str) -> str:
    f = _get_fernet()
    return f.encrypt(secret.encode()).decode()


def decrypt_secret(encrypted: str | None) -> str | None:
    """Return the plaintext, or None when nothing is stored or the key rotated."""
    if not encrypted:
        return None
    f = _get_fernet()
    try:
        return f.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        logger.warning("Stored secret could not be decrypted; ENCRYPTION_KEY may have changed")
        return None
