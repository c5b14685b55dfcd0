import logging

from cryptography.fernet import Fernet, InvalidToken
from app.config import settings
from app.errors import ConfigError

logger = logging.getLogger(__name__)


def _fernet() -> Fernet:
    if not settings.fernet_key:
        raise ConfigError("FERNET_KEY is missing in .env")
    return Fernet(settings.fernet_key.encode())


def encrypt_token(plain: str) -> str:
    return _fernet().encrypt(plain.encode()).decode()


def decrypt_token(cipher: str) -> str:
    try:
        return _fernet().decrypt(cipher.encode()).decode()
    except (TypeError, InvalidToken) as e:
        # caller decides whether this is a 400 or a failed attempt
        logger.error("Decrypt error: %r", e)
        raise
