"""
At-rest encryption for home coordinates.

Home latitude/longitude are stored as Fernet tokens; only the start-of-job
location check ever needs them in clear text.
"""

import base64
import hashlib
import logging
from functools import lru_cache
from typing import Optional, Union

from cryptography.fernet import Fernet, InvalidToken

from .config import COORDINATE_ENCRYPTION_KEY, SECRET_KEY

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_cipher_suite() -> Fernet:
    """Fernet cipher from COORDINATE_ENCRYPTION_KEY, or derived from SECRET_KEY"""
    if COORDINATE_ENCRYPTION_KEY:
        return Fernet(COORDINATE_ENCRYPTION_KEY.encode())
    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_coordinate(value: Union[float, str, None]) -> Optional[str]:
    """Encrypt a latitude or longitude for storage"""
    if value is None or value == "":
        return None
    return get_cipher_suite().encrypt(str(value).encode()).decode()


def decrypt_coordinate(stored: Optional[str]) -> Optional[float]:
    """
    Decrypt a stored coordinate.

    Rows written before encryption was introduced hold the plain number,
    so a value that is not a Fernet token but parses as a float is accepted.
    Anything unreadable yields None, which leaves the location unverified.
    """
    if not stored:
        return None

    try:
        return float(get_cipher_suite().decrypt(stored.encode()).decode())
    except InvalidToken:
        try:
            return float(stored)
        except ValueError:
            logger.warning("⚠️ Unreadable stored coordinate, skipping location check")
            return None
    except ValueError:
        logger.warning("⚠️ Decrypted coordinate is not numeric, skipping location check")
        return None
