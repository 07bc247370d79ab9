import os
from typing import Optional
from cryptography.fernet import Fernet
from dotenv import load_dotenv
from fastapi.logger import logger

load_dotenv()

# Get encryption key from environment or generate one
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
if not ENCRYPTION_KEY:
    ENCRYPTION_KEY = Fernet.generate_key().decode()
    logger.warning(
        "ENCRYPTION_KEY not found in environment. A temporary key was generated; "
        "phone and account numbers stored with it cannot be read after a restart.")

# Initialize Fernet cipher
cipher = Fernet(ENCRYPTION_KEY.encode() if isinstance(
    ENCRYPTION_KEY, str) else ENCRYPTION_KEY)


def encrypt_data(data: Optional[str]) -> str:
    """
    Encrypt sensitive data

    Args:
        data: The string data to encrypt

    Returns:
        Encrypted string, or "" for empty input
    """
    if not data:
        return ""
    return cipher.encrypt(data.encode()).decode()


def decrypt_data(encrypted_data: Optional[str]) -> str:
    """
    Decrypt sensitive data

    Args:
        encrypted_data: The encrypted string to decrypt

    Returns:
        Decrypted string, or "" for empty input
    """
    if not encrypted_data:
        return ""
    return cipher.decrypt(encrypted_data.encode()).decode()


def normalize_phone(phone: Optional[str]) -> str:
    """Strip hyphens and spaces from a phone number."""
    if not phone:
        return ""
    return "".join(ch for ch in phone if ch.isdigit())


def mask_value(value: Optional[str], visible: int = 4) -> str:
    """Mask all but the last `visible` characters, for logs."""
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
