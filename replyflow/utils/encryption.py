import os
from cryptography.fernet import Fernet


def get_encryption_key() -> bytes:
    key = os.getenv("ENCRYPTION_KEY")
    if not key:
        raise ValueError("ENCRYPTION_KEY environment variable not set")
    return key.encode()


def encrypt_credentials(credentials: str) -> str:
    fernet = Fernet(get_encryption_key())
    return fernet.encrypt(credentials.encode()).decode()


def decrypt_credentials(encrypted_credentials: str) -> str:
    fernet = Fernet(get_encryption_key())
    return fernet.decrypt(encrypted_credentials.encode()).decode()
