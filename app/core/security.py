from cryptography.fernet import Fernet
from app.core.config import settings
import base64
import hashlib

# Exchange credentials are stored encrypted; the key is derived from the configured seed
def get_encryption_key():
    digest = hashlib.sha256(settings.encryption_key_seed.encode()).digest()
    return base64.urlsafe_b64encode(digest)

def encrypt_data(data: str) -> str:
    """Encrypt sensitive data"""
    f = Fernet(get_encryption_key())
    encrypted_data = f.encrypt(data.encode())
    return encrypted_data.decode()

def decrypt_data(encrypted_data: str) -> str:
    """Decrypt sensitive data"""
    if encrypted_data is None:
        raise ValueError("Cannot decrypt None value. Credentials not set.")
    try:
        f = Fernet(get_encryption_key())
        decrypted_data = f.decrypt(encrypted_data.encode())
        return decrypted_data.decode()
    except Exception as e:
        raise ValueError(f"Failed to decrypt credentials: {str(e)}")

def mask_secret(value: str, visible: int = 4) -> str:
    """Show only the last few characters of an API key"""
    if not value:
        return ""
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]
