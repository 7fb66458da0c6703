from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ghvault.utils.dataModels import KEY_LEN, PBKDF2_ITERATIONS, SALT_LEN


def passphrase_bytes(passphrase: str | bytes) -> bytes:
    if isinstance(passphrase, str):
        return passphrase.encode("utf-8")
    return bytes(passphrase)


def derive_key(passphrase: str | bytes, salt: bytes) -> AESGCM:
    """Key = PBKDF2-HMAC-SHA256(passphrase, salt, 100k) -> AES-256-GCM cipher.

    Only the cipher object is returned so the raw key never leaves this function.
    """
    if len(salt) != SALT_LEN:
        raise ValueError(f"salt must be {SALT_LEN} bytes")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LEN,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return AESGCM(kdf.derive(passphrase_bytes(passphrase)))
