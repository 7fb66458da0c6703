from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ghvault.utils.dataModels import NONCE_LEN
from ghvault.utils.errors import IntegrityError


def aead_encrypt(key: AESGCM, plaintext: bytes, nonce: bytes) -> bytes:
    """Returns ciphertext || 16-byte tag."""
    if len(nonce) != NONCE_LEN:
        raise ValueError(f"nonce must be {NONCE_LEN} bytes")
    return key.encrypt(nonce, plaintext, None)


def aead_decrypt(key: AESGCM, ct: bytes, nonce: bytes) -> bytes:
    if len(nonce) != NONCE_LEN:
        raise ValueError(f"nonce must be {NONCE_LEN} bytes")
    try:
        return key.decrypt(nonce, ct, None)
    except InvalidTag as e:
        raise IntegrityError("authentication failed: wrong passphrase or corrupted data") from e
