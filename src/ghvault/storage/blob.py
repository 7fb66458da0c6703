import os
import struct

from typing import Tuple

from ghvault.crypto.aead import aead_encrypt, aead_decrypt
from ghvault.crypto.hash import derive_key
from ghvault.utils.dataModels import (
    BLOB_LEN_FMT, BLOB_LEN_SIZE, NONCE_LEN, SALT_LEN, TAG_LEN, PlainFile, SealedBlob,
)
from ghvault.utils.errors import FormatError
from ghvault.utils.helper import now_millis


def seal(file: PlainFile, passphrase: str | bytes) -> bytes:
    """Encrypt `file` into one self-describing buffer.

    Layout (big-endian):
        header_len : u32
        header     : UTF-8 JSON (name, type, size, timestamp, salt, iv)
        ciphertext : AES-256-GCM(content) || tag
    """
    salt = os.urandom(SALT_LEN)
    nonce = os.urandom(NONCE_LEN)
    key = derive_key(passphrase, salt)
    ct = aead_encrypt(key, file.content, nonce)

    blob = SealedBlob(
        salt=salt,
        nonce=nonce,
        original_name=file.name,
        original_mime_type=file.mime_type,
        original_size=len(file.content),
        created_at_millis=now_millis(),
        ciphertext=ct,
    )
    header = blob.header_bytes()
    return struct.pack(BLOB_LEN_FMT, len(header)) + header + ct


def _split(buffer: bytes) -> Tuple[bytes, bytes]:
    if len(buffer) < BLOB_LEN_SIZE:
        raise FormatError("sealed blob is too short to hold a header length")
    (hdr_len,) = struct.unpack(BLOB_LEN_FMT, buffer[:BLOB_LEN_SIZE])
    end = BLOB_LEN_SIZE + hdr_len
    if hdr_len == 0 or end > len(buffer):
        raise FormatError(f"sealed blob declares a {hdr_len}-byte header but holds {len(buffer) - BLOB_LEN_SIZE}")
    return buffer[BLOB_LEN_SIZE:end], buffer[end:]


def read_header(buffer: bytes) -> SealedBlob:
    """Parse framing and header without decrypting."""
    header, ct = _split(bytes(buffer))
    blob = SealedBlob.from_header(header, ct)
    if len(ct) < TAG_LEN:
        raise FormatError("sealed blob ciphertext is shorter than the authentication tag")
    return blob


def unseal(buffer: bytes, passphrase: str | bytes) -> PlainFile:
    blob = read_header(buffer)
    key = derive_key(passphrase, blob.salt)
    plaintext = aead_decrypt(key, blob.ciphertext, blob.nonce)
    if len(plaintext) != blob.original_size:
        raise FormatError(
            f"decrypted {len(plaintext)} bytes, header declares {blob.original_size}"
        )
    return PlainFile(name=blob.original_name, mime_type=blob.original_mime_type, content=plaintext)
