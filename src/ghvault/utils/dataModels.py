import json
import struct

from dataclasses import dataclass, field
from typing import Dict, Any, List

from ghvault.utils.errors import FormatError

PBKDF2_ITERATIONS = 100_000
KEY_LEN = 32  # AES-256
SALT_LEN = 16
NONCE_LEN = 12
TAG_LEN = 16

BLOB_LEN_FMT = ">I"  # big-endian u32 header length
BLOB_LEN_SIZE = struct.calcsize(BLOB_LEN_FMT)
ENCRYPTED_SUFFIX = ".encrypted"

DEFAULT_MAX_OBJECT_SIZE = 50 * 1024 * 1024  # 50 MiB
DEFAULT_FILES_DIR = "files"
DEFAULT_METADATA_PATH = "metadata.json"

# Header keys as written by the browser client, with descriptive aliases accepted on read.
_HEADER_ALIASES = {
    "fileName": ("fileName", "originalName"),
    "fileType": ("fileType", "originalMimeType"),
    "fileSize": ("fileSize", "originalSize"),
    "timestamp": ("timestamp", "createdAtMillis"),
    "salt": ("salt", "saltBytes"),
    "iv": ("iv", "nonceBytes"),
}


def _pick(obj: Dict[str, Any], key: str) -> Any:
    for alias in _HEADER_ALIASES[key]:
        if alias in obj:
            return obj[alias]
    raise FormatError(f"sealed header is missing '{key}'")


def _byte_list(value: Any, length: int, label: str) -> bytes:
    if not isinstance(value, list) or len(value) != length:
        raise FormatError(f"{label} must be a list of {length} integers")
    if not all(isinstance(b, int) and not isinstance(b, bool) and 0 <= b <= 255 for b in value):
        raise FormatError(f"{label} holds values outside 0..255")
    return bytes(value)


@dataclass
class PlainFile:
    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class SealedBlob:
    salt: bytes
    nonce: bytes
    original_name: str
    original_mime_type: str
    original_size: int
    created_at_millis: int
    ciphertext: bytes = b""

    def header_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.original_name,
            "fileType": self.original_mime_type,
            "fileSize": self.original_size,
            "encryptedSize": len(self.ciphertext),
            "timestamp": self.created_at_millis,
            "salt": list(self.salt),
            "iv": list(self.nonce),
        }

    def header_bytes(self) -> bytes:
        return json.dumps(self.header_dict(), ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def from_header(raw: bytes, ciphertext: bytes = b"") -> "SealedBlob":
        try:
            obj = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FormatError(f"sealed header is not UTF-8 JSON: {e}") from e
        if not isinstance(obj, dict):
            raise FormatError("sealed header must be a JSON object")

        name = _pick(obj, "fileName")
        mime = _pick(obj, "fileType")
        size = _pick(obj, "fileSize")
        ts = _pick(obj, "timestamp")
        if not isinstance(name, str) or not isinstance(mime, str):
            raise FormatError("sealed header name/type must be strings")
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise FormatError("sealed header size must be a non-negative integer")
        if not isinstance(ts, (int, float)) or isinstance(ts, bool):
            raise FormatError("sealed header timestamp must be a number")

        declared = obj.get("encryptedSize")
        if declared is not None and declared != len(ciphertext):
            raise FormatError(f"ciphertext is {len(ciphertext)} bytes, header declares {declared}")

        return SealedBlob(
            salt=_byte_list(_pick(obj, "salt"), SALT_LEN, "salt"),
            nonce=_byte_list(_pick(obj, "iv"), NONCE_LEN, "nonce"),
            original_name=name,
            original_mime_type=mime,
            original_size=size,
            created_at_millis=int(ts),
            ciphertext=ciphertext,
        )


@dataclass
class RemoteObject:
    path: str
    name: str
    size: int
    revision: str | None
    content: bytes | None = None
    kind: str = "file"  # "file" | "dir"
    download_url: str | None = None

    @property
    def encrypted(self) -> bool:
        return self.kind == "file" and self.name.endswith(ENCRYPTED_SUFFIX)


@dataclass
class MetadataRecord:
    file_name: str
    file_type: str
    file_size: int
    upload_timestamp: int
    stored_path: str
    encrypted: bool = False
    password_hint: str | None = None
    uploaded_by: str | None = None
    upload_date: str | None = None
    revision: str | None = None
    extra: Dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("fileName", "fileType", "fileSize", "timestamp", "path", "encrypted",
              "passwordHint", "uploadedBy", "uploadDate", "sha")

    def to_dict(self) -> Dict[str, Any]:
        d = dict(self.extra)
        d.update({
            "fileName": self.file_name,
            "fileType": self.file_type,
            "fileSize": self.file_size,
            "timestamp": self.upload_timestamp,
            "path": self.stored_path,
            "encrypted": self.encrypted,
        })
        if self.password_hint:
            d["passwordHint"] = self.password_hint
        if self.uploaded_by:
            d["uploadedBy"] = self.uploaded_by
        if self.upload_date:
            d["uploadDate"] = self.upload_date
        if self.revision:
            d["sha"] = self.revision
        return d

    @staticmethod
    def from_dict(obj: Dict[str, Any]) -> "MetadataRecord":
        if not isinstance(obj, dict):
            raise FormatError("metadata record must be a JSON object")
        path = obj.get("path")
        if not isinstance(path, str) or not path:
            raise FormatError("metadata record has no storage path")
        try:
            size = int(obj.get("fileSize") or 0)
            ts = int(obj.get("timestamp") or 0)
        except (TypeError, ValueError) as e:
            raise FormatError(f"metadata record for {path} has bad numbers: {e}") from e
        flag = obj.get("encrypted")
        if not isinstance(flag, bool):
            flag = path.endswith(ENCRYPTED_SUFFIX)
        return MetadataRecord(
            file_name=str(obj.get("fileName") or path.rsplit("/", 1)[-1]),
            file_type=str(obj.get("fileType") or ""),
            file_size=size,
            upload_timestamp=ts,
            stored_path=path,
            encrypted=flag,
            password_hint=obj.get("passwordHint") or None,
            uploaded_by=obj.get("uploadedBy") or None,
            upload_date=obj.get("uploadDate") or None,
            revision=obj.get("sha") or None,
            extra={k: v for k, v in obj.items() if k not in MetadataRecord._KNOWN},
        )


def records_to_bytes(records: List[MetadataRecord]) -> bytes:
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2).encode("utf-8")


def records_from_bytes(b: bytes) -> List[MetadataRecord]:
    try:
        obj = json.loads(b.decode("utf-8")) if b.strip() else []
    except (UnicodeDecodeError, ValueError) as e:
        raise FormatError(f"metadata index is not UTF-8 JSON: {e}") from e
    if not isinstance(obj, list):
        raise FormatError("metadata index must be a JSON array")
    return [MetadataRecord.from_dict(o) for o in obj]
