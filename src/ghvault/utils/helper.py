import datetime as _dt
import mimetypes
import re
import secrets
import time

from ghvault.utils.dataModels import ENCRYPTED_SUFFIX

_STAMP_PREFIX = re.compile(r"^\d{13}_")
_PASSWORD_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789!@#$%^&*"

_CATEGORIES = {
    "image": ("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "ico"),
    "document": ("pdf", "doc", "docx", "rtf", "odt"),
    "text": ("txt", "md"),
    "spreadsheet": ("xls", "xlsx", "csv", "ods"),
    "presentation": ("ppt", "pptx", "odp"),
    "archive": ("zip", "rar", "7z", "tar", "gz"),
    "audio": ("mp3", "wav", "ogg", "flac"),
    "video": ("mp4", "avi", "mov", "mkv"),
    "code": ("html", "js", "css", "json", "py", "java", "cpp", "cs"),
}
_EXT_CATEGORY = {ext: cat for cat, exts in _CATEGORIES.items() for ext in exts}


def now_millis() -> int:
    return int(time.time() * 1000)


def iso_now() -> str:
    return _dt.datetime.now(_dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def stored_path_for(files_dir: str, name: str, encrypted: bool, millis: int | None = None) -> str:
    """files/<millis>_<name>[.encrypted]"""
    stamp = now_millis() if millis is None else millis
    base = f"{stamp}_{name}" + (ENCRYPTED_SUFFIX if encrypted else "")
    return f"{files_dir.strip('/')}/{base}" if files_dir.strip("/") else base


def display_name(path: str) -> str:
    """Human name for a stored path: drops directory, timestamp prefix and .encrypted."""
    name = path.rsplit("/", 1)[-1]
    if name.endswith(ENCRYPTED_SUFFIX):
        name = name[: -len(ENCRYPTED_SUFFIX)]
    return _STAMP_PREFIX.sub("", name, count=1)


def _ext(name: str) -> str:
    return name.rsplit(".", 1)[-1].lower() if "." in name else ""


def file_category(name: str) -> str:
    return _EXT_CATEGORY.get(_ext(display_name(name)), "unknown")


def guess_mime_type(name: str) -> str:
    mime, _ = mimetypes.guess_type(display_name(name), strict=False)
    return mime or "application/octet-stream"


def format_size(n: int) -> str:
    if n == 0:
        return "0 Bytes"
    size = float(n)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            break
        size /= 1024
    return f"{round(size, 2):g} {unit}"


def generate_file_password(length: int = 32) -> str:
    return "".join(secrets.choice(_PASSWORD_CHARS) for _ in range(length))
