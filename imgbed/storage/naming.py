import mimetypes
import re
from enum import Enum

from imgbed.errors import ValidationError

EXT_TO_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "bmp": "image/bmp",
    "ico": "image/x-icon",
    "icon": "image/x-icon",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "pdf": "application/pdf",
    "txt": "text/plain",
    "md": "text/markdown",
    "zip": "application/zip",
    "rar": "application/x-rar-compressed",
    "json": "application/json",
    "xml": "application/xml",
    "ini": "text/plain",
    "js": "application/javascript",
    "yml": "application/yaml",
    "yaml": "application/yaml",
    "py": "text/x-python",
    "sh": "application/x-sh",
}

MIME_TO_EXT = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
    "image/bmp": "bmp",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/ogg": "ogg",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/wav": "wav",
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/vnd.ms-excel": "xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/zip": "zip",
    "application/x-rar-compressed": "rar",
    "text/plain": "txt",
    "text/html": "html",
    "text/css": "css",
    "text/javascript": "js",
}

DEFAULT_MIME = "application/octet-stream"

_EXT_RE = re.compile(r"^[a-z0-9]{1,10}$")
_SUFFIX_RE = re.compile(r"^[^\s/\\?#%]{1,128}$")
_CLEAR_SUFFIX_WORDS = frozenset({"none", "无"})


class CoarseType(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"


def file_extension(name: str | None) -> str | None:
    if not name or "." not in name:
        return None
    ext = name.rsplit(".", 1)[1].lower()
    return ext if _EXT_RE.match(ext) else None


def content_type_for(name_or_ext: str | None) -> str:
    ext = file_extension(name_or_ext) or (name_or_ext or "").lower()
    if ext in EXT_TO_MIME:
        return EXT_TO_MIME[ext]
    guess, _ = mimetypes.guess_type(f"file.{ext}")
    return guess or DEFAULT_MIME


def extension_for(file_name: str | None, mime_type: str | None) -> str:
    """Extension from the original file name, else from the declared MIME type."""
    ext = file_extension(file_name)
    if ext:
        return ext
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime in MIME_TO_EXT:
        return MIME_TO_EXT[mime]
    guess = mimetypes.guess_extension(mime) if mime else None
    return guess.lstrip(".") if guess else "bin"


def resolve_mime(file_name: str | None, declared: str | None) -> str:
    declared = (declared or "").split(";")[0].strip().lower()
    if declared and declared != DEFAULT_MIME:
        return declared
    return content_type_for(file_name)


def coarse_type(mime_type: str | None) -> CoarseType:
    main = (mime_type or "").split("/", 1)[0].lower()
    if main == "image":
        return CoarseType.PHOTO
    if main == "video":
        return CoarseType.VIDEO
    if main == "audio":
        return CoarseType.AUDIO
    return CoarseType.DOCUMENT


def is_inline(content_type: str) -> bool:
    return content_type.startswith(("image/", "video/", "audio/"))


def normalize_suffix(text: str | None) -> str | None:
    """Turn user input into a custom suffix. "none"/"无" clears it."""
    suffix = (text or "").strip()
    if not suffix or suffix.lower() in _CLEAR_SUFFIX_WORDS:
        return None
    if not _SUFFIX_RE.match(suffix):
        raise ValidationError("Suffix must be 1-128 characters without spaces, slashes, '?', '#' or '%'")
    return suffix
