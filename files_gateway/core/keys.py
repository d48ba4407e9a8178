"""
Key construction and request-value normalization.

Generated keys look like ``{prefix/}2024-05-01T12-30-45-123Z-report.pdf``:
a UTC timestamp with millisecond precision, made path- and URL-friendly by
replacing ':' and '.' with '-', followed by the sanitized filename. Keys sort
lexically by upload time and two uploads of the same file do not collide
unless they land in the same millisecond.
"""

import posixpath
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, unquote

DEFAULT_FILENAME = "file"
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 200
MIN_LIST_LIMIT = 0

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_TIMESTAMP_SEPARATORS = re.compile(r"[:.]")
_HEADER_UNSAFE_CHARS = re.compile(r"[\x00-\x1f\x7f\\\"]")


def sanitize_filename(name: Optional[str]) -> str:
    """
    Make a client-supplied filename safe to embed in a key.

    Every character outside [A-Za-z0-9._-] becomes '_'. Missing, empty and
    whitespace-only names become "file".
    """
    base = (name or DEFAULT_FILENAME).strip()
    return _UNSAFE_CHARS.sub("_", base) or DEFAULT_FILENAME


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a 'Z' suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def key_timestamp(moment: Optional[datetime] = None) -> str:
    stamp = format_timestamp(moment or datetime.now(timezone.utc))
    return _TIMESTAMP_SEPARATORS.sub("-", stamp)


def build_key(filename: Optional[str], prefix: str = "", moment: Optional[datetime] = None) -> str:
    """Generate the default storage key for an upload."""
    raw_key = f"{key_timestamp(moment)}-{sanitize_filename(filename)}"
    if not prefix:
        return raw_key
    return f"{prefix}/{raw_key}"


def resolve_upload_key(
    explicit_key: Optional[str],
    filename: Optional[str],
    prefix: str = "",
    moment: Optional[datetime] = None,
) -> str:
    """
    Pick the key an upload is stored under.

    A non-blank explicit key wins and is used as-is (trimmed, no prefix).
    Otherwise a key is generated from the original filename.
    """
    override = (explicit_key or "").strip()
    return override or build_key(filename, prefix=prefix, moment=moment)


def clamp_limit(raw: Optional[str]) -> int:
    """
    Turn the ``limit`` query value into a listing size.

    Missing or non-integer values use the default; everything else is
    clamped into [0, 200].
    """
    if raw is None or not raw.strip():
        return DEFAULT_LIST_LIMIT
    try:
        value = int(raw.strip())
    except ValueError:
        return DEFAULT_LIST_LIMIT
    return max(MIN_LIST_LIMIT, min(MAX_LIST_LIMIT, value))


def normalize_download_key(raw: Optional[str]) -> str:
    """Percent-decode and trim the ``key`` query value. Empty means missing."""
    return unquote(raw or "").strip()


def download_filename(key: str) -> str:
    """Last path segment of a key, ignoring trailing slashes."""
    return posixpath.basename(key.rstrip("/")) or key


def content_disposition(key: str) -> str:
    """
    Build an attachment Content-Disposition header for a key.

    ASCII names produce ``attachment; filename="name"``. Other names also get
    an RFC 5987 ``filename*`` parameter since header values must be latin-1.
    Control characters, '"' and '\\' become '_': S3 keys may contain them but
    a header value may not.
    """
    filename = _HEADER_UNSAFE_CHARS.sub("_", download_filename(key))
    try:
        filename.encode("ascii")
    except UnicodeEncodeError:
        fallback = filename.encode("ascii", "replace").decode("ascii").replace("?", "_")
        return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
    return f'attachment; filename="{filename}"'
