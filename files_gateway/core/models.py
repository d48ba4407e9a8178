"""
Domain models for the files gateway.

Objects are owned by the storage backend. These types are read-through views
of that state, with no dependency on FastAPI or boto3.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterator, Optional

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ObjectInfo:
    """One object as reported by a listing call."""
    key: str
    size: int
    last_modified: Optional[datetime] = None
    content_type: Optional[str] = None


@dataclass
class ObjectStream:
    """
    An object body fetched for download.

    The body is consumed lazily, chunk by chunk, so a large object is never
    held in memory at once. Call close() when done, even after an error.
    """
    key: str
    body: Iterator[bytes]
    content_type: Optional[str] = None
    content_length: Optional[int] = None
    _close: Optional[Callable[[], None]] = field(default=None, repr=False)

    @property
    def media_type(self) -> str:
        return self.content_type or DEFAULT_CONTENT_TYPE

    def close(self) -> None:
        if self._close is not None:
            self._close()
            self._close = None
