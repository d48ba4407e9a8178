"""Upload size limit middleware."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Optional

from fastapi import HTTPException
from starlette import status

from .errors import ErrorResponse
from ..config.settings import BYTES_PER_MB

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

# Room for multipart boundaries, part headers and the optional key field.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


def upload_too_large_message(max_file_bytes: int) -> str:
    return f"File too large. Maximum size: {max_file_bytes / BYTES_PER_MB:g}MB"


class UploadTooLarge(HTTPException):
    """An upload exceeded the configured cap."""

    def __init__(self, max_file_bytes: int) -> None:
        super().__init__(
            status_code=status.HTTP_413_CONTENT_TOO_LARGE,
            detail=upload_too_large_message(max_file_bytes),
        )


class UploadSizeLimitMiddleware:
    """Reject oversized uploads before they are fully buffered.

    Pure ASGI middleware. A request whose Content-Length exceeds the limit is
    answered with 413 without reading the body. Bodies without a declared
    length (chunked transfer) are counted while the application reads them,
    and reading stops with 413 as soon as the count passes the limit.

    The body limit is the file cap plus MULTIPART_OVERHEAD_BYTES; the upload
    route checks the exact file size once the form is parsed.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_file_bytes: int,
        paths: Iterable[str] = ("/upload",),
    ) -> None:
        """Initialize middleware.

        Args:
            app: ASGI application.
            max_file_bytes: Maximum size of the uploaded file in bytes.
            paths: Request paths the limit applies to.
        """
        self.app = app
        self.max_file_bytes = max_file_bytes
        self.max_body_bytes = max_file_bytes + MULTIPART_OVERHEAD_BYTES
        self.paths = frozenset(paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("path") not in self.paths:
            await self.app(scope, receive, send)
            return

        declared = self._declared_length(scope)
        if declared is not None and declared > self.max_body_bytes:
            logger.warning(
                "Rejected upload by Content-Length",
                extra={"content_length": declared, "max_bytes": self.max_body_bytes}
            )
            await self._reject(send)
            return

        received = 0
        response_started = False

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    logger.warning(
                        "Rejected upload while streaming",
                        extra={"received_bytes": received, "max_bytes": self.max_body_bytes}
                    )
                    raise UploadTooLarge(self.max_file_bytes)
            return message

        async def tracked_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, limited_receive, tracked_send)
        except UploadTooLarge:
            if response_started:
                raise
            await self._reject(send)

    @staticmethod
    def _declared_length(scope: Scope) -> Optional[int]:
        for header_name, header_value in scope.get("headers", []):
            if header_name == b"content-length":
                try:
                    return int(header_value.decode())
                except (ValueError, UnicodeDecodeError):
                    # Invalid content-length header, let the server deal with it
                    return None
        return None

    async def _reject(self, send: Send) -> None:
        body = ErrorResponse(error=upload_too_large_message(self.max_file_bytes)).model_dump_json()
        await send(
            {
                "type": "http.response.start",
                "status": status.HTTP_413_CONTENT_TOO_LARGE,
                "headers": [
                    [b"content-type", b"application/json"],
                    [b"content-length", str(len(body)).encode()],
                    [b"connection", b"close"],
                ],
            }
        )
        await send({"type": "http.response.body", "body": body.encode()})
