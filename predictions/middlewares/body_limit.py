from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.middleware.base import BaseHTTPMiddleware


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    def _too_large(self) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            content={"error": "Request body too large"},
        )

    async def dispatch(self, request: Request, call_next: Callable):
        if request.method in ("GET", "HEAD", "OPTIONS"):
            return await call_next(request)

        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit():
            if int(declared) > self.max_bytes:
                return self._too_large()

        # chunked uploads carry no content-length, so count while reading
        chunks = []
        received = 0
        async for chunk in request.stream():
            received += len(chunk)
            if received > self.max_bytes:
                return self._too_large()
            chunks.append(chunk)

        # cached body is replayed to the downstream app
        request._body = b"".join(chunks)
        return await call_next(request)
