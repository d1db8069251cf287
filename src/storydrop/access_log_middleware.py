from __future__ import annotations

import json
import time
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from storydrop.request_context import new_request_id, reset_request_id, set_request_id

REQUEST_ID_HEADER = "x-storydrop-request-id"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (context var + response header) and, when
    `path` is set, appends one JSON line per request to that file.
    """
    def __init__(self, app, *, path: Optional[str] = None):
        super().__init__(app)
        self.path = path

    async def dispatch(self, request: Request, call_next):
        start = time.time()
        request_id = new_request_id()
        token = set_request_id(request_id)
        status = 500

        try:
            resp = await call_next(request)
            status = resp.status_code
            resp.headers[REQUEST_ID_HEADER] = request_id
            return resp
        finally:
            reset_request_id(token)
            if self.path:
                dur_ms = (time.time() - start) * 1000.0
                record = {
                    "kind": "req",
                    "ts": time.time(),
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": int(status),
                    "duration_ms": round(dur_ms, 3),
                    "client": request.client.host if request.client else None,
                    "ua": request.headers.get("user-agent"),
                }
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record) + "\n")
