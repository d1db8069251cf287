from __future__ import annotations

from typing import Any, Dict


class LogEndpointError(Exception):
    """Failure on /api/log that maps straight to a JSON response."""
    status_code = 500

    def body(self) -> Dict[str, Any]:
        return {"ok": False, "error": str(self)}


class ClientValidationError(LogEndpointError):
    status_code = 400

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code

    def body(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.code}


class MethodNotAllowed(LogEndpointError):
    status_code = 405

    def __init__(self):
        super().__init__("POST only")


class UpstreamForwardingError(LogEndpointError):
    """Sink did not accept the event. Nothing is retried or kept."""
    status_code = 502

    def __init__(self, upstream_error: str, status: int | None = None):
        super().__init__(upstream_error)
        self.upstream_error = upstream_error
        self.status = status

    def body(self) -> Dict[str, Any]:
        return {"ok": False, "upstream_error": self.upstream_error}


class ClientDisconnected(LogEndpointError):
    """Caller went away while the sink call was in flight; the call is cancelled."""
    status_code = 499

    def __init__(self):
        super().__init__("CLIENT_DISCONNECTED")
