import logging
import os

import uvicorn

from storydrop.request_context import RequestIdFilter

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"


def configure_logging(level: str) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdFilter())
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level.upper())


def main():
    host = os.getenv("STORYDROP_HOST", "127.0.0.1")
    port = int(os.getenv("STORYDROP_PORT", "8787"))
    reload_ = os.getenv("STORYDROP_RELOAD", "0") == "1"
    log_level = os.getenv("STORYDROP_LOG_LEVEL", "info")

    configure_logging(log_level)
    uvicorn.run(
        "storydrop.app:app",
        host=host,
        port=port,
        reload=reload_,
        log_level=log_level,
        proxy_headers=True,
    )
