"""datekey gateway entrypoint.

Run with:
  python -m datekey_gateway

Settings and logging are loaded by the ``create_app`` factory inside the
serving process, so reload workers configure themselves.
"""

import os

import uvicorn

from .config import PORT


def main() -> None:
    host = os.getenv("DATEKEY_HOST", "0.0.0.0")
    reload = os.getenv("DATEKEY_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("datekey_gateway.main:create_app", factory=True, host=host, port=PORT, reload=reload, log_config=None)


if __name__ == "__main__":
    main()
