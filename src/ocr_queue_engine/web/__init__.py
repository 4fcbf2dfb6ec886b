"""HTTP surface: invocation trigger, submission and status routes.

Example:
    ```python
    import uvicorn

    from ocr_queue_engine.web import create_app

    uvicorn.run(create_app(), host="0.0.0.0", port=8080)
    ```
"""

from __future__ import annotations

from ocr_queue_engine.web.app import (
    RequestIDMiddleware,
    create_app,
    get_app_settings,
    get_engine,
)


__all__ = [
    "RequestIDMiddleware",
    "create_app",
    "get_app_settings",
    "get_engine",
]
