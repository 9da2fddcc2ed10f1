"""
App assembly entry point.

Re-exports the FastAPI `app` from `mbee.api.main` for ASGI servers
(``uvicorn app:app``).
"""

from mbee.api.main import app  # noqa: F401
