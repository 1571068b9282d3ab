"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from mailsift.api import create_app

    uvicorn mailsift.api:app --reload
"""

from mailsift.api.app import app, create_app

__all__ = ["app", "create_app"]
