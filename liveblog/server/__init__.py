"""HTTP API for live blogs.

Serves the incremental fetch to readers and the write operations to editors.
"""

from .app import create_app

__all__ = ["create_app"]
