"""Editorial tools for posting to live blogs."""

from .poster import EditorialPoster

__all__ = ["EditorialPoster"]
