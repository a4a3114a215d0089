"""FastAPI routers acting as controllers in the MVC architecture."""

from . import credentials, failed_recordings, recordings

__all__ = ["credentials", "failed_recordings", "recordings"]
