"""FastAPI routers acting as controllers in the MVC architecture."""

from . import ops, review, submissions

__all__ = ["ops", "review", "submissions"]
