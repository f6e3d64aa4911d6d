"""SQLAlchemy models."""

from tableorder.models.document import StoreNode

__all__ = ["StoreNode"]
