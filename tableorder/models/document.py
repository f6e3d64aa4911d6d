"""Storage model for the SQL document store: one row per top-level path."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tableorder.db.base import Base, TimestampMixin


class StoreNode(Base, TimestampMixin):
    """JSON-encoded value of one top-level subtree (``orders``, ``branches``...)."""

    __tablename__ = "store_nodes"

    path: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<StoreNode {self.path}>"
