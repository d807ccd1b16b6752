from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, as_utc


class QueueMessage(BaseModel):
    """One enqueued message of a named queue."""

    __tablename__ = "queue_messages"
    __table_args__ = (
        # Content is unique per queue among messages that have not been deleted,
        # compared by the sha256 digest of the body
        Index(
            "idx_queue_message_body_hash",
            "queue_name",
            "body_hash",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_queue_message_claim", "queue_name", "receive_count", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    body_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    queue_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    receive_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    delete_tag: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QueueMessage(id={self.id}, queue_name='{self.queue_name}', "
            f"receive_count={self.receive_count})>"
        )

    def visible_at(self, visibility_timeout: timedelta) -> datetime:
        """Moment the current claim lapses and the message becomes deliverable again."""
        return as_utc(self.updated_at) + visibility_timeout
