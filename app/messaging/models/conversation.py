import uuid
from datetime import UTC, datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base


class Conversation(Base):
    """Private thread between a report owner (user1) and one counterparty (user2).

    The ordering of the pair is canonical: ``user1_id`` is always the owner of
    the report at creation time, so a (report, owner, counterparty) triple maps
    to exactly one row no matter who asked first.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("report_id", "user1_id", "user2_id", name="uq_conversation_report_users"),
        CheckConstraint("user1_id <> user2_id", name="ck_conversation_distinct_users"),
        Index("ix_conversations_user1", "user1_id"),
        Index("ix_conversations_user2", "user2_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(ForeignKey("reports.id", ondelete="CASCADE"))
    user1_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    user2_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=lambda: datetime.now(UTC))

    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.created_at",
        cascade="all, delete-orphan",
    )

    def has_participant(self, user_id: uuid.UUID) -> bool:
        return user_id in (self.user1_id, self.user2_id)

    def other_participant(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.user2_id if self.user1_id == user_id else self.user1_id
