"""Models capturing draft and committed revisions of post content."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from wikicore.db.session import Base

# Sequence number reserved for the single uncommitted draft per (post, editor).
DRAFT_SEQUENCE = 0


class Revision(Base):
    """Snapshot of a post's content.

    Drafts use sequence 0 and exist at most once per (post, editor). Committed
    revisions are numbered 1, 2, 3, ... per post and never share a number.
    """

    __tablename__ = "revisions"
    __table_args__ = (
        UniqueConstraint("post_id", "revision", "created_by", name="uq_revisions_post_rev_editor"),
        Index(
            "uq_revisions_committed_sequence",
            "post_id",
            "revision",
            unique=True,
            sqlite_where=text("revision > 0"),
            postgresql_where=text("revision > 0"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=DRAFT_SEQUENCE)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    # Ciphertext, like Post.content.
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    @property
    def is_draft(self) -> bool:
        """Return True while the revision has not been committed."""
        return self.revision == DRAFT_SEQUENCE
