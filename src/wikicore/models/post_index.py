"""Inverted index postings for keyword search."""

from sqlalchemy import BigInteger, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from wikicore.db.session import Base


class PostIndex(Base):
    """One (post, term, weight) posting.

    ``word`` is the stemmed term, or its hex digest when encryption is enabled.
    """

    __tablename__ = "post_indexes"
    __table_args__ = (
        UniqueConstraint("post_id", "word", name="uq_post_indexes_post_word"),
        Index("ix_post_indexes_word", "word"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
    )
    word: Mapped[str] = mapped_column(String(64), nullable=False)
    weight: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
