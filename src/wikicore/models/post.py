# src/wikicore/models/post.py
"""SQLAlchemy models for posts and their per-post bookkeeping rows."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from wikicore.db.session import Base

# Posts that have never been indexed carry this indexed_at value.
NEVER_INDEXED = datetime(1900, 1, 1, 0, 0, 0)


class Post(Base):
    """Primary content entity written by authors.

    ``content`` and ``teaser`` always hold ciphertext. Plaintext only ever lives
    on a request-scoped view (see ``wikicore.services.posts.PostView``).
    """

    __tablename__ = "posts"
    __table_args__ = (
        Index("ix_posts_flags", "deleted", "hidden"),
        Index("ix_posts_created_by", "created_by"),
    )

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True)
    # Canonical dashed form; a compact 32 character form is accepted on input.
    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False, default="")

    content: Mapped[str] = mapped_column(Text, nullable=False)
    teaser: Mapped[str] = mapped_column(Text, nullable=False)

    format_id: Mapped[int] = mapped_column(Integer, ForeignKey("formats.id"), nullable=False)
    type_id: Mapped[int] = mapped_column(Integer, ForeignKey("types.id"), nullable=False)
    framework_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("frameworks.id"),
        nullable=True,
    )
    mode_id: Mapped[int] = mapped_column(Integer, ForeignKey("modes.id"), nullable=False)

    shared: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    indexed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=NEVER_INDEXED)
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    updated_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )


class PostRead(Base):
    """Marks that a user has viewed a post."""

    __tablename__ = "post_reads"

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )


class PostLock(Base):
    """Advisory edit lock held by a user on a post."""

    __tablename__ = "post_locks"

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, server_default=func.now())


class Route(Base):
    """URL slug pointing at a post. Slug management itself lives elsewhere."""

    __tablename__ = "routes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    static: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
