"""Small lookup tables used to classify and label posts."""

from sqlalchemy import BigInteger, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from wikicore.db.session import Base


class Format(Base):
    """Markup dialect a post is written in (wiki, markdown, html, ...)."""

    __tablename__ = "formats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Type(Base):
    """Post type such as doc, page or app."""

    __tablename__ = "types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Framework(Base):
    """Application framework, only meaningful for app-type posts."""

    __tablename__ = "frameworks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Mode(Base):
    """Display mode of a post."""

    __tablename__ = "modes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class Badge(Base):
    """Curated label with an image."""

    __tablename__ = "badges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    image: Mapped[str | None] = mapped_column(Text, nullable=True)


class Tag(Base):
    """Free-form label."""

    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class PostBadge(Base):
    """Join table mapping badges onto posts."""

    __tablename__ = "post_badges"

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    badge_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("badges.id", ondelete="CASCADE"),
        primary_key=True,
    )


class PostTag(Base):
    """Join table mapping tags onto posts."""

    __tablename__ = "post_tags"

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )
