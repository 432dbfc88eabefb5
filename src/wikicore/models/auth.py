"""SQLAlchemy models for users, roles and post-level permission grants."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from wikicore.db.session import Base


class User(Base):
    """Authenticated (or anonymous placeholder) account."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    alias: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Post whose parsed content is prepended to every post this user views.
    global_post_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    disabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class Role(Base):
    """Named group of users."""

    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)


class UserRole(Base):
    """Join table mapping users into roles."""

    __tablename__ = "user_roles"

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )


class Permission(Base):
    """Named capability such as read, write or comment."""

    __tablename__ = "permissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    constant: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    # User-assignable capabilities are granted to accounts, not to posts.
    user_permission: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class PostPermission(Base):
    """Grant of one permission to every member of a role, for one post.

    A post with no rows here is only reachable by the admin and its creator.
    """

    __tablename__ = "post_permissions"
    __table_args__ = (Index("ix_post_permissions_role_id", "role_id"),)

    post_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("posts.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    permission_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    )
