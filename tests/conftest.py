# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterable, Iterator, Mapping
from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("PYTEST_RUNNING", "true")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-wikicore")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("REDIS_URL", "")

from wikicore.db.session import Base, enable_sqlite_savepoints
from wikicore.db.session import get_db as app_get_session
from wikicore.main import app as fastapi_app
from wikicore.models import (
    Badge,
    Format,
    Mode,
    Permission,
    Post,
    PostBadge,
    PostPermission,
    PostTag,
    Role,
    Route,
    Tag,
    Type,
    User,
    UserRole,
)
from wikicore.services import cache as cache_module
from wikicore.services.cache import ListingCache
from wikicore.services.crypto import ContentCipher
from wikicore.services.indexer import InvertedIndex
from wikicore.services.teaser import extract_teaser
from wikicore.utils.uuids import new_post_uuid

from tests.helpers import Seed

TEST_DB_URL = "sqlite://"
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    connection = engine.connect()
    transaction = connection.begin()
    # Session commits and rollbacks only ever touch savepoints inside the
    # outer transaction, which is discarded after the test.
    SessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        if transaction.is_active:
            transaction.rollback()
        connection.close()


@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Give every test an empty process-wide listing cache."""
    monkeypatch.setattr(cache_module, "_cache", ListingCache(redis_url=""))
    yield


@pytest.fixture()
def listing_cache() -> ListingCache:
    return cache_module.get_cache()


@pytest.fixture(scope="session")
def cipher() -> ContentCipher:
    return ContentCipher()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_session_dependency(app: FastAPI, db_session: Session) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def seed(db_session: Session) -> Seed:
    """Users, roles, permissions and catalog rows.

    ``reader`` belongs to Readers, ``editor`` to Readers and Editors,
    ``outsider`` to nothing.
    """
    users = {
        alias: User(alias=alias, email=f"{alias}@example.org")
        for alias in ("admin", "author", "editor", "reader", "outsider")
    }
    readers = Role(name="Readers", constant="READERS")
    editors = Role(name="Editors", constant="EDITORS")
    read = Permission(name="Read", constant="READ")
    write = Permission(name="Write", constant="WRITE")
    comment = Permission(name="Comment", constant="COMMENT")
    text_format = Format(name="Text", constant="text")
    html_format = Format(name="HTML", constant="html")
    doc_type = Type(name="Doc", constant="doc")
    page_type = Type(name="Page", constant="page")
    mode = Mode(name="Default", constant="default")
    featured = Badge(name="Featured", image="featured.png")
    howto = Tag(name="howto")
    db_session.add_all(
        [
            *users.values(), readers, editors, read, write, comment,
            text_format, html_format, doc_type, page_type, mode, featured, howto,
        ]
    )
    db_session.flush()
    db_session.add_all(
        [
            UserRole(user_id=users["reader"].id, role_id=readers.id),
            UserRole(user_id=users["editor"].id, role_id=readers.id),
            UserRole(user_id=users["editor"].id, role_id=editors.id),
        ]
    )
    db_session.flush()
    return Seed(
        admin=users["admin"],
        author=users["author"],
        editor=users["editor"],
        reader=users["reader"],
        outsider=users["outsider"],
        readers_role=readers,
        editors_role=editors,
        read=read,
        write=write,
        comment=comment,
        text_format=text_format,
        html_format=html_format,
        doc_type=doc_type,
        page_type=page_type,
        mode=mode,
        featured=featured,
        howto=howto,
    )


PostFactory = Callable[..., Post]


@pytest.fixture()
def make_post(db_session: Session, seed: Seed, cipher: ContentCipher) -> PostFactory:
    """Create a committed, indexed post.

    ``grants`` maps roles to Permission rows granted on the post.
    """
    counter = iter(range(1, 10_000))

    def _make(
        title: str = "Untitled",
        content: str = "",
        *,
        author: User | None = None,
        grants: Mapping[Role, Iterable[Permission]] | None = None,
        format: Format | None = None,
        type: Type | None = None,
        badges: Iterable[Badge] = (),
        tags: Iterable[Tag] = (),
        shared: bool = False,
        hidden: bool = False,
        deleted: bool = False,
        clicks: int = 0,
        minutes: int | None = None,
        index: bool = True,
    ) -> Post:
        owner = author or seed.author
        stamp = BASE_TIME + timedelta(minutes=minutes if minutes is not None else next(counter))
        post = Post(
            uuid=new_post_uuid(),
            title=title,
            slug=title.lower().replace(" ", "-"),
            content=cipher.encrypt(content),
            teaser=cipher.encrypt(extract_teaser(content)),
            format_id=(format or seed.text_format).id,
            type_id=(type or seed.doc_type).id,
            mode_id=seed.mode.id,
            shared=shared,
            hidden=hidden,
            deleted=deleted,
            clicks=clicks,
            created_by=owner.id,
            updated_by=owner.id,
            created_at=stamp,
            updated_at=stamp,
        )
        db_session.add(post)
        db_session.flush()
        db_session.add(Route(slug=post.slug, post_id=post.id))
        for role, permissions in (grants or {}).items():
            for permission in permissions:
                db_session.add(
                    PostPermission(post_id=post.id, role_id=role.id, permission_id=permission.id)
                )
        for badge in badges:
            db_session.add(PostBadge(post_id=post.id, badge_id=badge.id))
        for tag in tags:
            db_session.add(PostTag(post_id=post.id, tag_id=tag.id))
        if index:
            InvertedIndex(db_session).reindex(post.id, content, title=title)
        db_session.commit()
        return post

    return _make

