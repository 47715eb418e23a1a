"""Shared test fixtures."""

from __future__ import annotations

import os

os.environ["RSN_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RSN_REDIS_URL"] = ""
os.environ["RSN_LOG_FORMAT"] = "console"
os.environ["RSN_ENVIRONMENT"] = "test"

from collections.abc import AsyncGenerator  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402
from itertools import count  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from rsnews.badges.activity import record_activity  # noqa: E402
from rsnews.badges.metrics import ARTICLE_VIEWED  # noqa: E402
from rsnews.badges.seed import seed_badges  # noqa: E402
from rsnews.config import get_settings  # noqa: E402
from rsnews.database import close_db, get_engine, get_session, init_db  # noqa: E402
from rsnews.db.base import Base  # noqa: E402
from rsnews.db.models import Article, Comment, CommentLike, Favorite, Follow, User  # noqa: E402
from rsnews.main import create_app  # noqa: E402

get_settings.cache_clear()


class CommunityFactory:
    """Builds users and the activity badge criteria are computed from."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = count(1)

    async def user(self, username: str | None = None, age_days: int = 0, **kwargs) -> User:
        n = next(self._seq)
        username = username or f"reader{n}"
        user = User(
            username=username,
            email=f"{username}@example.com",
            created_at=kwargs.pop("created_at", datetime.now(timezone.utc) - timedelta(days=age_days)),
            **kwargs,
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def followers(self, user: User, n: int) -> list[Follow]:
        follows = []
        for _ in range(n):
            fan = await self.user()
            follow = Follow(follower_id=fan.id, followee_id=user.id)
            self.db.add(follow)
            follows.append(follow)
        await self.db.commit()
        return follows

    async def articles(self, user: User | None, n: int, featured: bool = False) -> list[Article]:
        articles = [
            Article(author_id=user.id if user else None, title=f"Article {next(self._seq)}", featured=featured)
            for _ in range(n)
        ]
        self.db.add_all(articles)
        await self.db.commit()
        return articles

    async def comments(self, user: User, n: int) -> list[Comment]:
        (article,) = await self.articles(None, 1)
        comments = [Comment(article_id=article.id, user_id=user.id, body="Great read") for _ in range(n)]
        self.db.add_all(comments)
        await self.db.commit()
        return comments

    async def likes(self, comment: Comment, n: int) -> None:
        for _ in range(n):
            fan = await self.user()
            self.db.add(CommentLike(comment_id=comment.id, user_id=fan.id))
        await self.db.commit()

    async def favorites(self, user: User, n: int) -> None:
        for article in await self.articles(None, n):
            self.db.add(Favorite(user_id=user.id, article_id=article.id))
        await self.db.commit()

    async def views(self, user: User, n: int) -> None:
        for _ in range(n):
            await record_activity(self.db, user.id, ARTICLE_VIEWED, title="Viewed an article", is_public=False)
        await self.db.commit()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database with all tables created."""
    settings = get_settings()
    await init_db(settings.database_url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    sessions = get_session()
    session = await anext(sessions)
    yield session
    await sessions.aclose()
    await close_db()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Database with the default badge catalog seeded."""
    await seed_badges(db_session)
    return db_session


@pytest_asyncio.fixture
async def community(db_session: AsyncSession) -> CommunityFactory:
    return CommunityFactory(db_session)


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client against the app, sharing the seeded test database."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
