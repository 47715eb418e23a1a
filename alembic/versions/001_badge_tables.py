"""Community and badge tables.

Creates users, follows, articles, comments, comment_likes, favorites,
user_activity, badge_definitions and user_badges.

Revision ID: 001_badge_tables
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_badge_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Community ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id BIGSERIAL PRIMARY KEY,
            username VARCHAR(30) UNIQUE NOT NULL,
            email VARCHAR(256) UNIQUE NOT NULL,
            avatar_url VARCHAR(512),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS follows (
            id BIGSERIAL PRIMARY KEY,
            follower_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            followee_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT follows_follower_followee_key UNIQUE (follower_id, followee_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_follows_followee_id ON follows(followee_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS articles (
            id BIGSERIAL PRIMARY KEY,
            author_id BIGINT REFERENCES users(id) ON DELETE SET NULL,
            title VARCHAR(256) NOT NULL,
            category VARCHAR(32) NOT NULL DEFAULT 'General',
            featured BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_articles_author_id ON articles(author_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS comments (
            id BIGSERIAL PRIMARY KEY,
            article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            body TEXT NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_comments_user_id ON comments(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS comment_likes (
            id BIGSERIAL PRIMARY KEY,
            comment_id BIGINT NOT NULL REFERENCES comments(id) ON DELETE CASCADE,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            CONSTRAINT comment_likes_comment_user_key UNIQUE (comment_id, user_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_comment_likes_comment_id ON comment_likes(comment_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS favorites (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT favorites_user_article_key UNIQUE (user_id, article_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_favorites_user_id ON favorites(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL,
            target_type VARCHAR(16),
            target_id BIGINT,
            title TEXT NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            is_public BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_activity_activity_type ON user_activity(activity_type)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activity_user_created
        ON user_activity(user_id, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activity_public_created
        ON user_activity(is_public, created_at)
    """)

    # --- Badge Definitions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) UNIQUE NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(64) NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            color VARCHAR(16) NOT NULL,
            criterion_type VARCHAR(32) NOT NULL,
            criterion_value INTEGER NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_badge_definitions_category ON badge_definitions(category)")

    # --- User Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_badges (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            progress INTEGER NOT NULL DEFAULT 100,
            notified BOOLEAN NOT NULL DEFAULT false,
            CONSTRAINT user_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_badges_badge_id ON user_badges(badge_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_badges_user_earned
        ON user_badges(user_id, earned_at)
    """)


def downgrade() -> None:
    for table in [
        "user_badges",
        "badge_definitions",
        "user_activity",
        "favorites",
        "comment_likes",
        "comments",
        "articles",
        "follows",
        "users",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")  # noqa: S608
