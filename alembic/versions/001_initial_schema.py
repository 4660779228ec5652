"""Initial schema.

Creates users, the eight learning-record tables, event_log, items,
inventory, avatars, mission and badge definitions, earned_badges,
game_settings and announcements.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# (table, type-specific column DDL)
RECORD_TABLES: list[tuple[str, str]] = [
    ("class_reflections", "subject VARCHAR(64) NOT NULL DEFAULT '', content TEXT NOT NULL DEFAULT ''"),
    ("test_reflections", "subject VARCHAR(64) NOT NULL DEFAULT '', score1 INTEGER, score2 INTEGER"),
    ("moral_notes", "content TEXT NOT NULL DEFAULT ''"),
    ("typing_practices", "speed DOUBLE PRECISION NOT NULL DEFAULT 0, accuracy DOUBLE PRECISION NOT NULL DEFAULT 0"),
    ("arithmetic_drills", "score INTEGER NOT NULL DEFAULT 0, time_seconds DOUBLE PRECISION NOT NULL DEFAULT 0"),
    ("reading_logs", "book_title VARCHAR(256) NOT NULL DEFAULT '', pages INTEGER NOT NULL DEFAULT 0"),
    ("self_studies", "subject VARCHAR(64) NOT NULL DEFAULT '', minutes INTEGER NOT NULL DEFAULT 0"),
    ("growth_logs", "content TEXT NOT NULL DEFAULT ''"),
]


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            email VARCHAR(320) UNIQUE NOT NULL,
            nickname VARCHAR(64) NOT NULL DEFAULT '',
            role VARCHAR(16) NOT NULL DEFAULT 'student',
            cumulative_exp INTEGER NOT NULL DEFAULT 0,
            spendable_exp INTEGER NOT NULL DEFAULT 0,
            exchange_points INTEGER NOT NULL DEFAULT 0,
            last_login_date DATE,
            favorite_subject VARCHAR(64) NOT NULL DEFAULT '',
            goal VARCHAR(256) NOT NULL DEFAULT '',
            comment VARCHAR(256) NOT NULL DEFAULT '',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Learning records ---
    for table, columns in RECORD_TABLES:
        op.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id SERIAL PRIMARY KEY,
                email VARCHAR(320) NOT NULL,
                submitted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                processed BOOLEAN NOT NULL DEFAULT false,
                {columns}
            )
        """)  # noqa: S608
        op.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_email ON {table}(email)")
        op.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_unprocessed ON {table}(id) WHERE NOT processed")

    # --- Event log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS event_log (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            kind VARCHAR(32) NOT NULL,
            payload JSON NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_event_log_user ON event_log(user_id, created_at)")
    op.execute("CREATE INDEX IF NOT EXISTS idx_event_log_kind ON event_log(kind, created_at)")

    # --- Items, inventory, avatars ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS items (
            id VARCHAR(32) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(4),
            cost INTEGER NOT NULL DEFAULT 0,
            image VARCHAR(256) NOT NULL DEFAULT '',
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS inventory (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            item_id VARCHAR(32) NOT NULL REFERENCES items(id),
            acquired_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT inventory_user_id_item_id_key UNIQUE (user_id, item_id)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS avatars (
            user_id INTEGER PRIMARY KEY REFERENCES users(id),
            slots JSON NOT NULL DEFAULT '{}',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Missions and badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS mission_definitions (
            id VARCHAR(32) PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            cadence VARCHAR(16) NOT NULL,
            condition_key VARCHAR(64) NOT NULL DEFAULT '',
            target INTEGER NOT NULL DEFAULT 1,
            reward_type VARCHAR(16) NOT NULL DEFAULT 'exp',
            reward_amount INTEGER NOT NULL DEFAULT 0,
            enabled BOOLEAN NOT NULL DEFAULT true,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id VARCHAR(32) PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            condition_key VARCHAR(32) NOT NULL,
            condition_params JSON NOT NULL DEFAULT '{}',
            threshold DOUBLE PRECISION NOT NULL DEFAULT 1,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS earned_badges (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id),
            badge_id VARCHAR(32) NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT earned_badges_user_id_badge_id_key UNIQUE (user_id, badge_id)
        )
    """)

    # --- Settings and announcements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS game_settings (
            key VARCHAR(64) PRIMARY KEY,
            value VARCHAR(64) NOT NULL
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS announcements (
            id SERIAL PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            body TEXT NOT NULL DEFAULT '',
            author_id INTEGER REFERENCES users(id),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)


def downgrade() -> None:
    for table in (
        "announcements",
        "game_settings",
        "earned_badges",
        "badge_definitions",
        "mission_definitions",
        "avatars",
        "inventory",
        "items",
        "event_log",
        *(t for t, _ in reversed(RECORD_TABLES)),
        "users",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
