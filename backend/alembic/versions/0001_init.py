"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute(sa.text("ALTER TABLE alembic_version ALTER COLUMN version_num TYPE VARCHAR(64)"))

    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    def ensure_indexes(table: str, specs: list[tuple[str, list[str]]]) -> None:
        idxs = existing_indexes(table)
        for name, cols in specs:
            if name not in idxs:
                op.create_index(name, table, cols)

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("username", sa.String(), nullable=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
            sa.UniqueConstraint("username", name="uq_users_username"),
            sa.UniqueConstraint("email", name="uq_users_email"),
        )
    ensure_indexes("users", [("ix_users_id", ["id"]), ("ix_users_username", ["username"]), ("ix_users_email", ["email"])])

    if "novels" not in existing_tables:
        op.create_table(
            "novels",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("author_id", sa.String(), nullable=False),
            sa.Column("pricing_model", sa.String(), nullable=False, server_default="free"),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    ensure_indexes(
        "novels",
        [("ix_novels_id", ["id"]), ("ix_novels_author_id", ["author_id"]), ("ix_novels_pricing_model", ["pricing_model"])],
    )

    if "chapters" not in existing_tables:
        op.create_table(
            "chapters",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("novel_id", sa.String(), nullable=False),
            sa.Column("author_id", sa.String(), nullable=False),
            sa.Column("title", sa.String(), nullable=False, server_default=""),
            sa.Column("chapter_number", sa.Integer(), nullable=False),
            sa.Column("coin_cost", sa.Integer(), nullable=True),
            sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    ensure_indexes(
        "chapters",
        [
            ("ix_chapters_id", ["id"]),
            ("ix_chapters_novel_id", ["novel_id"]),
            ("ix_chapters_author_id", ["author_id"]),
            ("ix_chapters_novel_number", ["novel_id", "chapter_number"]),
        ],
    )

    if "chapter_access" not in existing_tables:
        op.create_table(
            "chapter_access",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.String(), nullable=False),
            sa.Column("chapter_id", sa.String(), nullable=False),
            sa.Column("novel_id", sa.String(), nullable=False),
            sa.Column("access_type", sa.String(), nullable=False, server_default="free"),
            sa.Column("accessed_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("user_id", "chapter_id", name="uq_chapter_access_user_chapter"),
        )
    ensure_indexes(
        "chapter_access",
        [
            ("ix_chapter_access_id", ["id"]),
            ("ix_chapter_access_user_id", ["user_id"]),
            ("ix_chapter_access_chapter_id", ["chapter_id"]),
            ("ix_chapter_access_novel_id", ["novel_id"]),
            ("ix_chapter_access_access_type", ["access_type"]),
        ],
    )


def downgrade() -> None:
    op.drop_table("chapter_access")
    op.drop_table("chapters")
    op.drop_table("novels")
    op.drop_table("users")
