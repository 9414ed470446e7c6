"""Create identity, comment, option and content tables."""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "20261019_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

TIMESTAMP_DEFAULT = sa.text("CURRENT_TIMESTAMP")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=TIMESTAMP_DEFAULT,
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "readers",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("handle", sa.String(length=255), nullable=False),
        sa.Column("image", sa.String(length=1024), nullable=True),
        sa.Column("is_owner", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("owner_slot", sa.Integer(), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_slot"),
    )
    op.create_index("ix_readers_email", "readers", ["email"], unique=False)
    op.create_index("ix_readers_handle", "readers", ["handle"], unique=False)

    op.create_table(
        "provider_accounts",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(length=32), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("provider_account_id", sa.String(length=255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("scope", sa.String(length=255), nullable=True),
        sa.Column("oauth_name", sa.String(length=255), nullable=True),
        sa.Column("oauth_email", sa.String(length=255), nullable=True),
        sa.Column("oauth_avatar", sa.String(length=1024), nullable=True),
        sa.Column("oauth_handle", sa.String(length=255), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "provider",
            "provider_account_id",
            name="uq_provider_accounts_provider_account",
        ),
    )
    op.create_index(
        "ix_provider_accounts_owner_id", "provider_accounts", ["owner_id"], unique=False
    )

    op.create_table(
        "comments",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("ref_id", sa.String(length=64), nullable=False),
        sa.Column("ref_type", sa.String(length=16), nullable=False),
        sa.Column("reader_id", sa.String(length=32), nullable=True),
        sa.Column("author", sa.String(length=255), nullable=False),
        sa.Column("mail", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("state", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("parent_id", sa.String(length=32), nullable=True),
        sa.Column("children", sa.JSON(), nullable=False),
        sa.Column("comments_index", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("agent", sa.String(length=512), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("url", sa.String(length=1024), nullable=True),
        sa.Column("avatar", sa.String(length=1024), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=True),
        sa.Column("pin", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("is_whispers", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_comments_ref_created_at",
        "comments",
        ["ref_type", "ref_id", "created_at"],
        unique=False,
    )
    op.create_index("ix_comments_reader_id", "comments", ["reader_id"], unique=False)
    op.create_index("ix_comments_parent_id", "comments", ["parent_id"], unique=False)

    op.create_table(
        "options",
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("name"),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "posts",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("category_id", sa.String(length=32), nullable=True),
        _timestamp("modified_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )
    op.create_table(
        "notes",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("nid", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("nid"),
    )
    op.create_table(
        "pages",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug"),
    )


def downgrade() -> None:
    op.drop_table("pages")
    op.drop_table("notes")
    op.drop_table("posts")
    op.drop_table("categories")
    op.drop_table("options")
    op.drop_index("ix_comments_parent_id", table_name="comments")
    op.drop_index("ix_comments_reader_id", table_name="comments")
    op.drop_index("ix_comments_ref_created_at", table_name="comments")
    op.drop_table("comments")
    op.drop_index("ix_provider_accounts_owner_id", table_name="provider_accounts")
    op.drop_table("provider_accounts")
    op.drop_index("ix_readers_handle", table_name="readers")
    op.drop_index("ix_readers_email", table_name="readers")
    op.drop_table("readers")
