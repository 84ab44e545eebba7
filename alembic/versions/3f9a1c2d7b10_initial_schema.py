"""initial_schema

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-18 10:12:41.318207

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names, as SQLAlchemy does for Python enums
JOB_KIND = sa.Enum(
    "VIDEO", "IMAGE", "MUSIC", "AUDIO", "SPEECH", "SOUND_EFFECTS", name="jobkind"
)
JOB_STATUS = sa.Enum("PENDING", "PROCESSING", "COMPLETED", "FAILED", name="jobstatus")
MEDIA_STATUS = sa.Enum(
    "GENERATING", "COMPLETED", "FAILED", "PARTIAL", name="mediagenerationstatus"
)


def upgrade() -> None:
    """Create users, credentials, prices, scheduled posts and generation jobs."""
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("credits >= 0", name="ck_users_credits_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "api_credentials",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("secret", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("last_used_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_api_credentials_provider", "api_credentials", ["provider"])
    op.create_index("ix_api_credentials_name", "api_credentials", ["name"], unique=True)
    op.create_index("ix_api_credentials_is_active", "api_credentials", ["is_active"])

    op.create_table(
        "model_prices",
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("kind", sa.String(length=50), nullable=False),
        sa.Column("credit_cost", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("model"),
    )

    op.create_table(
        "scheduled_posts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("caption", sa.String(), nullable=False),
        sa.Column("platforms", sa.JSON(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(), nullable=True),
        sa.Column("media_generation_status", MEDIA_STATUS, nullable=True),
        sa.Column("media_urls", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scheduled_posts_user_id", "scheduled_posts", ["user_id"])
    op.create_index(
        "ix_scheduled_posts_media_generation_status",
        "scheduled_posts",
        ["media_generation_status"],
    )

    op.create_table(
        "generation_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("kind", JOB_KIND, nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("prompt", sa.String(), nullable=False),
        sa.Column("reference_inputs", sa.JSON(), nullable=True),
        sa.Column("parameters", sa.JSON(), nullable=True),
        sa.Column("status", JOB_STATUS, nullable=False),
        sa.Column("credits_reserved", sa.Integer(), nullable=False),
        sa.Column("external_task_id", sa.String(length=255), nullable=True),
        sa.Column("result_url", sa.String(), nullable=True),
        sa.Column("result_urls", sa.JSON(), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("api_credential_name", sa.String(length=100), nullable=True),
        sa.Column("post_id", sa.Uuid(), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["post_id"], ["scheduled_posts.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generation_jobs_user_id", "generation_jobs", ["user_id"])
    op.create_index("ix_generation_jobs_kind", "generation_jobs", ["kind"])
    op.create_index("ix_generation_jobs_status", "generation_jobs", ["status"])
    op.create_index(
        "ix_generation_jobs_external_task_id", "generation_jobs", ["external_task_id"]
    )
    op.create_index("ix_generation_jobs_post_id", "generation_jobs", ["post_id"])
    # Status poller scans processing jobs by age
    op.create_index(
        "ix_generation_jobs_status_updated_at", "generation_jobs", ["status", "updated_at"]
    )


def downgrade() -> None:
    """Drop all tables and enum types."""
    op.drop_index("ix_generation_jobs_status_updated_at", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_post_id", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_external_task_id", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_status", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_kind", table_name="generation_jobs")
    op.drop_index("ix_generation_jobs_user_id", table_name="generation_jobs")
    op.drop_table("generation_jobs")

    op.drop_index("ix_scheduled_posts_media_generation_status", table_name="scheduled_posts")
    op.drop_index("ix_scheduled_posts_user_id", table_name="scheduled_posts")
    op.drop_table("scheduled_posts")

    op.drop_table("model_prices")

    op.drop_index("ix_api_credentials_is_active", table_name="api_credentials")
    op.drop_index("ix_api_credentials_name", table_name="api_credentials")
    op.drop_index("ix_api_credentials_provider", table_name="api_credentials")
    op.drop_table("api_credentials")

    op.drop_table("users")

    bind = op.get_bind()
    MEDIA_STATUS.drop(bind, checkfirst=True)
    JOB_STATUS.drop(bind, checkfirst=True)
    JOB_KIND.drop(bind, checkfirst=True)
