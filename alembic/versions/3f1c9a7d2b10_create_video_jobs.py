"""create_avatars_voices_and_video_jobs

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 10:12:41.118204

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

VIDEO_STATUS = sa.Enum(
    "PENDING", "WAITING", "PROCESSING", "COMPLETED", "FAILED", name="videostatus"
)


def upgrade() -> None:
    """Create avatar/voice catalog tables and the video_jobs table."""
    op.create_table(
        "avatars",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_avatar_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("avatar_style", sa.String(length=20), nullable=False),
        sa.Column("preview_image_url", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_avatars_provider_avatar_id"), "avatars", ["provider_avatar_id"], unique=True
    )

    op.create_table(
        "voices",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_voice_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("language", sa.String(length=50), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_voices_provider_voice_id"), "voices", ["provider_voice_id"], unique=True
    )

    op.create_table(
        "video_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("provider_job_id", sa.String(length=255), nullable=True),
        sa.Column("avatar_id", sa.Uuid(), nullable=False),
        sa.Column("voice_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("input_text", sa.Text(), nullable=False),
        sa.Column("background_type", sa.String(length=20), nullable=True),
        sa.Column("background_value", sa.String(length=2048), nullable=True),
        sa.Column("background_play_style", sa.String(length=20), nullable=True),
        sa.Column("dimension_width", sa.Integer(), nullable=False),
        sa.Column("dimension_height", sa.Integer(), nullable=False),
        sa.Column("lesson_id", sa.Integer(), nullable=True),
        sa.Column("status", VIDEO_STATUS, nullable=False),
        sa.Column("ephemeral_result_url", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("duration_seconds", sa.Float(), nullable=True),
        sa.Column("error_message", sa.String(length=1000), nullable=True),
        sa.Column("last_error", sa.String(length=1000), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("webhook_secret", sa.String(length=128), nullable=False),
        sa.Column("provider_metadata", sa.JSON(), nullable=True),
        sa.Column("durable_result_url", sa.Text(), nullable=True),
        sa.Column("is_downloaded", sa.Boolean(), nullable=False),
        sa.Column("downloaded_at", sa.DateTime(), nullable=True),
        sa.Column("relocation_attempts", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["avatar_id"], ["avatars.id"]),
        sa.ForeignKeyConstraint(["voice_id"], ["voices.id"]),
        sa.PrimaryKeyConstraint("id"),
        # Durable URL is set together with the downloaded flag
        sa.CheckConstraint(
            "(is_downloaded AND durable_result_url IS NOT NULL) "
            "OR (NOT is_downloaded AND durable_result_url IS NULL)",
            name="ck_video_jobs_durable_url_downloaded",
        ),
        sa.CheckConstraint("retry_count <= max_retries", name="ck_video_jobs_retry_bound"),
    )
    op.create_index(
        op.f("ix_video_jobs_provider_job_id"), "video_jobs", ["provider_job_id"], unique=True
    )
    op.create_index(op.f("ix_video_jobs_avatar_id"), "video_jobs", ["avatar_id"])
    op.create_index(op.f("ix_video_jobs_voice_id"), "video_jobs", ["voice_id"])
    op.create_index(op.f("ix_video_jobs_lesson_id"), "video_jobs", ["lesson_id"])
    op.create_index(op.f("ix_video_jobs_status"), "video_jobs", ["status"])
    op.create_index(op.f("ix_video_jobs_is_downloaded"), "video_jobs", ["is_downloaded"])
    op.create_index(op.f("ix_video_jobs_created_at"), "video_jobs", ["created_at"])
    # Poll sweep selection: non-terminal jobs, least recently reconciled first
    op.create_index(
        "idx_video_jobs_status_updated_at", "video_jobs", ["status", "updated_at"]
    )


def downgrade() -> None:
    """Drop video_jobs and catalog tables."""
    op.drop_index("idx_video_jobs_status_updated_at", table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_created_at"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_is_downloaded"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_status"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_lesson_id"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_voice_id"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_avatar_id"), table_name="video_jobs")
    op.drop_index(op.f("ix_video_jobs_provider_job_id"), table_name="video_jobs")
    op.drop_table("video_jobs")
    VIDEO_STATUS.drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f("ix_voices_provider_voice_id"), table_name="voices")
    op.drop_table("voices")
    op.drop_index(op.f("ix_avatars_provider_avatar_id"), table_name="avatars")
    op.drop_table("avatars")
