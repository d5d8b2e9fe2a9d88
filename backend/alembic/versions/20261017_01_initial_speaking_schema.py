"""Initial speaking coach schema: accounts, practice history, model answers."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261017_01_initial_speaking_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=True),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_histories",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", sa.String(length=128), nullable=False),
        sa.Column("part", sa.Integer(), nullable=False),
        sa.Column("topic", sa.String(length=256), nullable=True),
        sa.Column("questions", sa.JSON(), nullable=False),
        sa.Column("overall_score", sa.JSON(), nullable=True),
        sa.Column("duration", sa.Float(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_user_histories_user_created", "user_histories", ["user_id", "created_at"])
    op.create_index("ix_user_histories_user_part", "user_histories", ["user_id", "part"])
    op.create_index("ix_user_histories_session", "user_histories", ["session_id"])
    op.create_index("ix_user_histories_topic", "user_histories", ["topic"])
    op.create_index("ix_user_histories_completed", "user_histories", ["completed_at"])

    op.create_table(
        "model_answers",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("question_hash", sa.String(length=64), nullable=False),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("part", sa.Integer(), nullable=False),
        sa.Column("topic", sa.String(length=256), nullable=True),
        sa.Column("model_answer", sa.Text(), nullable=False),
        sa.Column("band_score", sa.Float(), nullable=False),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_model_answers_question_hash", "model_answers", ["question_hash"], unique=True)
    op.create_index("ix_model_answers_part_topic", "model_answers", ["part", "topic"])
    op.create_index("ix_model_answers_band_score", "model_answers", ["band_score"])
    op.create_index("ix_model_answers_usage_count", "model_answers", ["usage_count"])
    op.create_index("ix_model_answers_created", "model_answers", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_model_answers_created", table_name="model_answers")
    op.drop_index("ix_model_answers_usage_count", table_name="model_answers")
    op.drop_index("ix_model_answers_band_score", table_name="model_answers")
    op.drop_index("ix_model_answers_part_topic", table_name="model_answers")
    op.drop_index("ix_model_answers_question_hash", table_name="model_answers")
    op.drop_table("model_answers")

    op.drop_index("ix_user_histories_completed", table_name="user_histories")
    op.drop_index("ix_user_histories_topic", table_name="user_histories")
    op.drop_index("ix_user_histories_session", table_name="user_histories")
    op.drop_index("ix_user_histories_user_part", table_name="user_histories")
    op.drop_index("ix_user_histories_user_created", table_name="user_histories")
    op.drop_table("user_histories")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
