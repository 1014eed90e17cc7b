"""initial brand visibility schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "0001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # =========================================================
    # 1. Model registry
    # =========================================================
    op.create_table(
        "ai_models",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("prompts_per_brand", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("api_config", JSONB(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    # =========================================================
    # 2. Brands, competitors, subreddits
    # =========================================================
    op.create_table(
        "brands",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("country", sa.String(10), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "competitors",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("tracked_names", JSONB(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="suggested"),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("mentions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("brand_id", "domain", name="uq_competitor_brand_domain"),
    )

    op.create_table(
        "brand_subreddits",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("subreddit_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="approved"),
    )

    # =========================================================
    # 3. Brand prompts and their analysis resources
    # =========================================================
    op.create_table(
        "brand_prompts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="ai_generated"),
        sa.Column("ai_provider", sa.String(100), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="suggested"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("country_code", sa.String(10), nullable=True),
        sa.Column("session_id", sa.String(100), nullable=True, index=True),
        sa.Column("visibility", sa.Float(), nullable=True),
        sa.Column("sentiment", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("volume", sa.Integer(), nullable=True),
        sa.Column("ai_response", sa.Text(), nullable=True),
        sa.Column("resources", JSONB(), nullable=True),
        sa.Column("competitor_mentions", JSONB(), nullable=True),
        sa.Column("ai_model_id", sa.Integer(), sa.ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True),
        sa.Column("analysis_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("analysis_failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("analysis_error", sa.Text(), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "brand_prompt_resources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "brand_prompt_id",
            sa.Integer(),
            sa.ForeignKey("brand_prompts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("type", sa.String(100), nullable=False, server_default="other"),
        sa.Column("domain", sa.String(255), nullable=True, index=True),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_competitor_url", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # =========================================================
    # 4. Mention log and competitive snapshots (append-only)
    # =========================================================
    op.create_table(
        "brand_mentions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "brand_prompt_id",
            sa.Integer(),
            sa.ForeignKey("brand_prompts.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ai_model_id", sa.Integer(), sa.ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("competitor_id", sa.Integer(), sa.ForeignKey("competitors.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("entity_domain", sa.String(255), nullable=True),
        sa.Column("mention_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("sentiment", sa.Float(), nullable=True),
        sa.Column("session_id", sa.String(100), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )
    op.create_index("ix_brand_mentions_brand_analyzed", "brand_mentions", ["brand_id", "analyzed_at"])

    op.create_table(
        "brand_competitive_stats",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("ai_model_id", sa.Integer(), sa.ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True),
        sa.Column("competitor_id", sa.Integer(), sa.ForeignKey("competitors.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("entity_url", sa.String(500), nullable=False),
        sa.Column("visibility", sa.Numeric(5, 2), nullable=False),
        sa.Column("sentiment", sa.Integer(), nullable=True),
        sa.Column("position", sa.Numeric(3, 1), nullable=False),
        sa.Column("raw_data", JSONB(), nullable=True),
        sa.Column("analysis_session_id", sa.String(100), nullable=True),
        sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), index=True),
    )

    # =========================================================
    # 5. Posts, post prompts, citation results
    # =========================================================
    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("brand_id", sa.Integer(), sa.ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "post_prompts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("session_id", sa.String(100), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("source", sa.String(20), nullable=False, server_default="ai_generated"),
        sa.Column("ai_provider", sa.String(100), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_selected", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "post_citations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("post_id", sa.Integer(), sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("ai_model", sa.String(100), nullable=False),
        sa.Column("is_mentioned", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.Column("citation_text", sa.Text(), nullable=True),
        sa.Column("citation_url", sa.String(2048), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("post_id", "ai_model", name="uq_post_citation_post_model"),
    )


def downgrade() -> None:
    op.drop_table("post_citations")
    op.drop_table("post_prompts")
    op.drop_table("posts")
    op.drop_table("brand_competitive_stats")
    op.drop_index("ix_brand_mentions_brand_analyzed", table_name="brand_mentions")
    op.drop_table("brand_mentions")
    op.drop_table("brand_prompt_resources")
    op.drop_table("brand_prompts")
    op.drop_table("brand_subreddits")
    op.drop_table("competitors")
    op.drop_table("brands")
    op.drop_table("ai_models")
