from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class BrandPrompt(Base):
    """A question tracked for a brand together with its latest AI analysis.

    The analysis columns are overwritten on every (forced) re-analysis.
    """

    __tablename__ = "brand_prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(20), default="ai_generated")  # ai_generated | user_added | fallback
    ai_provider: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="suggested")  # suggested | active | inactive
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    country_code: Mapped[str | None] = mapped_column(String(10), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # Metrics backfilled by analysis
    visibility: Mapped[float | None] = mapped_column(Float, nullable=True)
    sentiment: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)  # self-reported prominence, 0-100 %
    volume: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Latest analysis
    ai_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    resources: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    competitor_mentions: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    ai_model_id: Mapped[int | None] = mapped_column(ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True)
    analysis_completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    analysis_failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    analysis_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    brand: Mapped["Brand"] = relationship("Brand", back_populates="prompts")  # noqa: F821
    resource_rows: Mapped[list["BrandPromptResource"]] = relationship(
        "BrandPromptResource", back_populates="brand_prompt", cascade="all, delete-orphan"
    )

    @property
    def is_analyzed(self) -> bool:
        # An analysis that found no links stores [] and still counts
        return bool(self.ai_response) and self.resources is not None and self.analysis_completed_at is not None


class BrandPromptResource(Base):
    """One citation URL extracted from a brand prompt's AI response."""

    __tablename__ = "brand_prompt_resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_prompt_id: Mapped[int] = mapped_column(
        ForeignKey("brand_prompts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    type: Mapped[str] = mapped_column(String(100), default="other")
    domain: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_competitor_url: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    brand_prompt: Mapped["BrandPrompt"] = relationship("BrandPrompt", back_populates="resource_rows")
