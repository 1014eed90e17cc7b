from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class BrandMention(Base):
    """Append-only log of brand/competitor occurrences in AI answers.

    Source of truth for visibility aggregation.
    """

    __tablename__ = "brand_mentions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    brand_prompt_id: Mapped[int] = mapped_column(
        ForeignKey("brand_prompts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    ai_model_id: Mapped[int | None] = mapped_column(ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    competitor_id: Mapped[int | None] = mapped_column(
        ForeignKey("competitors.id", ondelete="SET NULL"), nullable=True
    )
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mention_count: Mapped[int] = mapped_column(Integer, default=1)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)  # char offset of first match
    context: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[float | None] = mapped_column(Float, nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    analyzed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
