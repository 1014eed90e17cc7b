from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class BrandCompetitiveStat(Base):
    """Visibility snapshot for one entity. Rows are only ever inserted."""

    __tablename__ = "brand_competitive_stats"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)  # brand | competitor
    ai_model_id: Mapped[int | None] = mapped_column(ForeignKey("ai_models.id", ondelete="SET NULL"), nullable=True)
    competitor_id: Mapped[int | None] = mapped_column(
        ForeignKey("competitors.id", ondelete="SET NULL"), nullable=True
    )
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_url: Mapped[str] = mapped_column(String(500), nullable=False)
    visibility: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)  # 0-100
    sentiment: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0-100
    position: Mapped[Decimal] = mapped_column(Numeric(3, 1), nullable=False)  # 1.0-10.0
    raw_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    analysis_session_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    analyzed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), index=True
    )
