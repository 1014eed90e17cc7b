from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AiModel(Base):
    """An LLM provider configuration that prompts can be routed to."""

    __tablename__ = "ai_models"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # provider key: openai, gemini, ...
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    prompts_per_brand: Mapped[int] = mapped_column(Integer, default=25, nullable=False)
    # api_key, model, temperature, max_tokens, base_url, location_code, language_code
    api_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # priority / distribution weight

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def config(self) -> dict:
        return self.api_config or {}

    @property
    def api_key(self) -> str:
        return str(self.config.get("api_key") or "").strip()

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def __repr__(self) -> str:
        return f"<AiModel {self.name} enabled={self.is_enabled}>"
