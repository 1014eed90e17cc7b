from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class Brand(Base):
    __tablename__ = "brands"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    country: Mapped[str | None] = mapped_column(String(10), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    competitors: Mapped[list["Competitor"]] = relationship(
        "Competitor", back_populates="brand", cascade="all, delete-orphan"
    )
    subreddits: Mapped[list["BrandSubreddit"]] = relationship(
        "BrandSubreddit", back_populates="brand", cascade="all, delete-orphan"
    )
    prompts: Mapped[list["BrandPrompt"]] = relationship(  # noqa: F821
        "BrandPrompt", back_populates="brand", cascade="all, delete-orphan"
    )

    @property
    def accepted_competitors(self) -> list["Competitor"]:
        return [c for c in self.competitors if c.status == "accepted"]

    @property
    def active_subreddit_names(self) -> list[str]:
        return [s.subreddit_name for s in self.subreddits if s.status == "approved"]


class Competitor(Base):
    """A competing brand. Only ``accepted`` competitors take part in analysis."""

    __tablename__ = "competitors"
    __table_args__ = (UniqueConstraint("brand_id", "domain", name="uq_competitor_brand_domain"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    tracked_names: Mapped[list | None] = mapped_column(JSONB, nullable=True)  # alternative spellings
    status: Mapped[str] = mapped_column(String(20), default="suggested")  # suggested | accepted | rejected
    source: Mapped[str] = mapped_column(String(20), default="manual")  # ai | manual
    mentions: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    brand: Mapped["Brand"] = relationship("Brand", back_populates="competitors")


class BrandSubreddit(Base):
    __tablename__ = "brand_subreddits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    brand_id: Mapped[int] = mapped_column(ForeignKey("brands.id", ondelete="CASCADE"), nullable=False, index=True)
    subreddit_name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="approved")  # approved | rejected

    brand: Mapped["Brand"] = relationship("Brand", back_populates="subreddits")
