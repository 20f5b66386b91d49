from sqlalchemy import JSON, String, Float, DateTime, Integer, Boolean, Text, func, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from .db import Base


class MarketEvent(Base):
    __tablename__ = "market_events"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    slug: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ticker: Mapped[str | None] = mapped_column(String(256), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    volume: Mapped[float] = mapped_column(Float, default=0.0)
    liquidity: Mapped[float] = mapped_column(Float, default=0.0)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    start_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=False)
    synced_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())


class Market(Base):
    __tablename__ = "markets"
    __table_args__ = (
        Index("ix_markets_category_synced", "category", "synced_at"),
        Index("ix_markets_synced_at", "synced_at"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    condition_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    question: Mapped[str] = mapped_column(String(1024), default="")
    slug: Mapped[str] = mapped_column(String(512), default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    outcomes: Mapped[list] = mapped_column(JSON, default=list)
    outcome_prices: Mapped[list] = mapped_column(JSON, default=list)
    volume: Mapped[float] = mapped_column(Float, default=0.0)
    volume_24hr: Mapped[float] = mapped_column(Float, default=0.0)
    volume_1wk: Mapped[float] = mapped_column(Float, default=0.0)
    liquidity: Mapped[float] = mapped_column(Float, default=0.0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    closed: Mapped[bool] = mapped_column(Boolean, default=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False)
    tags: Mapped[list] = mapped_column(JSON, default=list)
    event_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    event_title: Mapped[str | None] = mapped_column(String(512), nullable=True)
    event_slug: Mapped[str | None] = mapped_column(String(512), nullable=True)
    event_image: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    event_start_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    event_end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    event_tags: Mapped[list] = mapped_column(JSON, default=list)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    tag_ids: Mapped[list] = mapped_column(JSON, default=list)
    start_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    game_start_time: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at_pm: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    synced_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tag_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    label: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), nullable=False)
    is_sort: Mapped[bool] = mapped_column(Boolean, default=False)
    is_category: Mapped[bool] = mapped_column(Boolean, default=True)
    order_index: Mapped[int] = mapped_column(Integer, default=0)
    synced_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())


class MarketPriceHistory(Base):
    __tablename__ = "market_price_history"
    __table_args__ = (
        UniqueConstraint("market_id", "outcome_index", name="market_price_history_market_outcome_idx"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    condition_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    outcome_index: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome_name: Mapped[str] = mapped_column(String(256), default="")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, default=0.0)
    liquidity: Mapped[float] = mapped_column(Float, default=0.0)
    timestamp: Mapped[DateTime] = mapped_column(DateTime(timezone=True), default=func.now())
