from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Market(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    condition_id: str | None = None
    question: str = ""
    slug: str = ""
    description: str | None = None
    image: str | None = None
    icon: str | None = None
    outcomes: list[str] = Field(default_factory=lambda: ["Yes", "No"])
    outcome_prices: list[float] = Field(default_factory=list)
    volume: float = 0.0
    volume24hr: float = Field(default=0.0, alias="volume24hr")
    volume1wk: float = Field(default=0.0, alias="volume1wk")
    liquidity: float = 0.0
    active: bool = True
    closed: bool = False
    resolved: bool = False
    start_date: datetime | None = None
    end_date: datetime | None = None
    created_at: datetime | None = None
    game_start_time: datetime | None = None
    tags: list[Any] = Field(default_factory=list)
    event_id: str | None = None
    event_title: str | None = None
    event_slug: str | None = None
    event_image: str | None = None
    event_start_date: datetime | None = None
    event_end_date: datetime | None = None
    event_tags: list[Any] = Field(default_factory=list)
    platform: str = "polymarket"
    category: str | None = None
    sports_week: int | None = None

    @property
    def dedupe_key(self) -> str:
        return self.id or (self.condition_id or "")

    @property
    def text(self) -> str:
        """Lowercased question, event title and slugs, used by text classifiers."""
        parts = [self.question, self.event_title or "", self.slug, self.event_slug or ""]
        return " ".join(part for part in parts if part).lower()

    @property
    def start_ts(self) -> datetime | None:
        return self.game_start_time or self.event_start_date or self.start_date


class Category(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    slug: str
    label: str
    tag_id: int | None = None
    is_sort: bool = False
    is_category: bool = True
    order_index: int = 0


class CategoryCount(BaseModel):
    slug: str
    label: str
    count: int


class SportsSubcategory(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    label: str
    slug: str
    tag_id: int | None = None
