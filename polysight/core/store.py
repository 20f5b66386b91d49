import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .. import models
from ..polymarket.schemas import Market
from ..settings import settings
from .normalize import parse_float, parse_ts, tag_ids

logger = logging.getLogger(__name__)

UPSERT_CHUNK_SIZE = 200

_MARKET_COLUMNS = (
    "condition_id", "question", "slug", "description", "image", "icon", "outcomes",
    "outcome_prices", "volume", "volume_24hr", "volume_1wk", "liquidity", "active",
    "closed", "resolved", "tags", "event_id", "event_title", "event_slug", "event_image",
    "event_start_date", "event_end_date", "event_tags", "category", "tag_ids",
    "start_date", "end_date", "game_start_time", "created_at_pm", "synced_at", "updated_at",
)


def load_fresh_markets(
    db: Session,
    category: str | None = None,
    now: datetime | None = None,
    freshness_seconds: int | None = None,
) -> list[Market]:
    """Stored markets synced inside the freshness window; anything older is ignored."""
    now = now or datetime.now(timezone.utc)
    window = settings.STORE_FRESHNESS_SECONDS if freshness_seconds is None else freshness_seconds
    cutoff = now - timedelta(seconds=window)
    query = db.query(models.Market).filter(models.Market.synced_at >= _db_ts(db, cutoff))
    if category:
        query = query.filter(models.Market.category == category)
    rows = query.all()
    return [market_from_row(row) for row in rows]


def get_market(db: Session, market_id: str) -> Market | None:
    row = db.get(models.Market, market_id)
    if row is None:
        row = (
            db.query(models.Market)
            .filter(models.Market.condition_id == market_id)
            .first()
        )
    return market_from_row(row) if row else None


def market_from_row(row: models.Market) -> Market:
    return Market(
        id=row.id,
        condition_id=row.condition_id,
        question=row.question or "",
        slug=row.slug or "",
        description=row.description,
        image=row.image,
        icon=row.icon,
        outcomes=[str(o) for o in (row.outcomes or [])] or ["Yes", "No"],
        outcome_prices=[parse_float(p) for p in (row.outcome_prices or [])],
        volume=row.volume or 0.0,
        volume24hr=row.volume_24hr or 0.0,
        volume1wk=row.volume_1wk or 0.0,
        liquidity=row.liquidity or 0.0,
        active=bool(row.active),
        closed=bool(row.closed),
        resolved=bool(row.resolved),
        start_date=parse_ts(row.start_date),
        end_date=parse_ts(row.end_date),
        created_at=parse_ts(row.created_at_pm),
        game_start_time=parse_ts(row.game_start_time),
        tags=list(row.tags or []),
        event_id=row.event_id,
        event_title=row.event_title,
        event_slug=row.event_slug,
        event_image=row.event_image,
        event_start_date=parse_ts(row.event_start_date),
        event_end_date=parse_ts(row.event_end_date),
        event_tags=list(row.event_tags or []),
        category=row.category,
    )


def market_row(market: Market, category: str | None, synced_at: datetime) -> dict:
    return {
        "id": market.id,
        "condition_id": market.condition_id,
        "question": market.question,
        "slug": market.slug,
        "description": market.description,
        "image": market.image,
        "icon": market.icon,
        "outcomes": list(market.outcomes),
        "outcome_prices": list(market.outcome_prices),
        "volume": market.volume,
        "volume_24hr": market.volume24hr,
        "volume_1wk": market.volume1wk,
        "liquidity": market.liquidity,
        "active": market.active,
        "closed": market.closed,
        "resolved": market.resolved,
        "tags": list(market.tags),
        "event_id": market.event_id,
        "event_title": market.event_title,
        "event_slug": market.event_slug,
        "event_image": market.event_image,
        "event_start_date": market.event_start_date,
        "event_end_date": market.event_end_date,
        "event_tags": list(market.event_tags),
        "category": category,
        "tag_ids": sorted(tag_ids(market.tags) | tag_ids(market.event_tags)),
        "start_date": market.start_date,
        "end_date": market.end_date,
        "game_start_time": market.game_start_time,
        "created_at_pm": market.created_at,
        "synced_at": synced_at,
        "updated_at": synced_at,
    }


def event_row(event: dict, synced_at: datetime) -> dict:
    return {
        "id": str(event.get("id")),
        "title": event.get("title"),
        "slug": event.get("slug"),
        "ticker": event.get("ticker"),
        "description": event.get("description"),
        "image": event.get("image") or event.get("icon"),
        "icon": event.get("icon"),
        "volume": parse_float(event.get("volume")),
        "liquidity": parse_float(event.get("liquidity")),
        "tags": event.get("tags") if isinstance(event.get("tags"), list) else [],
        "start_date": parse_ts(event.get("startDate")),
        "end_date": parse_ts(event.get("endDate")),
        "closed": event.get("closed") is True,
        "synced_at": synced_at,
        "updated_at": synced_at,
    }


def price_history_rows(market: Market, synced_at: datetime) -> list[dict]:
    rows = []
    for index, (outcome, price) in enumerate(zip(market.outcomes, market.outcome_prices)):
        rows.append(
            {
                "market_id": market.id,
                "condition_id": market.condition_id,
                "outcome_index": index,
                "outcome_name": outcome,
                "price": price,
                "volume": market.volume24hr or market.volume,
                "liquidity": market.liquidity,
                "timestamp": synced_at,
            }
        )
    return rows


def upsert_events(db: Session, rows: Iterable[dict]) -> int:
    return _upsert(db, models.MarketEvent, rows, ["id"])


def upsert_markets(db: Session, rows: Iterable[dict]) -> int:
    return _upsert(db, models.Market, rows, ["id"], update_cols=_MARKET_COLUMNS)


def upsert_price_history(db: Session, rows: Iterable[dict]) -> int:
    return _upsert(db, models.MarketPriceHistory, rows, ["market_id", "outcome_index"])


def upsert_categories(db: Session, rows: Iterable[dict]) -> int:
    return _upsert(db, models.Category, rows, ["id"])


def _upsert(
    db: Session,
    model,
    rows: Iterable[dict],
    conflict_cols: list[str],
    update_cols: Iterable[str] | None = None,
) -> int:
    # One statement may not touch the same conflict key twice; last row wins.
    by_key: dict[tuple, dict] = {}
    for row in rows:
        by_key[tuple(row.get(col) for col in conflict_cols)] = row
    unique_rows = list(by_key.values())
    if not unique_rows:
        return 0

    insert = _insert_for(db)
    for start in range(0, len(unique_rows), UPSERT_CHUNK_SIZE):
        chunk = unique_rows[start:start + UPSERT_CHUNK_SIZE]
        stmt = insert(model).values(chunk)
        columns = update_cols or [col for col in chunk[0].keys() if col not in conflict_cols]
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict_cols,
            set_={col: stmt.excluded[col] for col in columns},
        )
        db.execute(stmt)
    return len(unique_rows)


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise RuntimeError(f"upsert not supported for dialect {dialect}")


def _db_ts(db: Session, value: datetime) -> datetime:
    # SQLite stores naive UTC timestamps.
    if db.get_bind().dialect.name == "sqlite":
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
