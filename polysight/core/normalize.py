"""
Map upstream market records onto the canonical ``Market`` schema.

Gamma returns markets either nested in events (``/events``) or flat
(``/markets``). Field spellings drift between the two and over time, list
fields arrive as JSON strings, comma-separated strings or arrays, and
numbers are frequently strings. Everything here is total: bad input
degrades to defaults, it never raises.
"""

import json
import math
from datetime import datetime, timezone
from typing import Any

from ..polymarket.schemas import Market

DEFAULT_OUTCOMES = ["Yes", "No"]

END_DATE_FIELDS = (
    "endDate",
    "endDateIso",
    "end_date",
    "endTime",
    "end_time",
    "closeTime",
    "close_time",
    "resolutionDate",
    "umaEndDate",
)
CREATED_FIELDS = ("createdAt", "created_at", "creationDate", "created_time")
START_DATE_FIELDS = ("startDate", "startDateIso", "start_date")
GAME_START_FIELDS = ("gameStartTime", "eventStartTime", "startTime")


def normalize_market(raw: dict, event: dict | None = None, platform: str = "polymarket") -> Market:
    event = event or {}
    nested_event = _nested_event(raw)

    market_id = _first_str(raw.get("id"), raw.get("conditionId"), raw.get("slug"))
    condition_id = _first_str(raw.get("conditionId"))

    outcomes = parse_outcomes(raw.get("outcomes"))
    prices = parse_prices(raw.get("outcomePrices") or raw.get("prices"))

    event_id = _first_str(event.get("id"), raw.get("eventId"), nested_event.get("id"))
    event_title = _first_str(event.get("title"), raw.get("eventTitle"), nested_event.get("title"))
    event_slug = _first_str(event.get("slug"), raw.get("eventSlug"), nested_event.get("slug"))
    event_image = _first_str(
        event.get("image"),
        event.get("icon"),
        raw.get("eventImage"),
        nested_event.get("image"),
        nested_event.get("icon"),
    )
    event_tags = _as_list(event.get("tags") or raw.get("eventTags") or nested_event.get("tags"))

    return Market(
        id=market_id,
        condition_id=condition_id,
        question=_first_str(raw.get("question"), raw.get("title")),
        slug=_first_str(raw.get("slug")),
        description=_first_str(raw.get("description")) or None,
        image=_first_str(raw.get("image"), raw.get("icon"), event.get("image")) or None,
        icon=_first_str(raw.get("icon"), event.get("icon")) or None,
        outcomes=outcomes,
        outcome_prices=prices,
        volume=parse_amount(raw.get("volume") or raw.get("volumeNum")),
        volume24hr=parse_amount(raw.get("volume24hr") or raw.get("volume24h")),
        volume1wk=parse_amount(raw.get("volume1wk") or raw.get("volume1w")),
        liquidity=parse_amount(raw.get("liquidity") or raw.get("liquidityNum")),
        active=raw.get("active") is not False,
        closed=raw.get("closed") is True,
        resolved=raw.get("resolved") is True,
        start_date=_first_ts(raw, START_DATE_FIELDS),
        end_date=_first_ts(raw, END_DATE_FIELDS) or _first_ts(event, END_DATE_FIELDS),
        created_at=_first_ts(raw, CREATED_FIELDS),
        game_start_time=_first_ts(raw, GAME_START_FIELDS) or _first_ts(event, GAME_START_FIELDS),
        tags=_as_list(raw.get("tags")),
        event_id=event_id or None,
        event_title=event_title or None,
        event_slug=event_slug or None,
        event_image=event_image or None,
        event_start_date=(
            _first_ts(event, START_DATE_FIELDS)
            or parse_ts(raw.get("eventStartDate"))
            or _first_ts(nested_event, START_DATE_FIELDS)
        ),
        event_end_date=(
            _first_ts(event, END_DATE_FIELDS)
            or parse_ts(raw.get("eventEndDate"))
            or _first_ts(nested_event, END_DATE_FIELDS)
        ),
        event_tags=event_tags,
        platform=platform,
    )


def flatten_events(events: list[dict], platform: str = "polymarket") -> list[Market]:
    markets: list[Market] = []
    for ev in events:
        if not isinstance(ev, dict):
            continue
        for m in ev.get("markets", []) or []:
            if isinstance(m, dict):
                markets.append(normalize_market(m, ev, platform=platform))
    return markets


def parse_outcomes(value: Any) -> list[str]:
    items = _parse_list(value)
    labels = [str(item).strip() for item in items if item is not None and str(item).strip()]
    return labels or list(DEFAULT_OUTCOMES)


def parse_prices(value: Any) -> list[float]:
    return [parse_float(item) for item in _parse_list(value)]


def parse_float(value) -> float:
    try:
        result = float(value or 0.0)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def parse_amount(value) -> float:
    """Volume or liquidity, never negative."""
    return max(parse_float(value), 0.0)


def tag_ids(tags: list[Any]) -> set[int]:
    """Numeric ids of tags given as objects, numbers or numeric strings."""
    ids: set[int] = set()
    for tag in tags or []:
        raw = tag.get("id") if isinstance(tag, dict) else tag
        try:
            ids.add(int(float(raw)))
        except (TypeError, ValueError, OverflowError):
            continue
    return ids


def tag_texts(tags: list[Any]) -> list[str]:
    texts: list[str] = []
    for tag in tags or []:
        if isinstance(tag, dict):
            for key in ("label", "slug", "name"):
                value = tag.get(key)
                if value:
                    texts.append(str(value).lower())
        elif isinstance(tag, str) and not tag.strip().isdigit():
            texts.append(tag.lower())
    return texts


def parse_ts(value) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))
    if isinstance(value, str):
        v = value.strip()
        if not v:
            return None
        try:
            num = float(v)
        except ValueError:
            num = None
        if num is not None:
            return _from_epoch(num)
        if " " in v and "T" not in v:
            v = v.replace(" ", "T", 1)
        if v.endswith("Z"):
            v = v[:-1] + "+00:00"
        v = _trim_iso_fraction(v)
        try:
            dt = datetime.fromisoformat(v)
        except ValueError:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None


def _from_epoch(num: float) -> datetime | None:
    if math.isnan(num) or math.isinf(num):
        return None
    if num > 1e14:
        num = num / 1e9
    elif num > 1e11:
        num = num / 1e3
    try:
        return datetime.fromtimestamp(num, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _trim_iso_fraction(value: str) -> str:
    if "." not in value:
        return value
    tz_pos = None
    t_pos = value.find("T")
    for i in range(len(value) - 1, -1, -1):
        ch = value[i]
        if ch in "+-" and (t_pos == -1 or i > t_pos):
            tz_pos = i
            break
    if tz_pos is None:
        main = value
        tz = ""
    else:
        main = value[:tz_pos]
        tz = value[tz_pos:]
    if "." not in main:
        return value
    pre, frac = main.split(".", 1)
    digits = "".join(ch for ch in frac if ch.isdigit())
    if not digits:
        return pre + tz
    if len(digits) > 6:
        digits = digits[:6]
    return pre + "." + digits + tz


def _parse_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str):
        return [value]
    text = value.strip()
    if not text:
        return []
    try:
        decoded = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        decoded = None
    if isinstance(decoded, list):
        return decoded
    # Comma-split fallback for values like "0.4, 0.6" or a truncated JSON array.
    parts = [part.strip().strip("[]").strip().strip("'\"") for part in text.split(",")]
    return [part for part in parts if part]


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return _parse_list(value)


def _first_str(*values) -> str:
    for value in values:
        if value is None or value == "":
            continue
        return str(value)
    return ""


def _first_ts(record: dict, fields: tuple[str, ...]) -> datetime | None:
    for field in fields:
        ts = parse_ts(record.get(field))
        if ts is not None:
            return ts
    return None


def _nested_event(raw: dict) -> dict:
    nested = raw.get("event")
    if isinstance(nested, dict):
        return nested
    events = raw.get("events")
    if isinstance(events, list) and events and isinstance(events[0], dict):
        return events[0]
    return {}
