from typing import NamedTuple

from ..polymarket.schemas import Category

SPORTS_TAG_ID = 1

CATEGORIES: tuple[Category, ...] = (
    Category(slug="trending", label="Trending", is_sort=True, is_category=False, order_index=1),
    Category(slug="breaking", label="Breaking", is_sort=True, is_category=False, order_index=2),
    Category(slug="new", label="New", is_sort=True, is_category=False, order_index=3),
    Category(slug="politics", label="Politics", tag_id=2, order_index=10),
    Category(slug="sports", label="Sports", tag_id=SPORTS_TAG_ID, order_index=11),
    Category(slug="finance", label="Finance", tag_id=120, order_index=12),
    Category(slug="crypto", label="Crypto", tag_id=21, order_index=13),
    Category(slug="geopolitics", label="Geopolitics", tag_id=100265, order_index=14),
    Category(slug="tech", label="Tech", tag_id=1401, order_index=15),
    Category(slug="culture", label="Culture", tag_id=596, order_index=16),
    Category(slug="world", label="World", tag_id=101970, order_index=17),
    Category(slug="economy", label="Economy", tag_id=100328, order_index=18),
    Category(slug="elections", label="Elections", tag_id=377, order_index=19),
    Category(slug="earnings", label="Earnings", order_index=20),
)

CATEGORY_BY_SLUG = {category.slug: category for category in CATEGORIES}
CATEGORY_TAG_IDS = {c.slug: c.tag_id for c in CATEGORIES if c.tag_id is not None}
SORT_KINDS = frozenset({"trending", "breaking", "new", "volume"})

CATEGORY_ALIASES: dict[str, tuple[str, ...]] = {
    "tech": ("technology",),
    "culture": ("pop-culture", "pop culture"),
    "economy": ("economics",),
    "elections": ("election", "global-elections"),
    "world": ("world-affairs",),
    "finance": ("business",),
    "earnings": ("earnings-calls",),
}


class Sport(NamedTuple):
    slug: str
    label: str
    search_terms: tuple[str, ...]


SPORTS: tuple[Sport, ...] = (
    Sport("nfl", "NFL", ("nfl", "american football")),
    Sport("nba", "NBA", ("nba", "basketball")),
    Sport("mlb", "MLB", ("mlb", "baseball")),
    Sport("nhl", "NHL", ("nhl", "hockey")),
    Sport("wnba", "WNBA", ("wnba",)),
    Sport("ufc", "UFC", ("ufc", "mma")),
    Sport("epl", "EPL", ("epl", "premier league", "english premier league")),
    Sport("cfb", "College Football", ("cfb", "college football", "ncaaf", "ncaa football")),
    Sport("cbb", "College Basketball", ("cbb", "college basketball", "ncaab", "ncaa basketball")),
    Sport("mls", "MLS", ("mls", "major league soccer")),
    Sport("la-liga", "La Liga", ("la liga", "laliga")),
    Sport("bundesliga", "Bundesliga", ("bundesliga",)),
    Sport("serie-a", "Serie A", ("serie a", "seriea")),
    Sport("ligue-1", "Ligue 1", ("ligue 1", "ligue1")),
    Sport("tennis", "Tennis", ("tennis",)),
    Sport("golf", "Golf", ("golf",)),
    Sport("boxing", "Boxing", ("boxing",)),
    Sport("formula-1", "Formula 1", ("formula 1", "formula1", "f1")),
    Sport("cricket", "Cricket", ("cricket",)),
)

SPORT_BY_SLUG = {sport.slug: sport for sport in SPORTS}


def normalize_slug(raw) -> str:
    return "-".join(str(raw or "").strip().lower().split())


def tag_slug(tag: dict) -> str:
    return str(tag.get("slug") or tag.get("label") or tag.get("name") or "").strip().lower()


def resolve_tag_id(slug: str, tags: list[dict], aliases: tuple[str, ...] = ()) -> int | None:
    """
    Find the tag id for a slug in Gamma's tag list.

    An exact match on the slug itself wins over any alias, and an exact
    alias match wins over partial matches. Otherwise the partial match
    with the shortest tag slug wins, the shortest being the parent tag
    rather than a narrow sub-tag.
    """
    own = _variants([normalize_slug(slug)])
    alias_variants = _variants([a.lower() for a in aliases])
    wanted_variants = own | alias_variants
    candidates = [tag for tag in tags if isinstance(tag, dict) and tag_id_of(tag) is not None]

    for exact in (own, alias_variants):
        for tag in candidates:
            if tag_slug(tag) in exact:
                return tag_id_of(tag)

    best: tuple[int, int] | None = None
    for tag in candidates:
        value = tag_slug(tag)
        if not value:
            continue
        if any(w in value or value in w for w in wanted_variants):
            if best is None or len(value) < best[0]:
                best = (len(value), tag_id_of(tag))
    return best[1] if best else None


def resolve_sport_tag_id(sport: Sport, tags: list[dict]) -> int | None:
    return resolve_tag_id(sport.slug, tags, aliases=sport.search_terms)


def _variants(values: list[str]) -> set[str]:
    return {v for v in values if v} | {v.replace("-", " ") for v in values if v}


def tag_id_of(tag: dict) -> int | None:
    try:
        return int(float(tag.get("id")))
    except (TypeError, ValueError, OverflowError):
        return None
