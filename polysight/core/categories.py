import logging
from collections import Counter

from ..polymarket.client import GammaClient
from ..polymarket.schemas import Category, CategoryCount, SportsSubcategory
from ..settings import settings
from .normalize import flatten_events
from .tags import SPORTS, normalize_slug, resolve_sport_tag_id, tag_id_of, tag_slug

logger = logging.getLogger(__name__)

GENERIC_TAGS = frozenset(
    {
        "all",
        "featured",
        "trending",
        "breaking",
        "new",
        "hide-from-new",
        "recurring",
        "parlays",
        "games",
        "daily",
        "weekly",
        "monthly",
    }
)

COUNTRY_TAGS = frozenset(
    {
        "us", "usa", "united-states", "uk", "united-kingdom", "canada", "mexico",
        "brazil", "argentina", "france", "germany", "italy", "spain", "portugal",
        "netherlands", "belgium", "poland", "ukraine", "russia", "china", "japan",
        "south-korea", "north-korea", "india", "pakistan", "iran", "iraq", "israel",
        "gaza", "palestine", "syria", "turkey", "saudi-arabia", "egypt", "venezuela",
        "australia", "south-africa", "nigeria", "taiwan", "vietnam", "chile",
        "colombia", "peru", "romania", "hungary", "greece", "ireland", "sweden",
        "norway", "denmark", "finland", "switzerland", "austria", "indonesia",
        "czech-republic", "philippines", "thailand", "malaysia", "singapore",
        "new-zealand", "saudi", "arabia", "arab", "emirates", "qatar", "kuwait",
        "bahrain", "oman",
    }
)

LEAGUE_SLUGS = frozenset({"nfl", "nba", "mlb", "nhl", "ufc", "wnba", "cbb", "cfb"})


def count_categories(events: list[dict], top_n: int | None = None) -> list[CategoryCount]:
    """
    Count tags over live markets, one count per market per tag.

    Each market counts the union of its own and its event's tags.
    """
    top_n = settings.CATEGORIES_TOP_N if top_n is None else top_n
    counts: Counter = Counter()
    labels: dict[str, str] = {}
    for market in flatten_events(events):
        if market.closed or not market.active:
            continue
        seen: set[str] = set()
        for tag in list(market.event_tags) + list(market.tags):
            if not isinstance(tag, dict):
                continue
            slug = normalize_slug(tag_slug(tag))
            if not slug or slug in seen or _is_excluded(slug):
                continue
            seen.add(slug)
            counts[slug] += 1
            labels.setdefault(slug, str(tag.get("label") or tag.get("name") or slug))
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[: max(top_n, 0)]
    return [CategoryCount(slug=slug, label=labels[slug], count=count) for slug, count in ranked]


async def top_categories(client: GammaClient | None = None, top_n: int | None = None) -> list[CategoryCount]:
    client = client or GammaClient()
    events = await client.fetch_events()
    categories = count_categories(events, top_n)
    logger.info("categories_counted events=%s returned=%s", len(events), len(categories))
    return categories


def match_sports(tags: list[dict]) -> list[SportsSubcategory]:
    subcategories = [
        SportsSubcategory(
            id=sport.slug,
            label=sport.label,
            slug=sport.slug,
            tag_id=resolve_sport_tag_id(sport, tags),
        )
        for sport in SPORTS
    ]
    return sorted(subcategories, key=lambda s: s.label.lower())


async def sports_subcategories(client: GammaClient | None = None) -> list[SportsSubcategory]:
    client = client or GammaClient()
    tags = await client.fetch_tags()
    subcategories = match_sports(tags)
    logger.info(
        "sports_subcategories_resolved tags=%s matched=%s",
        len(tags),
        sum(1 for s in subcategories if s.tag_id is not None),
    )
    return subcategories


def tag_categories(tags: list[dict], seen: set[str], limit: int = 10) -> list[Category]:
    """
    Pick extra browsable categories from Gamma's tag list.

    Skips slugs already in ``seen``, generic and country tags, slugs of
    more than two words or hyphen parts, and single-word labels that
    start with a capital (people, teams, places) other than league names.
    Picked categories are ordered after the static ones, from 100 up.
    """
    picked: list[Category] = []
    for tag in tags:
        if len(picked) >= limit:
            break
        if not isinstance(tag, dict) or tag_id_of(tag) is None:
            continue
        raw = tag_slug(tag)
        slug = normalize_slug(raw)
        if not slug or slug in seen or _is_excluded(slug):
            continue
        words = raw.split()
        if len(words) > 2 or len(slug.split("-")) > 2:
            continue
        label = str(tag.get("label") or tag.get("name") or raw).strip()
        if label[:1].isupper() and len(words) == 1 and slug not in LEAGUE_SLUGS:
            continue
        seen.add(slug)
        picked.append(
            Category(
                slug=slug,
                label=label[:1].upper() + label[1:],
                tag_id=tag_id_of(tag),
                order_index=100 + len(picked),
            )
        )
    return picked


def _is_excluded(slug: str) -> bool:
    return slug in GENERIC_TAGS or slug in COUNTRY_TAGS
