"""
NFL reference data and text heuristics.

Gamma tags NFL games only with the generic Sports tag, so NFL membership,
week and game-vs-prop are inferred from titles and slugs. The tables below
are a frozen heuristic: they are tuned for the markets Polymarket lists,
not a model of the sport, and misclassifications are expected.
"""

import re
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple

MIN_WEEK = 1
MAX_REGULAR_WEEK = 18
MAX_WEEK = 22
SEASON_START_MIN_DAY = 5
SEASON_START_MAX_DAY = 10


class Team(NamedTuple):
    name: str
    city: str
    abbr: str


NFL_TEAMS: tuple[Team, ...] = (
    Team("cardinals", "arizona", "ari"),
    Team("falcons", "atlanta", "atl"),
    Team("ravens", "baltimore", "bal"),
    Team("bills", "buffalo", "buf"),
    Team("panthers", "carolina", "car"),
    Team("bears", "chicago", "chi"),
    Team("bengals", "cincinnati", "cin"),
    Team("browns", "cleveland", "cle"),
    Team("cowboys", "dallas", "dal"),
    Team("broncos", "denver", "den"),
    Team("lions", "detroit", "det"),
    Team("packers", "green bay", "gb"),
    Team("texans", "houston", "hou"),
    Team("colts", "indianapolis", "ind"),
    Team("jaguars", "jacksonville", "jax"),
    Team("chiefs", "kansas city", "kc"),
    Team("raiders", "las vegas", "lv"),
    Team("chargers", "los angeles", "lac"),
    Team("rams", "los angeles", "lar"),
    Team("dolphins", "miami", "mia"),
    Team("vikings", "minnesota", "min"),
    Team("patriots", "new england", "ne"),
    Team("saints", "new orleans", "no"),
    Team("giants", "new york", "nyg"),
    Team("jets", "new york", "nyj"),
    Team("eagles", "philadelphia", "phi"),
    Team("steelers", "pittsburgh", "pit"),
    Team("49ers", "san francisco", "sf"),
    Team("seahawks", "seattle", "sea"),
    Team("buccaneers", "tampa bay", "tb"),
    Team("titans", "tennessee", "ten"),
    Team("commanders", "washington", "was"),
)

ESPORTS_KEYWORDS: tuple[str, ...] = (
    "esports",
    "e-sports",
    "league of legends",
    "lol",
    "dota",
    "dota 2",
    "counter-strike",
    "counter strike",
    "cs2",
    "csgo",
    "cs:go",
    "valorant",
    "overwatch",
    "call of duty",
    "rocket league",
    "starcraft",
    "rainbow six",
    "fortnite",
    "lck",
    "lpl",
    "lec",
    "lcs",
    "iem",
    "blast premier",
    "pgl",
    "vct",
)

OTHER_SPORT_KEYWORDS: tuple[str, ...] = (
    "nba",
    "wnba",
    "basketball",
    "nhl",
    "hockey",
    "stanley cup",
    "mlb",
    "baseball",
    "world series",
    "soccer",
    "premier league",
    "epl",
    "la liga",
    "laliga",
    "serie a",
    "bundesliga",
    "ligue 1",
    "champions league",
    "europa league",
    "uefa",
    "fifa",
    "mls",
    "world cup",
    "ncaa",
    "ncaaf",
    "ncaab",
    "cfb",
    "cbb",
    "college football",
    "college basketball",
    "heisman",
    "march madness",
    "bowl game",
    "ufc",
    "mma",
    "boxing",
    "tennis",
    "golf",
    "pga",
    "formula 1",
    "f1",
    "nascar",
    "cricket",
    "rugby",
)

AWARD_PATTERNS: tuple[str, ...] = (
    r"\bmvp\b",
    r"\bmost valuable player\b",
    r"\brookie of the year\b",
    r"\bplayer of the year\b",
    r"\bcoach of the year\b",
    r"\bcomeback player\b",
    r"\bleaders?\b",
    r"\bawards?\b",
)
CHAMPION_PATTERN = r"\bchampion(s|ship)?\b"
GAME_INDICATOR_PATTERNS: tuple[str, ...] = (
    r"\bvs\.?(?=\s|$)",
    r"\bversus\b",
    r"\bmoneyline\b",
    r"\bspread\b",
    r"\btotals?\b",
    r"\bo/u\b",
    r"\bover/under\b",
)
WEEK_QUALIFIER_PATTERN = r"\bweek\s*\d{1,2}\b"

_WEEK_PATTERNS = (
    re.compile(r"\bweek[\s\-_]*(\d{1,2})\b"),
    re.compile(r"\bw(\d{1,2})\b"),
)
_AWARD_RE = tuple(re.compile(p) for p in AWARD_PATTERNS)
_GAME_RE = tuple(re.compile(p) for p in GAME_INDICATOR_PATTERNS)
_CHAMPION_RE = re.compile(CHAMPION_PATTERN)
_WEEK_QUALIFIER_RE = re.compile(WEEK_QUALIFIER_PATTERN)
_NFL_TOKEN_RE = re.compile(r"\bnfl\b")


def _phrase_regex(phrases) -> re.Pattern:
    ordered = sorted(set(phrases), key=len, reverse=True)
    alternatives = "|".join(re.escape(p) for p in ordered)
    return re.compile(rf"(?<![a-z0-9])(?:{alternatives})(?![a-z0-9])")


_ESPORTS_RE = _phrase_regex(ESPORTS_KEYWORDS)
_OTHER_SPORT_RE = _phrase_regex(OTHER_SPORT_KEYWORDS)
_TEAM_WORD_RE = _phrase_regex([t.name for t in NFL_TEAMS] + [t.city for t in NFL_TEAMS])
_TEAM_ABBRS = frozenset(t.abbr for t in NFL_TEAMS)


def _clean(text: str) -> str:
    return re.sub(r"[\-_]+", " ", (text or "").lower())


def is_esports(text: str) -> bool:
    return bool(_ESPORTS_RE.search(_clean(text)))


def is_other_sport(text: str) -> bool:
    return bool(_OTHER_SPORT_RE.search(_clean(text)))


def mentions_nfl(text: str, slugs: tuple[str, ...] = ()) -> bool:
    """Literal "nfl", a team name or city in the text, or a team abbreviation as a slug token."""
    cleaned = _clean(text)
    if _NFL_TOKEN_RE.search(cleaned) or _TEAM_WORD_RE.search(cleaned):
        return True
    for slug in slugs:
        tokens = re.split(r"[\-_\s]+", (slug or "").lower())
        if any(token in _TEAM_ABBRS for token in tokens):
            return True
    return False


def nfl_content_verdict(text: str, slugs: tuple[str, ...] = ()) -> str | None:
    """Return None when the text reads as NFL, else the rejection reason."""
    if is_esports(text):
        return "esports"
    if is_other_sport(text):
        return "other_sport"
    if mentions_nfl(text, slugs):
        return None
    return "not_nfl"


def extract_week(*texts: str) -> int | None:
    for text in texts:
        cleaned = (text or "").lower()
        for pattern in _WEEK_PATTERNS:
            for match in pattern.finditer(cleaned):
                week = int(match.group(1))
                if MIN_WEEK <= week <= MAX_REGULAR_WEEK:
                    return week
    return None


def extract_week_from_tags(tag_texts: list[str]) -> int | None:
    for text in tag_texts:
        if "week" not in text:
            continue
        digits = re.search(r"(\d{1,2})", text)
        if digits:
            week = int(digits.group(1))
            if MIN_WEEK <= week <= MAX_REGULAR_WEEK:
                return week
    return None


def is_prop_question(question: str) -> bool:
    q = (question or "").lower()
    if any(pattern.search(q) for pattern in _AWARD_RE):
        return True
    has_game_indicator = any(pattern.search(q) for pattern in _GAME_RE)
    if _CHAMPION_RE.search(q) and not (has_game_indicator or _WEEK_QUALIFIER_RE.search(q)):
        return True
    # "Will X happen?" without a matchup, line or total is always a prop.
    return not has_game_indicator


def season_start(year: int) -> date:
    """First Thursday on or after Sept 1, with the day clamped to 5..10."""
    first = date(year, 9, 1)
    offset = (3 - first.weekday()) % 7
    day = min(max(1 + offset, SEASON_START_MIN_DAY), SEASON_START_MAX_DAY)
    return date(year, 9, day)


def season_year(today: date) -> int:
    if today.month <= 2:
        return today.year - 1
    return today.year


def current_week(now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    today = now.date()
    start = season_start(season_year(today))
    if today < start:
        return MIN_WEEK
    week = (today - start).days // 7 + 1
    return min(max(week, MIN_WEEK), MAX_WEEK)


def week_window(week: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    start_day = season_start(season_year(now.date())) + timedelta(days=7 * (week - 1))
    start = datetime(start_day.year, start_day.month, start_day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)
