from polysight.core.tags import (
    CATEGORY_ALIASES,
    CATEGORY_TAG_IDS,
    SPORT_BY_SLUG,
    normalize_slug,
    resolve_sport_tag_id,
    resolve_tag_id,
)


def test_static_category_tag_ids():
    assert CATEGORY_TAG_IDS["politics"] == 2
    assert CATEGORY_TAG_IDS["sports"] == 1
    assert CATEGORY_TAG_IDS["crypto"] == 21
    assert "earnings" not in CATEGORY_TAG_IDS


def test_exact_match_wins_over_partial():
    tags = [
        {"id": "900", "slug": "earnings-calls"},
        {"id": "901", "slug": "earnings"},
    ]
    assert resolve_tag_id("earnings", tags) == 901


def test_shortest_partial_match_is_parent_tag():
    tags = [
        {"id": 10, "slug": "nfl-draft-2025"},
        {"id": 11, "slug": "nfl-games"},
        {"id": 12, "slug": "nfls"},
    ]
    assert resolve_tag_id("nfl", tags) == 12


def test_unmatched_and_malformed_tags():
    tags = [{"slug": "politics"}, {"id": "abc", "slug": "politics"}, "junk"]
    assert resolve_tag_id("politics", tags) is None
    assert resolve_tag_id("gardening", [{"id": 3, "slug": "sports"}]) is None


def test_sport_search_terms_resolve():
    tags = [{"id": 450, "label": "NFL"}, {"id": 745, "slug": "nba"}, {"id": 99, "label": "Premier League"}]
    assert resolve_sport_tag_id(SPORT_BY_SLUG["nfl"], tags) == 450
    assert resolve_sport_tag_id(SPORT_BY_SLUG["epl"], tags) == 99
    assert resolve_sport_tag_id(SPORT_BY_SLUG["cricket"], tags) is None


def test_normalize_slug():
    assert normalize_slug("  Pop Culture ") == "pop-culture"
    assert normalize_slug(None) == ""


def test_own_slug_beats_alias_listed_first():
    tags = [
        {"id": 900, "slug": "earnings-calls"},
        {"id": 901, "slug": "earnings"},
    ]
    assert resolve_tag_id("earnings", tags, aliases=CATEGORY_ALIASES["earnings"]) == 901

    tags = [{"id": 5, "slug": "technology"}, {"id": 1401, "slug": "tech"}]
    assert resolve_tag_id("tech", tags, aliases=CATEGORY_ALIASES["tech"]) == 1401


def test_exact_alias_beats_partial_match():
    tags = [{"id": 7, "slug": "tech-news"}, {"id": 8, "slug": "technology"}]
    assert resolve_tag_id("tech", tags, aliases=CATEGORY_ALIASES["tech"]) == 8
