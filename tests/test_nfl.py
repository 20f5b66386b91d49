from datetime import date, datetime, timezone

from polysight.core import nfl


def test_week_extracted_from_title():
    assert nfl.extract_week("Chiefs vs Bills Week 5") == 5
    assert nfl.extract_week("nfl-w7-kc-buf") == 7
    assert nfl.extract_week("Week 19 playoff") is None
    assert nfl.extract_week("no week here") is None


def test_week_from_tags():
    assert nfl.extract_week_from_tags(["sports", "week 3"]) == 3
    assert nfl.extract_week_from_tags(["nfl"]) is None


def test_content_rejects_esports_and_other_sports():
    assert nfl.nfl_content_verdict("t1 vs gen.g league of legends worlds") == "esports"
    assert nfl.nfl_content_verdict("lakers vs celtics nba") == "other_sport"
    assert nfl.nfl_content_verdict("will it rain in london") == "not_nfl"
    assert nfl.nfl_content_verdict("chiefs vs bills") is None
    assert nfl.nfl_content_verdict("game winner", ("nfl-kc-buf-2025-10-12",)) is None


def test_team_words_need_boundaries():
    assert not nfl.mentions_nfl("the jetstream forecast")
    assert nfl.mentions_nfl("will the jets win")


def test_prop_detection():
    assert nfl.is_prop_question("Will Patrick Mahomes win MVP?")
    assert nfl.is_prop_question("Who will win the Super Bowl championship?")
    assert nfl.is_prop_question("Will the Chiefs make the playoffs?")
    assert not nfl.is_prop_question("Chiefs vs Bills")
    assert not nfl.is_prop_question("Chiefs vs Bills: O/U 47.5")
    assert not nfl.is_prop_question("AFC Championship: Chiefs vs Bills")


def test_season_start_is_clamped_thursday():
    # Sept 1 2025 is a Monday; the first Thursday (4th) clamps to the 5th.
    assert nfl.season_start(2025) == date(2025, 9, 5)
    # Sept 1 2022 is a Thursday; clamped up to the 5th.
    assert nfl.season_start(2022) == date(2022, 9, 5)
    # Sept 1 2027 is a Wednesday; the 2nd clamps to the 5th.
    assert nfl.season_start(2027) == date(2027, 9, 5)
    # Sept 1 2024 is a Sunday; first Thursday is the 5th.
    assert nfl.season_start(2024) == date(2024, 9, 5)


def test_current_week():
    assert nfl.current_week(datetime(2025, 10, 15, tzinfo=timezone.utc)) == 6
    assert nfl.current_week(datetime(2025, 6, 1, tzinfo=timezone.utc)) == 1
    # January belongs to the previous season.
    assert nfl.current_week(datetime(2026, 1, 20, tzinfo=timezone.utc)) == 20
    assert nfl.current_week(datetime(2026, 2, 28, tzinfo=timezone.utc)) == 22


def test_week_window():
    start, end = nfl.week_window(6, datetime(2025, 10, 15, tzinfo=timezone.utc))
    assert start == datetime(2025, 10, 10, tzinfo=timezone.utc)
    assert (end - start).days == 7
