"""Tests for odds_ingest/consolidator.py.

Covers grouping by (oddID, line), price selection, alternate lines and
the per-row timestamp stamping.
"""

import json
import logging
from datetime import datetime, timezone

import pytest

from odds_ingest.consolidator import (
    consolidate_odds,
    consolidation_stats,
    extract_line_value,
    representative_price,
)

from .conftest import moneyline_home

FETCHED_AT = datetime(2025, 8, 14, 16, 0, tzinfo=timezone.utc)


def _by_key(rows):
    return {(row["oddid"], row["line"]): row for row in rows}


@pytest.mark.unit
class TestExtractLineValue:

    def test_priority_order(self):
        assert extract_line_value({"bookSpread": "-6.5", "fairSpread": "-7"}) == "-6.5"
        assert extract_line_value({"fairSpread": "-7", "bookOverUnder": "210"}) == "-7"
        assert extract_line_value({"bookOverUnder": "8.50", "fairOverUnder": "9"}) == "8.5"

    def test_empty_field_skipped(self):
        assert extract_line_value({"bookSpread": "", "fairSpread": "+3"}) == "3"

    def test_no_line(self):
        assert extract_line_value({"bookOdds": "-150"}) is None
        assert extract_line_value(None) is None


@pytest.mark.unit
class TestRepresentativePrice:

    def test_consensus_wins(self):
        assert representative_price(-110, {"fanduel": {"odds": -115}}) == -110

    def test_sportsbook_order_fallback(self):
        quotes = {"caesars": {"odds": -135}, "draftkings": {"odds": -140}}
        assert representative_price(None, quotes) == -140

    def test_unknown_books_alphabetical(self):
        quotes = {"zbook": {"odds": 120}, "abook": {"odds": 115}}
        assert representative_price(None, quotes) == 115

    def test_nothing_to_pick(self):
        assert representative_price(None, {}) is None


@pytest.mark.unit
class TestConsolidateOdds:
    """consolidate_odds() grouping and row shape."""

    def test_sample_map(self, sample_odds):
        rows = consolidate_odds("E1", sample_odds, FETCHED_AT)
        by_key = _by_key(rows)

        assert set(by_key) == {
            ("points-home-game-ml-home", None),
            ("points-away-game-sp-away", "1.5"),
            ("points-away-game-sp-away", "2.5"),
            ("points-all-game-ou-over", "8.5"),
            ("batting_hits-AARON_JUDGE_1_MLB-game-ou-over", "0.5"),
        }

        moneyline = by_key[("points-home-game-ml-home", None)]
        assert moneyline["bookodds"] == -150
        assert moneyline["line_key"] == ""
        assert json.loads(moneyline["sportsbooks"]) == {
            "draftkings": {"odds": -152, "link": None},
            "fanduel": {"odds": -148, "link": "https://fd.example/ml"},
        }

        assert by_key[("points-away-game-sp-away", "1.5")]["bookodds"] == 140
        alt = by_key[("points-away-game-sp-away", "2.5")]
        assert alt["bookodds"] == -190
        assert json.loads(alt["sportsbooks"]) == {"fanduel": {"odds": -190, "link": None}}

        prop = by_key[("batting_hits-AARON_JUDGE_1_MLB-game-ou-over", "0.5")]
        assert prop["bookodds"] == -140

    def test_unavailable_alt_line_dropped(self, sample_odds):
        rows = consolidate_odds("E1", sample_odds, FETCHED_AT)
        assert ("points-away-game-sp-away", "-1.5") not in _by_key(rows)

    def test_row_fields(self, sample_odds):
        for row in consolidate_odds("E1", sample_odds, FETCHED_AT):
            assert row["eventid"] == "E1"
            assert row["sportsbook"] == "SportsGameOdds"
            assert row["fetched_at"] == row["created_at"] == row["updated_at"] == FETCHED_AT

    def test_keys_unique(self, sample_odds):
        rows = consolidate_odds("E1", sample_odds, FETCHED_AT)
        keys = [(row["eventid"], row["oddid"], row["line"]) for row in rows]
        assert len(keys) == len(set(keys))

    def test_same_odd_and_line_merged(self):
        raw = {
            "a": dict(moneyline_home("-150", {"fanduel": {"odds": "-148"}}), oddID="ml"),
            "b": dict(moneyline_home(None, {"betmgm": {"odds": "-155"}}), oddID="ml"),
        }
        rows = consolidate_odds("E1", raw, FETCHED_AT)

        assert len(rows) == 1
        assert rows[0]["bookodds"] == -150
        assert set(json.loads(rows[0]["sportsbooks"])) == {"fanduel", "betmgm"}

    def test_first_consensus_price_wins(self):
        raw = {
            "a": dict(moneyline_home(None), oddID="ml"),
            "b": dict(moneyline_home("-120"), oddID="ml"),
            "c": dict(moneyline_home("-125"), oddID="ml"),
        }
        assert consolidate_odds("E1", raw, FETCHED_AT)[0]["bookodds"] == -120

    def test_different_lines_never_merge(self):
        raw = {
            "a": {"oddID": "points-home-game-sp-home", "betTypeID": "sp", "sideID": "home",
                  "bookOdds": "-110", "bookSpread": "-6.5"},
            "b": {"oddID": "points-home-game-sp-home", "betTypeID": "sp", "sideID": "home",
                  "bookOdds": "+105", "bookSpread": "-7"},
        }
        rows = _by_key(consolidate_odds("E1", raw, FETCHED_AT))

        assert rows[("points-home-game-sp-home", "-6.5")]["bookodds"] == -110
        assert rows[("points-home-game-sp-home", "-7")]["bookodds"] == 105

    def test_equivalent_line_spellings_merge(self):
        raw = {
            "a": {"oddID": "sp", "bookSpread": "-6.5", "bookOdds": "-110"},
            "b": {"oddID": "sp", "bookSpread": "-6.50", "byBookmaker": {"fanduel": {"odds": "-112"}}},
        }
        rows = consolidate_odds("E1", raw, FETCHED_AT)
        assert len(rows) == 1
        assert rows[0]["line"] == "-6.5"

    def test_out_of_range_line_does_not_drop_event(self):
        raw = {
            "x": {"oddID": "x", "bookSpread": "1e30", "bookOdds": "-110"},
            "ml": moneyline_home(),
        }
        rows = _by_key(consolidate_odds("E1", raw, FETCHED_AT))

        assert rows[("x", "1e30")]["bookodds"] == -110
        assert (moneyline_home()["oddID"], None) in rows

    def test_bookmaker_quote_at_own_line(self):
        raw = {
            "a": {"oddID": "sp", "bookSpread": "-6.5", "bookOdds": "-110",
                  "byBookmaker": {"fanduel": {"odds": "-105", "spread": "-7"}}},
        }
        rows = _by_key(consolidate_odds("E1", raw, FETCHED_AT))

        assert set(rows) == {("sp", "-6.5"), ("sp", "-7")}
        assert json.loads(rows[("sp", "-7")]["sportsbooks"]) == {"fanduel": {"odds": -105, "link": None}}

    def test_conflicting_labels_first_kept(self, caplog):
        raw = {
            "a": {"oddID": "ml", "betTypeID": "ml", "sideID": "home", "bookOdds": "-150"},
            "b": {"oddID": "ml", "betTypeID": "ml", "sideID": "away", "bookOdds": "+130"},
        }
        with caplog.at_level(logging.WARNING, logger='odds_ingest'):
            rows = consolidate_odds("E1", raw, FETCHED_AT)

        assert rows[0]["sideid"] == "home"
        assert "Conflicting sideID" in caplog.text

    def test_missing_labels_default(self):
        rows = consolidate_odds("E1", {"ml": {"oddID": "ml", "bookOdds": "-150"}}, FETCHED_AT)
        assert (rows[0]["marketname"], rows[0]["bettypeid"], rows[0]["sideid"]) == ("unknown", "unknown", "unknown")

    def test_map_key_used_when_odd_id_missing(self):
        rows = consolidate_odds("E1", {"points-home-game-ml-home": {"bookOdds": "-150"}}, FETCHED_AT)
        assert rows[0]["oddid"] == "points-home-game-ml-home"

    def test_unavailable_and_empty_quotes_skipped(self):
        raw = {"ml": moneyline_home("-150", {
            "fanduel": {"odds": "-148", "available": False},
            "draftkings": {"odds": ""},
            "caesars": "bad",
        })}
        rows = consolidate_odds("E1", raw, FETCHED_AT)
        assert json.loads(rows[0]["sportsbooks"]) == {}

    def test_non_dict_entries_skipped(self):
        rows = consolidate_odds("E1", {"bad": "-150", "ml": moneyline_home()}, FETCHED_AT)
        assert len(rows) == 1

    @pytest.mark.parametrize("raw_odds", [{}, None])
    def test_empty_map(self, raw_odds):
        assert consolidate_odds("E1", raw_odds, FETCHED_AT) == []

    def test_stats(self):
        raw = {
            "a": dict(moneyline_home(), oddID="ml"),
            "b": dict(moneyline_home(), oddID="ml"),
            "c": {"oddID": "ou", "bookOverUnder": "8.5", "bookOdds": "-110"},
            "d": {"oddID": "ou", "bookOverUnder": "8.5", "bookOdds": "-110"},
        }
        rows = consolidate_odds("E1", raw, FETCHED_AT)
        assert consolidation_stats(raw, rows) == {
            "raw_entries": 4,
            "consolidated_rows": 2,
            "reduction_pct": 50.0,
        }
        assert consolidation_stats({}, [])["reduction_pct"] == 0.0
