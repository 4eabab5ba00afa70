# tests/test_dartconnect_normalize.py

import html
import json
import threading
from datetime import date, time

import pytest

from etl.dartconnect import (
    DartConnectClient,
    DartConnectError,
    extract_page_props,
    normalize_competitors,
    normalize_history,
    normalize_leaderboard,
    normalize_lineups,
    normalize_match_player_stats,
    normalize_match_recap,
    normalize_roster,
    normalize_seasons,
    normalize_segments,
    parse_date,
    parse_venues,
    session_from_cookies,
    to_int,
)


def page(props):
    payload = html.escape(json.dumps({"component": "League", "props": props}), quote=True)
    return f'<html><body><div id="app" data-page="{payload}"></div></body></html>'


def raw_leg(game_name="501", winner=0, number=1, turns=None):
    return {
        "game_name": game_name,
        "set_game_number": number,
        "winner_index": winner,
        "home": {"ppr": "45.2", "darts_thrown": 18, "ending_points": 0},
        "away": {"ppr": "38.1", "darts_thrown": 18, "ending_points": 40},
        "turns": turns or [
            {
                "home": {"name": "Alice Archer", "turn_score": 140, "current_score": 361},
                "away": {"name": "Bob Brown", "turn_score": "60", "current_score": "441"},
            }
        ],
    }


class TestPageProps:
    def test_extracts_props_with_entities(self):
        props = extract_page_props(page({"segments": [], "note": "Tom & Jerry's \"Pub\""}))
        assert props["note"] == "Tom & Jerry's \"Pub\""

    def test_missing_attribute_raises(self):
        with pytest.raises(DartConnectError):
            extract_page_props("<html><body>maintenance</body></html>")

    def test_bad_json_raises(self):
        with pytest.raises(DartConnectError):
            extract_page_props('<div data-page="{not json"></div>')

    def test_missing_props_raises(self):
        payload = html.escape(json.dumps({"component": "x"}), quote=True)
        with pytest.raises(DartConnectError):
            extract_page_props(f'<div data-page="{payload}"></div>')


class TestSession:
    def test_session_from_cookies(self):
        s = session_from_cookies({"XSRF-TOKEN": "abc%3D", "tv_session_12": "zzz"})
        assert s.xsrf == "abc%3D"
        assert s.session_cookie == "tv_session_12=zzz"
        headers = s.headers("HaverDL")
        assert headers["X-XSRF-TOKEN"] == "abc="
        assert headers["Cookie"] == "XSRF-TOKEN=abc%3D; tv_session_12=zzz"

    def test_missing_cookie_raises(self):
        with pytest.raises(DartConnectError):
            session_from_cookies({"XSRF-TOKEN": "abc"})


class TestSeasonsAndStandings:
    def test_normalize_seasons(self):
        snap = normalize_seasons(
            {
                "leagueInfo": {"guid": "abcd"},
                "activeSeasons": [{"id": 300, "season": "Spring 2026", "start_date": "2026-01-06"}],
                "archivedSeasons": [{"id": "200", "season": "Fall 2025"}, {"season": "no id"}],
            }
        )
        assert snap.league_guid == "abcd"
        assert [s.id for s in snap.active_seasons] == [300]
        assert snap.active_seasons[0].start_date == date(2026, 1, 6)
        assert [s.id for s in snap.archived_seasons] == [200]
        assert [s.id for s in snap.all_seasons] == [300, 200]

    def test_normalize_competitors(self):
        comps = normalize_competitors(
            {
                "competitors": [
                    {"id": 1, "team_name": "Aces", "division_id": 9, "division": "A", "win": "7", "loss": 3, "league_points": 41},
                    {"id": 2, "name": "Bulls"},
                    {"name": "no id"},
                    "junk",
                ]
            }
        )
        assert [(c.id, c.name) for c in comps] == [(1, "Aces"), (2, "Bulls")]
        assert (comps[0].wins, comps[0].losses, comps[0].league_points) == (7, 3, 41)
        assert comps[0].division == "A"
        assert comps[1].wins is None


class TestLineups:
    MATCH = {
        "id": 5001,
        "left": {"id": 1, "team_name": "Aces", "captain_name": "Alice"},
        "right": {"id": 2, "team_name": "Bulls"},
        "division_id": 9,
        "division": "A",
        "sched_date": "2026-01-27",
        "sched_time": "19:30:00",
        "round_seq": 6,
        "status": "C",
        "home_score": 10,
        "away_score": 5,
    }

    @pytest.mark.parametrize(
        "raw",
        [
            [MATCH],
            {"matches": [MATCH]},
            {"data": [MATCH]},
            {"schedule": [MATCH]},
            {"divisions": [{"matches": [MATCH]}, {"name": "empty"}]},
        ],
    )
    def test_known_shapes(self, raw):
        rows = normalize_lineups(raw)
        assert len(rows) == 1
        m = rows[0]
        assert m.id == 5001
        assert (m.home.id, m.home.name, m.home.captain) == (1, "Aces", "Alice")
        assert (m.away.id, m.away.name) == (2, "Bulls")
        assert m.sched_date == date(2026, 1, 27)
        assert m.sched_time == time(19, 30)
        assert (m.round_seq, m.status, m.home_score, m.away_score) == (6, "C", 10, 5)

    def test_unknown_shape_is_empty(self):
        assert normalize_lineups({"weird": True}) == []
        assert normalize_lineups(None) == []


class TestRosterAndHistory:
    def test_roster(self):
        rows = normalize_roster(
            {
                "roster": [
                    {"id": 11, "player_first_name": " Alice ", "player_last_name": "Archer", "player_rank": 1},
                    {"id": 12, "player_first_name": "", "player_last_name": ""},
                ]
            },
            team_name="Aces",
        )
        assert len(rows) == 1
        assert (rows[0].dc_id, rows[0].name, rows[0].rank, rows[0].team_name) == ("11", "Alice Archer", 1, "Aces")
        assert rows[0].legs is None and rows[0].mpr is None

    def test_roster_carries_platform_aggregates(self):
        rows = normalize_roster(
            [
                {
                    "id": 11,
                    "player_first_name": "Alice",
                    "player_last_name": "Archer",
                    "matches": 6,
                    "legs": "42",
                    "wins": "25",
                    "points_01": "1,204",
                    "darts_01": 72,
                    "marks_cr": 40,
                    "darts_cr": "42",
                    "ppr": "50.17",
                    "mpr": "2.86",
                    "lw": 0.595,
                    "player_guid": "abc-123",
                }
            ]
        )
        r = rows[0]
        assert (r.matches, r.legs, r.wins) == (6, 42, 25)
        assert (r.points_01, r.darts_01, r.marks_cr, r.darts_cr) == (1204, 72, 40, 42)
        assert (r.ppr, r.mpr, r.leg_win_rate) == (50.17, 2.86, 0.595)
        assert r.player_guid == "abc-123"

    def test_history(self):
        rows = normalize_history(
            {
                "matches": [
                    {"match_id": "g-1", "match_start_date": "27 Jan 2026", "side": "Home", "other_team": "Bulls"},
                    {"match_start_date": "3 Feb 2026"},
                ]
            }
        )
        assert [(r.guid, r.week_key, r.side) for r in rows] == [("g-1", "27 Jan 2026", "Home")]


class TestSegments:
    def test_flat_list(self):
        sets = normalize_segments({"segments": [[raw_leg(), raw_leg(winner=1, number=2)]]})
        assert len(sets) == 1
        assert [l.game_number for l in sets[0]] == [1, 2]
        first = sets[0][0]
        assert first.winner_index == 0
        assert first.home.darts_thrown == 18
        assert first.away.ppr == 38.1
        assert first.turns[0].home.name == "Alice Archer"
        assert first.turns[0].home.score == 140
        assert first.turns[0].away.remaining == 441

    def test_object_keyed_by_game_type(self):
        sets = normalize_segments(
            {
                "segments": {
                    "cricket": [[raw_leg("Cricket")]],
                    "501": [[raw_leg("501"), raw_leg("501")], [raw_leg("501")]],
                }
            }
        )
        assert len(sets) == 3
        assert sets[0][0].game_name == "Cricket"

    def test_game_number_falls_back_to_position(self):
        legs = [raw_leg(), raw_leg(), raw_leg()]
        for l in legs:
            del l["set_game_number"]
        sets = normalize_segments({"segments": [legs]})
        assert [l.game_number for l in sets[0]] == [1, 2, 3]

    def test_bad_winner_is_none(self):
        sets = normalize_segments({"segments": [[raw_leg(winner=-1)]]})
        assert sets[0][0].winner_index is None

    def test_missing_segments(self):
        assert normalize_segments({}) == []


class TestRecap:
    def test_opponents_in_match_info(self):
        recap = normalize_match_recap(
            {"matchInfo": {"opponents": [{"name": "Aces", "score": 3}, {"name": "Bulls", "score": "1"}], "round_seq": 6}}
        )
        assert recap.opponents == [("Aces", 3), ("Bulls", 1)]
        assert recap.round_seq == 6

    def test_round_and_date_from_other_locations(self):
        recap = normalize_match_recap(
            {"leagueMatch": {"round": "4"}, "match_date": "2026-01-13", "opponents": [{"team_name": "Aces"}]}
        )
        assert recap.round_seq == 4
        assert recap.sched_date == date(2026, 1, 13)
        assert recap.opponents == [("Aces", None)]

    def test_nothing_found(self):
        recap = normalize_match_recap({})
        assert recap.opponents == []
        assert recap.round_seq is None


class TestPlayerStatsAndLeaderboard:
    def test_player_stats_list(self):
        rows = normalize_match_player_stats(
            {
                "playerStats": [
                    {
                        "name": "Alice Archer",
                        "cricket_average": "2.85",
                        "average_01": "0",
                        "points_scored_01": "1,204",
                        "darts_thrown_01": 72,
                        "cricket_marks_scored": 40,
                        "cricket_darts_thrown": 42,
                    }
                ]
            }
        )
        assert len(rows) == 1
        r = rows[0]
        assert r.cricket_average == 2.85
        assert r.points_01 == 1204
        assert (r.marks_cr, r.darts_cr) == (40, 42)

    def test_player_stats_keyed_by_team(self):
        rows = normalize_match_player_stats(
            {"players": {"home": [{"first_name": "Bob", "last_name": "Brown"}], "away": [{"player_name": "Ben Black"}]}}
        )
        assert sorted(r.name for r in rows) == ["Ben Black", "Bob Brown"]

    def test_leaderboard(self):
        rows = normalize_leaderboard(
            {"stats": [{"first_name": "Alice", "last_name": "Archer", "points_scored": 300, "darts_thrown": "300"}, {}]}
        )
        assert [(r.name, r.points, r.darts) for r in rows] == [("Alice Archer", 300, 300)]


def test_parse_venues():
    doc = """
    <div>
      <p>Home: Aces</p><p>Venue: The Oche</p><p>Address: 1 Main St</p><p>(555) 123-4567</p>
      <p>Home: Bulls</p><p>Address: no venue line</p>
    </div>
    """
    venues = parse_venues(doc)
    assert list(venues) == ["Aces"]
    assert venues["Aces"].name == "The Oche"
    assert venues["Aces"].address == "1 Main St"
    assert venues["Aces"].phone == "(555) 123-4567"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2026-01-27", date(2026, 1, 27)),
        ("2026-01-27T19:30:00Z", date(2026, 1, 27)),
        ("27 Jan 2026", date(2026, 1, 27)),
        ("3 Feb 2026", date(2026, 2, 3)),
        ("", None),
        ("TBD", None),
    ],
)
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_to_int():
    assert to_int("1,204") == 1204
    assert to_int("12.0") == 12
    assert to_int("") is None
    assert to_int(None) is None


class TestClientSessions:
    def test_each_thread_gets_its_own_session(self):
        made = []

        def factory():
            made.append(object())
            return made[-1]

        client = DartConnectClient(session_factory=factory)
        main_http = client.http
        assert client.http is main_http

        seen = []
        workers = [threading.Thread(target=lambda: seen.append(client.http)) for _ in range(2)]
        for t in workers:
            t.start()
        for t in workers:
            t.join()

        assert len(made) == 3
        assert len({id(h) for h in [main_http, *seen]}) == 3
