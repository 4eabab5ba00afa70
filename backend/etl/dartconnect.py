"""
DartConnect client.

Thin typed wrappers around the platform's HTTP surface:
- tv.dartconnect.com league pages (Inertia app state in a `data-page` attribute)
- the CSRF-protected JSON POST API (rosters, match history, schedule)
- recap.dartconnect.com pages (game segments, match scores, per-player stats)
- the public leaderboard endpoint
- a best-effort venue scrape of an unrelated schedule page

Every response shape the platform is known to return is normalised here into
the dataclasses below, so nothing downstream sees raw payloads.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import unquote

import requests
from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

DC_BASE = os.getenv("DC_BASE", "https://tv.dartconnect.com")
DC_RECAP_BASE = os.getenv("DC_RECAP_BASE", "https://recap.dartconnect.com")
DC_LEAGUE_ID = os.getenv("DC_LEAGUE_ID", "HaverDL")
DC_LEAGUE_GUID = os.getenv("DC_LEAGUE_GUID", "29qj")
DC_TIMEOUT_SECONDS = float(os.getenv("DC_TIMEOUT_SECONDS", "30"))
VENUE_SCHEDULE_URL = os.getenv("VENUE_SCHEDULE_URL", "")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/121.0.0.0 Safari/537.36"
)

HTML_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml",
}

PHASE_REGULAR = "REG"
PHASE_POST = "POST"


class DartConnectError(Exception):
    """The platform returned an error or a payload we cannot read."""


# ---------------------------
# Canonical types
# ---------------------------
@dataclass
class DCSession:
    xsrf: str
    session_cookie: str

    def headers(self, league_id: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-XSRF-TOKEN": unquote(self.xsrf),
            "Cookie": f"XSRF-TOKEN={self.xsrf}; {self.session_cookie}",
            "User-Agent": USER_AGENT,
            "Referer": f"{DC_BASE}/league/{league_id}",
        }


@dataclass
class SeasonInfo:
    id: int
    name: str
    start_date: Optional[date] = None
    league_id: str = DC_LEAGUE_ID


@dataclass
class LeagueSnapshot:
    league_guid: str
    active_seasons: List[SeasonInfo]
    archived_seasons: List[SeasonInfo]

    @property
    def all_seasons(self) -> List[SeasonInfo]:
        return self.active_seasons + self.archived_seasons


@dataclass
class Competitor:
    id: int
    name: str
    division_id: Optional[int] = None
    division: Optional[str] = None
    wins: Optional[int] = None
    losses: Optional[int] = None
    league_points: Optional[int] = None


@dataclass
class ScheduleTeam:
    id: Optional[int]
    name: str
    captain: Optional[str] = None


@dataclass
class ScheduleMatch:
    id: Optional[int]
    home: ScheduleTeam
    away: ScheduleTeam
    division_id: Optional[int] = None
    division: Optional[str] = None
    sched_date: Optional[date] = None
    sched_time: Optional[time] = None
    pretty_date: Optional[str] = None
    round_seq: Optional[int] = None
    season_status: Optional[str] = None
    status: str = "P"
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    dc_match_id: Optional[int] = None


@dataclass
class RosterEntry:
    """One leaderboard-shaped row from a team's roster page."""

    dc_id: Optional[str]
    name: str
    rank: Optional[int] = None
    team_name: str = ""

    # platform aggregates for the team/season/phase
    matches: Optional[int] = None
    legs: Optional[int] = None
    wins: Optional[int] = None
    points_01: Optional[int] = None
    darts_01: Optional[int] = None
    marks_cr: Optional[int] = None
    darts_cr: Optional[int] = None
    ppr: Optional[float] = None
    mpr: Optional[float] = None
    leg_win_rate: Optional[float] = None
    player_guid: Optional[str] = None


@dataclass
class HistoryEntry:
    guid: str
    week_key: str
    side: str
    other_team: Optional[str] = None
    outcome: Optional[str] = None
    round_seq: Optional[int] = None


@dataclass
class TurnSide:
    name: Optional[str]
    # number for 01 games, hit notation for cricket
    score: Any = None
    remaining: Optional[int] = None


@dataclass
class Turn:
    home: Optional[TurnSide] = None
    away: Optional[TurnSide] = None


@dataclass
class LegSide:
    ppr: Optional[float] = None
    darts_thrown: Optional[int] = None
    ending_points: Optional[int] = None


@dataclass
class Leg:
    game_name: str
    # 1 = first leg, 3 = tiebreaker
    game_number: int
    winner_index: Optional[int]
    home: LegSide = field(default_factory=LegSide)
    away: LegSide = field(default_factory=LegSide)
    turns: List[Turn] = field(default_factory=list)
    set_index: Optional[int] = None


@dataclass
class MatchRecap:
    opponents: List[Tuple[str, Optional[int]]] = field(default_factory=list)
    round_seq: Optional[int] = None
    sched_date: Optional[date] = None


@dataclass
class MatchPlayerStat:
    name: str
    cricket_average: Optional[float] = None
    average_01: Optional[float] = None
    points_01: Optional[int] = None
    darts_01: Optional[int] = None
    marks_cr: Optional[int] = None
    darts_cr: Optional[int] = None


@dataclass
class LeaderboardRow:
    name: str
    points: int
    darts: int


@dataclass
class Venue:
    team_name: str
    name: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None


# ---------------------------
# Value helpers
# ---------------------------
def to_int(val: Any) -> Optional[int]:
    """
    Convert a value to an integer where possible.
    Returns None for empty / non-numeric inputs. Thousands separators are stripped.
    """
    if val is None or isinstance(val, bool):
        return None
    if isinstance(val, int):
        return val
    if isinstance(val, float):
        return int(val)
    s = str(val).strip().replace(",", "")
    if s.lstrip("-").isdigit():
        return int(s)
    try:
        return int(float(s))
    except ValueError:
        return None


def to_float(val: Any) -> Optional[float]:
    if val is None or isinstance(val, bool):
        return None
    try:
        return float(str(val).replace(",", ""))
    except ValueError:
        return None


def pick(row: Mapping[str, Any], *keys: str) -> Any:
    """
    Return the first non-null value found in `row` for any of the provided keys.

    Lets the normalisers tolerate renamed fields across platform versions.
    """
    for k in keys:
        if k in row and row[k] is not None:
            return row[k]
    return None


_DATE_FORMATS = ("%Y-%m-%d", "%d %b %Y", "%b %d, %Y", "%m/%d/%Y", "%A, %B %d, %Y")


def parse_date(value: Any) -> Optional[date]:
    """Parse the date spellings the platform uses ("2026-01-27", "27 Jan 2026", ...)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if len(s) > 10 and s[4] == "-" and s[10] in "T ":
        s = s[:10]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def parse_time(value: Any) -> Optional[time]:
    if value is None:
        return None
    if isinstance(value, time):
        return value
    s = str(value).strip()
    for fmt in ("%H:%M:%S", "%H:%M", "%I:%M %p", "%I:%M%p"):
        try:
            return datetime.strptime(s, fmt).time()
        except ValueError:
            continue
    return None


def full_name(first: Any, last: Any) -> str:
    return " ".join(p for p in (str(first or "").strip(), str(last or "").strip()) if p)


# ---------------------------
# data-page extraction
# ---------------------------
def extract_page_props(html: str) -> Dict[str, Any]:
    """
    Pull the Inertia `props` object out of a `data-page` attribute.

    Raises DartConnectError when the attribute is missing or unreadable:
    that means the platform changed shape and the run should know.
    """
    soup = BeautifulSoup(html, "html.parser")
    node = soup.find(attrs={"data-page": True})
    if node is None:
        raise DartConnectError("Could not find data-page in DartConnect HTML")
    try:
        payload = json.loads(node["data-page"])
    except ValueError as e:
        raise DartConnectError(f"data-page is not valid JSON: {e}") from e
    props = payload.get("props") if isinstance(payload, dict) else None
    if not isinstance(props, dict):
        raise DartConnectError("data-page payload has no props object")
    return props


def session_from_cookies(cookies: Mapping[str, str]) -> DCSession:
    """Build a DCSession from response cookies (XSRF-TOKEN + tv_session_*)."""
    xsrf = cookies.get("XSRF-TOKEN")
    session_cookie = None
    for name, value in cookies.items():
        if name.startswith("tv_session"):
            session_cookie = f"{name}={value}"
            break
    if not xsrf or not session_cookie:
        raise DartConnectError("DartConnect did not set XSRF-TOKEN / session cookies")
    return DCSession(xsrf=xsrf, session_cookie=session_cookie)


# ---------------------------
# Shape normalisers
# ---------------------------
def normalize_seasons(props: Mapping[str, Any]) -> LeagueSnapshot:
    def _season(raw: Mapping[str, Any]) -> Optional[SeasonInfo]:
        sid = to_int(raw.get("id"))
        if sid is None:
            return None
        return SeasonInfo(
            id=sid,
            name=str(pick(raw, "season", "name") or sid),
            start_date=parse_date(raw.get("start_date")),
            league_id=str(raw.get("league_id") or DC_LEAGUE_ID),
        )

    active = [s for s in (_season(r) for r in props.get("activeSeasons") or []) if s]
    archived = [s for s in (_season(r) for r in props.get("archivedSeasons") or []) if s]
    info = props.get("leagueInfo") or {}
    return LeagueSnapshot(
        league_guid=str(info.get("guid") or DC_LEAGUE_GUID),
        active_seasons=active,
        archived_seasons=archived,
    )


def normalize_competitors(props: Mapping[str, Any]) -> List[Competitor]:
    out = []
    for raw in props.get("competitors") or []:
        if not isinstance(raw, dict):
            continue
        team_id = to_int(raw.get("id"))
        if not team_id:
            continue
        out.append(
            Competitor(
                id=team_id,
                name=str(pick(raw, "team_name", "name") or ""),
                division_id=to_int(raw.get("division_id")),
                division=str(raw["division"]) if raw.get("division") is not None else None,
                wins=to_int(pick(raw, "win", "wins")),
                losses=to_int(pick(raw, "loss", "losses")),
                league_points=to_int(raw.get("league_points")),
            )
        )
    return out


def _schedule_team(raw: Any) -> ScheduleTeam:
    raw = raw if isinstance(raw, dict) else {}
    return ScheduleTeam(
        id=to_int(raw.get("id")),
        name=str(pick(raw, "team_name", "name") or ""),
        captain=raw.get("captain_name"),
    )


def normalize_lineups(raw: Any) -> List[ScheduleMatch]:
    """
    Flatten the schedule endpoint into ScheduleMatch rows.

    Known shapes: a bare list, a list under matches/data/lineups/schedule, or
    {"divisions": [{"matches": [...]}]}.
    """
    rows: List[Any] = []
    if isinstance(raw, list):
        rows = raw
    elif isinstance(raw, dict):
        for key in ("matches", "data", "lineups", "schedule"):
            if isinstance(raw.get(key), list):
                rows = raw[key]
                break
        else:
            if isinstance(raw.get("divisions"), list):
                for d in raw["divisions"]:
                    if isinstance(d, dict) and isinstance(d.get("matches"), list):
                        rows.extend(d["matches"])
            else:
                logger.warning("lineups: unrecognised response shape %s", json.dumps(raw)[:300])

    out = []
    for m in rows:
        if not isinstance(m, dict):
            continue
        out.append(
            ScheduleMatch(
                id=to_int(pick(m, "id", "league_match_id")),
                home=_schedule_team(m.get("left")),
                away=_schedule_team(m.get("right")),
                division_id=to_int(m.get("division_id")),
                division=m.get("division"),
                sched_date=parse_date(m.get("sched_date")),
                sched_time=parse_time(m.get("sched_time")),
                pretty_date=m.get("pretty_date"),
                round_seq=to_int(m.get("round_seq")),
                season_status=m.get("season_status"),
                status=str(m.get("status") or "P"),
                home_score=to_int(m.get("home_score")),
                away_score=to_int(m.get("away_score")),
                dc_match_id=to_int(m.get("dc_match_id")),
            )
        )
    return out


def normalize_roster(raw: Any, team_name: str = "") -> List[RosterEntry]:
    rows = raw.get("roster") if isinstance(raw, dict) else raw
    out = []
    for p in rows or []:
        if not isinstance(p, dict):
            continue
        name = full_name(p.get("player_first_name"), p.get("player_last_name"))
        if not name:
            continue
        out.append(
            RosterEntry(
                dc_id=str(p["id"]) if p.get("id") is not None else None,
                name=name,
                rank=to_int(p.get("player_rank")),
                team_name=team_name,
                matches=to_int(p.get("matches")),
                legs=to_int(p.get("legs")),
                wins=to_int(p.get("wins")),
                points_01=to_int(p.get("points_01")),
                darts_01=to_int(p.get("darts_01")),
                marks_cr=to_int(p.get("marks_cr")),
                darts_cr=to_int(p.get("darts_cr")),
                ppr=to_float(p.get("ppr")),
                mpr=to_float(p.get("mpr")),
                leg_win_rate=to_float(p.get("lw")),
                player_guid=p.get("player_guid") or None,
            )
        )
    return out


def normalize_history(raw: Any) -> List[HistoryEntry]:
    rows = raw.get("matches") if isinstance(raw, dict) else raw
    out = []
    for e in rows or []:
        if not isinstance(e, dict) or not e.get("match_id"):
            continue
        out.append(
            HistoryEntry(
                guid=str(e["match_id"]),
                week_key=str(e.get("match_start_date") or ""),
                side=str(e.get("side") or ""),
                other_team=e.get("other_team"),
                outcome=e.get("outcome"),
                round_seq=to_int(e.get("round_seq")),
            )
        )
    return out


def _turn_side(raw: Any) -> Optional[TurnSide]:
    if not isinstance(raw, dict):
        return None
    return TurnSide(
        name=raw.get("name") or None,
        score=raw.get("turn_score"),
        remaining=to_int(raw.get("current_score")),
    )


def _leg_side(raw: Any) -> LegSide:
    raw = raw if isinstance(raw, dict) else {}
    return LegSide(
        ppr=to_float(raw.get("ppr")),
        darts_thrown=to_int(raw.get("darts_thrown")),
        ending_points=to_int(raw.get("ending_points")),
    )


def normalize_segments(props: Mapping[str, Any]) -> List[List[Leg]]:
    """
    Game segments as sets of legs.

    `segments` is either a flat list of sets or an object keyed by game type /
    division whose values are lists of sets; both become List[List[Leg]].
    """
    segments = props.get("segments")
    if not segments:
        return []

    sets_raw: List[Any] = []
    if isinstance(segments, list):
        sets_raw = segments
    elif isinstance(segments, dict):
        for value in segments.values():
            if isinstance(value, list):
                sets_raw.extend(value)

    out = []
    for set_raw in sets_raw:
        if not isinstance(set_raw, list):
            out.append([])
            continue
        legs = []
        for i, leg in enumerate(set_raw, start=1):
            if not isinstance(leg, dict):
                continue
            winner = to_int(leg.get("winner_index"))
            legs.append(
                Leg(
                    game_name=str(leg.get("game_name") or ""),
                    game_number=to_int(leg.get("set_game_number")) or i,
                    winner_index=winner if winner in (0, 1) else None,
                    home=_leg_side(leg.get("home")),
                    away=_leg_side(leg.get("away")),
                    turns=[
                        Turn(home=_turn_side(t.get("home")), away=_turn_side(t.get("away")))
                        for t in leg.get("turns") or []
                        if isinstance(t, dict)
                    ],
                    set_index=to_int(leg.get("set_index")),
                )
            )
        out.append(legs)
    return out


_RECAP_CONTAINERS = ("matchInfo", "match_info", "match", "leagueMatch", "league_match")


def _recap_containers(props: Mapping[str, Any]) -> Iterable[Mapping[str, Any]]:
    for key in _RECAP_CONTAINERS:
        node = props.get(key)
        if isinstance(node, dict):
            yield node
    yield props


def normalize_match_recap(props: Mapping[str, Any]) -> MatchRecap:
    """
    Authoritative per-side score, plus round number / date when any of the
    candidate locations carries them.
    """
    recap = MatchRecap()
    for node in _recap_containers(props):
        opponents = node.get("opponents")
        if not recap.opponents and isinstance(opponents, list):
            for o in opponents:
                if isinstance(o, dict):
                    recap.opponents.append(
                        (str(pick(o, "name", "team_name") or ""), to_int(o.get("score")))
                    )
        if recap.round_seq is None:
            recap.round_seq = to_int(pick(node, "round_seq", "round", "round_number"))
        if recap.sched_date is None:
            recap.sched_date = parse_date(pick(node, "sched_date", "match_date", "match_start_date"))
    return recap


def normalize_match_player_stats(props: Mapping[str, Any]) -> List[MatchPlayerStat]:
    raw = pick(props, "playerStats", "player_stats", "players", "stats")
    rows: List[Any] = []
    if isinstance(raw, list):
        rows = raw
    elif isinstance(raw, dict):
        # keyed by team
        for value in raw.values():
            if isinstance(value, list):
                rows.extend(value)

    out = []
    for r in rows:
        if not isinstance(r, dict):
            continue
        name = pick(r, "name", "player_name") or full_name(r.get("first_name"), r.get("last_name"))
        if not name:
            continue
        out.append(
            MatchPlayerStat(
                name=str(name).strip(),
                cricket_average=to_float(r.get("cricket_average")),
                average_01=to_float(r.get("average_01")),
                points_01=to_int(r.get("points_scored_01")),
                darts_01=to_int(r.get("darts_thrown_01")),
                marks_cr=to_int(r.get("cricket_marks_scored")),
                darts_cr=to_int(r.get("cricket_darts_thrown")),
            )
        )
    return out


def normalize_leaderboard(raw: Any) -> List[LeaderboardRow]:
    rows = raw
    if isinstance(raw, dict):
        rows = pick(raw, "stats", "data", "leaderboard", "players") or []
    out = []
    for r in rows or []:
        if not isinstance(r, dict):
            continue
        name = full_name(r.get("first_name"), r.get("last_name"))
        if not name:
            continue
        out.append(
            LeaderboardRow(
                name=name,
                points=to_int(r.get("points_scored")) or 0,
                darts=to_int(r.get("darts_thrown")) or 0,
            )
        )
    return out


_VENUE_TEAM = re.compile(r"^(?:home\s+team|home|team)\s*:\s*(.+)$", re.I)
_VENUE_NAME = re.compile(r"^(?:venue|location)\s*:\s*(.+)$", re.I)
_VENUE_ADDRESS = re.compile(r"^address\s*:\s*(.+)$", re.I)
_VENUE_PHONE = re.compile(r"(\(?\d{3}\)?[-.\s]?\d{3}[-.\s]\d{4})")


def parse_venues(html: str) -> Dict[str, Venue]:
    """
    Pull "Home: <team> / Venue: ... / Address: ... / Phone: ..." blocks out of
    the schedule page text. Keyed by team name.
    """
    text = BeautifulSoup(html, "html.parser").get_text("\n")
    venues: Dict[str, Venue] = {}
    current: Optional[Venue] = None

    for line in (ln.strip() for ln in text.splitlines()):
        if not line:
            continue
        m = _VENUE_TEAM.match(line)
        if m:
            current = Venue(team_name=m.group(1).strip())
            venues[current.team_name] = current
            continue
        if current is None:
            continue
        m = _VENUE_NAME.match(line)
        if m:
            current.name = m.group(1).strip()
            continue
        m = _VENUE_ADDRESS.match(line)
        if m:
            current.address = m.group(1).strip()
            continue
        m = _VENUE_PHONE.search(line)
        if m and current.phone is None:
            current.phone = m.group(1)

    return {k: v for k, v in venues.items() if v.name}


# ---------------------------
# Client
# ---------------------------
class DartConnectClient:
    """
    Blocking client; the runner fans calls out with `etl.batch.settle_all`.

    Only `fetch_venues` swallows errors. Everything else raises DartConnectError
    (or a requests exception) and leaves isolation to the caller.

    Each worker thread gets its own requests.Session from `session_factory`.
    """

    def __init__(
        self,
        league_id: str = DC_LEAGUE_ID,
        timeout_seconds: float = DC_TIMEOUT_SECONDS,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.league_id = league_id
        self.timeout_seconds = timeout_seconds
        self.session_factory = session_factory
        self._local = threading.local()

    @property
    def http(self) -> requests.Session:
        http = getattr(self._local, "http", None)
        if http is None:
            http = self.session_factory()
            self._local.http = http
        return http

    def _get_html(self, url: str) -> str:
        resp = self.http.get(url, headers=HTML_HEADERS, timeout=self.timeout_seconds)
        if not resp.ok:
            raise DartConnectError(f"GET {url} failed with {resp.status_code}")
        return resp.text

    def _post(self, path: str, body: Dict[str, Any], session: DCSession) -> Any:
        resp = self.http.post(
            f"{DC_BASE}{path}",
            data=json.dumps(body),
            headers=session.headers(self.league_id),
            timeout=self.timeout_seconds,
        )
        if not resp.ok:
            raise DartConnectError(f"DC API error {resp.status_code} on {path}: {resp.text[:200]}")
        return resp.json()

    def acquire_session(self) -> DCSession:
        resp = self.http.get(
            f"{DC_BASE}/league/{self.league_id}",
            headers=HTML_HEADERS,
            timeout=self.timeout_seconds,
        )
        if not resp.ok:
            raise DartConnectError(f"Session page failed with {resp.status_code}")
        return session_from_cookies({c.name: c.value for c in resp.cookies})

    def fetch_league(self) -> LeagueSnapshot:
        props = extract_page_props(self._get_html(f"{DC_BASE}/league/{self.league_id}"))
        return normalize_seasons(props)

    def fetch_standings(self, season_id: int) -> List[Competitor]:
        html = self._get_html(f"{DC_BASE}/league/{self.league_id}/{season_id}/standings")
        return normalize_competitors(extract_page_props(html))

    def fetch_lineups(self, season_id: int, session: DCSession) -> List[ScheduleMatch]:
        raw = self._post(f"/api/league/{self.league_id}/lineups/{season_id}", {}, session)
        return normalize_lineups(raw)

    def fetch_roster(
        self, season_id: int, team_id: int, team_name: str, phase: str, session: DCSession
    ) -> List[RosterEntry]:
        raw = self._post(
            f"/api/league/{self.league_id}/standings/{season_id}/players",
            {"season_status": phase, "opponent_guid": str(team_id)},
            session,
        )
        return normalize_roster(raw, team_name)

    def fetch_match_history(
        self, season_id: int, team_id: int, phase: str, session: DCSession
    ) -> List[HistoryEntry]:
        raw = self._post(
            f"/api/league/{self.league_id}/standings/{season_id}/matches",
            {"season_status": phase, "opponent_guid": str(team_id)},
            session,
        )
        return normalize_history(raw)

    def fetch_game_segments(self, guid: str) -> List[List[Leg]]:
        props = extract_page_props(self._get_html(f"{DC_RECAP_BASE}/games/{guid}"))
        return normalize_segments(props)

    def fetch_match_recap(self, guid: str) -> MatchRecap:
        props = extract_page_props(self._get_html(f"{DC_RECAP_BASE}/matches/{guid}"))
        return normalize_match_recap(props)

    def fetch_match_player_stats(self, guid: str) -> List[MatchPlayerStat]:
        props = extract_page_props(self._get_html(f"{DC_RECAP_BASE}/players/{guid}"))
        return normalize_match_player_stats(props)

    def fetch_leaderboard(
        self, league_guid: str, season_id: int, game: str = "cricket", fmt: str = "doubles"
    ) -> List[LeaderboardRow]:
        resp = self.http.post(
            f"{DC_BASE}/api/leaderboard/{league_guid}/{season_id}",
            json={"game": game, "format": fmt, "season_status": PHASE_REGULAR},
            headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
            timeout=self.timeout_seconds,
        )
        if not resp.ok:
            raise DartConnectError(f"leaderboard fetch failed with {resp.status_code}")
        return normalize_leaderboard(resp.json())

    def fetch_venues(self) -> Dict[str, Venue]:
        if not VENUE_SCHEDULE_URL:
            return {}
        try:
            return parse_venues(self._get_html(VENUE_SCHEDULE_URL))
        except Exception as e:
            logger.debug(f"venue scrape skipped: {type(e).__name__}: {e}")
            return {}
