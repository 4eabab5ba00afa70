"""
Reconciliation layer: project scraped + accumulated state onto the warehouse.

Every write is an insert-or-update keyed by the table's natural unique key, so
the whole pipeline can be re-run against the same remote state without creating
duplicates. Writes are issued per unit (team, match, player); callers commit.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.dialects import postgresql, sqlite

from etl.accumulate import PlayerSeasonStats, WeekLine
from etl.dartconnect import Competitor, ScheduleMatch, ScheduleTeam, SeasonInfo, Venue
from models import (
    Division,
    Match,
    Player,
    PlayerSeasonTeam,
    PlayerStats,
    PlayerWeekStats,
    Season,
    SiteContent,
    Team,
)

logger = logging.getLogger(__name__)


def insert(db, model):
    """
    Dialect-matched INSERT so `on_conflict_do_update` works on Postgres in
    production and SQLite locally.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


# ---------------------------
# Pure helpers
# ---------------------------
def guid_to_fake_id(guid: str) -> int:
    """
    Deterministic negative match id for a recap GUID.

    31-multiplier string hash wrapped to signed 32 bits, then forced negative so
    it can never collide with the platform's positive league match ids.
    """
    h = 0
    for ch in guid:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h if h < 0 else ~h


def infer_round_numbers(anchors: Mapping[date, int], dates: Iterable[Optional[date]]) -> Dict[date, int]:
    """
    Round numbers for dates earlier than the first anchored date.

    The earliest (date, round) anchor is walked backwards in whole weeks; dates
    that are not an exact multiple of 7 days away get nothing.
    """
    if not anchors:
        return {}
    anchor_date = min(anchors)
    anchor_round = anchors[anchor_date]

    out: Dict[date, int] = {}
    for d in dates:
        if d is None or d >= anchor_date or d in anchors:
            continue
        days_back = (anchor_date - d).days
        if days_back % 7 != 0:
            continue
        inferred = anchor_round - days_back // 7
        if inferred > 0:
            out[d] = inferred
    return out


def reconcile_score(
    local: Tuple[int, int],
    opponents: Sequence[Tuple[str, Optional[int]]],
    home_name: str,
    away_name: str,
) -> Tuple[int, int]:
    """
    Final (home, away) score for a match.

    The recap's per-side score wins over locally counted sets (it includes
    forfeits). Sides are matched by team name, then by position.
    """
    if len(opponents) < 2:
        return local

    by_name = {name: score for name, score in opponents}
    home = by_name.get(home_name)
    away = by_name.get(away_name)
    if home is not None and away is not None:
        return home, away

    first = opponents[0][1]
    second = opponents[1][1]
    return (
        first if first is not None else local[0],
        second if second is not None else local[1],
    )


# ---------------------------
# Season / division / team
# ---------------------------
def upsert_season(db, season: SeasonInfo, is_active: bool):
    """Insert or update a Season row keyed by the platform season id."""
    stmt = (
        insert(db, Season)
        .values(
            id=season.id,
            league_id=season.league_id,
            name=season.name,
            start_date=season.start_date,
            is_active=is_active,
        )
        .on_conflict_do_update(
            index_elements=[Season.id],
            set_={"name": season.name, "is_active": is_active},
        )
    )
    db.execute(stmt)


def upsert_division(db, season_id: int, dc_id: int, name: Optional[str]) -> Optional[int]:
    """Insert or update a Division row keyed by (dc_id, season_id). Returns the local id."""
    name = name or ""
    stmt = (
        insert(db, Division)
        .values(dc_id=dc_id, season_id=season_id, name=name)
        .on_conflict_do_update(
            index_elements=[Division.dc_id, Division.season_id],
            set_={"name": name},
        )
    )
    db.execute(stmt)
    row = (
        db.query(Division.id)
        .filter(Division.dc_id == dc_id, Division.season_id == season_id)
        .first()
    )
    return row[0] if row else None


def upsert_team(
    db,
    season_id: int,
    dc_id: int,
    name: str,
    division_id: Optional[int] = None,
    captain_name: Optional[str] = None,
    competitor: Optional[Competitor] = None,
) -> Optional[int]:
    """
    Insert or update a Team row keyed by (dc_id, season_id). Returns the local id.

    Standings W/L/points are only written when a competitor row is supplied, so
    a schedule-only pass never blanks them.
    """
    values = {
        "dc_id": dc_id,
        "season_id": season_id,
        "division_id": division_id,
        "name": name,
    }
    updates = {"division_id": division_id, "name": name}

    if captain_name is not None:
        values["captain_name"] = captain_name
        updates["captain_name"] = captain_name

    if competitor is not None:
        standings = {
            "dc_wins": competitor.wins,
            "dc_losses": competitor.losses,
            "dc_league_points": competitor.league_points,
        }
        values.update(standings)
        updates.update(standings)

    stmt = (
        insert(db, Team)
        .values(**values)
        .on_conflict_do_update(index_elements=[Team.dc_id, Team.season_id], set_=updates)
    )
    db.execute(stmt)
    row = db.query(Team.id).filter(Team.dc_id == dc_id, Team.season_id == season_id).first()
    return row[0] if row else None


def apply_standings(db, season_id: int, competitors: Iterable[Competitor]) -> Dict[int, int]:
    """
    Upsert every division and team named by a standings feed.

    Returns platform team id -> local team id.
    """
    competitors = list(competitors)
    division_ids: Dict[int, Optional[int]] = {}
    for comp in competitors:
        if comp.division_id is None or comp.division_id in division_ids:
            continue
        division_ids[comp.division_id] = upsert_division(db, season_id, comp.division_id, comp.division)

    team_ids: Dict[int, int] = {}
    for comp in competitors:
        local_id = upsert_team(
            db,
            season_id,
            comp.id,
            comp.name,
            division_id=division_ids.get(comp.division_id) if comp.division_id is not None else None,
            competitor=comp,
        )
        if local_id is not None:
            team_ids[comp.id] = local_id
    return team_ids


def team_ids_for_season(db, season_id: int) -> Dict[int, int]:
    """Platform team id -> local team id for every stored team of a season."""
    rows = db.query(Team.dc_id, Team.id).filter(Team.season_id == season_id).all()
    return {dc_id: local_id for dc_id, local_id in rows}


def team_memberships(db, season_id: int) -> Dict[str, Tuple[int, Optional[int], Optional[str]]]:
    """Team name -> (team id, division id, division name) for a season."""
    rows = (
        db.query(Team.name, Team.id, Team.division_id, Division.name)
        .outerjoin(Division, Division.id == Team.division_id)
        .filter(Team.season_id == season_id)
        .all()
    )
    out = {}
    for team_name, team_id, division_id, division_name in rows:
        out.setdefault(team_name, (team_id, division_id, division_name))
    return out


def update_team_venues(db, season_id: int, venues: Mapping[str, Venue]) -> int:
    """Copy scraped venue blocks onto the season's teams by exact team name."""
    if not venues:
        return 0
    updated = 0
    for team in db.query(Team).filter(Team.season_id == season_id).all():
        venue = venues.get(team.name)
        if venue is None:
            continue
        team.venue_name = venue.name
        team.venue_address = venue.address
        team.venue_phone = venue.phone
        updated += 1
    return updated


def mark_season_scraped(db, season_id: int, when: Optional[datetime] = None):
    db.query(Season).filter(Season.id == season_id).update(
        {"last_scraped_at": when or datetime.utcnow()}, synchronize_session=False
    )


# ---------------------------
# Matches
# ---------------------------
def _side_team_id(
    db,
    season_id: int,
    side: ScheduleTeam,
    division_id: Optional[int],
    competitors: Mapping[int, Competitor],
) -> Optional[int]:
    if not side.id:
        return None
    return upsert_team(
        db,
        season_id,
        side.id,
        side.name,
        division_id=division_id,
        captain_name=side.captain,
        competitor=competitors.get(side.id),
    )


def upsert_schedule_match(
    db,
    season_id: int,
    m: ScheduleMatch,
    competitors: Mapping[int, Competitor],
    division_cache: Optional[Dict[int, Optional[int]]] = None,
) -> Tuple[Optional[int], Optional[int]]:
    """
    Insert or update a schedule-sourced Match keyed by the league match id,
    creating its division and both teams along the way.

    Returns the (home, away) local team ids. A row without a match id only
    contributes its teams.
    """
    division_cache = division_cache if division_cache is not None else {}
    division_id = None
    if m.division_id is not None:
        if m.division_id not in division_cache:
            division_cache[m.division_id] = upsert_division(db, season_id, m.division_id, m.division)
        division_id = division_cache[m.division_id]

    home_id = _side_team_id(db, season_id, m.home, division_id, competitors)
    away_id = _side_team_id(db, season_id, m.away, division_id, competitors)

    if not m.id:
        return home_id, away_id

    now = datetime.utcnow()
    stmt = (
        insert(db, Match)
        .values(
            id=m.id,
            season_id=season_id,
            division_id=division_id,
            division_name=m.division,
            round_seq=m.round_seq,
            home_team_id=home_id,
            away_team_id=away_id,
            home_team_name=m.home.name,
            away_team_name=m.away.name,
            sched_date=m.sched_date,
            sched_time=m.sched_time,
            pretty_date=m.pretty_date,
            status=m.status,
            home_score=m.home_score or 0,
            away_score=m.away_score or 0,
            dc_match_id=m.dc_match_id,
            season_status=m.season_status,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=[Match.id],
            set_={
                "status": m.status,
                "home_score": m.home_score or 0,
                "away_score": m.away_score or 0,
                "dc_match_id": m.dc_match_id,
                "updated_at": now,
            },
        )
    )
    db.execute(stmt)
    return home_id, away_id


def _link_schedule_row(db, season_id: int, guid: str, home_team_id: int, away_team_id: int, sched_date: Optional[date]):
    """
    Stamp the GUID onto the matching schedule row (same teams, same date, no
    GUID yet) so the GUID upsert lands on it instead of adding a second row.

    A history-only row written before the schedule was known (negative id) is
    dropped once its schedule row shows up, and the GUID moves across.
    """
    if sched_date is None:
        return
    existing = db.query(Match).filter(Match.dc_guid == guid).first()
    if existing is not None and existing.id > 0:
        return
    row = (
        db.query(Match)
        .filter(
            Match.season_id == season_id,
            Match.home_team_id == home_team_id,
            Match.away_team_id == away_team_id,
            Match.sched_date == sched_date,
            Match.dc_guid.is_(None),
        )
        .first()
    )
    if row is None:
        return
    if existing is not None:
        logger.info(f"[{season_id}] match {guid} merged into schedule row {row.id}")
        db.delete(existing)
        db.flush()
    row.dc_guid = guid
    db.flush()


def upsert_history_match(
    db,
    season_id: int,
    guid: str,
    home_team_id: int,
    away_team_id: int,
    home_team_name: str,
    away_team_name: str,
    sched_date: Optional[date],
    pretty_date: Optional[str],
    round_seq: Optional[int],
    home_score: int,
    away_score: int,
    phase: str,
):
    """Insert or update a completed Match keyed by its recap GUID."""
    _link_schedule_row(db, season_id, guid, home_team_id, away_team_id, sched_date)

    now = datetime.utcnow()
    updates = {
        "home_score": home_score,
        "away_score": away_score,
        "pretty_date": pretty_date or None,
        "status": "C",
        "home_team_id": home_team_id,
        "away_team_id": away_team_id,
        "home_team_name": home_team_name,
        "away_team_name": away_team_name,
        "updated_at": now,
    }
    if round_seq is not None:
        updates["round_seq"] = round_seq

    stmt = (
        insert(db, Match)
        .values(
            id=guid_to_fake_id(guid),
            season_id=season_id,
            home_team_id=home_team_id,
            away_team_id=away_team_id,
            home_team_name=home_team_name,
            away_team_name=away_team_name,
            sched_date=sched_date,
            pretty_date=pretty_date or None,
            round_seq=round_seq,
            status="C",
            home_score=home_score,
            away_score=away_score,
            dc_guid=guid,
            season_status=phase,
            updated_at=now,
        )
        .on_conflict_do_update(index_elements=[Match.dc_guid], set_=updates)
    )
    db.execute(stmt)


# ---------------------------
# Players
# ---------------------------
def upsert_player(db, name: str, dc_guid: Optional[str]) -> int:
    """Insert or update a Player row keyed by display name. Returns the local id."""
    stmt = (
        insert(db, Player)
        .values(name=name, dc_guid=dc_guid)
        .on_conflict_do_update(index_elements=[Player.name], set_={"dc_guid": dc_guid})
    )
    db.execute(stmt)
    return db.query(Player.id).filter(Player.name == name).one()[0]


def upsert_player_season_team(
    db,
    player_id: int,
    season_id: int,
    team_id: Optional[int],
    team_name: Optional[str],
    division_id: Optional[int],
    division_name: Optional[str],
):
    """Insert or update a PlayerSeasonTeam row keyed by (player_id, season_id)."""
    values = {
        "team_id": team_id,
        "team_name": team_name or None,
        "division_id": division_id,
        "division_name": division_name,
    }
    stmt = (
        insert(db, PlayerSeasonTeam)
        .values(player_id=player_id, season_id=season_id, **values)
        .on_conflict_do_update(
            index_elements=[PlayerSeasonTeam.player_id, PlayerSeasonTeam.season_id],
            set_=values,
        )
    )
    db.execute(stmt)


_STATS_FIELDS = (
    "pos", "wp", "crkt", "col_601", "col_501", "set_wins", "set_losses", "sos",
    "hundred_plus", "rnds", "one_eighty", "ro9", "h_out", "ldg",
    "zero_one_hh", "ro_hh", "mpr", "ppr", "avg", "pts",
)

_WEEK_FIELDS = (
    "opponent_team", "set_wins", "set_losses", "crkt_wins", "crkt_losses",
    "col601_wins", "col601_losses", "col501_wins", "col501_losses",
    "hundred_plus", "one_eighty", "ro9", "h_out", "rnds", "mpr", "ppr",
)


def upsert_player_stats(
    db,
    season_id: int,
    player_id: int,
    phase: str,
    team_id: Optional[int],
    stats: PlayerSeasonStats,
):
    """
    Insert or update a PlayerStats row keyed by (season_id, player_id, phase).

    The full row is replaced on conflict.
    """
    values = {f: getattr(stats, f) for f in _STATS_FIELDS}
    values["team_id"] = team_id
    values["team_name"] = stats.team_name or None
    values["updated_at"] = datetime.utcnow()

    stmt = (
        insert(db, PlayerStats)
        .values(season_id=season_id, player_id=player_id, phase=phase, **values)
        .on_conflict_do_update(
            index_elements=[PlayerStats.season_id, PlayerStats.player_id, PlayerStats.phase],
            set_=values,
        )
    )
    db.execute(stmt)


def upsert_player_week_stats(
    db,
    season_id: int,
    player_id: int,
    phase: str,
    week_key: str,
    week: WeekLine,
):
    """Insert or update a PlayerWeekStats row keyed by (season_id, player_id, week_key, phase)."""
    values = {f: getattr(week, f) for f in _WEEK_FIELDS}
    values["ldg"] = week.ldg or 0

    stmt = (
        insert(db, PlayerWeekStats)
        .values(season_id=season_id, player_id=player_id, week_key=week_key, phase=phase, **values)
        .on_conflict_do_update(
            index_elements=[
                PlayerWeekStats.season_id,
                PlayerWeekStats.player_id,
                PlayerWeekStats.week_key,
                PlayerWeekStats.phase,
            ],
            set_=values,
        )
    )
    db.execute(stmt)


def persist_player_rows(
    db,
    season_id: int,
    phase: str,
    rows: List[PlayerSeasonStats],
    memberships: Mapping[str, Tuple[int, Optional[int], Optional[str]]],
    write_membership: bool = True,
) -> int:
    """
    Write player identity, season membership, season stats and week stats for
    every finalized player. Returns the number of players written.
    """
    written = 0
    for row in rows:
        player_id = upsert_player(db, row.name, row.dc_id)
        team_id, division_id, division_name = memberships.get(row.team_name, (None, None, None))

        if write_membership:
            upsert_player_season_team(
                db, player_id, season_id, team_id, row.team_name, division_id, division_name
            )

        upsert_player_stats(db, season_id, player_id, phase, team_id, row)
        for week_key, week in row.weeks.items():
            if not week_key:
                continue
            upsert_player_week_stats(db, season_id, player_id, phase, week_key, week)
        written += 1
    return written


def upsert_site_content(db, key: str, value: str):
    """Insert or update a SiteContent row keyed by `key`."""
    now = datetime.utcnow()
    stmt = (
        insert(db, SiteContent)
        .values(key=key, value=value, updated_at=now)
        .on_conflict_do_update(
            index_elements=[SiteContent.key],
            set_={"value": value, "updated_at": now},
        )
    )
    db.execute(stmt)
