"""
Scrape orchestrator.

One invocation:
    fetch league -> upsert seasons -> backfill archived metadata
    -> pick target seasons -> per season: REG pass, then POST pass
    -> append a scrape_log row

A failure inside one season is recorded against that season and the run moves
on; a failure before any season work (no league page, no seasons) fails the run.
Network fan-out goes through `etl.batch.settle_all`; DB writes stay on the
calling thread and are committed per unit of work.

Run it locally:
    python -m etl.scrape_runner --season 1234
    python -m etl.scrape_runner --all --force
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import os
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

# Ensure `backend/` is on the Python path so the runner can be started from `etl/` directly.
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import SessionLocal
from etl.accumulate import MatchContext, SeasonAccumulator, leaderboard_mpr_by_name, set_score
from etl.batch import settle_all
from etl.dartconnect import (
    PHASE_POST,
    PHASE_REGULAR,
    Competitor,
    DartConnectClient,
    DCSession,
    HistoryEntry,
    RosterEntry,
    SeasonInfo,
    parse_date,
)
from etl.scoring import load_policy
from etl import upsert
from models import ScrapeLog, Season

logger = logging.getLogger(__name__)


class ScrapeError(Exception):
    """The run could not start any season work."""

    def __init__(self, message: str, debug: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.debug = debug or {}


@dataclass
class ScrapePayload:
    season_id: Optional[int] = None
    all: bool = False
    force: bool = False


@dataclass
class ScrapeResult:
    seasons_scraped: int = 0
    players_updated: int = 0
    matches_updated: int = 0
    debug: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "seasons_scraped": self.seasons_scraped,
            "players_updated": self.players_updated,
            "matches_updated": self.matches_updated,
            "debug": self.debug,
        }


@dataclass
class MatchMeta:
    """What the team match histories say about one recap GUID."""

    week_key: str
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    round_seq: Optional[int] = None


@dataclass
class PhaseData:
    roster: List[RosterEntry]
    metas: Dict[str, MatchMeta]
    segments: Dict[str, Any]
    recaps: Dict[str, Any]
    player_stats: Dict[str, Any]


# ---------------------------
# Fetch helpers
# ---------------------------
def merge_history(metas: Dict[str, MatchMeta], team_id: int, entries: List[HistoryEntry]):
    """Fold one team's match history into the GUID -> MatchMeta map."""
    for entry in entries:
        meta = metas.get(entry.guid)
        if meta is None:
            meta = MatchMeta(week_key=entry.week_key)
            metas[entry.guid] = meta
        if entry.side == "Home" and meta.home_team_id is None:
            meta.home_team_id = team_id
        elif entry.side == "Away" and meta.away_team_id is None:
            meta.away_team_id = team_id
        if meta.round_seq is None and entry.round_seq is not None:
            meta.round_seq = entry.round_seq


async def fetch_phase(
    client,
    season_id: int,
    competitors: List[Competitor],
    phase: str,
    session: DCSession,
    debug: Dict[str, Any],
) -> PhaseData:
    """
    Rosters + match histories for every team, then recap data for every GUID
    found. Each call is isolated; failed units are simply absent.
    """
    tag = phase.lower()

    team_calls = {}
    for comp in competitors:
        team_calls[(comp.id, "roster")] = (
            lambda c=comp: client.fetch_roster(season_id, c.id, c.name, phase, session)
        )
        team_calls[(comp.id, "history")] = (
            lambda c=comp: client.fetch_match_history(season_id, c.id, phase, session)
        )
    teams = await settle_all(team_calls, label=f"{season_id}/{tag}/teams")
    if teams.error_count:
        debug[f"{tag}_team_errors"] = teams.error_count
        debug[f"{tag}_team_error_sample"] = teams.error_messages(3)

    roster: List[RosterEntry] = []
    seen = set()
    metas: Dict[str, MatchMeta] = {}
    for comp in competitors:
        for entry in teams.successes.get((comp.id, "roster"), []):
            key = entry.dc_id or entry.name
            if key in seen:
                continue
            seen.add(key)
            roster.append(entry)
        merge_history(metas, comp.id, teams.successes.get((comp.id, "history"), []))

    debug[f"{tag}_roster_length"] = len(roster)
    debug[f"{tag}_match_guids"] = len(metas)

    recap_calls = {}
    for guid in metas:
        recap_calls[(guid, "segments")] = lambda g=guid: client.fetch_game_segments(g)
        recap_calls[(guid, "recap")] = lambda g=guid: client.fetch_match_recap(g)
        recap_calls[(guid, "stats")] = lambda g=guid: client.fetch_match_player_stats(g)
    recaps = await settle_all(recap_calls, label=f"{season_id}/{tag}/recaps")

    data = PhaseData(roster=roster, metas=metas, segments={}, recaps={}, player_stats={})
    for (guid, kind), value in recaps.successes.items():
        if kind == "segments":
            data.segments[guid] = value
        elif kind == "recap":
            data.recaps[guid] = value
        else:
            data.player_stats[guid] = value

    debug[f"{tag}_segments_loaded"] = len(data.segments)
    debug[f"{tag}_player_stats_loaded"] = len(data.player_stats)
    if recaps.error_count:
        debug[f"{tag}_recap_errors"] = recaps.error_count
        debug[f"{tag}_recap_error_sample"] = recaps.error_messages(3)
    return data


# ---------------------------
# Per-phase work
# ---------------------------
def accumulate_phase(data: PhaseData, competitors: Dict[int, Competitor], flags) -> SeasonAccumulator:
    acc = SeasonAccumulator(data.roster, flags)
    for guid, meta in data.metas.items():
        home = competitors.get(meta.home_team_id)
        away = competitors.get(meta.away_team_id)
        ctx = MatchContext(
            guid=guid,
            week_key=meta.week_key,
            home_team_name=home.name if home else "",
            away_team_name=away.name if away else "",
        )
        if guid in data.segments:
            acc.add_match(ctx, data.segments[guid])
        if guid in data.player_stats:
            acc.merge_player_stats(meta.week_key, data.player_stats[guid])
    return acc


def persist_phase_matches(
    db,
    season_id: int,
    phase: str,
    data: PhaseData,
    competitors: Dict[int, Competitor],
    team_ids: Dict[int, int],
    rounds: Dict[date, int],
    debug: Dict[str, Any],
) -> int:
    """Write every played match found through match history. Returns rows written."""
    written = 0
    failed = 0
    for guid, sets in data.segments.items():
        meta = data.metas.get(guid)
        if meta is None or meta.home_team_id is None or meta.away_team_id is None:
            continue
        home_id = team_ids.get(meta.home_team_id)
        away_id = team_ids.get(meta.away_team_id)
        if not home_id or not away_id:
            continue

        local = set_score(sets)
        if sum(local) == 0:
            continue

        home = competitors.get(meta.home_team_id)
        away = competitors.get(meta.away_team_id)
        home_name = home.name if home else ""
        away_name = away.name if away else ""

        recap = data.recaps.get(guid)
        sched_date = (recap.sched_date if recap else None) or parse_date(meta.week_key)
        round_seq = meta.round_seq
        if round_seq is None and recap is not None:
            round_seq = recap.round_seq
        if round_seq is None and sched_date is not None:
            round_seq = rounds.get(sched_date)

        home_score, away_score = upsert.reconcile_score(
            local, recap.opponents if recap else [], home_name, away_name
        )

        try:
            upsert.upsert_history_match(
                db,
                season_id,
                guid,
                home_id,
                away_id,
                home_name,
                away_name,
                sched_date,
                meta.week_key,
                round_seq,
                home_score,
                away_score,
                phase,
            )
            db.commit()
            written += 1
        except Exception as e:
            db.rollback()
            failed += 1
            logger.warning(f"[{season_id}] match {guid} upsert failed: {type(e).__name__}: {e}")

    debug[f"{phase.lower()}_match_scores_updated"] = written
    if failed:
        debug[f"{phase.lower()}_match_score_failures"] = failed
    return written


async def scrape_season(db, client, season: SeasonInfo, league_guid: str, debug: Dict[str, Any]) -> Tuple[int, int]:
    """
    Full pipeline for one season. Returns (players_updated, matches_updated).

    Raises on anything that leaves the season unusable (no session, DB errors
    outside per-match writes); the caller records it against the season.
    """
    season_id = season.id
    logger.info(f"[{season_id}] scraping season {season.name}")

    session = await asyncio.to_thread(client.acquire_session)

    # A. schedule + standings
    base = await settle_all(
        {
            "lineups": lambda: client.fetch_lineups(season_id, session),
            "standings": lambda: client.fetch_standings(season_id),
        },
        label=f"{season_id}/base",
    )
    if "lineups" in base.failures:
        debug["lineups_error"] = str(base.failures["lineups"])
    if "standings" in base.failures:
        debug["standings_error"] = str(base.failures["standings"])
    schedule = base.successes.get("lineups", [])
    competitors_list: List[Competitor] = base.successes.get("standings", [])
    competitors = {c.id: c for c in competitors_list}
    debug["match_list_length"] = len(schedule)
    debug["teams_count"] = len(competitors_list)

    # B. divisions, teams, schedule rows
    upsert.apply_standings(db, season_id, competitors_list)
    db.commit()

    matches_updated = 0
    anchors: Dict[date, int] = {}
    division_cache: Dict[int, Optional[int]] = {}
    for m in schedule:
        upsert.upsert_schedule_match(db, season_id, m, competitors, division_cache)
        if m.round_seq is not None and m.sched_date is not None:
            anchors[m.sched_date] = m.round_seq
        matches_updated += 1
    db.commit()
    team_ids = upsert.team_ids_for_season(db, season_id)

    venues = await asyncio.to_thread(client.fetch_venues)
    debug["venues_updated"] = upsert.update_team_venues(db, season_id, venues)
    db.commit()

    policy = load_policy(db, season_id)
    flags = policy.tiebreaker_flags()

    # C. regular season
    reg = await fetch_phase(client, season_id, competitors_list, PHASE_REGULAR, session, debug)

    inferred = upsert.infer_round_numbers(
        anchors, (parse_date(meta.week_key) for meta in reg.metas.values())
    )
    if inferred:
        debug["inferred_rounds"] = {d.isoformat(): r for d, r in sorted(inferred.items())}
    rounds = dict(anchors)
    rounds.update(inferred)

    matches_updated += persist_phase_matches(
        db, season_id, PHASE_REGULAR, reg, competitors, team_ids, rounds, debug
    )

    leaderboard_mpr: Dict[str, float] = {}
    try:
        rows = await asyncio.to_thread(client.fetch_leaderboard, league_guid, season_id)
        leaderboard_mpr = leaderboard_mpr_by_name(rows)
        debug["leaderboard_mpr_count"] = len(leaderboard_mpr)
    except Exception as e:
        debug["leaderboard_mpr_error"] = str(e)
        logger.warning(f"[{season_id}] leaderboard fetch failed: {e}")

    memberships = upsert.team_memberships(db, season_id)
    division_for_team = {name: m[2] for name, m in memberships.items()}

    acc = accumulate_phase(reg, competitors, flags)
    rows = acc.finalize(policy, leaderboard_mpr, division_for_team)
    players_updated = upsert.persist_player_rows(db, season_id, PHASE_REGULAR, rows, memberships)
    db.commit()
    logger.info(f"[{season_id}] REG: {players_updated} players, {matches_updated} matches")

    # D. postseason
    post = await fetch_phase(client, season_id, competitors_list, PHASE_POST, session, debug)
    if post.metas:
        matches_updated += persist_phase_matches(
            db, season_id, PHASE_POST, post, competitors, team_ids, {}, debug
        )
        post_acc = accumulate_phase(post, competitors, flags)
        post_rows = post_acc.finalize(policy, None, division_for_team)
        post_players = upsert.persist_player_rows(
            db, season_id, PHASE_POST, post_rows, memberships, write_membership=False
        )
        db.commit()
        debug["post_players_updated"] = post_players
        logger.info(f"[{season_id}] POST: {post_players} players")

    upsert.mark_season_scraped(db, season_id)
    db.commit()
    return players_updated, matches_updated


async def backfill_archived_metadata(db, client, archived: List[SeasonInfo], debug: Dict[str, Any]):
    """Divisions + teams (with standings W/L) for every archived season."""
    if not archived:
        return
    fetched = await settle_all(
        {s.id: (lambda sid=s.id: client.fetch_standings(sid)) for s in archived},
        label="archived/standings",
    )
    errors = []
    processed = 0
    for s in archived:
        # very old seasons may not have standings at all
        competitors = fetched.successes.get(s.id) or []
        if not competitors:
            processed += 1
            continue
        try:
            upsert.apply_standings(db, s.id, competitors)
            db.commit()
            processed += 1
        except Exception as e:
            db.rollback()
            errors.append(f"Season {s.id}: {e}")
    debug["archived_seasons_processed"] = processed
    if errors:
        debug["archived_season_errors"] = errors


# ---------------------------
# Run
# ---------------------------
def select_seasons(db, payload: ScrapePayload, active: List[SeasonInfo], all_seasons: List[SeasonInfo]) -> List[SeasonInfo]:
    if payload.all:
        if payload.force:
            return list(all_seasons)
        scraped = {
            sid for sid, last in db.query(Season.id, Season.last_scraped_at).all() if last is not None
        }
        return [s for s in all_seasons if s.id not in scraped]
    if payload.season_id:
        for s in all_seasons:
            if s.id == payload.season_id:
                return [s]
        raise ScrapeError(f"Season {payload.season_id} not found")
    return active[:1]


def write_log(db, triggered_by: str, status: str, season_id=None, result: Optional[ScrapeResult] = None, error=None):
    entry = ScrapeLog(
        season_id=season_id,
        triggered_by=triggered_by,
        status=status,
        seasons_scraped=result.seasons_scraped if result else 0,
        players_updated=result.players_updated if result else 0,
        matches_updated=result.matches_updated if result else 0,
        error_message=error,
    )
    db.add(entry)
    db.commit()


async def _run(db, client, payload: ScrapePayload) -> Tuple[ScrapeResult, Optional[int]]:
    result = ScrapeResult()
    debug = result.debug

    league = await asyncio.to_thread(client.fetch_league)
    all_seasons = league.all_seasons
    if not all_seasons:
        raise ScrapeError("No seasons found", debug)
    active_ids = {s.id for s in league.active_seasons}
    active_id = league.active_seasons[0].id if league.active_seasons else None

    for s in all_seasons:
        upsert.upsert_season(db, s, s.id in active_ids)
    db.commit()

    await backfill_archived_metadata(db, client, league.archived_seasons, debug)

    targets = select_seasons(db, payload, league.active_seasons, all_seasons)
    logger.info(f"Scraping {len(targets)} season(s): {[s.id for s in targets]}")

    season_results: Dict[str, Any] = {}
    for s in targets:
        season_debug: Dict[str, Any] = {}
        key = f"{s.id}_{s.name}"
        try:
            players, matches = await scrape_season(db, client, s, league.league_guid, season_debug)
            result.players_updated += players
            result.matches_updated += matches
            season_results[key] = {
                "ok": True,
                "players_updated": players,
                "matches_updated": matches,
                "debug": season_debug,
            }
        except Exception as e:
            db.rollback()
            logger.exception(f"[{s.id}] season failed")
            season_results[key] = {"ok": False, "error": str(e), "debug": season_debug}

    result.seasons_scraped = len(targets)
    debug["season_results"] = season_results
    return result, active_id


async def run_scrape(
    payload: Optional[ScrapePayload] = None,
    triggered_by: str = "manual",
    session_factory=SessionLocal,
    client=None,
) -> ScrapeResult:
    """
    Run one scrape. Raises on fatal-to-run errors after logging them to
    scrape_log; per-season errors are in `result.debug["season_results"]`.
    """
    payload = payload or ScrapePayload()
    client = client or DartConnectClient()
    db = session_factory()
    try:
        write_log(db, triggered_by, "running", season_id=payload.season_id)
        try:
            result, active_id = await _run(db, client, payload)
        except Exception as e:
            db.rollback()
            logger.error(f"Scrape failed: {type(e).__name__}: {e}")
            write_log(db, triggered_by, "error", season_id=payload.season_id, error=str(e))
            raise
        write_log(db, triggered_by, "success", season_id=active_id, result=result)
        logger.info(
            f"Scrape finished: {result.seasons_scraped} seasons, "
            f"{result.players_updated} players, {result.matches_updated} matches"
        )
        return result
    finally:
        db.close()


def run_scrape_sync(payload: Optional[ScrapePayload] = None, triggered_by: str = "manual", **kwargs) -> ScrapeResult:
    return asyncio.run(run_scrape(payload, triggered_by, **kwargs))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser()
    parser.add_argument("--season", type=int, default=None, help="Scrape one season id")
    parser.add_argument("--all", action="store_true", help="Scrape every season not yet scraped")
    parser.add_argument("--force", action="store_true", help="With --all, rescrape every season")
    args = parser.parse_args()

    res = run_scrape_sync(ScrapePayload(season_id=args.season, all=args.all, force=args.force), "cli")
    print(json.dumps(res.as_dict(), indent=2, default=str))
