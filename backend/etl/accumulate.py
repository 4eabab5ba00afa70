"""
Season accumulation.

Folds every turn of every leg of every set of a season's matches into per-player
season totals and per-week breakdowns:

    match -> set (1 or 3 legs, one game type) -> leg -> turn -> home/away side

Nothing here touches the network or the database. Inputs are the canonical
types from `etl.dartconnect`; outputs are PlayerSeasonStats rows the upsert
layer writes as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from etl.dartconnect import Leg, MatchPlayerStat, RosterEntry
from etl.notation import (
    GAME_501,
    GAME_601,
    GAME_CRICKET,
    GAME_OTHER,
    classify_game,
    is_01,
    parse_01_score,
    parse_cricket_marks,
)
from etl.scoring import ScoringPolicy, TiebreakerFlags

HOME = 0
AWAY = 1

_RECORD_PREFIX = {GAME_CRICKET: "crkt", GAME_601: "col601", GAME_501: "col501"}


@dataclass
class MatchContext:
    """Where a recap belongs: its week and the two team names."""

    guid: str
    week_key: str
    home_team_name: str = ""
    away_team_name: str = ""


@dataclass
class WeekLine:
    opponent_team: str = ""

    set_wins: int = 0
    set_losses: int = 0
    crkt_wins: int = 0
    crkt_losses: int = 0
    col601_wins: int = 0
    col601_losses: int = 0
    col501_wins: int = 0
    col501_losses: int = 0

    hundred_plus: int = 0
    one_eighty: int = 0
    ro9: int = 0
    h_out: int = 0
    rnds: int = 0
    # fewest darts to win a 501 leg this week
    ldg: Optional[int] = None

    # from the per-match stats endpoint
    mpr: Optional[float] = None
    ppr: Optional[float] = None


@dataclass
class PlayerLine:
    name: str
    dc_id: Optional[str] = None
    team_name: str = ""
    rank: Optional[int] = None

    set_wins: int = 0
    set_losses: int = 0
    crkt_wins: int = 0
    crkt_losses: int = 0
    col601_wins: int = 0
    col601_losses: int = 0
    col501_wins: int = 0
    col501_losses: int = 0

    hundred_plus: int = 0
    rnds: int = 0
    one_eighty: int = 0
    ro9: int = 0
    h_out: int = 0
    min_darts_501: Optional[int] = None

    # volume totals from the per-match stats endpoint
    points_01: int = 0
    darts_01: int = 0
    marks_cr: int = 0
    darts_cr: int = 0

    opponent_names: List[str] = field(default_factory=list)
    weeks: Dict[str, WeekLine] = field(default_factory=dict)

    def record(self, game_type: str) -> Tuple[int, int]:
        prefix = _RECORD_PREFIX[game_type]
        return getattr(self, f"{prefix}_wins"), getattr(self, f"{prefix}_losses")


@dataclass
class PlayerSeasonStats:
    name: str
    dc_id: Optional[str]
    team_name: str
    pos: Optional[int]
    wp: int
    crkt: Optional[str]
    col_601: Optional[str]
    col_501: Optional[str]
    set_wins: int
    set_losses: int
    sos: Optional[float]
    hundred_plus: int
    rnds: int
    one_eighty: int
    ro9: int
    h_out: int
    ldg: Optional[int]
    zero_one_hh: int
    ro_hh: int
    mpr: Optional[float]
    ppr: Optional[float]
    avg: Optional[float]
    pts: Optional[float]
    weeks: Dict[str, WeekLine] = field(default_factory=dict)


# ---------------------------
# Pure helpers
# ---------------------------
def set_winner(legs: Iterable[Leg]) -> Optional[int]:
    """Majority of leg winners. None for an empty set or a tie."""
    home = away = 0
    for leg in legs:
        if leg.winner_index == HOME:
            home += 1
        elif leg.winner_index == AWAY:
            away += 1
    if home > away:
        return HOME
    if away > home:
        return AWAY
    return None


def set_score(sets: Iterable[List[Leg]]) -> Tuple[int, int]:
    """Sets won by (home, away), counted from leg winners."""
    home = away = 0
    for legs in sets:
        if not legs:
            continue
        w = set_winner(legs)
        if w == HOME:
            home += 1
        elif w == AWAY:
            away += 1
    return home, away


def is_tiebreaker(game_type: str, leg: Leg) -> bool:
    """Leg 3 of a best-of-3 set. 601 is a single leg and never has one."""
    return game_type in (GAME_501, GAME_CRICKET) and leg.game_number == 3


def format_record(wins: int, losses: int) -> Optional[str]:
    return f"{wins}-{losses}" if wins + losses > 0 else None


def hot_hand_value(week_totals: Iterable[int], threshold: int) -> int:
    """Best weekly total that meets the threshold, 0 when none does."""
    best = 0
    for total in week_totals:
        if total >= threshold and total > best:
            best = total
    return best


def side_names(legs: Iterable[Leg], side: int) -> List[str]:
    """Every player name that threw for `side` in these legs, first-seen order."""
    seen: Dict[str, None] = {}
    for leg in legs:
        for turn in leg.turns:
            t = turn.home if side == HOME else turn.away
            if t is not None and t.name:
                seen.setdefault(t.name, None)
    return list(seen)


def _bump(target, game_type: str, won: bool) -> None:
    if won:
        target.set_wins += 1
    else:
        target.set_losses += 1
    prefix = _RECORD_PREFIX.get(game_type)
    if prefix is None:
        return
    attr = f"{prefix}_wins" if won else f"{prefix}_losses"
    setattr(target, attr, getattr(target, attr) + 1)


def _ratio(numerator: float, denominator: float, digits: int) -> Optional[float]:
    if not denominator:
        return None
    return round(numerator / denominator, digits)


# ---------------------------
# Accumulator
# ---------------------------
class SeasonAccumulator:
    """
    Per-phase accumulator keyed by player display name.

    Only rostered names accumulate; a name seen in turns but missing from every
    roster is ignored.
    """

    def __init__(self, roster: Iterable[RosterEntry], flags: Optional[TiebreakerFlags] = None):
        self.flags = flags or TiebreakerFlags()
        self.players: Dict[str, PlayerLine] = {}
        for r in roster:
            if r.name and r.name not in self.players:
                self.players[r.name] = PlayerLine(
                    name=r.name, dc_id=r.dc_id, team_name=r.team_name, rank=r.rank
                )

    def _week(self, player: PlayerLine, week_key: str, opponent_team: str) -> WeekLine:
        week = player.weeks.get(week_key)
        if week is None:
            week = WeekLine(opponent_team=opponent_team)
            player.weeks[week_key] = week
        return week

    def add_match(self, ctx: MatchContext, sets: Iterable[List[Leg]]) -> None:
        for legs in sets:
            if legs:
                self.add_set(ctx, legs)

    def add_set(self, ctx: MatchContext, legs: List[Leg]) -> None:
        game_type = classify_game(legs[0].game_name)
        winner = set_winner(legs)

        names = {HOME: side_names(legs, HOME), AWAY: side_names(legs, AWAY)}
        opponents_team = {HOME: ctx.away_team_name, AWAY: ctx.home_team_name}

        for side in (HOME, AWAY):
            other = AWAY if side == HOME else HOME
            for pname in names[side]:
                player = self.players.get(pname)
                if player is None:
                    continue
                week = self._week(player, ctx.week_key, opponents_team[side])
                if winner is None:
                    continue
                player.opponent_names.extend(names[other])
                won = winner == side
                _bump(player, game_type, won)
                _bump(week, game_type, won)

        if game_type == GAME_OTHER:
            return

        for leg in legs:
            tiebreaker = is_tiebreaker(game_type, leg)
            for turn in leg.turns:
                for t in (turn.home, turn.away):
                    if t is None or not t.name:
                        continue
                    player = self.players.get(t.name)
                    if player is None:
                        continue
                    week = player.weeks.get(ctx.week_key)
                    if is_01(game_type):
                        self._add_01_turn(player, week, parse_01_score(t.score), t.remaining, tiebreaker)
                    else:
                        self._add_cricket_turn(player, week, parse_cricket_marks(t.score), tiebreaker)

            if game_type == GAME_501:
                self._add_501_finish(ctx, leg, names)

    def _add_01_turn(self, player, week, score: int, remaining: Optional[int], tiebreaker: bool) -> None:
        flags = self.flags
        if score >= 100 and (
            not tiebreaker or flags.include_100plus or (flags.include_perfect and score == 180)
        ):
            player.hundred_plus += score
            if week:
                week.hundred_plus += score
        if score == 180 and (not tiebreaker or flags.include_180):
            player.one_eighty += 1
            if week:
                week.one_eighty += 1
        if remaining == 0 and score > 100 and (not tiebreaker or flags.include_hout):
            player.h_out = max(player.h_out, score)
            if week:
                week.h_out = max(week.h_out, score)

    def _add_cricket_turn(self, player, week, marks: int, tiebreaker: bool) -> None:
        flags = self.flags
        if marks >= 6 and (
            not tiebreaker or flags.include_rnds or (flags.include_perfect and marks == 9)
        ):
            player.rnds += marks
            if week:
                week.rnds += marks
        if marks == 9 and (not tiebreaker or flags.include_ro9):
            player.ro9 += 1
            if week:
                week.ro9 += 1

    def _add_501_finish(self, ctx: MatchContext, leg: Leg, names: Mapping[int, List[str]]) -> None:
        """Credit the leg's dart count to everyone who played for the winning side in this set."""
        if leg.winner_index not in (HOME, AWAY):
            return
        side = leg.home if leg.winner_index == HOME else leg.away
        darts = side.darts_thrown
        if darts is None or darts <= 0:
            return
        for pname in names[leg.winner_index]:
            player = self.players.get(pname)
            if player is None:
                continue
            if player.min_darts_501 is None or darts < player.min_darts_501:
                player.min_darts_501 = darts
            week = player.weeks.get(ctx.week_key)
            if week and (week.ldg is None or darts < week.ldg):
                week.ldg = darts

    def merge_player_stats(self, week_key: str, stats: Iterable[MatchPlayerStat]) -> None:
        """
        Fold the platform's own per-match aggregation in: week MPR/PPR are
        overwritten, season point/dart and mark/dart volumes are summed.
        """
        for ps in stats:
            player = self.players.get(ps.name)
            if player is None:
                continue
            week = player.weeks.get(week_key)
            if week:
                if ps.cricket_average is not None and ps.cricket_average > 0:
                    week.mpr = ps.cricket_average
                if ps.average_01 is not None and ps.average_01 > 0:
                    week.ppr = ps.average_01
            if ps.points_01 is not None and ps.darts_01:
                player.points_01 += ps.points_01
                player.darts_01 += ps.darts_01
            if ps.marks_cr is not None and ps.darts_cr:
                player.marks_cr += ps.marks_cr
                player.darts_cr += ps.darts_cr

    def win_pcts(self) -> Dict[str, float]:
        out = {}
        for name, p in self.players.items():
            total = p.set_wins + p.set_losses
            out[name] = p.set_wins / total if total > 0 else 0.0
        return out

    @staticmethod
    def strength_of_schedule(player: PlayerLine, win_pcts: Mapping[str, float]) -> Optional[float]:
        if not player.opponent_names:
            return None
        total = sum(win_pcts.get(n, 0.0) for n in player.opponent_names)
        return round(total / len(player.opponent_names), 3)

    def finalize(
        self,
        policy: ScoringPolicy,
        leaderboard_mpr: Optional[Mapping[str, float]] = None,
        division_for_team: Optional[Mapping[str, Optional[str]]] = None,
    ) -> List[PlayerSeasonStats]:
        """
        Derived pass: win% for everyone first, then SOS, averages, AVG/PTS and
        hot hand against the division thresholds in effect now.
        """
        leaderboard_mpr = leaderboard_mpr or {}
        division_for_team = division_for_team or {}
        win_pcts = self.win_pcts()
        win_pts = policy.win_points()

        out = []
        for name, p in self.players.items():
            if win_pts.is_default:
                avg = _ratio(p.set_wins, p.set_wins + p.set_losses, 3)
                pts: Optional[float] = float(p.set_wins)
            else:
                earned = available = 0.0
                for game_type in (GAME_CRICKET, GAME_601, GAME_501):
                    w, l = p.record(game_type)
                    value = win_pts.for_game(game_type)
                    earned += w * value
                    available += (w + l) * value
                avg = _ratio(earned, available, 3)
                pts = earned

            mpr = leaderboard_mpr.get(name)
            if mpr is None:
                mpr = _ratio(p.marks_cr * 3, p.darts_cr, 2)

            hh = policy.hot_hand(division_for_team.get(p.team_name))
            weeks = list(p.weeks.values())

            out.append(
                PlayerSeasonStats(
                    name=name,
                    dc_id=p.dc_id,
                    team_name=p.team_name,
                    pos=p.rank,
                    wp=len(p.weeks),
                    crkt=format_record(p.crkt_wins, p.crkt_losses),
                    col_601=format_record(p.col601_wins, p.col601_losses),
                    col_501=format_record(p.col501_wins, p.col501_losses),
                    set_wins=p.set_wins,
                    set_losses=p.set_losses,
                    sos=self.strength_of_schedule(p, win_pcts),
                    hundred_plus=p.hundred_plus,
                    rnds=p.rnds,
                    one_eighty=p.one_eighty,
                    ro9=p.ro9,
                    h_out=p.h_out,
                    ldg=p.min_darts_501,
                    zero_one_hh=hot_hand_value((w.hundred_plus for w in weeks), hh.zero_one),
                    ro_hh=hot_hand_value((w.rnds for w in weeks), hh.rounds),
                    mpr=mpr,
                    ppr=_ratio(p.points_01 * 3, p.darts_01, 2),
                    avg=avg,
                    pts=pts,
                    weeks=dict(p.weeks),
                )
            )
        return out


def leaderboard_mpr_by_name(rows) -> Dict[str, float]:
    """Season MPR per player from leaderboard rows (marks x 3 / darts)."""
    out = {}
    for row in rows:
        if row.darts:
            out[row.name] = round(row.points * 3 / row.darts, 2)
    return out
