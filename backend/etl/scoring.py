"""
Scoring policy resolution.

Every scoring toggle and threshold lives in the `scoring_config` table as a
(scope, division, key) -> value row. This module is the only place that knows
the defaults; the accumulation engine and the HTTP layer both go through it.

Precedence, lowest to highest:
    (global, all divisions) < (global, division) < (season, all) < (season, division)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from models import ScoringConfig, SiteContent

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"

# Tiebreaker (leg 3) inclusion flags
G3_INCLUDE_100PLUS = "g3.include_100plus"
G3_INCLUDE_180 = "g3.include_180"
G3_INCLUDE_HOUT = "g3.include_hout"
G3_INCLUDE_RNDS = "g3.include_rnds"
G3_INCLUDE_RO9 = "g3.include_ro9"
G3_INCLUDE_PERFECT = "g3.include_perfect"

WIN_PTS_KEYS = {
    "cricket": "cricket.win_pts",
    "601": "601.win_pts",
    "501": "501.win_pts",
}

HH_01_THRESHOLD = "01_hh.threshold"
HH_RO_THRESHOLD = "ro_hh.threshold"

FLAG_DEFAULTS = {
    G3_INCLUDE_100PLUS: False,
    G3_INCLUDE_180: True,
    G3_INCLUDE_HOUT: True,
    G3_INCLUDE_RNDS: False,
    G3_INCLUDE_RO9: True,
    G3_INCLUDE_PERFECT: False,
}

# division -> (01 hot hand, rounds hot hand)
DEFAULT_HH = {
    "A": (475, 20),
    "B": (450, 17),
    "C": (425, 14),
    "D": (400, 12),
}
FALLBACK_HH = (475, 20)

GLOSSARY_KEY = "about.glossary"

DEFAULT_GLOSSARY = [
    {"abbr": "CRKT", "name": "Cricket Record", "desc": "Win-loss record in Cricket sets."},
    {"abbr": "601", "name": "601 Record", "desc": "Win-loss record in 601 sets."},
    {"abbr": "501", "name": "501 Record", "desc": "Win-loss record in 501 sets."},
    {"abbr": "SOS", "name": "Strength of Schedule", "desc": "Average set win percentage of the individual opponents faced."},
    {"abbr": "100+", "name": "100+ Scores", "desc": "Sum of 3-dart turns scoring 100 or more in 01 games."},
    {"abbr": "180", "name": "180s", "desc": "Perfect 3-dart scores of 180."},
    {"abbr": "H Out", "name": "High Out", "desc": "Highest checkout over 100."},
    {"abbr": "3DA", "name": "3-Dart Average", "desc": "Total 01 points x 3 / total 01 darts."},
    {"abbr": "01 HH", "name": "01 Hot Hand", "desc": "Best weekly 100+ total that meets the division threshold."},
    {"abbr": "LDG", "name": "Low Dart Game", "desc": "Fewest darts used to win a 501 leg."},
    {"abbr": "RNDS", "name": "Cricket Rounds", "desc": "Total marks from cricket turns of 6 marks or more."},
    {"abbr": "RO9", "name": "9-Mark Turns", "desc": "Cricket turns of exactly 9 marks."},
    {"abbr": "MPR", "name": "Marks Per Round", "desc": "Total cricket marks x 3 / total cricket darts."},
    {"abbr": "RO HH", "name": "Rounds Hot Hand", "desc": "Best weekly RNDS total that meets the division threshold."},
    {"abbr": "AVG", "name": "Average", "desc": "Points earned / points available."},
    {"abbr": "PTS", "name": "Points", "desc": "Points earned from set wins."},
]


@dataclass(frozen=True)
class TiebreakerFlags:
    include_100plus: bool = False
    include_180: bool = True
    include_hout: bool = True
    include_rnds: bool = False
    include_ro9: bool = True
    include_perfect: bool = False


@dataclass(frozen=True)
class WinPoints:
    cricket: float = 1.0
    x601: float = 1.0
    x501: float = 1.0

    def for_game(self, game_type: str) -> float:
        if game_type == "cricket":
            return self.cricket
        if game_type == "601":
            return self.x601
        if game_type == "501":
            return self.x501
        return 0.0

    @property
    def is_default(self) -> bool:
        return self.cricket == 1 and self.x601 == 1 and self.x501 == 1


@dataclass(frozen=True)
class HotHandThresholds:
    zero_one: int
    rounds: int


ConfigRow = Tuple[str, Optional[str], str, str]


def resolve_config(
    rows: Iterable[ConfigRow],
    season_id: Optional[int],
    division: Optional[str],
    key: str,
) -> Optional[str]:
    """
    Resolve one key from (scope, division, key, value) rows.

    Returns None when no row applies; callers supply the default.
    """
    season_scope = str(season_id) if season_id is not None else None
    ranked = {}
    for scope, row_div, row_key, value in rows:
        if row_key != key:
            continue
        if scope == GLOBAL_SCOPE:
            base = 0
        elif season_scope is not None and scope == season_scope:
            base = 2
        else:
            continue
        if row_div is None or row_div == "":
            rank = base
        elif division is not None and row_div == division:
            rank = base + 1
        else:
            continue
        ranked[rank] = value
    if not ranked:
        return None
    return ranked[max(ranked)]


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value == "true":
        return True
    if value == "false":
        return False
    return default


def _as_number(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


class ScoringPolicy:
    """
    Resolved scoring policy for one season.

    Built from config rows once per scrape and handed to the accumulation
    engine; the HTTP layer builds the same object for display.
    """

    def __init__(self, season_id: Optional[int], rows: Iterable[ConfigRow] = ()):
        self.season_id = season_id
        self.rows: List[ConfigRow] = list(rows)

    def get(self, key: str, division: Optional[str] = None) -> Optional[str]:
        return resolve_config(self.rows, self.season_id, division, key)

    def flag(self, key: str, division: Optional[str] = None) -> bool:
        return _as_bool(self.get(key, division), FLAG_DEFAULTS[key])

    def tiebreaker_flags(self) -> TiebreakerFlags:
        # Tiebreaker flags are league-wide: only all-division rows apply
        return TiebreakerFlags(
            include_100plus=self.flag(G3_INCLUDE_100PLUS),
            include_180=self.flag(G3_INCLUDE_180),
            include_hout=self.flag(G3_INCLUDE_HOUT),
            include_rnds=self.flag(G3_INCLUDE_RNDS),
            include_ro9=self.flag(G3_INCLUDE_RO9),
            include_perfect=self.flag(G3_INCLUDE_PERFECT),
        )

    def win_points(self) -> WinPoints:
        return WinPoints(
            cricket=_as_number(self.get(WIN_PTS_KEYS["cricket"]), 1.0),
            x601=_as_number(self.get(WIN_PTS_KEYS["601"]), 1.0),
            x501=_as_number(self.get(WIN_PTS_KEYS["501"]), 1.0),
        )

    def hot_hand(self, division: Optional[str]) -> HotHandThresholds:
        default_01, default_ro = DEFAULT_HH.get(division or "", FALLBACK_HH)
        return HotHandThresholds(
            zero_one=int(_as_number(self.get(HH_01_THRESHOLD, division), default_01)),
            rounds=int(_as_number(self.get(HH_RO_THRESHOLD, division), default_ro)),
        )

    def as_dict(self, division: Optional[str] = None) -> Dict[str, object]:
        flags = self.tiebreaker_flags()
        pts = self.win_points()
        hh = self.hot_hand(division)
        return {
            "season_id": self.season_id,
            "division": division,
            "tiebreaker": {
                "include_100plus": flags.include_100plus,
                "include_180": flags.include_180,
                "include_hout": flags.include_hout,
                "include_rnds": flags.include_rnds,
                "include_ro9": flags.include_ro9,
                "include_perfect": flags.include_perfect,
            },
            "win_pts": {"cricket": pts.cricket, "601": pts.x601, "501": pts.x501},
            "hot_hand": {"zero_one": hh.zero_one, "rounds": hh.rounds},
        }


def load_policy(db, season_id: Optional[int]) -> ScoringPolicy:
    """Read the global + season rows and build a ScoringPolicy."""
    scopes = [GLOBAL_SCOPE]
    if season_id is not None:
        scopes.append(str(season_id))
    rows = db.query(ScoringConfig).filter(ScoringConfig.scope.in_(scopes)).all()
    return ScoringPolicy(season_id, [(r.scope, r.division, r.key, r.value) for r in rows])


def save_config_row(db, scope: str, division: Optional[str], key: str, value: str) -> None:
    """
    Write one config row.

    Delete-then-insert: a NULL division cannot take part in a conflict target.
    """
    q = db.query(ScoringConfig).filter(ScoringConfig.scope == scope, ScoringConfig.key == key)
    if division is None:
        q = q.filter(ScoringConfig.division.is_(None))
    else:
        q = q.filter(ScoringConfig.division == division)
    q.delete(synchronize_session=False)
    db.add(ScoringConfig(scope=scope, division=division, key=key, value=value))
    db.flush()


def load_glossary(db) -> List[Dict[str, str]]:
    """Glossary entries from site content, falling back to the built-in list."""
    row = db.query(SiteContent).filter(SiteContent.key == GLOSSARY_KEY).first()
    if row is None:
        return DEFAULT_GLOSSARY
    try:
        entries = json.loads(row.value)
    except ValueError:
        logger.warning("Stored glossary is not valid JSON; using default")
        return DEFAULT_GLOSSARY
    if not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries):
        logger.warning("Stored glossary has unexpected shape; using default")
        return DEFAULT_GLOSSARY
    return entries
