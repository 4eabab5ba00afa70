"""
Parsers for DartConnect turn encodings.

Cricket turns arrive as compact hit notation ("T20, S18x2, DB, 0"); 01 turns
arrive as a number or a numeric string. Both parsers are total: anything they
cannot read contributes nothing instead of raising.
"""

import re
from typing import Any

GAME_601 = "601"
GAME_501 = "501"
GAME_CRICKET = "cricket"
GAME_OTHER = "other"

# T20, D16, S18, SB, DB with an optional single-digit repeat count (S18x2)
_CRICKET_HIT = re.compile(r"([TDS][0-9]+|[SD]B)(?:x([0-9]))?")

_MARKS_BY_PREFIX = {"T": 3, "D": 2, "S": 1}


def parse_cricket_marks(notation: Any) -> int:
    """
    Total marks for one cricket turn.

    Triple = 3, double = 2, single = 1, DB = 2, SB = 1. Bare "0" and any
    unrecognised token count as zero.
    """
    if not isinstance(notation, str):
        return 0

    marks = 0
    for hit, rep in _CRICKET_HIT.findall(notation):
        count = int(rep) if rep else 1
        if hit == "DB":
            marks += 2 * count
        elif hit == "SB":
            marks += 1 * count
        else:
            marks += _MARKS_BY_PREFIX[hit[0]] * count
    return marks


def parse_01_score(value: Any) -> int:
    """3-dart score for a 601/501 turn. Returns 0 for missing / unparseable input."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    s = str(value).strip().replace(",", "")
    if s.lstrip("-").isdigit():
        return int(s)
    return 0


def classify_game(game_name: Any) -> str:
    """Map a free-text game name to 601 / 501 / cricket / other."""
    n = str(game_name or "").lower()
    if "601" in n:
        return GAME_601
    if "501" in n:
        return GAME_501
    if "cricket" in n:
        return GAME_CRICKET
    return GAME_OTHER


def is_01(game_type: str) -> bool:
    return game_type in (GAME_601, GAME_501)
