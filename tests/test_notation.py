# tests/test_notation.py

import pytest

from etl.notation import classify_game, parse_01_score, parse_cricket_marks


@pytest.mark.parametrize(
    "notation,marks",
    [
        ("T20, S18x2, DB, 0", 7),
        ("T20, T20, T20", 9),
        ("T20x3", 9),
        ("SB, DB", 3),
        ("SBx2, D15", 4),
        ("S19", 1),
        ("0", 0),
        ("", 0),
    ],
)
def test_cricket_marks(notation, marks):
    assert parse_cricket_marks(notation) == marks


@pytest.mark.parametrize("junk", [None, 17, "garbage", "X20, Q", ["T20"]])
def test_cricket_marks_never_raises_on_junk(junk):
    assert parse_cricket_marks(junk) == 0


def test_cricket_marks_skips_unknown_tokens_but_keeps_known_ones():
    assert parse_cricket_marks("T20, ??, D16") == 5


@pytest.mark.parametrize(
    "value,score",
    [(140, 140), ("180", 180), (" 60 ", 60), (45.0, 45), (None, 0), ("", 0), ("BUST", 0), (True, 0)],
)
def test_01_score(value, score):
    assert parse_01_score(value) == score


@pytest.mark.parametrize(
    "name,kind",
    [
        ("601 SIDO", "601"),
        ("501 Double Out", "501"),
        ("Cricket", "cricket"),
        ("CRICKET (Cut Throat)", "cricket"),
        ("Mickey Mouse", "other"),
        ("", "other"),
        (None, "other"),
    ],
)
def test_classify_game(name, kind):
    assert classify_game(name) == kind
