"""
SQLAlchemy ORM models for the dart league stats warehouse.

These models define the schema populated by the scrape pipeline:
- Seasons, divisions and teams (one team row per team per season)
- Players (identity keyed by display name) and their season membership
- Derived per-season and per-week player stats, split by phase (REG / POST)
- Matches from the schedule feed and from match-history discovery
- Scoring configuration, site content and the append-only scrape log

All data is written by the ETL in `etl/` and read by the FastAPI backend.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from db import Base


class Season(Base):
    """
    League season reference table.

    The primary key is the DartConnect season id. `last_scraped_at` is only
    stamped after a season's full pipeline completes, which is what the
    "unscraped seasons only" run mode reads back.
    """

    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=False)

    league_id = Column(String, nullable=False, default="HaverDL")
    name = Column(String, nullable=False)
    start_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=False)

    last_scraped_at = Column(DateTime, nullable=True)


class Division(Base):
    """Division within a season ("A", "B", ...). Created lazily."""

    __tablename__ = "divisions"

    id = Column(Integer, primary_key=True, index=True)

    # DartConnect division id, only unique within a season
    dc_id = Column(Integer, nullable=False)
    season_id = Column(Integer, index=True, nullable=False)

    name = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("dc_id", "season_id", name="uq_division_dc_season"),
    )


class Team(Base):
    """
    Team reference table, one row per (team, season).

    Win/loss/points come from the platform's standings feed when available and
    are preferred over anything computed locally.
    """

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)

    dc_id = Column(Integer, nullable=False)
    season_id = Column(Integer, index=True, nullable=False)
    division_id = Column(Integer, nullable=True)

    name = Column(String, nullable=False)
    captain_name = Column(String, nullable=True)

    venue_name = Column(String, nullable=True)
    venue_address = Column(String, nullable=True)
    venue_phone = Column(String, nullable=True)

    dc_wins = Column(Integer, nullable=True)
    dc_losses = Column(Integer, nullable=True)
    dc_league_points = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("dc_id", "season_id", name="uq_team_dc_season"),
    )


class Player(Base):
    """
    Player identity table.

    `name` is the join key across the whole dataset. The DartConnect id is
    kept opportunistically but two ids rendering the same name collapse here.
    """

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, index=True)

    dc_guid = Column(String, nullable=True)
    name = Column(String, unique=True, index=True, nullable=False)


class PlayerSeasonTeam(Base):
    """
    Authoritative (player, season) -> (team, division) membership.

    Kept apart from PlayerStats so membership survives a failed stats pass.
    """

    __tablename__ = "player_season_teams"

    id = Column(Integer, primary_key=True, index=True)

    player_id = Column(Integer, index=True, nullable=False)
    season_id = Column(Integer, index=True, nullable=False)

    team_id = Column(Integer, nullable=True)
    team_name = Column(String, nullable=True)
    division_id = Column(Integer, nullable=True)
    division_name = Column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("player_id", "season_id", name="uq_player_season_team"),
    )


class PlayerStats(Base):
    """
    Derived per-player season stats, one row per (season, player, phase).

    Records are stored as "W-L" strings. Every scrape recomputes the full row.
    """

    __tablename__ = "player_stats"

    id = Column(Integer, primary_key=True, index=True)

    season_id = Column(Integer, index=True, nullable=False)
    player_id = Column(Integer, index=True, nullable=False)
    # REG / POST
    phase = Column(String, nullable=False, default="REG")

    team_id = Column(Integer, nullable=True)
    team_name = Column(String, nullable=True)

    pos = Column(Integer, nullable=True)
    wp = Column(Integer, nullable=True)

    crkt = Column(String, nullable=True)
    col_601 = Column(String, nullable=True)
    col_501 = Column(String, nullable=True)

    set_wins = Column(Integer, nullable=False, default=0)
    set_losses = Column(Integer, nullable=False, default=0)

    sos = Column(Float, nullable=True)

    hundred_plus = Column(Integer, nullable=False, default=0)
    rnds = Column(Integer, nullable=False, default=0)
    one_eighty = Column(Integer, nullable=False, default=0)
    ro9 = Column(Integer, nullable=False, default=0)
    h_out = Column(Integer, nullable=False, default=0)
    ldg = Column(Integer, nullable=True)

    zero_one_hh = Column(Integer, nullable=False, default=0)
    ro_hh = Column(Integer, nullable=False, default=0)

    mpr = Column(Float, nullable=True)
    ppr = Column(Float, nullable=True)
    avg = Column(Float, nullable=True)
    pts = Column(Float, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, index=True)

    __table_args__ = (
        UniqueConstraint("season_id", "player_id", "phase", name="uq_player_stats_season_player_phase"),
    )


class PlayerWeekStats(Base):
    """
    Derived per-player stats for a single match night.

    `week_key` is the platform's human date string (e.g. "27 Jan 2026").
    """

    __tablename__ = "player_week_stats"

    id = Column(Integer, primary_key=True, index=True)

    season_id = Column(Integer, index=True, nullable=False)
    player_id = Column(Integer, index=True, nullable=False)
    week_key = Column(String, nullable=False)
    phase = Column(String, nullable=False, default="REG")

    opponent_team = Column(String, nullable=True)

    set_wins = Column(Integer, nullable=False, default=0)
    set_losses = Column(Integer, nullable=False, default=0)
    crkt_wins = Column(Integer, nullable=False, default=0)
    crkt_losses = Column(Integer, nullable=False, default=0)
    col601_wins = Column(Integer, nullable=False, default=0)
    col601_losses = Column(Integer, nullable=False, default=0)
    col501_wins = Column(Integer, nullable=False, default=0)
    col501_losses = Column(Integer, nullable=False, default=0)

    hundred_plus = Column(Integer, nullable=False, default=0)
    one_eighty = Column(Integer, nullable=False, default=0)
    ro9 = Column(Integer, nullable=False, default=0)
    h_out = Column(Integer, nullable=False, default=0)
    ldg = Column(Integer, nullable=False, default=0)
    rnds = Column(Integer, nullable=False, default=0)

    mpr = Column(Float, nullable=True)
    ppr = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "season_id", "player_id", "week_key", "phase", name="uq_player_week_stats"
        ),
    )


class Match(Base):
    """
    League match table.

    Schedule-sourced rows use the platform's league match id. Rows discovered
    only through team match history get a negative id derived from the recap
    GUID and are upserted on `dc_guid` instead.
    """

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=False)

    season_id = Column(Integer, index=True, nullable=False)
    division_id = Column(Integer, nullable=True)
    division_name = Column(String, nullable=True)

    # Not always derivable; display falls back to the date
    round_seq = Column(Integer, nullable=True)

    home_team_id = Column(Integer, nullable=True)
    away_team_id = Column(Integer, nullable=True)
    home_team_name = Column(String, nullable=True)
    away_team_name = Column(String, nullable=True)

    sched_date = Column(Date, nullable=True)
    sched_time = Column(Time, nullable=True)
    pretty_date = Column(String, nullable=True)

    # "P" pending / "C" complete
    status = Column(String, nullable=False, default="P")
    home_score = Column(Integer, nullable=True, default=0)
    away_score = Column(Integer, nullable=True, default=0)

    dc_match_id = Column(Integer, nullable=True)
    dc_guid = Column(String, unique=True, nullable=True)

    # REG / POST
    season_status = Column(String, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, index=True)


class ScoringConfig(Base):
    """
    Generic scoring configuration store.

    `scope` is "global" or a season id rendered as a string. A null division
    applies to every division within that scope.
    """

    __tablename__ = "scoring_config"

    id = Column(Integer, primary_key=True, index=True)

    scope = Column(String, index=True, nullable=False)
    division = Column(String, nullable=True)
    key = Column(String, nullable=False)
    value = Column(String, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow)


class SiteContent(Base):
    """Free-form key/value content edited from the admin panel (e.g. the glossary)."""

    __tablename__ = "site_content"

    id = Column(Integer, primary_key=True, index=True)

    key = Column(String, unique=True, nullable=False)
    value = Column(Text, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow)


class ScrapeLog(Base):
    """Append-only record of scrape runs, polled by the status endpoint."""

    __tablename__ = "scrape_log"

    id = Column(Integer, primary_key=True, index=True)

    season_id = Column(Integer, nullable=True)
    # manual / scheduled / background
    triggered_by = Column(String, nullable=False, default="manual")
    # running / success / error
    status = Column(String, nullable=False)

    seasons_scraped = Column(Integer, nullable=True, default=0)
    players_updated = Column(Integer, nullable=True, default=0)
    matches_updated = Column(Integer, nullable=True, default=0)

    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
