from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mangum import Mangum
from pydantic import BaseModel

from db import SessionLocal
from models import (
    Division,
    Match,
    Player,
    PlayerStats,
    PlayerWeekStats,
    ScoringConfig,
    ScrapeLog,
    Season,
    SiteContent,
    Team,
)

# Scrape pipeline (fetch -> accumulate -> upsert)
from etl.scrape_runner import ScrapeError, ScrapePayload, run_scrape_sync
from etl.scoring import load_glossary, load_policy, save_config_row
from etl.upsert import upsert_site_content

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Dart League Stats API")

# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------
FRONTEND_ORIGINS = os.getenv(
    "FRONTEND_ORIGINS",
    "http://localhost:5173"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in FRONTEND_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------------------------------------------------------
# AUTH
# -----------------------------------------------------------------------------
def require_secret(authorization: Optional[str] = Header(None)):
    """
    Bearer check for trigger/admin endpoints.
    Open when SCRAPE_SECRET is not configured (local dev).
    """
    secret = os.getenv("SCRAPE_SECRET")
    if not secret:
        return
    if authorization != f"Bearer {secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


# -----------------------------------------------------------------------------
# HEALTH
# -----------------------------------------------------------------------------
@app.get("/health")
def health():
    """Basic health check for uptime monitoring and local debugging."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------------------------------------------------------------------------
def log_row(row: ScrapeLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "season_id": row.season_id,
        "triggered_by": row.triggered_by,
        "status": row.status,
        "seasons_scraped": row.seasons_scraped,
        "players_updated": row.players_updated,
        "matches_updated": row.matches_updated,
        "error_message": row.error_message,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


def run_in_background(payload: ScrapePayload, triggered_by: str):
    """
    BackgroundTasks entrypoint. The outcome is already in scrape_log, so a
    failure here only needs a log line.
    """
    try:
        run_scrape_sync(payload, triggered_by)
    except Exception:
        logger.exception("Background scrape failed")


# ---------------------------------------------------------------------------------------------------------------------------------------------
# SCRAPE (ETL)
# ---------------------------------------------------------------------------------------------------------------------------------------------
class ScrapeRequest(BaseModel):
    season_id: Optional[int] = None
    all: bool = False
    force: bool = False


@app.post("/scrape", dependencies=[Depends(require_secret)])
def trigger_scrape(
    background_tasks: BackgroundTasks,
    req: Optional[ScrapeRequest] = None,
    wait: bool = False,
    x_triggered_by: Optional[str] = Header(None),
):
    """
    Start a scrape.

    Default: detached background run, 202 immediately; poll /scrape/status.
    `?wait=true` runs on a worker thread and returns the result (local dev / CLI use).
    """
    req = req or ScrapeRequest()
    payload = ScrapePayload(season_id=req.season_id, all=req.all, force=req.force)
    triggered_by = x_triggered_by or "manual"

    if not wait:
        background_tasks.add_task(run_in_background, payload, triggered_by)
        return JSONResponse(status_code=202, content={"ok": True, "started": True})

    try:
        result = run_scrape_sync(payload, triggered_by)
    except ScrapeError as e:
        return JSONResponse(status_code=500, content={"error": str(e), "debug": e.debug})
    except Exception as e:
        logger.exception("Scrape failed")
        return JSONResponse(status_code=500, content={"error": str(e), "debug": {}})
    return {"ok": True, **result.as_dict()}


@app.get("/scrape/status")
def scrape_status():
    """Most recent scrape_log row, or null when nothing has run yet."""
    db = SessionLocal()
    try:
        row = db.query(ScrapeLog).order_by(ScrapeLog.id.desc()).first()
        return log_row(row) if row else None
    finally:
        db.close()


# ---------------------------------------------------------------------------------------------------------------------------------------------
# SCORING CONFIG
# ---------------------------------------------------------------------------------------------------------------------------------------------
class ScoringConfigWrite(BaseModel):
    scope: str
    division: Optional[str] = None
    key: str
    value: str


@app.get("/admin/scoring-config", dependencies=[Depends(require_secret)])
def get_scoring_config(scope: List[str] = Query([])):
    """All rows for the requested scope(s): ?scope=global&scope=21010."""
    if not scope:
        raise HTTPException(status_code=400, detail="scope query param required")
    db = SessionLocal()
    try:
        rows = db.query(ScoringConfig).filter(ScoringConfig.scope.in_(scope)).all()
        return [
            {
                "id": r.id,
                "scope": r.scope,
                "division": r.division,
                "key": r.key,
                "value": r.value,
            }
            for r in rows
        ]
    finally:
        db.close()


@app.post("/admin/scoring-config", dependencies=[Depends(require_secret)])
def write_scoring_config(req: ScoringConfigWrite):
    if not req.scope or not req.key:
        raise HTTPException(status_code=400, detail="scope, key, and value are required")
    db = SessionLocal()
    try:
        save_config_row(db, req.scope, req.division, req.key, req.value)
        db.commit()
        return {"ok": True}
    finally:
        db.close()


@app.get("/scoring/policy")
def scoring_policy(season_id: Optional[int] = None, division: Optional[str] = None):
    """Resolved scoring policy (flags, win points, hot-hand thresholds) for display."""
    db = SessionLocal()
    try:
        return load_policy(db, season_id).as_dict(division)
    finally:
        db.close()


# ---------------------------------------------------------------------------------------------------------------------------------------------
# SITE CONTENT
# ---------------------------------------------------------------------------------------------------------------------------------------------
class ContentWrite(BaseModel):
    key: str
    value: str


@app.get("/admin/content", dependencies=[Depends(require_secret)])
def get_content():
    db = SessionLocal()
    try:
        return {r.key: r.value for r in db.query(SiteContent).all()}
    finally:
        db.close()


@app.post("/admin/content", dependencies=[Depends(require_secret)])
def write_content(req: ContentWrite):
    if not req.key:
        raise HTTPException(status_code=400, detail="key and value are required")
    db = SessionLocal()
    try:
        upsert_site_content(db, req.key, req.value)
        db.commit()
        return {"ok": True}
    finally:
        db.close()


@app.get("/content/glossary")
def glossary():
    db = SessionLocal()
    try:
        return load_glossary(db)
    finally:
        db.close()


# ---------------------------------------------------------------------------------------------------------------------------------------------
# WAREHOUSE (DB) - READ ENDPOINTS
# ---------------------------------------------------------------------------------------------------------------------------------------------
@app.get("/warehouse/counts")
def warehouse_counts():
    """Quick counts for sanity checking DB state (useful during development)."""
    db = SessionLocal()
    try:
        return {
            "seasons": db.query(Season).count(),
            "divisions": db.query(Division).count(),
            "teams": db.query(Team).count(),
            "players": db.query(Player).count(),
            "matches": db.query(Match).count(),
            "player_stats": db.query(PlayerStats).count(),
            "player_week_stats": db.query(PlayerWeekStats).count(),
        }
    finally:
        db.close()


handler = Mangum(app)
