from __future__ import annotations

import logging

from etl.scrape_runner import ScrapePayload, run_scrape_sync

logger = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


def handler(event, context):
    """
    EventBridge -> Lambda entrypoint (NOT HTTP).
    Runs the same scrape as POST /scrape, tagged as "scheduled".
    """

    event = event or {}
    season_id = event.get("season_id")
    payload = ScrapePayload(
        season_id=int(season_id) if season_id is not None else None,
        all=bool(event.get("all", False)),
        force=bool(event.get("force", False)),
    )

    logger.info(f"[jobs] starting scrape: season_id={payload.season_id} all={payload.all} force={payload.force}")

    try:
        result = run_scrape_sync(payload, "scheduled")
    except Exception as e:
        # No caller to report to; scrape_log already holds the error row
        logger.error(f"[jobs] scrape failed: {type(e).__name__}: {e}")
        return {"ok": False, "error": str(e)}

    logger.info(
        f"[jobs] done: seasons={result.seasons_scraped} players={result.players_updated} matches={result.matches_updated}"
    )
    return {
        "ok": True,
        "seasons_scraped": result.seasons_scraped,
        "players_updated": result.players_updated,
        "matches_updated": result.matches_updated,
    }
