# tests/test_api.py

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

import jobs_handler
import main
from etl.scoring import DEFAULT_GLOSSARY, GLOSSARY_KEY
from etl.scrape_runner import ScrapeError, ScrapeResult
from models import ScrapeLog, Season


@pytest.fixture
def client(monkeypatch, session_factory):
    monkeypatch.delenv("SCRAPE_SECRET", raising=False)
    monkeypatch.setattr(main, "SessionLocal", session_factory)
    return TestClient(main.app)


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestAuth:
    def test_secret_required_when_configured(self, client, monkeypatch):
        monkeypatch.setenv("SCRAPE_SECRET", "s3cret")
        assert client.get("/admin/content").status_code == 401
        assert client.get("/admin/content", headers={"Authorization": "Bearer nope"}).status_code == 401
        assert client.get("/admin/content", headers={"Authorization": "Bearer s3cret"}).status_code == 200

    def test_public_endpoints_stay_open(self, client, monkeypatch):
        monkeypatch.setenv("SCRAPE_SECRET", "s3cret")
        assert client.get("/scrape/status").status_code == 200
        assert client.get("/content/glossary").status_code == 200


class TestScrapeTrigger:
    def test_background_run_returns_202(self, client, monkeypatch):
        calls = []
        monkeypatch.setattr(main, "run_scrape_sync", lambda payload, triggered_by: calls.append((payload, triggered_by)))

        r = client.post("/scrape", json={"season_id": 100}, headers={"X-Triggered-By": "cron"})
        assert r.status_code == 202
        assert r.json() == {"ok": True, "started": True}
        assert len(calls) == 1
        payload, triggered_by = calls[0]
        assert (payload.season_id, payload.all, payload.force) == (100, False, False)
        assert triggered_by == "cron"

    def test_background_failure_is_only_logged(self, client, monkeypatch):
        def boom(payload, triggered_by):
            raise RuntimeError("network down")

        monkeypatch.setattr(main, "run_scrape_sync", boom)
        assert client.post("/scrape").status_code == 202

    def test_wait_returns_result(self, client, monkeypatch):
        seen = {}

        def fake_sync(payload, triggered_by):
            seen["payload"] = payload
            seen["triggered_by"] = triggered_by
            return ScrapeResult(seasons_scraped=1, players_updated=20, matches_updated=12, debug={"x": 1})

        monkeypatch.setattr(main, "run_scrape_sync", fake_sync)
        r = client.post("/scrape?wait=true", json={"all": True, "force": True})
        assert r.status_code == 200
        assert r.json() == {
            "ok": True,
            "seasons_scraped": 1,
            "players_updated": 20,
            "matches_updated": 12,
            "debug": {"x": 1},
        }
        assert seen["payload"].all and seen["payload"].force
        assert seen["triggered_by"] == "manual"

    def test_wait_runs_off_the_event_loop(self, client, monkeypatch):
        seen = {}

        def fake_sync(payload, triggered_by):
            try:
                asyncio.get_running_loop()
                seen["on_loop"] = True
            except RuntimeError:
                seen["on_loop"] = False
            return ScrapeResult()

        monkeypatch.setattr(main, "run_scrape_sync", fake_sync)
        assert client.post("/scrape?wait=true").status_code == 200
        assert seen["on_loop"] is False

    def test_wait_fatal_error(self, client, monkeypatch):
        def fake_sync(payload, triggered_by):
            raise ScrapeError("No seasons found", {"league": "empty"})

        monkeypatch.setattr(main, "run_scrape_sync", fake_sync)
        r = client.post("/scrape?wait=true")
        assert r.status_code == 500
        assert r.json() == {"error": "No seasons found", "debug": {"league": "empty"}}


def test_scrape_status(client, session_factory):
    assert client.get("/scrape/status").json() is None

    db = session_factory()
    db.add(ScrapeLog(triggered_by="manual", status="running"))
    db.add(ScrapeLog(season_id=100, triggered_by="scheduled", status="success", seasons_scraped=1, players_updated=2))
    db.commit()
    db.close()

    body = client.get("/scrape/status").json()
    assert body["status"] == "success"
    assert body["triggered_by"] == "scheduled"
    assert (body["season_id"], body["players_updated"]) == (100, 2)
    assert body["created_at"] is not None


class TestScoringConfig:
    def test_scope_required(self, client):
        assert client.get("/admin/scoring-config").status_code == 400

    def test_write_then_read(self, client):
        for division, value in ((None, "2"), (None, "3"), ("A", "4")):
            r = client.post(
                "/admin/scoring-config",
                json={"scope": "global", "division": division, "key": "cricket.win_pts", "value": value},
            )
            assert r.json() == {"ok": True}
        client.post("/admin/scoring-config", json={"scope": "100", "key": "01_hh.threshold", "value": "500"})

        rows = client.get("/admin/scoring-config?scope=global").json()
        assert sorted((r["division"] or "", r["value"]) for r in rows) == [("", "3"), ("A", "4")]

        both = client.get("/admin/scoring-config?scope=global&scope=100").json()
        assert len(both) == 3

    def test_missing_key_is_rejected(self, client):
        r = client.post("/admin/scoring-config", json={"scope": "global", "key": "", "value": "1"})
        assert r.status_code == 400

    def test_policy_reflects_overrides(self, client):
        client.post("/admin/scoring-config", json={"scope": "100", "division": "B", "key": "01_hh.threshold", "value": "500"})
        client.post("/admin/scoring-config", json={"scope": "global", "key": "g3.include_100plus", "value": "true"})

        policy = client.get("/scoring/policy?season_id=100&division=B").json()
        assert policy["hot_hand"]["zero_one"] == 500
        assert policy["tiebreaker"]["include_100plus"] is True

        default = client.get("/scoring/policy").json()
        assert default["hot_hand"] == {"zero_one": 475, "rounds": 20}


class TestContent:
    def test_glossary_default_then_stored(self, client):
        assert client.get("/content/glossary").json() == DEFAULT_GLOSSARY

        entries = [{"abbr": "LDG", "name": "Low Dart Game", "desc": "Fewest darts to win a 501 leg"}]
        r = client.post("/admin/content", json={"key": GLOSSARY_KEY, "value": json.dumps(entries)})
        assert r.json() == {"ok": True}
        assert client.get("/content/glossary").json() == entries
        assert GLOSSARY_KEY in client.get("/admin/content").json()

    def test_malformed_glossary_still_served(self, client):
        client.post("/admin/content", json={"key": GLOSSARY_KEY, "value": "{broken"})
        assert client.get("/content/glossary").json() == DEFAULT_GLOSSARY


def test_warehouse_counts(client, session_factory):
    db = session_factory()
    db.add(Season(id=100, name="Spring 2026"))
    db.commit()
    db.close()

    counts = client.get("/warehouse/counts").json()
    assert counts["seasons"] == 1
    assert counts["matches"] == 0


class TestJobsHandler:
    def test_builds_payload_and_reports_counts(self, monkeypatch):
        seen = {}

        def fake_sync(payload, triggered_by):
            seen["payload"] = payload
            seen["triggered_by"] = triggered_by
            return ScrapeResult(seasons_scraped=2, players_updated=40, matches_updated=30)

        monkeypatch.setattr(jobs_handler, "run_scrape_sync", fake_sync)
        out = jobs_handler.handler({"season_id": "100", "all": True}, None)

        assert out == {"ok": True, "seasons_scraped": 2, "players_updated": 40, "matches_updated": 30}
        assert seen["payload"].season_id == 100
        assert seen["payload"].all is True
        assert seen["payload"].force is False
        assert seen["triggered_by"] == "scheduled"

    def test_empty_event(self, monkeypatch):
        monkeypatch.setattr(jobs_handler, "run_scrape_sync", lambda payload, triggered_by: ScrapeResult())
        assert jobs_handler.handler(None, None)["ok"] is True

    def test_failure_is_reported(self, monkeypatch):
        def boom(payload, triggered_by):
            raise ScrapeError("No seasons found")

        monkeypatch.setattr(jobs_handler, "run_scrape_sync", boom)
        assert jobs_handler.handler({}, None) == {"ok": False, "error": "No seasons found"}
