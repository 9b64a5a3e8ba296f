"""Tests for the HTTP API routes and error envelope."""

import random

import pytest
from fastapi.testclient import TestClient

from arena.api.http_api import create_app
from arena.core.engine import ArenaEngine
from arena.core.orchestrator import Orchestrator
from arena.storage.generation_lock import GenerationLock
from arena.storage.pair_store import PairStore
from arena.storage.vote_ledger import VoteLedger
from tests.fakes import FakeProvider


def make_engine(providers, redis_client=None):
    orchestrator = Orchestrator()
    for provider in providers:
        orchestrator.register(provider)
    if redis_client is None:
        return ArenaEngine(orchestrator)
    ledger = VoteLedger(redis_client)
    return ArenaEngine(
        orchestrator,
        pair_store=PairStore(redis_client, ledger=ledger, rng=random.Random(3)),
        vote_ledger=ledger,
        generation_lock=GenerationLock(redis_client),
    )


@pytest.fixture
def engine(redis_client):
    return make_engine([FakeProvider("freepik")], redis_client)


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client


class TestGenerateRoute:
    """Test POST /api/v1/generate."""

    def test_generate(self, client):
        response = client.post("/api/v1/generate", json={"prompt": "a red fox"})

        assert response.status_code == 200
        body = response.json()
        assert body["provider"] == "freepik"
        assert body["prompt"] == "a red fox"
        assert body["left_url"].endswith("/left.png")
        assert body["right_url"].endswith("/right.png")
        assert len(body["images"]) == 2
        assert body["pair_id"]

    def test_missing_prompt(self, client):
        response = client.post("/api/v1/generate", json={})

        assert response.status_code == 400
        assert response.json()["code"] == "MISSING_PROMPT"

    def test_malformed_body(self, client):
        response = client.post("/api/v1/generate", json={"prompt": "x", "count": "many"})

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_REQUEST"

    def test_no_providers(self):
        engine = make_engine([FakeProvider("freepik", api_key=None)])
        with TestClient(create_app(engine)) as client:
            response = client.post("/api/v1/generate", json={"prompt": "a fox"})

        assert response.status_code == 503
        assert response.json()["code"] == "NO_PROVIDERS"

    def test_all_providers_failed(self):
        engine = make_engine([FakeProvider("freepik", outcomes=[RuntimeError("429 too many requests")])])
        with TestClient(create_app(engine)) as client:
            response = client.post("/api/v1/generate", json={"prompt": "a fox"})

        assert response.status_code == 502
        body = response.json()
        assert body["code"] == "GENERATION_FAILED"
        assert body["details"]["provider"] == "freepik"
        assert body["details"]["error_code"] == "RATE_LIMITED"

    def test_shutdown_cancels_generation(self, engine):
        app = create_app(engine)
        with TestClient(app) as client:
            app.state.shutdown_event.set()
            response = client.post("/api/v1/generate", json={"prompt": "a fox"})

        assert response.status_code == 503
        assert response.json()["code"] == "GENERATION_CANCELLED"
        assert engine.orchestrator.get_provider("freepik").calls == []

    def test_shutdown_event_set_when_app_stops(self, engine):
        app = create_app(engine)
        with TestClient(app):
            assert not app.state.shutdown_event.is_set()
        assert app.state.shutdown_event.is_set()


class TestPairRoutes:
    """Test pair retrieval and rating."""

    def test_no_pairs_yet(self, client):
        response = client.get("/api/v1/images/pair")
        assert response.status_code == 404
        assert response.json()["code"] == "NO_PAIRS_YET"

    def test_all_pairs_viewed(self, client):
        pair_id = client.post("/api/v1/generate", json={"prompt": "a fox"}).json()["pair_id"]

        first = client.get("/api/v1/images/pair", params={"session_id": "s1"})
        second = client.get("/api/v1/images/pair", params={"session_id": "s1"})
        excluded = client.get("/api/v1/images/pair", params={"exclude": f"{pair_id},other"})

        assert first.status_code == 200
        assert first.json()["pair_id"] == pair_id
        assert second.status_code == 404
        assert second.json()["code"] == "ALL_PAIRS_VIEWED"
        assert second.json()["error"] == "You have viewed all available image pairs"
        assert excluded.json()["code"] == "ALL_PAIRS_VIEWED"

    def test_rate_and_statistics(self, client):
        pair_id = client.post("/api/v1/generate", json={"prompt": "a fox"}).json()["pair_id"]

        response = client.post("/api/v1/images/rate", json={"pair_id": pair_id, "winner": "left"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["provider"] == "freepik"
        stats = client.get("/api/v1/statistics").json()
        assert stats == {"total_votes": 1, "side_wins": {"left": 1, "right": 0}}

        winners = client.get("/api/v1/images/winners", params={"side": "left"}).json()
        assert winners["pairs"][0]["pair_id"] == pair_id
        assert winners["pairs"][0]["vote_count"] == 1

        leaderboard = client.get("/api/v1/leaderboard").json()
        assert leaderboard["providers"][0]["provider"] == "freepik"

        recent = client.get("/api/v1/votes/recent", params={"limit": 5}).json()
        assert recent["votes"][0]["pair_id"] == pair_id

    def test_rate_bad_winner(self, client):
        response = client.post("/api/v1/images/rate", json={"pair_id": "x", "winner": "middle"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_WINNER"

    def test_rate_unknown_pair(self, client):
        response = client.post("/api/v1/images/rate", json={"pair_id": "missing", "winner": "left"})
        assert response.status_code == 404
        assert response.json()["details"]["pair_id"] == "missing"

    def test_winners_bad_side(self, client):
        response = client.get("/api/v1/images/winners", params={"side": "top"})
        assert response.status_code == 400

    def test_store_unavailable(self):
        engine = make_engine([FakeProvider("freepik")])
        with TestClient(create_app(engine)) as client:
            assert client.get("/api/v1/images/pair").status_code == 503
            assert client.get("/api/v1/statistics").json()["code"] == "STORE_UNAVAILABLE"
            assert client.post("/api/v1/generate", json={"prompt": "a fox"}).status_code == 200


class TestStatusRoutes:
    """Test status and health."""

    def test_status(self, client):
        response = client.get("/api/v1/status", params={"refresh_quota": "true"})
        assert response.status_code == 200
        assert response.json()["providers"]["freepik"]["available"] is True

    def test_health(self, client):
        body = client.get("/api/v1/health").json()
        assert body["status"] == "healthy"
        assert body["store"] == "connected"

    def test_unhealthy(self):
        engine = make_engine([FakeProvider("freepik", api_key=None)])
        with TestClient(create_app(engine)) as client:
            response = client.get("/api/v1/health")
        assert response.status_code == 503
        assert response.json()["details"]["status"] == "unhealthy"

    def test_cors_allows_any_origin(self, client):
        response = client.get("/api/v1/health", headers={"Origin": "https://arena.example"})
        assert response.headers["access-control-allow-origin"] == "*"
