"""API tests through FastAPI's TestClient with a stub LLM."""

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.demo import DEMO_STORY_ID, create_demo_story
from taleforge.llm import LLMError


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for name in ("TALEFORGE_API_KEY", "DEEPSEEK_API_KEY", "TALEFORGE_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def llm(make_llm):
    return make_llm()


@pytest.fixture
def app(tmp_path, llm):
    app = create_app(data_dir=tmp_path, llm=llm)
    create_demo_story(app.state.service.repository)
    return app


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


# ── Health & settings ────────────────────────────────────────


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_settings_masks_key(client):
    resp = client.patch("/api/settings", json={"llm": {"api_key": "sk-123", "model": "m"}})
    assert resp.status_code == 200
    assert resp.json()["llm"]["api_key"] == "***"
    assert resp.json()["llm"]["model"] == "m"
    assert client.get("/api/settings").json()["llm"]["api_key"] == "***"


def test_settings_rejects_bad_attempts(client):
    assert client.patch("/api/settings", json={"max_attempts": 0}).status_code == 422


# ── Stories ──────────────────────────────────────────────────


def test_list_stories(client):
    stories = client.get("/api/stories").json()["stories"]
    assert [s["id"] for s in stories] == [DEMO_STORY_ID]
    assert stories[0]["stats"]["total_segments"] == 1
    assert client.get("/api/stories?active=false").json()["stories"] == []


def test_create_story(client, llm):
    llm.add("narrator", "Waves crash against the pier as your journey begins.")
    resp = client.post("/api/stories", json={
        "title": "Harbor Tale", "genre": "adventure", "initial_location": "The Pier",
    })
    assert resp.status_code == 201
    story = resp.json()["story"]
    assert story["title"] == "Harbor Tale"
    assert story["current_location"] == "The Pier"
    assert [m["type"] for m in story["conversation_history"]] == ["ai"]


def test_create_story_requires_fields(client):
    assert client.post("/api/stories", json={"title": "x"}).status_code == 422


def test_get_story_player_view(client):
    story = client.get(f"/api/stories/{DEMO_STORY_ID}").json()["story"]
    assert story["title"] == "The Mysterious Tavern"
    assert story["known_characters"][0]["name"] == "Barkeep Magnus"
    assert "secrets" not in story["known_characters"][0]


def test_get_missing_story(client):
    resp = client.get("/api/stories/nope")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "Story not found"


def test_continue_story(client, llm, clean_text):
    llm.add("narrator", clean_text)
    resp = client.post(
        f"/api/stories/{DEMO_STORY_ID}/continue", json={"player_input": "I order an ale"}
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["generated_content"] == clean_text
    assert data["metadata"]["attempts"] == 1
    history = data["story"]["conversation_history"]
    assert [m["type"] for m in history] == ["ai", "player", "ai"]


def test_continue_requires_input(client):
    resp = client.post(f"/api/stories/{DEMO_STORY_ID}/continue", json={"player_input": " "})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Player input is required"


def test_continue_generation_failure(client, llm):
    llm.add("narrator", LLMError("Cannot connect to LLM backend at http://x"))
    resp = client.post(f"/api/stories/{DEMO_STORY_ID}/continue", json={"player_input": "go"})
    assert resp.status_code == 400
    assert resp.json()["detail"].startswith("Story generation failed")


def test_stats(client):
    stats = client.get(f"/api/stories/{DEMO_STORY_ID}/stats").json()["stats"]
    assert stats["characters_known"] == 1
    assert stats["inventory_items"] == 1
    assert stats["current_location"] == "The Crooked Crown Tavern"


def test_reset_and_archive(client):
    reset = client.post(f"/api/stories/{DEMO_STORY_ID}/reset").json()
    assert reset["story"]["conversation_history"] == []
    assert reset["story"]["current_location"] == "The Crooked Crown Tavern"

    client.post(f"/api/stories/{DEMO_STORY_ID}/archive")
    stories = client.get("/api/stories?active=false").json()["stories"]
    assert [s["id"] for s in stories] == [DEMO_STORY_ID]


def test_export_text(client):
    resp = client.get(f"/api/stories/{DEMO_STORY_ID}/export?format=text")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert 'filename="The_Mysterious_Tavern_export.text"' in resp.headers["content-disposition"]
    assert resp.text.startswith("# The Mysterious Tavern")


def test_export_json(client):
    resp = client.get(f"/api/stories/{DEMO_STORY_ID}/export")
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["id"] == DEMO_STORY_ID


def test_delete_story(client):
    assert client.delete(f"/api/stories/{DEMO_STORY_ID}").status_code == 200
    assert client.delete(f"/api/stories/{DEMO_STORY_ID}").status_code == 404


# ── Admin ────────────────────────────────────────────────────


def test_admin_view_includes_secrets(client):
    story = client.get(f"/api/stories/{DEMO_STORY_ID}/admin").json()["story"]
    assert story["characters"][0]["secrets"] == [
        "Knows about the hidden cellar", "Former adventurer",
    ]


def test_admin_update(client):
    resp = client.put(f"/api/stories/{DEMO_STORY_ID}/admin", json={"title": "Renamed"})
    assert resp.status_code == 200
    assert resp.json()["story"]["title"] == "Renamed"


def test_admin_update_invalid(client):
    bad_goal = {"goals": [{"title": "x", "progress": 500}]}
    assert client.put(f"/api/stories/{DEMO_STORY_ID}/admin", json=bad_goal).status_code == 422
    assert client.put(f"/api/stories/{DEMO_STORY_ID}/admin", json={"id": "x"}).status_code == 400
    assert client.put("/api/stories/nope/admin", json={"title": "x"}).status_code == 404
