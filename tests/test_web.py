"""Tests for the FastAPI service."""

import asyncio
import base64
import json

import pytest
from fastapi.testclient import TestClient

from agent_tree import Config, LlmAgent, LlmCallsLimitExceededError, LlmResponse, Part, RunnerConfig, set_config
from web import AgentService

from conftest import FakeLlm, call_response, text_response


@pytest.fixture(autouse=True)
def default_config():
    set_config(Config())


@pytest.fixture
def llm():
    return FakeLlm()


@pytest.fixture
def service(llm):
    return AgentService(app_name="web_app", agent=LlmAgent(name="assistant", model=llm))


@pytest.fixture
def client(service):
    return TestClient(service.app)


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "app_name": "web_app", "agent": "assistant"}


class TestSessionsApi:
    def test_create_and_get(self, client):
        created = client.post("/api/sessions", json={"user_id": "u", "session_id": "s", "state": {"lang": "en"}})
        assert created.status_code == 200
        assert created.json()["state"] == {"lang": "en"}

        fetched = client.get("/api/sessions/u/s")
        assert fetched.status_code == 200
        assert fetched.json()["session_id"] == "s"
        assert fetched.json()["event_count"] == 0

    def test_duplicate(self, client):
        client.post("/api/sessions", json={"user_id": "u", "session_id": "s"})
        response = client.post("/api/sessions", json={"user_id": "u", "session_id": "s"})
        assert response.status_code == 400

    def test_get_missing(self, client):
        assert client.get("/api/sessions/u/nope").status_code == 404

    def test_list_and_delete(self, client):
        client.post("/api/sessions", json={"user_id": "u1", "session_id": "a"})
        client.post("/api/sessions", json={"user_id": "u2", "session_id": "b"})

        assert client.get("/api/sessions").json()["total"] == 2
        listed = client.get("/api/sessions", params={"user_id": "u1"}).json()
        assert [s["session_id"] for s in listed["sessions"]] == ["a"]

        assert client.delete("/api/sessions/u1/a").status_code == 200
        assert client.delete("/api/sessions/u1/a").status_code == 404


class TestChatApi:
    def test_chat_creates_session(self, client, llm):
        llm.responses.append(text_response("Hello there"))

        response = client.post("/api/chat", json={"user_id": "u", "session_id": "s", "message": "hi"})

        assert response.status_code == 200
        body = response.json()
        assert body["response"] == "Hello there"
        assert body["author"] == "assistant"
        assert len(body["events"]) == 1

        session = client.get("/api/sessions/u/s").json()
        assert [e["author"] for e in session["events"]] == ["user", "assistant"]
        assert session["events"][0]["content"]["parts"][0]["text"] == "hi"

    def test_list_shows_messages(self, client, llm):
        llm.responses.extend([text_response("one"), text_response("two")])
        client.post("/api/chat", json={"user_id": "u", "session_id": "s", "message": "first"})
        client.post("/api/chat", json={"user_id": "u", "session_id": "s", "message": "second"})

        listed = client.get("/api/sessions", params={"user_id": "u"}).json()["sessions"][0]
        assert listed["first_message"] == "first"
        assert listed["last_message"] == "second"
        assert listed["event_count"] == 4

    def test_chat_respects_configured_call_limit(self):
        def ping() -> str:
            return "pong"

        set_config(Config(runner=RunnerConfig(max_llm_calls=1)))
        llm = FakeLlm(responses=[call_response("ping"), call_response("ping"), text_response("done")])
        service = AgentService(app_name="web_app", agent=LlmAgent(name="assistant", model=llm, tools=[ping]))

        with pytest.raises(LlmCallsLimitExceededError):
            TestClient(service.app).post("/api/chat", json={"user_id": "u", "session_id": "s", "message": "hi"})

        assert len(llm.requests) == 1

    def test_stream(self, client, llm):
        llm.responses.append([LlmResponse.create_delta("Hel"), LlmResponse.create_delta("lo", 1), text_response("Hello")])

        with client.stream("POST", "/api/chat/stream", json={"user_id": "u", "session_id": "s", "message": "hi"}) as response:
            assert response.status_code == 200
            lines = [line for line in response.iter_lines() if line.startswith("data: ")]

        assert lines[-1] == "data: [DONE]"
        events = [json.loads(line[len("data: "):]) for line in lines[:-1]]
        assert [e.get("partial", False) for e in events] == [True, True, False]
        assert events[-1]["content"]["parts"][0]["text"] == "Hello"

    def test_stream_error_reported_as_event(self, client, llm):
        # 没有脚本响应时 FakeLlm 抛出异常
        with client.stream("POST", "/api/chat/stream", json={"user_id": "u", "session_id": "s", "message": "hi"}) as response:
            lines = [line for line in response.iter_lines() if line.startswith("data: ")]

        assert "error" in json.loads(lines[-1][len("data: "):])


class TestArtifactsApi:
    async def _save(self, service, filename, part):
        return await service.artifact_service.save_artifact(
            app_name="web_app", user_id="u", session_id="s", filename=filename, artifact=part
        )

    def test_list_and_load(self, client, service):
        asyncio.run(self._save(service, "notes.txt", Part.from_text("v0")))
        asyncio.run(self._save(service, "notes.txt", Part.from_text("v1")))
        asyncio.run(self._save(service, "logo.png", Part.from_bytes(b"\x89PNG", "image/png")))

        assert client.get("/api/artifacts/u/s").json() == {"artifacts": ["logo.png", "notes.txt"]}

        notes = client.get("/api/artifacts/u/s/notes.txt").json()
        assert notes == {"filename": "notes.txt", "versions": [0, 1], "text": "v1"}
        assert client.get("/api/artifacts/u/s/notes.txt", params={"version": 0}).json()["text"] == "v0"

        logo = client.get("/api/artifacts/u/s/logo.png").json()
        assert logo["mime_type"] == "image/png"
        assert base64.b64decode(logo["data"]) == b"\x89PNG"

    def test_missing_artifact(self, client):
        assert client.get("/api/artifacts/u/s/nope.txt").status_code == 404
