"""Tests for the in-memory artifact service and artifact access from callbacks."""

import pytest

from agent_tree import CallbackContext, LlmAgent, Part

from conftest import FakeLlm, call_response, text_response


KEY = {"app_name": "app", "user_id": "u", "session_id": "s"}


class TestInMemoryArtifactService:
    async def test_versions_increase(self, artifact_service):
        v0 = await artifact_service.save_artifact(**KEY, filename="report.txt", artifact=Part.from_text("v0"))
        v1 = await artifact_service.save_artifact(**KEY, filename="report.txt", artifact=Part.from_text("v1"))
        assert (v0, v1) == (0, 1)
        assert await artifact_service.list_versions(**KEY, filename="report.txt") == [0, 1]

    async def test_load_latest_and_specific(self, artifact_service):
        await artifact_service.save_artifact(**KEY, filename="report.txt", artifact=Part.from_text("v0"))
        await artifact_service.save_artifact(**KEY, filename="report.txt", artifact=Part.from_text("v1"))

        latest = await artifact_service.load_artifact(**KEY, filename="report.txt")
        first = await artifact_service.load_artifact(**KEY, filename="report.txt", version=0)
        assert latest.text == "v1"
        assert first.text == "v0"
        assert await artifact_service.load_artifact(**KEY, filename="report.txt", version=5) is None

    async def test_load_missing(self, artifact_service):
        assert await artifact_service.load_artifact(**KEY, filename="nope") is None
        assert await artifact_service.list_versions(**KEY, filename="nope") == []

    async def test_session_scope(self, artifact_service):
        await artifact_service.save_artifact(**KEY, filename="a.txt", artifact=Part.from_text("x"))
        other = {**KEY, "session_id": "other"}
        assert await artifact_service.load_artifact(**other, filename="a.txt") is None
        assert await artifact_service.list_artifact_keys(**other) == []

    async def test_user_namespace_shared_across_sessions(self, artifact_service):
        await artifact_service.save_artifact(**KEY, filename="user:profile.json", artifact=Part.from_text("{}"))
        other = {**KEY, "session_id": "other"}
        loaded = await artifact_service.load_artifact(**other, filename="user:profile.json")
        assert loaded.text == "{}"
        assert await artifact_service.list_artifact_keys(**other) == ["user:profile.json"]

    async def test_list_keys_sorted(self, artifact_service):
        for name in ["b.txt", "a.txt", "user:z.txt"]:
            await artifact_service.save_artifact(**KEY, filename=name, artifact=Part.from_text(name))
        assert await artifact_service.list_artifact_keys(**KEY) == ["a.txt", "b.txt", "user:z.txt"]

    async def test_delete(self, artifact_service):
        await artifact_service.save_artifact(**KEY, filename="a.txt", artifact=Part.from_text("x"))
        await artifact_service.delete_artifact(**KEY, filename="a.txt")
        assert await artifact_service.load_artifact(**KEY, filename="a.txt") is None
        assert await artifact_service.list_artifact_keys(**KEY) == []

    async def test_binary_content(self, artifact_service):
        await artifact_service.save_artifact(**KEY, filename="img.png", artifact=Part.from_bytes(b"\x89PNG", "image/png"))
        loaded = await artifact_service.load_artifact(**KEY, filename="img.png")
        assert loaded.inline_data.data == b"\x89PNG"
        assert loaded.inline_data.mime_type == "image/png"

    async def test_session_bound_helpers(self, artifact_service, session_service):
        session = session_service.create_session_sync("app", "u", session_id="s")
        version = await artifact_service.save_session_artifact(session, "notes.txt", Part.from_text("hi"))
        assert version == 0
        assert (await artifact_service.load_session_artifact(session, "notes.txt")).text == "hi"
        assert await artifact_service.list_session_artifact_keys(session) == ["notes.txt"]
        assert await artifact_service.list_session_versions(session, "notes.txt") == [0]
        await artifact_service.delete_session_artifact(session, "notes.txt")
        assert await artifact_service.list_session_artifact_keys(session) == []


class TestArtifactsFromContext:
    async def test_callback_context_records_artifact_delta(self, make_context):
        agent = LlmAgent(name="a", model=FakeLlm())
        ctx = make_context(agent)
        callback_context = CallbackContext(ctx)

        await callback_context.save_artifact("out.txt", Part.from_text("first"))
        version = await callback_context.save_artifact("out.txt", Part.from_text("second"))

        assert version == 1
        assert callback_context.actions.artifact_delta == {"out.txt": 1}
        assert (await callback_context.load_artifact("out.txt", version=0)).text == "first"
        assert await callback_context.list_artifacts() == ["out.txt"]

    async def test_missing_artifact_service(self, make_context):
        agent = LlmAgent(name="a", model=FakeLlm())
        ctx = make_context(agent)
        ctx.artifact_service = None
        with pytest.raises(ValueError, match="Artifact service is not initialized"):
            await CallbackContext(ctx).list_artifacts()

    async def test_tool_saves_artifact(self, make_context, run_agent, artifact_service):
        async def write_report(title: str, tool_context) -> str:
            version = await tool_context.save_artifact("report.txt", Part.from_text(f"# {title}"))
            return f"saved v{version}"

        llm = FakeLlm(responses=[call_response("write_report", {"title": "Q3"}), text_response("done")])
        agent = LlmAgent(name="a", model=llm, tools=[write_report])
        ctx = make_context(agent)
        events = await run_agent(agent, ctx)

        assert events[1].actions.artifact_delta == {"report.txt": 0}
        saved = await artifact_service.load_session_artifact(ctx.session, "report.txt")
        assert saved.text == "# Q3"
