"""Shared fixtures for agent_tree tests."""

from typing import Any, AsyncIterator

import pytest
from pydantic import Field

from agent_tree import (
    Content,
    Event,
    InMemoryArtifactService,
    InvocationContext,
    LlmRegistry,
    Part,
    RunConfig,
    SessionService,
)
from agent_tree.models import BaseLlm, LlmRequest, LlmResponse


class FakeLlm(BaseLlm):
    """Scripted model: pops one entry from ``responses`` per call and records every request.

    An entry is either a single LlmResponse or a list of them (streamed chunks).
    """

    model: str = "fake-model"
    responses: list[Any] = Field(default_factory=list)
    requests: list[Any] = Field(default_factory=list)

    @classmethod
    def supported_models(cls) -> list[str]:
        return [r"fake-.*"]

    async def generate_content_async(self, request: LlmRequest, stream: bool = False) -> AsyncIterator[LlmResponse]:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"FakeLlm ran out of scripted responses (call #{len(self.requests)})")
        item = self.responses.pop(0)
        for response in item if isinstance(item, list) else [item]:
            yield response


LlmRegistry.register(FakeLlm)


def text_response(text: str) -> LlmResponse:
    return LlmResponse.from_text(text)


def call_response(name: str, args: dict | None = None, call_id: str | None = None) -> LlmResponse:
    return LlmResponse(
        content=Content(role="model", parts=[Part.from_function_call(name, args or {}, call_id=call_id)])
    )


def multi_call_response(*calls: tuple[str, dict]) -> LlmResponse:
    return LlmResponse(
        content=Content(role="model", parts=[Part.from_function_call(name, args) for name, args in calls])
    )


@pytest.fixture
def fake_llm():
    """A FakeLlm with no scripted responses yet."""
    return FakeLlm()


@pytest.fixture
def session_service():
    return SessionService()


@pytest.fixture
def artifact_service():
    return InMemoryArtifactService()


@pytest.fixture
def make_context(session_service, artifact_service):
    """Build an InvocationContext for ``agent`` with a fresh session holding one user message."""

    def _make(agent, message: str = "hi", **run_config) -> InvocationContext:
        session = session_service.create_session_sync("test_app", "user_1")
        user_content = Content.from_text(message)
        session.events.append(Event(author="user", content=user_content))
        return InvocationContext(
            agent=agent,
            session=session,
            session_service=session_service,
            artifact_service=artifact_service,
            user_content=user_content,
            run_config=RunConfig(**run_config),
        )

    return _make


@pytest.fixture
def run_agent(session_service):
    """Drive ``agent.run_async(ctx)`` the way Runner does: persist every non-partial event."""

    async def _run(agent, ctx) -> list[Event]:
        events = []
        async for event in agent.run_async(ctx):
            if not event.partial:
                await session_service.append_event(ctx.session, event)
            events.append(event)
        return events

    return _run
