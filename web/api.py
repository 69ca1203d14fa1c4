"""
/api 下的 HTTP 接口

Session:   POST /sessions, GET /sessions, GET|DELETE /sessions/{user_id}/{session_id}
对话:      POST /chat（一次返回），POST /chat/stream（SSE，逐个事件推送）
Artifact:  GET /artifacts/{user_id}/{session_id}[/{filename}]
"""

from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Optional

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

if TYPE_CHECKING:
    from agent_tree import BaseArtifactService, Event, Part, Runner, Session, SessionService

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class CreateSessionRequest(BaseModel):
    user_id: str
    session_id: Optional[str] = None
    """为空时由服务端生成"""
    state: dict[str, Any] = {}


class ChatRequest(BaseModel):
    user_id: str
    session_id: str
    message: str


class ChatResponse(BaseModel):
    response: str
    """最后一条最终回复的文本"""
    author: Optional[str] = None
    events: list[dict[str, Any]]


class SessionInfo(BaseModel):
    app_name: str
    user_id: str
    session_id: str
    state: dict[str, Any]
    event_count: int
    events: list[dict[str, Any]]

    @classmethod
    def of(cls, session: 'Session', with_events: bool = True) -> 'SessionInfo':
        return cls(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            state=session.state,
            event_count=len(session.events),
            events=[e.to_dict() for e in session.events] if with_events else [],
        )


def _session_summary(session: 'Session') -> dict[str, Any]:
    user_texts = [e.text[:100] for e in session.events if e.author == 'user' and e.text]
    return {
        'app_name': session.app_name,
        'user_id': session.user_id,
        'session_id': session.id,
        'event_count': len(session.events),
        'first_message': user_texts[0] if user_texts else None,
        'last_message': user_texts[-1] if user_texts else None,
        'last_update_time': session.last_update_time,
    }


def _sse(payload: Any) -> str:
    if not isinstance(payload, str):
        payload = json.dumps(payload, ensure_ascii=False)
    return f"data: {payload}\n\n"


def _artifact_body(filename: str, versions: list[int], artifact: 'Part') -> dict[str, Any]:
    body: dict[str, Any] = {'filename': filename, 'versions': versions}
    if artifact.inline_data is None:
        body['text'] = artifact.text
    else:
        body['mime_type'] = artifact.inline_data.mime_type
        body['data'] = base64.b64encode(artifact.inline_data.data).decode('ascii')
    return body


def create_api_router(
    app_name: str,
    runner: 'Runner',
    session_service: 'SessionService',
    artifact_service: Optional['BaseArtifactService'] = None,
) -> APIRouter:
    """
    构建绑定到 runner 的 APIRouter

    没有 artifact_service 时 Artifact 接口一律返回 404。
    """
    router = APIRouter(prefix="/api", tags=["API"])

    async def find_session(user_id: str, session_id: str) -> Optional['Session']:
        return await session_service.get_session(
            app_name=app_name, user_id=user_id, session_id=session_id
        )

    async def run_turn(request: ChatRequest, streaming: bool) -> AsyncIterator['Event']:
        # 对话接口允许直接使用新的 session_id
        if await find_session(request.user_id, request.session_id) is None:
            await session_service.create_session(
                app_name=app_name, user_id=request.user_id, session_id=request.session_id
            )
        async for event in runner.run_async(
            user_id=request.user_id,
            session_id=request.session_id,
            new_message=request.message,
            run_config=runner.default_run_config().model_copy(update={'streaming': streaming}),
        ):
            yield event

    @router.post("/sessions", response_model=SessionInfo)
    async def create_session(request: CreateSessionRequest):
        try:
            session = await session_service.create_session(
                app_name=app_name,
                user_id=request.user_id,
                state=request.state,
                session_id=request.session_id,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return SessionInfo.of(session, with_events=False)

    @router.get("/sessions")
    async def list_sessions(user_id: Optional[str] = Query(None, description="只列出该用户的 Session")):
        """Session 摘要，最近更新的排在前面"""
        sessions = await session_service.list_sessions(app_name, user_id=user_id)
        summaries = sorted(
            (_session_summary(s) for s in sessions),
            key=lambda s: s['last_update_time'],
            reverse=True,
        )
        return {'sessions': summaries, 'total': len(summaries)}

    @router.get("/sessions/{user_id}/{session_id}", response_model=SessionInfo)
    async def get_session(user_id: str, session_id: str):
        session = await find_session(user_id, session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return SessionInfo.of(session)

    @router.delete("/sessions/{user_id}/{session_id}")
    async def delete_session(user_id: str, session_id: str):
        if not await session_service.delete_session(
            app_name=app_name, user_id=user_id, session_id=session_id
        ):
            raise HTTPException(status_code=404, detail="Session not found")
        return {"status": "deleted"}

    @router.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest):
        result = ChatResponse(response="", events=[])
        async for event in run_turn(request, streaming=False):
            result.events.append(event.to_dict())
            if event.is_final_response() and event.text:
                result.response = event.text
                result.author = event.author
        return result

    @router.post("/chat/stream")
    async def chat_stream(request: ChatRequest):
        """SSE：每个事件一条 data，最后是 [DONE]；出错时最后一条是 {"error": ...}"""

        async def frames():
            try:
                async for event in run_turn(request, streaming=True):
                    yield _sse(event.to_dict())
                yield _sse("[DONE]")
            except Exception as e:
                # 状态码已经发出
                logger.error(f"[API] Stream failed: {e}")
                yield _sse({"error": str(e)})

        return StreamingResponse(frames(), media_type="text/event-stream", headers=_SSE_HEADERS)

    def artifacts() -> 'BaseArtifactService':
        if artifact_service is None:
            raise HTTPException(status_code=404, detail="Artifact service is not configured")
        return artifact_service

    @router.get("/artifacts/{user_id}/{session_id}")
    async def list_artifacts(user_id: str, session_id: str):
        keys = await artifacts().list_artifact_keys(
            app_name=app_name, user_id=user_id, session_id=session_id
        )
        return {'artifacts': keys}

    @router.get("/artifacts/{user_id}/{session_id}/{filename}")
    async def load_artifact(
        user_id: str,
        session_id: str,
        filename: str,
        version: Optional[int] = Query(None, description="不传时读取最新版本"),
    ):
        """文本直接返回，二进制内容以 base64 返回"""
        service = artifacts()
        key = dict(app_name=app_name, user_id=user_id, session_id=session_id, filename=filename)
        artifact = await service.load_artifact(**key, version=version)
        if artifact is None:
            raise HTTPException(status_code=404, detail="Artifact not found")
        return _artifact_body(filename, await service.list_versions(**key), artifact)

    return router
