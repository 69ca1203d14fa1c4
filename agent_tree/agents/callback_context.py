"""回调上下文 - 回调和工具看到的调用视图"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

from ..events import EventActions
from ..session import State

if TYPE_CHECKING:
    from ..types import Content, Part
    from .invocation_context import InvocationContext


class ReadonlyContext:
    """只读上下文（用于指令模板等只读场景）"""

    def __init__(self, invocation_context: 'InvocationContext') -> None:
        self._invocation_context = invocation_context

    @property
    def invocation_id(self) -> str:
        return self._invocation_context.invocation_id

    @property
    def agent_name(self) -> str:
        return self._invocation_context.agent.name

    @property
    def user_content(self) -> Optional['Content']:
        return self._invocation_context.user_content

    @property
    def state(self) -> Mapping[str, Any]:
        """Session 状态的只读视图"""
        return MappingProxyType(self._invocation_context.session.state)


class CallbackContext(ReadonlyContext):
    """
    回调上下文

    - state 可写，写入内容进入 actions.state_delta，随事件持久化
    - 可以读写 Artifact，保存的版本记录在 actions.artifact_delta
    """

    def __init__(
        self,
        invocation_context: 'InvocationContext',
        event_actions: Optional[EventActions] = None,
    ) -> None:
        super().__init__(invocation_context)
        self._event_actions = event_actions or EventActions()
        self._state = State(
            value=invocation_context.session.state,
            delta=self._event_actions.state_delta,
        )

    @property
    def state(self) -> State:
        return self._state

    @property
    def actions(self) -> EventActions:
        return self._event_actions

    @property
    def invocation_context(self) -> 'InvocationContext':
        return self._invocation_context

    # ==================== Artifact ====================

    def _require_artifact_service(self):
        service = self._invocation_context.artifact_service
        if service is None:
            raise ValueError("Artifact service is not initialized.")
        return service

    async def load_artifact(self, filename: str, version: Optional[int] = None) -> Optional['Part']:
        """加载当前 Session 的 Artifact"""
        service = self._require_artifact_service()
        return await service.load_session_artifact(
            self._invocation_context.session, filename, version=version
        )

    async def save_artifact(self, filename: str, artifact: 'Part') -> int:
        """保存 Artifact，并把版本号记入 artifact_delta"""
        service = self._require_artifact_service()
        version = await service.save_session_artifact(
            self._invocation_context.session, filename, artifact
        )
        self._event_actions.artifact_delta[filename] = version
        return version

    async def list_artifacts(self) -> list[str]:
        service = self._require_artifact_service()
        return await service.list_session_artifact_keys(self._invocation_context.session)
