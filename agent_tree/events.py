"""事件系统 - 追踪 agent 执行过程中的所有操作"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4

from .types import Content, FunctionCall, FunctionResponse


@dataclass
class EventActions:
    """
    事件动作 - 描述事件触发的后续动作

    用于多 Agent 场景下的控制流：
    - transfer_to_agent: 跳转到指定 Agent
    - escalate: 向上级 Agent 报告/退出循环
    - state_delta: 状态变更（由 SessionService.append_event 应用到 Session）
    - artifact_delta: 本事件保存的 Artifact 版本
    """
    state_delta: dict[str, Any] = field(default_factory=dict)
    """状态变更"""

    artifact_delta: dict[str, int] = field(default_factory=dict)
    """文件名 -> 保存后的版本号"""

    transfer_to_agent: Optional[str] = None
    """跳转到的目标 Agent 名称"""

    escalate: bool = False
    """是否向上级 Agent 报告（用于退出 LoopAgent）"""

    skip_summarization: bool = False
    """工具结果直接作为最终响应，不再交给模型总结"""

    def merge(self, other: EventActions) -> None:
        """把另一组动作合并进来（多个工具调用合并为一个响应事件时使用）"""
        self.state_delta.update(other.state_delta)
        self.artifact_delta.update(other.artifact_delta)
        if other.transfer_to_agent:
            self.transfer_to_agent = other.transfer_to_agent
        self.escalate = self.escalate or other.escalate
        self.skip_summarization = self.skip_summarization or other.skip_summarization

    def is_empty(self) -> bool:
        return not (
            self.state_delta
            or self.artifact_delta
            or self.transfer_to_agent
            or self.escalate
            or self.skip_summarization
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为字典"""
        return {
            'state_delta': self.state_delta,
            'artifact_delta': self.artifact_delta,
            'transfer_to_agent': self.transfer_to_agent,
            'escalate': self.escalate,
            'skip_summarization': self.skip_summarization,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventActions:
        """从字典创建"""
        return cls(
            state_delta=data.get('state_delta', {}),
            artifact_delta=data.get('artifact_delta', {}),
            transfer_to_agent=data.get('transfer_to_agent'),
            escalate=data.get('escalate', False),
            skip_summarization=data.get('skip_summarization', False),
        )


@dataclass
class Event:
    """
    事件 - 记录 agent 执行过程中的每一步

    核心设计理念: 所有操作都是事件，事件组成会话历史

    - author: 'user' 或产生此事件的 Agent 名称
    - content: 结构化消息（文本、工具调用、工具响应）
    - actions: 事件附带的状态变更 / 跳转 / 升级信号

    事件发出后视为不可变；唯一的例外是 LlmAgent 在事件交给调用方之前
    把输出写入 actions.state_delta（只写一次）。
    """
    author: str
    content: Optional[Content] = None
    actions: EventActions = field(default_factory=EventActions)
    invocation_id: str = ''
    id: str = field(default_factory=lambda: uuid4().hex)
    timestamp: float = field(default_factory=time.time)

    # 流式支持
    partial: bool = False
    """是否是流式的部分事件（不应被持久化）"""

    turn_complete: bool = False
    """live 模式下模型是否结束了本轮输出"""

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    metadata: dict[str, Any] = field(default_factory=dict)

    # ==================== 便捷方法 ====================

    def get_function_calls(self) -> list[FunctionCall]:
        if not self.content:
            return []
        return [p.function_call for p in self.content.parts if p.function_call]

    def get_function_responses(self) -> list[FunctionResponse]:
        if not self.content:
            return []
        return [p.function_response for p in self.content.parts if p.function_response]

    def is_final_response(self) -> bool:
        """
        是否是最终响应

        没有工具调用、没有工具响应、不是流式片段；
        或者工具要求跳过总结（skip_summarization）。
        """
        if self.actions.skip_summarization:
            return True
        return (
            not self.partial
            and not self.get_function_calls()
            and not self.get_function_responses()
        )

    @property
    def text(self) -> str:
        return self.content.text if self.content else ''

    def to_dict(self) -> dict[str, Any]:
        """转换为字典格式"""
        result: dict[str, Any] = {
            'id': self.id,
            'invocation_id': self.invocation_id,
            'author': self.author,
            'timestamp': self.timestamp,
        }
        if self.content:
            result['content'] = self.content.to_dict()
        if not self.actions.is_empty():
            result['actions'] = self.actions.to_dict()
        if self.partial:
            result['partial'] = True
        if self.turn_complete:
            result['turn_complete'] = True
        if self.error_code:
            result['error_code'] = self.error_code
            result['error_message'] = self.error_message
        if self.metadata:
            result['metadata'] = self.metadata
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Event:
        """从字典创建事件"""
        content = data.get('content')
        return cls(
            id=data['id'],
            invocation_id=data.get('invocation_id', ''),
            author=data['author'],
            timestamp=data['timestamp'],
            content=Content.from_dict(content) if content else None,
            actions=EventActions.from_dict(data.get('actions', {})),
            partial=data.get('partial', False),
            turn_complete=data.get('turn_complete', False),
            error_code=data.get('error_code'),
            error_message=data.get('error_message'),
            metadata=data.get('metadata', {}),
        )
