"""AgentTool - 把一个 Agent 当作工具调用"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .base_tool import BaseTool
from ..types import Content

if TYPE_CHECKING:
    from ..agents.base_agent import BaseAgent
    from .tool_context import ToolContext

logger = logging.getLogger(__name__)


class AgentTool(BaseTool):
    """
    Agent 工具

    与 transfer 不同，调用方 Agent 保留控制权：被调用的 Agent 在独立的
    子 Session 中运行完一整轮，其最终输出作为工具结果返回。

    - 被调用 Agent 配置了 input_schema 时，参数按 schema 校验并以 JSON 作为输入
    - 配置了 output_schema 时，输出按 schema 解析为字典
    - 子 Session 中的状态变更回写到调用方的状态
    """

    agent: Any
    """被包装的 Agent（BaseAgent）"""

    def __init__(self, agent: 'BaseAgent', **data: Any):
        super().__init__(
            name=data.pop('name', agent.name),
            description=data.pop('description', agent.description or f"Agent {agent.name}"),
            agent=agent,
            **data,
        )

    def _input_schema(self):
        return getattr(self.agent, 'input_schema', None)

    def _output_schema(self):
        return getattr(self.agent, 'output_schema', None)

    def to_function_declaration(self) -> dict[str, Any]:
        input_schema = self._input_schema()
        if input_schema is not None:
            parameters = input_schema.model_json_schema()
        else:
            parameters = {
                'type': 'object',
                'properties': {'request': {'type': 'string', 'description': 'The request for the agent'}},
                'required': ['request'],
            }
        return {'name': self.name, 'description': self.description, 'parameters': parameters}

    async def run_async(self, *, args: dict[str, Any], tool_context: 'ToolContext') -> Any:
        from ..agents.invocation_context import InvocationContext
        from ..session import SessionService

        input_schema = self._input_schema()
        if input_schema is not None:
            text = input_schema.model_validate(args).model_dump_json()
        else:
            text = str(args.get('request', ''))
        user_content = Content.from_text(text)

        parent_ctx = tool_context.invocation_context
        session_service = SessionService()
        session = await session_service.create_session(
            app_name=parent_ctx.app_name,
            user_id=parent_ctx.user_id,
            state=dict(tool_context.state),
        )
        ctx = InvocationContext(
            agent=self.agent,
            session=session,
            session_service=session_service,
            artifact_service=parent_ctx.artifact_service,
            user_content=user_content,
            run_config=parent_ctx.run_config,
        )

        from ..events import Event

        await session_service.append_event(session, Event(author='user', content=user_content))
        last_content = None
        async for event in self.agent.run_async(ctx):
            await session_service.append_event(session, event)
            for key, value in event.actions.state_delta.items():
                tool_context.state[key] = value
            if event.content and not event.partial:
                last_content = event.content

        if last_content is None:
            return ''
        output = last_content.text

        output_schema = self._output_schema()
        if output_schema is not None:
            try:
                return output_schema.model_validate(json.loads(output)).model_dump()
            except (json.JSONDecodeError, ValidationError) as e:
                logger.error(f"[AgentTool {self.name}] Output did not match output_schema: {e}")
        return output
