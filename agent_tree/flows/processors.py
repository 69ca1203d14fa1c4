"""
请求处理器

每个处理器在 LLM 请求发送前原地修改请求。
Flow 按顺序执行处理器链：basic → instructions → examples → planning → contents
（AutoFlow 额外追加 agent transfer 处理器）。
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Optional

from ..agents.callback_context import ReadonlyContext
from ..models import GenerateContentConfig
from ..tools.transfer_tool import TransferToAgentTool
from ..types import Content, Part

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext
    from ..events import Event
    from ..models import LlmRequest

logger = logging.getLogger(__name__)


class RequestProcessor:
    """
    请求处理器协议

    在 LLM 请求发送前处理请求，可用于：
    - 添加系统指令
    - 注入上下文信息
    - 添加工具声明
    """

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        """处理请求（原地修改）"""
        pass

    async def process_async(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        """异步处理请求"""
        self.process(request, ctx)


class BasicRequestProcessor(RequestProcessor):
    """模型名、生成参数、输出结构"""

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        agent = ctx.agent
        request.model = agent.resolved_model.model
        if agent.generate_content_config is not None:
            request.config = agent.generate_content_config.model_copy(deep=True)
        else:
            request.config = GenerateContentConfig()
        if agent.output_schema is not None:
            request.set_output_schema(agent.output_schema)


class InstructionsRequestProcessor(RequestProcessor):
    """身份说明 + 全局指令 + Agent 指令（替换状态占位符）"""

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        from ..agents.llm_agent import LlmAgent

        agent = ctx.agent
        readonly = ReadonlyContext(ctx)

        identity = f'You are an agent. Your internal name is "{agent.name}".'
        if agent.description:
            identity += f' The description about you is "{agent.description}".'
        instructions = [identity]

        root = agent.root_agent
        if isinstance(root, LlmAgent) and root.global_instruction:
            instructions.append(root.canonical_global_instruction(readonly))
        if agent.instruction:
            instructions.append(agent.canonical_instruction(readonly))

        request.append_instructions(instructions)


class ExamplesRequestProcessor(RequestProcessor):
    """few-shot 示例作为系统指令"""

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        examples = ctx.agent.examples
        if not examples:
            return

        lines = ['<EXAMPLES>', 'Begin few-shot']
        for i, (example_input, example_output) in enumerate(examples, start=1):
            lines.extend([
                f'EXAMPLE {i}:',
                'Begin example',
                f'[user]\n{example_input.text}',
                f'[model]\n{example_output.text}',
                'End example',
            ])
        lines.extend(['End few-shot', '</EXAMPLES>'])
        request.append_instructions(['\n'.join(lines)])


PLANNING_INSTRUCTION = """\
Before acting, write a short plan as a numbered list of steps under a line \
"/*PLANNING*/". Then carry out the plan step by step, calling tools when needed. \
When revising the plan, write the new plan under "/*REPLANNING*/". \
Finish with the answer to the user under a line "/*FINAL_ANSWER*/"."""


class PlanningRequestProcessor(RequestProcessor):
    """先规划再行动"""

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        if ctx.agent.planning:
            request.append_instructions([PLANNING_INSTRUCTION])


class ContentsRequestProcessor(RequestProcessor):
    """
    把 Session 事件转换为请求的历史内容

    - DEFAULT: 全部历史；其他 Agent 的消息改写为用户角色的 "For context:" 内容
    - NONE: 只保留最近一条用户输入之后的事件
    """

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        from ..agents.llm_agent import IncludeContents

        events = ctx.session.events
        if ctx.agent.include_contents == IncludeContents.NONE:
            events = _events_since_last_user_input(events)
        request.contents = _build_contents(events, ctx.agent.name)


def _events_since_last_user_input(events: list['Event']) -> list['Event']:
    for i in range(len(events) - 1, -1, -1):
        if events[i].author == 'user':
            return events[i:]
    return events


def _build_contents(events: list['Event'], agent_name: str) -> list[Content]:
    contents = []
    for event in events:
        if event.partial or not event.content or not event.content.parts:
            continue
        if event.author in ('user', agent_name):
            contents.append(event.content)
            continue
        converted = _present_other_agent_message(event)
        if converted is not None:
            contents.append(converted)
    return contents


def _present_other_agent_message(event: 'Event') -> Optional[Content]:
    """其他 Agent 的消息对当前 Agent 来说是上下文"""
    parts = [Part.from_text('For context:')]
    for part in event.content.parts:
        if part.thought:
            continue
        if part.text:
            parts.append(Part.from_text(f'[{event.author}] said: {part.text}'))
        elif part.function_call:
            call = part.function_call
            parts.append(Part.from_text(
                f'[{event.author}] called tool `{call.name}` with parameters: '
                f'{json.dumps(call.args, ensure_ascii=False, default=str)}'
            ))
        elif part.function_response:
            response = part.function_response
            parts.append(Part.from_text(
                f'[{event.author}] `{response.name}` tool returned result: '
                f'{json.dumps(response.response, ensure_ascii=False, default=str)}'
            ))
    if len(parts) == 1:
        return None
    return Content(role='user', parts=parts)


class AgentTransferRequestProcessor(RequestProcessor):
    """添加 transfer_to_agent 工具和可跳转 Agent 说明"""

    def process(self, request: 'LlmRequest', ctx: 'InvocationContext') -> None:
        agent = ctx.agent
        targets = agent.get_transferable_agents()
        if not targets:
            return

        lines = ['You can transfer control to the following agents:']
        for target in targets:
            lines.append(f'- {target.name}: {target.description or f"Agent {target.name}"}')
        lines.append('')
        lines.append(
            "If another agent is better suited for the request according to its description, "
            "use the 'transfer_to_agent' tool to hand over. When transferring, do not generate "
            "any text other than the function call."
        )
        parent = agent.parent_agent
        if parent is not None and any(t is parent for t in targets):
            lines.append(
                f"Your parent agent is {parent.name}. If neither the other agents nor you are "
                "best for the request, transfer to your parent agent."
            )

        request.append_instructions(['\n'.join(lines)])
        request.append_tools([TransferToAgentTool(available_agents=[t.name for t in targets])])
