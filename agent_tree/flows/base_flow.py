"""Flow 基类 - 模型调用 / 工具调用 / Agent 跳转的循环"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from ..agents.callback_context import CallbackContext
from ..callbacks import run_after_callbacks, run_before_callbacks
from ..errors import AgentNotFoundError
from ..events import Event, EventActions
from ..models import LlmRequest, LlmResponse
from . import functions
from .processors import (
    BasicRequestProcessor,
    ContentsRequestProcessor,
    ExamplesRequestProcessor,
    InstructionsRequestProcessor,
    PlanningRequestProcessor,
    RequestProcessor,
)

if TYPE_CHECKING:
    from ..agents.invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class BaseLlmFlow:
    """
    Flow 基类

    Flow 负责编排一轮交互中的 LLM 调用循环（Reason-Act Loop）：
    1. 通过请求处理器链构建 LLM 请求
    2. before_model 回调（可以直接给出响应，跳过模型调用）
    3. 调用 LLM，after_model 回调链式改写每个完整响应
    4. 响应转换为事件；有工具调用时执行工具，产生一个合并的工具响应事件
    5. 工具请求跳转时，把这一轮交给目标 Agent（仅 AutoFlow）
    6. 最后一个事件不是最终响应时，重复步骤 1-5

    设计理念:
    - Flow 是无状态的，所有状态在 InvocationContext / Session 中
    - Flow 只 yield 事件，由 Runner 负责持久化
    - Flow 在 Agent 初始化时创建（通过 model_post_init）
    """

    supports_transfer = False
    """是否执行 Agent 跳转"""

    def __init__(self):
        # 处理器链（可扩展）
        self.request_processors: list[RequestProcessor] = [
            BasicRequestProcessor(),
            InstructionsRequestProcessor(),
            ExamplesRequestProcessor(),
            PlanningRequestProcessor(),
            ContentsRequestProcessor(),
        ]
        logger.debug(f"[{self.__class__.__name__}] Created")

    # ==================== 执行入口 ====================

    async def run_async(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """运行一轮交互，直到产生最终响应"""
        async for event in self._run_steps(ctx, stream=ctx.run_config.streaming, live=False):
            yield event

    async def run_live(self, ctx: 'InvocationContext') -> AsyncGenerator[Event, None]:
        """
        live 模式：持续消费 live_request_queue 中的输入

        每条输入作为用户事件写入 Session，随后以流式方式运行一轮；
        队列关闭或调用取消时结束。
        """
        queue = ctx.live_request_queue
        if queue is None:
            raise ValueError("run_live requires a live_request_queue in the invocation context.")

        while not ctx.is_cancelled:
            content = await queue.get()
            if content is None:
                logger.debug(f"[{self.__class__.__name__}] Live request queue closed")
                break

            await ctx.append_user_content(content)

            async for event in self._run_steps(ctx, stream=True, live=True):
                yield event

    async def _run_steps(
        self,
        ctx: 'InvocationContext',
        stream: bool,
        live: bool,
    ) -> AsyncGenerator[Event, None]:
        agent_name = ctx.agent.name
        while True:
            last_event: Optional[Event] = None
            async for event in self._run_one_step_async(ctx, stream=stream, live=live):
                last_event = event
                yield event

            if ctx.is_cancelled or ctx.end_invocation:
                break
            if last_event is None or last_event.partial or last_event.is_final_response():
                break
            # 跳转后这一轮由目标 Agent 完成
            if last_event.author != agent_name:
                break

    # ==================== 单步 ====================

    async def _run_one_step_async(
        self,
        ctx: 'InvocationContext',
        stream: bool = False,
        live: bool = False,
    ) -> AsyncGenerator[Event, None]:
        """一次模型调用 + 随后的工具调用（以及跳转）"""
        llm_request = LlmRequest()
        await self._preprocess_async(ctx, llm_request)
        if ctx.end_invocation:
            return

        step_actions = EventActions()
        async for llm_response in self._call_llm_async(ctx, llm_request, step_actions, stream):
            async for event in self._postprocess_async(ctx, llm_request, llm_response, step_actions, live):
                yield event
            if ctx.is_cancelled:
                return

    async def _preprocess_async(self, ctx: 'InvocationContext', llm_request: LlmRequest) -> None:
        """执行请求处理器链，并添加 Agent 的工具声明"""
        for processor in self.request_processors:
            await processor.process_async(llm_request, ctx)
        llm_request.append_tools(ctx.agent.tools)

    async def _call_llm_async(
        self,
        ctx: 'InvocationContext',
        llm_request: LlmRequest,
        step_actions: EventActions,
        stream: bool,
    ) -> AsyncGenerator[LlmResponse, None]:
        agent = ctx.agent
        ctx.increment_llm_call_count()
        callback_context = CallbackContext(ctx, event_actions=step_actions)
        executor = agent.callback_executor(ctx)

        response = await run_before_callbacks(
            agent.before_model_callback, callback_context, llm_request, executor=executor
        )
        if response is not None:
            logger.debug(f"[{agent.name}] Model call short-circuited by before_model_callback")
            yield await run_after_callbacks(
                agent.after_model_callback, callback_context,
                value=response, executor=executor,
            )
            return

        llm = agent.resolved_model
        logger.debug(f"[{agent.name}] Calling model {llm.model} (stream={stream})")
        async for response in llm.generate_content_async(llm_request, stream=stream):
            if not response.partial:
                response = await run_after_callbacks(
                    agent.after_model_callback, callback_context,
                    value=response, executor=executor,
                )
            yield response

    async def _postprocess_async(
        self,
        ctx: 'InvocationContext',
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        step_actions: EventActions,
        live: bool,
    ) -> AsyncGenerator[Event, None]:
        """把 LLM 响应转换为事件，并处理工具调用"""
        if llm_response.content is None and not llm_response.is_error() and not llm_response.turn_complete:
            return

        model_event = self._build_model_event(ctx, llm_request, llm_response, step_actions, live)
        yield model_event
        if model_event.partial:
            return

        if llm_response.is_error():
            logger.error(
                f"[{ctx.agent.name}] Model returned error {llm_response.error_code}: "
                f"{llm_response.error_message}"
            )
            return

        if not model_event.get_function_calls():
            return

        function_response_event = await functions.handle_function_calls_async(
            ctx, model_event, llm_request.tools_dict
        )
        if function_response_event is None:
            return
        yield function_response_event

        transfer_to_agent = function_response_event.actions.transfer_to_agent
        if not transfer_to_agent:
            return
        if not self.supports_transfer:
            logger.warning(
                f"[{ctx.agent.name}] Transfer to '{transfer_to_agent}' requested, "
                f"but {self.__class__.__name__} does not support agent transfer"
            )
            return
        async for event in self._transfer_async(ctx, transfer_to_agent):
            yield event

    def _build_model_event(
        self,
        ctx: 'InvocationContext',
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        step_actions: EventActions,
        live: bool,
    ) -> Event:
        metadata = dict(llm_response.metadata)
        if llm_response.model:
            metadata['model'] = llm_response.model
        if llm_response.finish_reason:
            metadata['finish_reason'] = llm_response.finish_reason
        if llm_response.usage:
            metadata['usage'] = llm_response.usage

        function_calls = llm_response.function_calls
        long_running = functions.get_long_running_call_ids(function_calls, llm_request.tools_dict)
        if long_running:
            metadata['long_running_tool_ids'] = sorted(long_running)

        turn_complete = llm_response.turn_complete
        if live and not llm_response.partial and not function_calls:
            turn_complete = True

        return Event(
            author=ctx.agent.name,
            invocation_id=ctx.invocation_id,
            content=llm_response.content,
            actions=EventActions() if llm_response.partial else step_actions,
            partial=llm_response.partial,
            turn_complete=turn_complete,
            error_code=llm_response.error_code,
            error_message=llm_response.error_message,
            metadata=metadata,
        )

    # ==================== Agent 跳转 ====================

    async def _transfer_async(
        self,
        ctx: 'InvocationContext',
        agent_name: str,
    ) -> AsyncGenerator[Event, None]:
        """
        把这一轮交给目标 Agent

        同一次调用中的跳转总次数受 RunConfig.max_transfer_hops 限制，
        用尽时产生一个错误事件并结束这一轮。

        Raises:
            AgentNotFoundError: 目标不在 Agent 树中
        """
        target = ctx.agent.root_agent.find_agent(agent_name)
        if target is None:
            raise AgentNotFoundError(agent_name)

        if not ctx.record_transfer():
            max_hops = ctx.run_config.max_transfer_hops
            logger.warning(
                f"[{ctx.agent.name}] Max transfer hops ({max_hops}) exceeded, "
                f"transfer to '{agent_name}' not performed"
            )
            yield Event(
                author=ctx.agent.name,
                invocation_id=ctx.invocation_id,
                error_code='MAX_TRANSFER_HOPS_EXCEEDED',
                error_message=(
                    f"Exceeded the maximum of {max_hops} agent transfers in one invocation; "
                    f"transfer to '{agent_name}' was not performed."
                ),
            )
            return

        logger.info(
            f"[{ctx.agent.name}] Transferring to {agent_name} "
            f"(hop {ctx.transfer_hops}/{ctx.run_config.max_transfer_hops})"
        )
        async for event in target.run_async(ctx.for_agent(target)):
            yield event
