"""
Runner：把一棵 Agent 树挂到 SessionService 上

每次调用:
1. 取出已有的 Session，写入用户消息事件
2. 根据历史事件决定本轮由哪个 Agent 接手（跳转后可以留在子 Agent）
3. 驱动该 Agent 产生事件，完整事件追加到 Session，partial 事件只转发

Runner 不保存调用之间的状态，所有上下文都在 Session 和 InvocationContext 中。
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
from typing import TYPE_CHECKING, AsyncIterator, Iterator, Optional, Union

from .agents import BaseAgent, InvocationContext, LiveRequestQueue, LlmAgent, RunConfig
from .config import Config, get_config
from .events import Event
from .session import Session, SessionService
from .types import Content

if TYPE_CHECKING:
    from .artifacts import BaseArtifactService

logger = logging.getLogger(__name__)

# run() 的后台线程结束标记
_DONE = object()


class Runner:
    """
    Agent 树的执行入口

    示例:
        root = LlmAgent(name="root", model="gpt-4o-mini", sub_agents=[billing, support])
        sessions = SessionService()
        runner = Runner(app_name="helpdesk", agent=root, session_service=sessions)

        await sessions.create_session(app_name="helpdesk", user_id="u1", session_id="s1")
        async for event in runner.run_async(user_id="u1", session_id="s1", new_message="退款进度？"):
            print(event.author, event.text)

    Session 需要调用方提前创建，找不到时抛出 ValueError。
    """

    app_name: str
    agent: BaseAgent
    """Agent 树的根"""
    session_service: SessionService
    artifact_service: Optional['BaseArtifactService']

    def __init__(
        self,
        app_name: str,
        agent: BaseAgent,
        session_service: SessionService,
        artifact_service: Optional['BaseArtifactService'] = None,
        config: Config | None = None,
    ):
        """
        Args:
            config: 未传入 run_config 时，RunConfig 的默认值从这里读取
        """
        self.app_name = app_name
        self.agent = agent
        self.session_service = session_service
        self.artifact_service = artifact_service
        self._config = config or get_config()

    async def run_async(
        self,
        user_id: str,
        session_id: str,
        new_message: Union[str, Content],
        run_config: Optional[RunConfig] = None,
    ) -> AsyncIterator[Event]:
        """
        执行一轮对话，按产生顺序 yield 事件（包括 partial 事件）

        Raises:
            ValueError: Session 不存在
        """
        session = await self._get_session(user_id, session_id)
        if isinstance(new_message, str):
            new_message = Content.from_text(new_message)

        agent = self._find_agent_to_run(session)
        ctx = self._new_invocation_context(session, agent, new_message, run_config)

        logger.info(
            f"[Runner] START app={self.app_name} invocation_id={ctx.invocation_id} "
            f"session={session.id} agent={agent.name}"
        )

        event_count = 0
        try:
            user_event = Event(author='user', content=new_message, invocation_id=ctx.invocation_id)
            await self.session_service.append_event(session, user_event)

            async for event in agent.run_async(ctx):
                event_count += 1
                # partial 事件不落库
                if not event.partial:
                    await self.session_service.append_event(session, event)
                yield event

            logger.info(
                f"[Runner] SUCCESS invocation_id={ctx.invocation_id} "
                f"duration={ctx.elapsed_time:.2f}s events={event_count} llm_calls={ctx.llm_call_count}"
            )

        except Exception as e:
            logger.error(
                f"[Runner] FAILED invocation_id={ctx.invocation_id} "
                f"error={str(e)} duration={ctx.elapsed_time:.2f}s",
                exc_info=True
            )
            raise

    async def run_live(
        self,
        user_id: str,
        session_id: str,
        live_request_queue: LiveRequestQueue,
        run_config: Optional[RunConfig] = None,
    ) -> AsyncIterator[Event]:
        """
        live 模式：持续从 live_request_queue 读取用户输入，流式返回事件

        live_request_queue.close() 之后结束。
        """
        session = await self._get_session(user_id, session_id)
        agent = self._find_agent_to_run(session)
        ctx = self._new_invocation_context(session, agent, None, run_config)
        ctx.live_request_queue = live_request_queue

        logger.info(
            f"[Runner] START live app={self.app_name} invocation_id={ctx.invocation_id} "
            f"session={session.id} agent={agent.name}"
        )
        try:
            async for event in agent.run_live(ctx):
                if not event.partial:
                    await self.session_service.append_event(session, event)
                yield event
            logger.info(
                f"[Runner] SUCCESS live invocation_id={ctx.invocation_id} "
                f"duration={ctx.elapsed_time:.2f}s"
            )
        except Exception as e:
            logger.error(
                f"[Runner] FAILED live invocation_id={ctx.invocation_id} "
                f"error={str(e)} duration={ctx.elapsed_time:.2f}s",
                exc_info=True
            )
            raise


    def run(
        self,
        user_id: str,
        session_id: str,
        new_message: Union[str, Content],
        run_config: Optional[RunConfig] = None,
    ) -> Iterator[Event]:
        """
        同步执行

        在后台线程中运行事件循环，通过队列把事件逐个交给调用方。
        后台执行中的异常会在迭代时重新抛出。
        """
        event_queue: queue.Queue = queue.Queue()

        async def _consume() -> None:
            async for event in self.run_async(user_id, session_id, new_message, run_config):
                event_queue.put(event)

        def _worker() -> None:
            try:
                asyncio.run(_consume())
            except Exception as e:
                event_queue.put(e)
            finally:
                event_queue.put(_DONE)

        thread = threading.Thread(target=_worker, daemon=True)
        thread.start()

        while True:
            item = event_queue.get()
            if item is _DONE:
                break
            if isinstance(item, Exception):
                raise item
            yield item
        thread.join()

    # 调试入口

    async def run_debug(
        self,
        message: str,
        user_id: str = "debug_user",
        session_id: str = "debug_session",
        run_config: Optional[RunConfig] = None,
    ) -> list[Event]:
        """跑一轮并收集全部事件，Session 不存在时自动创建"""
        key = dict(app_name=self.app_name, user_id=user_id, session_id=session_id)
        if await self.session_service.get_session(**key) is None:
            await self.session_service.create_session(**key)
            logger.info(f"[Runner] Created debug session: {session_id}")
        return [event async for event in self.run_async(user_id, session_id, message, run_config)]

    async def _get_session(self, user_id: str, session_id: str) -> Session:
        session = await self.session_service.get_session(
            app_name=self.app_name, user_id=user_id, session_id=session_id
        )
        if session is None:
            raise ValueError(f"Session not found: {session_id}")
        return session

    def default_run_config(self) -> RunConfig:
        """Config.runner 中的默认值（调用方未传入 run_config 时使用）"""
        runner_config = self._config.runner
        return RunConfig(
            streaming=runner_config.streaming,
            max_llm_calls=runner_config.max_llm_calls,
            max_transfer_hops=runner_config.max_transfer_hops,
        )

    def _new_invocation_context(
        self,
        session: Session,
        agent: BaseAgent,
        user_content: Optional[Content],
        run_config: Optional[RunConfig],
    ) -> InvocationContext:
        return InvocationContext(
            agent=agent,
            session=session,
            session_service=self.session_service,
            artifact_service=self.artifact_service,
            user_content=user_content,
            run_config=run_config or self.default_run_config(),
        )

    def _find_agent_to_run(self, session: Session) -> BaseAgent:
        """
        选择本轮运行的 Agent

        上一轮由子 Agent 回答时（跳转后），如果还能从它继续对话，就直接交给它；
        否则从根 Agent 开始。
        """
        for event in reversed(session.events):
            if event.author == 'user':
                continue
            if event.author == self.agent.name:
                return self.agent
            agent = self.agent.find_sub_agent(event.author)
            if agent is None:
                logger.warning(
                    f"[Runner] Event from unknown agent {event.author}, event id: {event.id}"
                )
                continue
            if self._is_transferable_across_agent_tree(agent):
                return agent
        return self.agent

    def _is_transferable_across_agent_tree(self, agent: BaseAgent) -> bool:
        """从该 Agent 到根的路径上，每一级都是允许跳回父 Agent 的 LlmAgent"""
        while agent is not None and agent is not self.agent:
            if not isinstance(agent, LlmAgent) or agent.disallow_transfer_to_parent:
                return False
            agent = agent.parent_agent
        return True
