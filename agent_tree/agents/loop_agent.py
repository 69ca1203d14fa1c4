"""LoopAgent：反复运行子 Agent"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, AsyncGenerator, Optional

from typing_extensions import override

from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)


class LoopAgent(BaseAgent):
    """
    每一轮按顺序运行全部子 Agent，直到:
    - 跑满 max_iterations 轮
    - 子 Agent 产生带 actions.escalate 的事件
    - 调用被取消

    Example:
        refiner = LoopAgent(
            name="refiner",
            max_iterations=3,
            sub_agents=[
                LlmAgent(name="writer", instruction="根据 {draft?} 和评审意见改写"),
                LlmAgent(name="critic", instruction="满意时调用 escalate", tools=[EscalateTool()]),
            ]
        )
    """

    max_iterations: Optional[int] = None
    """None 时只靠 escalate 或取消结束"""

    def _has_more_iterations(self, done: int) -> bool:
        return self.max_iterations is None or done < self.max_iterations

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        if not self.sub_agents:
            logger.warning(f"[{self.name}] No sub_agents to run")
            return

        done = 0
        while self._has_more_iterations(done):
            logger.debug(f"[{self.name}] Iteration {done + 1}/{self.max_iterations or '∞'}")
            for sub_agent in self.sub_agents:
                async for event in sub_agent.run_async(ctx):
                    yield event
                    if event.actions.escalate:
                        logger.info(f"[{self.name}] Stopped by escalate from {event.author}")
                        return
                if ctx.is_cancelled:
                    return
            done += 1

        logger.info(f"[{self.name}] Finished {done} iterations")
