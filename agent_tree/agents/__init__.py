"""agents 模块 - Agent 定义"""

from .base_agent import BaseAgent
from .llm_agent import Agent, IncludeContents, LlmAgent
from .sequential_agent import SequentialAgent
from .loop_agent import LoopAgent
from .invocation_context import InvocationContext, LiveRequestQueue, RunConfig
from .callback_context import CallbackContext, ReadonlyContext

__all__ = [
    # 基类
    'BaseAgent',
    # LLM Agent
    'LlmAgent',
    'Agent',  # LlmAgent 的别名
    'IncludeContents',
    # 编排 Agent
    'SequentialAgent',
    'LoopAgent',
    # 上下文
    'InvocationContext',
    'RunConfig',
    'LiveRequestQueue',
    'CallbackContext',
    'ReadonlyContext',
]
