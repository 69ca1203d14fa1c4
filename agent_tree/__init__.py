"""
agent_tree - 层级 Agent 编排框架

核心组件:
- Agent / LlmAgent: LLM 驱动的 Agent（Pydantic BaseModel），组成 Agent 树
- SequentialAgent / LoopAgent: 编排类 Agent
- Runner: 无状态执行引擎（绑定根 Agent）
- Tool/BaseTool: 可调用的工具函数
- Session / SessionService: 会话事件日志和状态
- ArtifactService: 带版本的二进制产物存储
- InvocationContext / RunConfig: 单次调用上下文
- Event / EventActions: 事件系统
- Config: 配置管理

架构:
- Runner: 执行编排（绑定 Agent）
- Flow: Reason-Act 循环 + 工具执行 + Agent 跳转
- Model: LLM 抽象 + 请求/响应格式化

Web 服务:
- 请使用独立的 web 模块: from web import AgentService
"""

# agents 必须最先导入（flows / tools 依赖其中的上下文类型）
from .agents import (
    Agent,
    BaseAgent,
    CallbackContext,
    IncludeContents,
    InvocationContext,
    LiveRequestQueue,
    LlmAgent,
    LoopAgent,
    ReadonlyContext,
    RunConfig,
    SequentialAgent,
)
from .artifacts import BaseArtifactService, InMemoryArtifactService
from .config import Config, LLMConfig, RunnerConfig, get_config, set_config
from .errors import (
    AgentNotFoundError,
    AgentTreeError,
    LlmCallsLimitExceededError,
    ModelNotFoundError,
    ToolNotFoundError,
)
from .events import Event, EventActions
from .runner import Runner
from .session import Session, SessionService, State
from .tools import AgentTool, BaseTool, EscalateTool, FunctionTool, Tool, ToolContext, TransferToAgentTool, tool
from .types import Blob, Content, FunctionCall, FunctionResponse, Part

# Flow 层
from .flows import AutoFlow, BaseLlmFlow, SingleFlow

# Model 层
from .models import BaseLlm, GenerateContentConfig, LlmRegistry, LlmRequest, LlmResponse, OpenAILlm

__all__ = [
    # Agent
    'Agent',
    'LlmAgent',
    'BaseAgent',
    'SequentialAgent',
    'LoopAgent',
    'IncludeContents',
    # 上下文
    'InvocationContext',
    'RunConfig',
    'LiveRequestQueue',
    'CallbackContext',
    'ReadonlyContext',
    'ToolContext',
    # 核心组件
    'Runner',
    'Session',
    'SessionService',
    'State',
    'BaseArtifactService',
    'InMemoryArtifactService',
    'Event',
    'EventActions',
    'Config',
    'LLMConfig',
    'RunnerConfig',
    'get_config',
    'set_config',
    # 内容
    'Content',
    'Part',
    'Blob',
    'FunctionCall',
    'FunctionResponse',
    # 工具
    'Tool',
    'FunctionTool',
    'BaseTool',
    'tool',
    'TransferToAgentTool',
    'EscalateTool',
    'AgentTool',
    # 异常
    'AgentTreeError',
    'ModelNotFoundError',
    'AgentNotFoundError',
    'ToolNotFoundError',
    'LlmCallsLimitExceededError',
    # Flow 层
    'BaseLlmFlow',
    'SingleFlow',
    'AutoFlow',
    # Model 层
    'BaseLlm',
    'GenerateContentConfig',
    'LlmRegistry',
    'LlmRequest',
    'LlmResponse',
    'OpenAILlm',
]

__version__ = '0.1.0'
