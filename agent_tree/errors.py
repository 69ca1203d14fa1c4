"""agent_tree 异常体系

所有框架自身抛出的异常都继承 AgentTreeError。
配置类错误同时继承 ValueError，方便调用方按参数错误处理。
"""


class AgentTreeError(Exception):
    """agent_tree 异常基类"""


class ModelNotFoundError(AgentTreeError, ValueError):
    """Agent 及其祖先都没有配置模型"""

    def __init__(self, agent_name: str) -> None:
        self.agent_name = agent_name
        super().__init__(f"No model found for agent '{agent_name}' or its ancestors.")


class AgentNotFoundError(AgentTreeError, ValueError):
    """跳转目标不在 Agent 树中"""

    def __init__(self, agent_name: str) -> None:
        self.agent_name = agent_name
        super().__init__(f"Agent '{agent_name}' not found in the agent tree.")


class ToolNotFoundError(AgentTreeError, ValueError):
    """模型调用了 Agent 未注册的工具"""

    def __init__(self, tool_name: str, agent_name: str) -> None:
        self.tool_name = tool_name
        self.agent_name = agent_name
        super().__init__(f"Tool '{tool_name}' not found for agent '{agent_name}'.")


class LlmCallsLimitExceededError(AgentTreeError):
    """单次调用中的 LLM 调用次数超过 RunConfig.max_llm_calls"""

    def __init__(self, max_llm_calls: int) -> None:
        self.max_llm_calls = max_llm_calls
        super().__init__(f"Max number of llm calls limit of {max_llm_calls} exceeded")
