"""
Flow 层 - 流程控制层

这一层负责编排 LLM 调用和工具执行的循环，提供：
- BaseLlmFlow: 模型调用 / 工具调用 / 跳转的循环
- SingleFlow: 单 Agent 的 Reason-Act 循环
- AutoFlow: 支持 Agent 跳转的 Flow
- RequestProcessor: 请求处理器协议

设计理念:
- Flow 管理 "思考-行动" 循环
- Flow 负责工具调用的执行
- Flow 不关心具体使用哪个 LLM（由 Agent 解析模型）
- Flow 不关心会话持久化（由 Runner 负责）
- Flow 在 Agent 初始化时选定（通过 model_post_init）
"""

from .base_flow import BaseLlmFlow
from .single_flow import SingleFlow
from .auto_flow import AutoFlow
from .processors import RequestProcessor

__all__ = [
    'BaseLlmFlow',
    'SingleFlow',
    'AutoFlow',
    'RequestProcessor',
]
