"""SingleFlow - 单 Agent 的 Reason-Act 循环"""

from __future__ import annotations

from .base_flow import BaseLlmFlow


class SingleFlow(BaseLlmFlow):
    """
    单 Agent Flow

    构建请求 → 调用模型 → 执行工具 → ... → 最终响应。
    不向模型暴露 transfer_to_agent，也不执行跳转。
    """
