"""AutoFlow - 支持 Agent 跳转的 Flow"""

from __future__ import annotations

from .processors import AgentTransferRequestProcessor
from .single_flow import SingleFlow


class AutoFlow(SingleFlow):
    """
    在 SingleFlow 的基础上支持 Agent 之间的跳转

    - 请求中加入 transfer_to_agent 工具，可选目标为 Agent.get_transferable_agents()
    - 工具响应带有 transfer_to_agent 时，由目标 Agent 接着完成这一轮
    - 一次调用中的跳转总次数受 RunConfig.max_transfer_hops 限制
    """

    supports_transfer = True

    def __init__(self):
        super().__init__()
        self.request_processors.append(AgentTransferRequestProcessor())
