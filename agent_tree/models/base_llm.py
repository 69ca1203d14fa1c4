"""LLM 抽象基类"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from pydantic import BaseModel, ConfigDict

from .llm_request import LlmRequest
from .llm_response import LlmResponse


class BaseLlm(BaseModel, ABC):
    """
    LLM 抽象基类（使用 Pydantic）

    统一生成器接口：无论流式/非流式，都返回 AsyncIterator
    - stream=False: 只 yield 一次完整响应 (partial=False)
    - stream=True: yield 多个增量响应 (partial=True) + 最后一个完整响应 (partial=False)

    传输层错误直接抛出，由 Flow 传播给调用方。
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    model: str = ""
    """模型名称"""

    @classmethod
    def supported_models(cls) -> list[str]:
        """该实现支持的模型名正则列表（供 LlmRegistry 使用）"""
        return []

    @abstractmethod
    def generate_content_async(
        self,
        request: LlmRequest,
        stream: bool = False,
    ) -> AsyncIterator[LlmResponse]:
        """
        异步生成（统一接口）

        Args:
            request: LLM 请求
            stream: 是否流式生成
        """
        raise NotImplementedError
