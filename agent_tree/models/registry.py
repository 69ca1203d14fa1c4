"""LLM 注册表 - 把模型名字符串解析为 BaseLlm 实例"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Optional

from .base_llm import BaseLlm

logger = logging.getLogger(__name__)


class LlmRegistry:
    """
    模型名 -> BaseLlm 子类 的注册表

    每个 BaseLlm 子类通过 supported_models() 声明自己支持的模型名正则，
    LlmAgent 配置为字符串模型时由这里创建实例。
    没有任何正则匹配时交给 fallback（默认是 OpenAI 兼容的 OpenAILlm，
    配合 api_base 可以访问任意 OpenAI 兼容服务上的模型）。
    """

    _llm_registry: dict[str, type[BaseLlm]] = {}
    _fallback: Optional[type[BaseLlm]] = None

    @staticmethod
    def register(llm_cls: type[BaseLlm]) -> None:
        """注册一个 LLM 实现"""
        for pattern in llm_cls.supported_models():
            if pattern in LlmRegistry._llm_registry:
                logger.debug(
                    f"[LlmRegistry] Overriding {LlmRegistry._llm_registry[pattern].__name__} "
                    f"with {llm_cls.__name__} for pattern {pattern}"
                )
            LlmRegistry._llm_registry[pattern] = llm_cls
        LlmRegistry.resolve.cache_clear()

    @staticmethod
    def set_fallback(llm_cls: Optional[type[BaseLlm]]) -> None:
        """设置没有正则匹配时使用的实现，None 表示直接报错"""
        LlmRegistry._fallback = llm_cls
        LlmRegistry.resolve.cache_clear()

    @staticmethod
    @lru_cache(maxsize=32)
    def resolve(model: str) -> type[BaseLlm]:
        """
        根据模型名找到 LLM 实现类

        Raises:
            ValueError: 没有实现支持该模型，且没有 fallback
        """
        for pattern, llm_cls in LlmRegistry._llm_registry.items():
            if re.fullmatch(pattern, model):
                return llm_cls
        if LlmRegistry._fallback is not None:
            logger.debug(f"[LlmRegistry] No pattern for {model}, using {LlmRegistry._fallback.__name__}")
            return LlmRegistry._fallback
        raise ValueError(f"Model {model} not found.")

    @staticmethod
    def new_llm(model: str) -> BaseLlm:
        """创建模型实例"""
        return LlmRegistry.resolve(model)(model=model)
