"""OpenAI 兼容的 LLM 实现"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Optional

from .base_llm import BaseLlm
from .llm_request import LlmRequest
from .llm_response import LlmResponse
from ..types import Content, Part

logger = logging.getLogger(__name__)

_THINK_PATTERN = re.compile(r'<think>(.*?)</think>', re.DOTALL)


class OpenAILlm(BaseLlm):
    """
    OpenAI 兼容的 LLM 实现

    - 使用同步 OpenAI 客户端，通过 asyncio.to_thread 避免阻塞事件循环
    - api_base / api_key 未设置时从全局配置读取
    - <think>...</think> 内容转换为 thought Part
    """

    api_base: Optional[str] = None
    api_key: Optional[str] = None
    timeout: Optional[float] = None
    show_request: bool = False

    _client: Any = None

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)
        self._client = None

    @property
    def client(self) -> Any:
        """获取 OpenAI 客户端（懒加载）"""
        if self._client is None:
            from openai import OpenAI

            from ..config import get_config

            llm_config = get_config().llm
            self._client = OpenAI(
                base_url=self.api_base or llm_config.api_base or None,
                api_key=self.api_key or llm_config.api_key,
                timeout=self.timeout or llm_config.timeout,
            )
        return self._client

    @classmethod
    def supported_models(cls) -> list[str]:
        return [r"gpt-.*", r"o1-.*", r"o3-.*", r"chatgpt-.*"]

    # ==================== 统一生成接口 ====================

    async def generate_content_async(
        self,
        request: LlmRequest,
        stream: bool = False,
    ) -> AsyncIterator[LlmResponse]:
        """
        异步生成（统一接口）

        - stream=False: 只 yield 一次完整响应
        - stream=True: yield 多个增量 + 最后完整响应
        """
        params = self._build_params(request, stream)
        self._log_request(params)

        if stream:
            chunks = await asyncio.to_thread(self.client.chat.completions.create, **params)
            iterator = iter(chunks)
            accumulator = _StreamAccumulator()
            chunk_index = 0
            while True:
                chunk = await asyncio.to_thread(next, iterator, None)
                if chunk is None:
                    break
                delta = accumulator.add(chunk)
                if delta:
                    yield LlmResponse.create_delta(delta, chunk_index)
                    chunk_index += 1
            yield accumulator.to_response(self.model)
        else:
            response = await asyncio.to_thread(self.client.chat.completions.create, **params)
            yield self._parse_response(response)

    # ==================== 请求转换 ====================

    def _build_params(self, request: LlmRequest, stream: bool) -> dict[str, Any]:
        """LlmRequest -> OpenAI chat.completions 参数"""
        config = request.config
        messages: list[dict[str, Any]] = []
        if config.system_instruction:
            messages.append({"role": "system", "content": config.system_instruction})
        for content in request.contents:
            messages.extend(self._content_to_messages(content))

        params: dict[str, Any] = {
            "model": request.model or self.model,
            "messages": messages,
            "stream": stream,
        }
        if config.temperature is not None:
            params["temperature"] = config.temperature
        if config.top_p is not None:
            params["top_p"] = config.top_p
        if config.max_output_tokens is not None:
            params["max_tokens"] = config.max_output_tokens
        if config.stop_sequences:
            params["stop"] = config.stop_sequences
        if config.tools:
            params["tools"] = [{"type": "function", "function": decl} for decl in config.tools]
            params["tool_choice"] = "auto"
        if config.response_schema is not None:
            params["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": config.response_schema.__name__,
                    "schema": config.response_schema.model_json_schema(),
                },
            }
        return params

    def _content_to_messages(self, content: Content) -> list[dict[str, Any]]:
        """一个 Content 可能对应多条 OpenAI 消息（工具响应各占一条）"""
        messages: list[dict[str, Any]] = []
        text = content.text
        tool_calls = []
        for part in content.parts:
            if part.function_call:
                fc = part.function_call
                tool_calls.append({
                    "id": fc.id,
                    "type": "function",
                    "function": {"name": fc.name, "arguments": json.dumps(fc.args, ensure_ascii=False)},
                })
            elif part.function_response:
                fr = part.function_response
                messages.append({
                    "role": "tool",
                    "tool_call_id": fr.id,
                    "content": json.dumps(fr.response, ensure_ascii=False, default=str),
                })

        role = "assistant" if content.role == "model" else "user"
        if tool_calls:
            messages.insert(0, {"role": "assistant", "content": text or None, "tool_calls": tool_calls})
        elif text:
            messages.insert(0, {"role": role, "content": text})
        return messages

    # ==================== 响应解析 ====================

    def _parse_response(self, response: Any) -> LlmResponse:
        """解析 OpenAI 非流式响应"""
        choice = response.choices[0]
        message = choice.message

        parts = _text_to_parts(message.content or "")
        for tc in message.tool_calls or []:
            parts.append(Part.from_function_call(tc.function.name, _parse_args(tc.function.arguments), tc.id))

        return LlmResponse(
            content=Content(role="model", parts=parts),
            finish_reason=choice.finish_reason,
            model=response.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            } if response.usage else {},
        )

    # ==================== 日志 ====================

    def _log_request(self, params: dict[str, Any]) -> None:
        from ..config import get_config

        if not (self.show_request or get_config().runner.show_request):
            return
        tool_names = [t["function"].get("name", "?") for t in params.get("tools", [])]
        logger.info(
            f"[OpenAILlm] model={params.get('model')} stream={params.get('stream')} "
            f"messages={len(params['messages'])} tools={tool_names}"
        )


class _StreamAccumulator:
    """把流式 chunk 累积为最终响应"""

    def __init__(self):
        self.text = ""
        self.tool_calls: list[dict[str, Any]] = []
        self.finish_reason: Optional[str] = None
        self.model: Optional[str] = None

    def add(self, chunk: Any) -> str:
        """处理一个 chunk，返回新增的文本"""
        if chunk.model:
            self.model = chunk.model
        if not chunk.choices:
            return ""
        choice = chunk.choices[0]
        delta = choice.delta

        for tc in delta.tool_calls or []:
            while tc.index >= len(self.tool_calls):
                self.tool_calls.append({"id": None, "name": None, "arguments": ""})
            existing = self.tool_calls[tc.index]
            if tc.id:
                existing["id"] = tc.id
            if tc.function and tc.function.name:
                existing["name"] = tc.function.name
            if tc.function and tc.function.arguments:
                existing["arguments"] += tc.function.arguments

        if choice.finish_reason:
            self.finish_reason = choice.finish_reason

        if delta.content:
            self.text += delta.content
            return delta.content
        return ""

    def to_response(self, default_model: str) -> LlmResponse:
        parts = _text_to_parts(self.text)
        for tc in self.tool_calls:
            if tc["name"]:
                parts.append(Part.from_function_call(tc["name"], _parse_args(tc["arguments"]), tc["id"]))
        return LlmResponse(
            content=Content(role="model", parts=parts),
            finish_reason=self.finish_reason,
            model=self.model or default_model,
        )


def _parse_args(arguments: Optional[str]) -> dict[str, Any]:
    try:
        return json.loads(arguments or "{}")
    except json.JSONDecodeError:
        logger.warning(f"[OpenAILlm] Invalid tool call arguments: {arguments!r}")
        return {}


def _text_to_parts(raw_content: str) -> list[Part]:
    """分离 <think> 内容和正文"""
    parts = [Part(text=t.strip(), thought=True) for t in _THINK_PATTERN.findall(raw_content)]
    clean = _THINK_PATTERN.sub('', raw_content).strip()
    if clean:
        parts.append(Part.from_text(clean))
    return parts
