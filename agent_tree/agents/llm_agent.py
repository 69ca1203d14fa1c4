"""LlmAgent - LLM 驱动的 Agent"""

from __future__ import annotations

import json
import logging
import re
import threading
from concurrent.futures import Executor
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncGenerator, Callable, Mapping, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr, ValidationError, ValidationInfo, field_validator
from typing_extensions import override

from ..callbacks import AsyncCallback, normalize_callbacks
from ..errors import ModelNotFoundError
from ..flows import AutoFlow, BaseLlmFlow, SingleFlow
from ..models import BaseLlm, GenerateContentConfig, LlmRegistry
from ..tools.base_tool import BaseTool
from ..tools.function_tool import Tool
from ..types import Content
from .base_agent import BaseAgent

if TYPE_CHECKING:
    from ..events import Event
    from .callback_context import ReadonlyContext
    from .invocation_context import InvocationContext

logger = logging.getLogger(__name__)

InstructionProvider = Callable[..., str]
"""(ReadonlyContext) -> str"""

# {key} / {key?} 占位符
_PLACEHOLDER_PATTERN = re.compile(r'{+[^{}]*}+')
_STATE_PREFIXES = ('app:', 'user:', 'temp:')


class IncludeContents(str, Enum):
    """请求中包含哪些历史内容"""

    DEFAULT = 'default'
    """包含 Session 中的全部历史"""

    NONE = 'none'
    """只包含最近一条用户输入之后的内容"""


def _is_state_key(key: str) -> bool:
    for prefix in _STATE_PREFIXES:
        if key.startswith(prefix):
            key = key[len(prefix):]
            break
    return key.isidentifier()


def inject_session_state(template: str, state: Mapping[str, Any]) -> str:
    """
    用 Session 状态替换指令中的 {key} 占位符

    - {key?} 表示可选，状态中没有时替换为空串
    - 不是合法标识符的占位符（例如 JSON 示例）原样保留

    Raises:
        KeyError: 必需的 key 不在状态中
    """
    def replace(match: re.Match) -> str:
        raw = match.group()
        key = raw.lstrip('{').rstrip('}').strip()
        optional = key.endswith('?')
        if optional:
            key = key[:-1]
        if not _is_state_key(key):
            return raw
        if key in state:
            return str(state[key])
        if optional:
            return ''
        raise KeyError(f"Context variable not found: `{key}`.")

    return _PLACEHOLDER_PATTERN.sub(replace, template)


class LlmAgent(BaseAgent):
    """
    LLM 驱动的 Agent

    职责：
    - 管理 LLM 相关配置（model、指令、工具、生成参数等）
    - 构造时根据跳转配置选择 Flow（SingleFlow / AutoFlow）
    - 委托给 Flow 执行实际的 LLM 交互
    - 把最终输出写入 Session 状态（output_key）
    """

    # === LLM 配置 ===
    model: Union[str, BaseLlm, None] = None
    """模型名称或 LLM 实例；为空时从祖先 LlmAgent 继承"""

    instruction: Union[str, InstructionProvider] = ''
    """Agent 的指令，支持 {key} 状态占位符"""

    global_instruction: Union[str, InstructionProvider] = ''
    """全局指令，只有根 Agent 上的配置生效"""

    generate_content_config: Optional[GenerateContentConfig] = None
    """生成参数（temperature 等）"""

    # === 工具 ===
    tools: list[BaseTool] = Field(default_factory=list)
    """可用工具列表（普通函数会自动包装为 Tool）"""

    examples: list[tuple[Content, Content]] = Field(default_factory=list)
    """few-shot 示例：(输入, 输出) 对"""

    planning: bool = False
    """是否先规划再行动"""

    # === Agent 跳转控制 ===
    disallow_transfer_to_parent: bool = False
    """禁止跳转回父 Agent"""

    disallow_transfer_to_peers: bool = False
    """禁止跳转到同级 Agent"""

    include_contents: IncludeContents = IncludeContents.DEFAULT

    # === 输入输出 ===
    input_schema: Optional[type[BaseModel]] = None
    """作为 AgentTool 使用时的输入结构"""

    output_schema: Optional[type[BaseModel]] = None
    """输出结构；设置后 Agent 不能再使用工具或跳转"""

    output_key: Optional[str] = None
    """最终输出写入 Session 状态的键"""

    # === 回调 ===
    before_model_callback: list[AsyncCallback] = Field(default_factory=list)
    after_model_callback: list[AsyncCallback] = Field(default_factory=list)
    before_tool_callback: list[AsyncCallback] = Field(default_factory=list)
    after_tool_callback: list[AsyncCallback] = Field(default_factory=list)

    executor: Optional[Executor] = None
    """同步回调使用的执行器，优先于 RunConfig.executor"""

    # === 私有字段 ===
    _flow: Optional[BaseLlmFlow] = PrivateAttr(default=None)
    _resolved_model: Optional[BaseLlm] = PrivateAttr(default=None)
    _model_lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    # === 验证器 ===

    @field_validator(
        'before_model_callback',
        'after_model_callback',
        'before_tool_callback',
        'after_tool_callback',
        mode='before',
    )
    @classmethod
    def _normalize_llm_callbacks(cls, value: Any, info: ValidationInfo) -> list[AsyncCallback]:
        return normalize_callbacks(value, info.field_name)

    @field_validator('tools', mode='before')
    @classmethod
    def _wrap_function_tools(cls, value: Any) -> Any:
        """普通函数包装为 Tool"""
        if not isinstance(value, (list, tuple)):
            return value
        tools = []
        for item in value:
            if callable(item) and not isinstance(item, BaseTool):
                item = Tool(
                    name=item.__name__,
                    description=(item.__doc__ or f"Function {item.__name__}").strip(),
                    func=item,
                )
            tools.append(item)
        return tools

    @field_validator('generate_content_config', mode='after')
    @classmethod
    def _validate_generate_content_config(
        cls, value: Optional[GenerateContentConfig]
    ) -> Optional[GenerateContentConfig]:
        if value is None:
            return value
        if value.system_instruction:
            raise ValueError("System instruction must be set via LlmAgent.instruction.")
        if value.tools:
            raise ValueError("All tools must be set via LlmAgent.tools.")
        if value.response_schema:
            raise ValueError("Response schema must be set via LlmAgent.output_schema.")
        return value

    @override
    def model_post_init(self, __context: Any) -> None:
        self._check_output_schema()
        super().model_post_init(__context)
        self._flow = self._select_flow()
        logger.debug(
            f"[LlmAgent {self.name}] Created with model={self.get_model_name()}, "
            f"flow={type(self._flow).__name__}"
        )

    def _check_output_schema(self) -> None:
        """
        output_schema 与工具、子 Agent 互斥

        跳转开关不符合时自动修正并记录警告
        """
        if self.output_schema is None:
            return
        if self.sub_agents:
            raise ValueError(
                f"Invalid config for agent {self.name}: if output_schema is set, "
                "sub_agents must be empty to disable agent transfer."
            )
        if self.tools:
            raise ValueError(
                f"Invalid config for agent {self.name}: if output_schema is set, "
                "tools must be empty."
            )
        if not self.disallow_transfer_to_parent or not self.disallow_transfer_to_peers:
            logger.warning(
                f"[LlmAgent {self.name}] Invalid config: output_schema cannot co-exist with "
                "agent transfer configurations. Setting disallow_transfer_to_parent=True, "
                "disallow_transfer_to_peers=True"
            )
            self.disallow_transfer_to_parent = True
            self.disallow_transfer_to_peers = True

    def _select_flow(self) -> BaseLlmFlow:
        if self.disallow_transfer_to_parent and self.disallow_transfer_to_peers and not self.sub_agents:
            return SingleFlow()
        return AutoFlow()

    # === 属性 ===

    @property
    def flow(self) -> BaseLlmFlow:
        """构造时选定的 Flow"""
        return self._flow

    @property
    def resolved_model(self) -> BaseLlm:
        """
        实际使用的 LLM 实例

        第一次访问时解析并缓存，并发首次访问也只解析一次。

        Raises:
            ModelNotFoundError: 自身和祖先都没有配置模型
        """
        if self._resolved_model is None:
            with self._model_lock:
                if self._resolved_model is None:
                    self._resolved_model = self._resolve_model()
        return self._resolved_model

    def _resolve_model(self) -> BaseLlm:
        if isinstance(self.model, BaseLlm):
            return self.model
        if self.model:
            return LlmRegistry.new_llm(self.model)

        ancestor = self.parent_agent
        while ancestor is not None:
            if isinstance(ancestor, LlmAgent) and ancestor.model:
                return ancestor.resolved_model
            ancestor = ancestor.parent_agent
        raise ModelNotFoundError(self.name)

    def get_model_name(self) -> str:
        """获取模型名称（不触发解析）"""
        if isinstance(self.model, str):
            return self.model
        if isinstance(self.model, BaseLlm):
            return self.model.model
        return "inherited"

    # === 指令 ===

    def canonical_instruction(self, ctx: 'ReadonlyContext') -> str:
        """解析后的指令（调用 provider 或替换状态占位符）"""
        if callable(self.instruction):
            return self.instruction(ctx)
        return inject_session_state(self.instruction, ctx.state)

    def canonical_global_instruction(self, ctx: 'ReadonlyContext') -> str:
        if callable(self.global_instruction):
            return self.global_instruction(ctx)
        return inject_session_state(self.global_instruction, ctx.state)

    @override
    def callback_executor(self, ctx: 'InvocationContext') -> Optional[Executor]:
        return self.executor or ctx.executor

    # === 可跳转的 Agent ===

    def get_transferable_agents(self) -> list[BaseAgent]:
        """
        获取可跳转到的 Agent 列表

        注意：只有当父 Agent 是 LlmAgent 时，才允许跳转到父 Agent 或同级 Agent。
        如果父 Agent 是编排器（SequentialAgent、LoopAgent），执行顺序由编排器控制，
        不允许子 Agent 自行跳转。
        """
        agents = list(self.sub_agents)

        parent = self.parent_agent
        if not isinstance(parent, LlmAgent):
            return agents

        if not self.disallow_transfer_to_parent:
            agents.append(parent)
        if not self.disallow_transfer_to_peers:
            agents.extend(peer for peer in parent.sub_agents if peer.name != self.name)
        return agents

    # === 执行 ===

    @override
    async def _run_async_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        async for event in self.flow.run_async(ctx):
            self._maybe_save_output_to_state(event, ctx)
            yield event

    @override
    async def _run_live_impl(self, ctx: 'InvocationContext') -> AsyncGenerator['Event', None]:
        async for event in self.flow.run_live(ctx):
            self._maybe_save_output_to_state(event, ctx)
            yield event

    def _maybe_save_output_to_state(
        self,
        event: 'Event',
        ctx: Optional['InvocationContext'] = None,
    ) -> None:
        """
        把最终响应写入 event.actions.state_delta[output_key]

        所有 part 的文本直接拼接（没有文本的 part 记为空字符串）。
        """
        # 跳转后其他 Agent 的事件也会经过这里，只处理自己的
        if event.author != self.name:
            return
        if not self.output_key or not event.is_final_response() or not event.content:
            return
        # A -> B -> A 时同一个事件会经过两层 A
        if ctx is not None and not ctx.claim_output_save(event.id):
            return

        raw = ''.join(part.text or '' for part in event.content.parts)
        result: Any = raw
        if self.output_schema is not None:
            try:
                result = self.output_schema.model_validate(json.loads(result)).model_dump()
            except (json.JSONDecodeError, ValidationError) as e:
                logger.error(
                    f"[{self.name}] Failed to parse output as {self.output_schema.__name__}, "
                    f"saving raw text to '{self.output_key}': {e}"
                )
                result = raw
        event.actions.state_delta[self.output_key] = result

    # === 序列化 ===

    @override
    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base.update({
            'instruction': self.instruction if isinstance(self.instruction, str) else '<provider>',
            'model': self.get_model_name(),
            'tools': [t.to_function_declaration() for t in self.tools],
            'include_contents': self.include_contents.value,
            'output_key': self.output_key,
        })
        return base


# 别名
Agent = LlmAgent
