"""内容模型 - 消息由有序的 Part 组成"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import uuid4


@dataclass
class FunctionCall:
    """
    模型发起的工具/函数调用

    id 由模型或 Flow 生成，用于把调用和响应配对
    """
    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: f"call_{uuid4().hex[:12]}")


@dataclass
class FunctionResponse:
    """工具执行结果（回传给模型）"""
    name: str
    response: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class Blob:
    """二进制内容（Artifact 的载体）"""
    mime_type: str
    data: bytes


@dataclass
class Part:
    """
    消息片段

    一个 Part 只承载一种内容：text / function_call / function_response / inline_data
    """
    text: Optional[str] = None
    function_call: Optional[FunctionCall] = None
    function_response: Optional[FunctionResponse] = None
    inline_data: Optional[Blob] = None
    thought: bool = False
    """是否是模型的思考内容（不参与最终输出）"""

    @classmethod
    def from_text(cls, text: str) -> Part:
        return cls(text=text)

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str) -> Part:
        return cls(inline_data=Blob(mime_type=mime_type, data=data))

    @classmethod
    def from_function_call(cls, name: str, args: dict[str, Any], call_id: Optional[str] = None) -> Part:
        fc = FunctionCall(name=name, args=args)
        if call_id:
            fc.id = call_id
        return cls(function_call=fc)

    @classmethod
    def from_function_response(cls, name: str, response: dict[str, Any], call_id: str = "") -> Part:
        return cls(function_response=FunctionResponse(name=name, response=response, id=call_id))

    def to_dict(self) -> dict[str, Any]:
        """转换为可 JSON 序列化的字典"""
        result: dict[str, Any] = {}
        if self.text is not None:
            result['text'] = self.text
        if self.function_call:
            result['function_call'] = {
                'id': self.function_call.id,
                'name': self.function_call.name,
                'args': self.function_call.args,
            }
        if self.function_response:
            result['function_response'] = {
                'id': self.function_response.id,
                'name': self.function_response.name,
                'response': self.function_response.response,
            }
        if self.inline_data:
            result['inline_data'] = {
                'mime_type': self.inline_data.mime_type,
                'data': base64.b64encode(self.inline_data.data).decode('ascii'),
            }
        if self.thought:
            result['thought'] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Part:
        part = cls(text=data.get('text'), thought=data.get('thought', False))
        if fc := data.get('function_call'):
            part.function_call = FunctionCall(id=fc.get('id', ''), name=fc['name'], args=fc.get('args', {}))
        if fr := data.get('function_response'):
            part.function_response = FunctionResponse(
                id=fr.get('id', ''), name=fr['name'], response=fr.get('response', {})
            )
        if blob := data.get('inline_data'):
            part.inline_data = Blob(mime_type=blob['mime_type'], data=base64.b64decode(blob['data']))
        return part


@dataclass
class Content:
    """
    一条结构化消息

    role: 'user' 或 'model'
    parts: 有序的消息片段
    """
    role: str = 'user'
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def from_text(cls, text: str, role: str = 'user') -> Content:
        return cls(role=role, parts=[Part.from_text(text)])

    @property
    def text(self) -> str:
        """拼接所有文本片段（缺失的文本视为空串，思考内容除外）"""
        return ''.join(part.text or '' for part in self.parts if not part.thought)

    def to_dict(self) -> dict[str, Any]:
        return {'role': self.role, 'parts': [p.to_dict() for p in self.parts]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Content:
        return cls(
            role=data.get('role', 'user'),
            parts=[Part.from_dict(p) for p in data.get('parts', [])],
        )
