"""
agent_tree 配置

来源（优先级从高到低）:
1. 代码中直接构造 / set_config
2. 环境变量（默认前缀 AGENT_TREE_）
3. 配置文件（.yaml / .yml / .json，未指定时在工作目录和用户目录中查找）
4. 默认值
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

logger = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "AGENT_TREE_"

_CONFIG_FILE_NAMES = ("agent_tree.yaml", "agent_tree.yml", ".agent_tree.yaml", "agent_tree.json")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ('true', '1', 'yes', 'on')


@dataclass
class LLMConfig:
    """字符串模型名解析为 OpenAILlm 时使用的连接参数"""
    api_base: str = ""
    api_key: str = "EMPTY"
    timeout: float = 60.0


@dataclass
class RunnerConfig:
    """
    RunConfig 的默认值

    单次调用可以传入自己的 RunConfig 覆盖这些值。
    """
    streaming: bool = False
    max_llm_calls: int = 500
    max_transfer_hops: int = 10
    """一次调用中 Agent 跳转的总次数上限"""
    show_request: bool = False
    """记录发往模型的请求摘要"""


# 环境变量后缀 -> (配置段, 字段, 转换函数)
_ENV_FIELDS: dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "API_BASE": ("llm", "api_base", str),
    "API_KEY": ("llm", "api_key", str),
    "TIMEOUT": ("llm", "timeout", float),
    "STREAMING": ("runner", "streaming", _parse_bool),
    "MAX_LLM_CALLS": ("runner", "max_llm_calls", int),
    "MAX_TRANSFER_HOPS": ("runner", "max_transfer_hops", int),
    "SHOW_REQUEST": ("runner", "show_request", _parse_bool),
}


@dataclass
class Config:
    """全局配置：llm 段 + runner 段"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    runner: RunnerConfig = field(default_factory=RunnerConfig)

    @classmethod
    def load(
        cls,
        config_file: str | Path | None = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
    ) -> Config:
        """
        按优先级加载配置

        Args:
            config_file: 配置文件路径；为 None 时自动查找
            env_prefix: 环境变量前缀
        """
        config = cls()
        path = Path(config_file) if config_file else _discover_config_file()
        if path is not None and path.exists():
            config.update(_read_file(path))
        config.update_from_env(env_prefix)
        return config

    def update(self, data: dict[str, Any]) -> None:
        """用 {'llm': {...}, 'runner': {...}} 形式的字典覆盖配置，未知键忽略"""
        for section_name in ('llm', 'runner'):
            values = data.get(section_name) or {}
            section = getattr(self, section_name)
            known = {f.name for f in dataclasses.fields(section)}
            for key, value in values.items():
                if key in known:
                    setattr(section, key, value)
                else:
                    logger.warning(f"[Config] Unknown option {section_name}.{key}, ignored")

    def update_from_env(self, env_prefix: str = DEFAULT_ENV_PREFIX) -> None:
        for suffix, (section_name, key, convert) in _ENV_FIELDS.items():
            raw = os.getenv(f"{env_prefix}{suffix}")
            if raw:
                setattr(getattr(self, section_name), key, convert(raw))

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def save(self, config_file: str | Path) -> None:
        """保存到文件，格式由扩展名决定"""
        path = Path(config_file)
        with open(path, 'w', encoding='utf-8') as f:
            if _is_yaml(path):
                yaml.safe_dump(self.to_dict(), f, allow_unicode=True, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)


def _is_yaml(path: Path) -> bool:
    return path.suffix.lower() in ('.yaml', '.yml')


def _discover_config_file() -> Path | None:
    candidates = [Path.cwd() / name for name in _CONFIG_FILE_NAMES]
    candidates.append(Path.home() / ".agent_tree.yaml")
    return next((path for path in candidates if path.exists()), None)


def _read_file(path: Path) -> dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) if _is_yaml(path) else json.load(f)
    logger.debug(f"[Config] Loaded {path}")
    return data or {}


_default_config: Config | None = None


def get_config() -> Config:
    """全局配置（首次访问时加载）"""
    global _default_config
    if _default_config is None:
        _default_config = Config.load()
    return _default_config


def set_config(config: Config) -> None:
    global _default_config
    _default_config = config
