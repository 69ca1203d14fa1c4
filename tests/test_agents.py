"""Tests for agent construction, tree structure and model resolution."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import BaseModel, ValidationError

from agent_tree import (
    AutoFlow,
    LlmAgent,
    ModelNotFoundError,
    SequentialAgent,
    SingleFlow,
    Tool,
)
from agent_tree.agents.llm_agent import inject_session_state
from agent_tree.models import GenerateContentConfig, LlmRegistry, OpenAILlm

from conftest import FakeLlm


class Answer(BaseModel):
    value: int


def get_weather(city: str) -> str:
    """Look up the weather.

    Args:
        city: City name
    """
    return f"sunny in {city}"


# -- Construction -------------------------------------------------------------


class TestAgentConstruction:
    def test_empty_name_rejected(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            LlmAgent(name="")

    def test_name_must_be_identifier(self):
        with pytest.raises(ValueError, match="valid Python identifier"):
            LlmAgent(name="my agent")

    def test_user_is_reserved(self):
        with pytest.raises(ValueError, match="reserved"):
            LlmAgent(name="user")

    def test_name_is_frozen(self):
        agent = LlmAgent(name="a")
        with pytest.raises(ValidationError):
            agent.name = "b"

    def test_sub_agent_cannot_have_two_parents(self):
        child = LlmAgent(name="child")
        LlmAgent(name="first", sub_agents=[child])
        with pytest.raises(ValueError, match="already has parent"):
            LlmAgent(name="second", sub_agents=[child])

    def test_output_schema_with_sub_agents_rejected(self):
        with pytest.raises(ValueError, match="sub_agents must be empty"):
            LlmAgent(name="a", output_schema=Answer, sub_agents=[LlmAgent(name="b")])

    def test_output_schema_with_tools_rejected(self):
        with pytest.raises(ValueError, match="tools must be empty"):
            LlmAgent(name="a", output_schema=Answer, tools=[get_weather])

    def test_output_schema_forces_transfer_flags(self, caplog):
        agent = LlmAgent(name="a", output_schema=Answer)
        assert agent.disallow_transfer_to_parent is True
        assert agent.disallow_transfer_to_peers is True
        assert "output_schema cannot co-exist" in caplog.text

    @pytest.mark.parametrize("field", [
        {"system_instruction": "be nice"},
        {"tools": [{"name": "x"}]},
        {"response_schema": Answer},
    ])
    def test_generate_content_config_reserved_fields(self, field):
        with pytest.raises(ValueError):
            LlmAgent(name="a", generate_content_config=GenerateContentConfig(**field))

    def test_generate_content_config_sampling_allowed(self):
        agent = LlmAgent(name="a", generate_content_config=GenerateContentConfig(temperature=0.2))
        assert agent.generate_content_config.temperature == 0.2

    def test_plain_functions_wrapped_as_tools(self):
        agent = LlmAgent(name="a", tools=[get_weather])
        tool = agent.tools[0]
        assert isinstance(tool, Tool)
        assert tool.name == "get_weather"
        declaration = tool.to_function_declaration()
        assert declaration["parameters"]["required"] == ["city"]
        assert declaration["parameters"]["properties"]["city"]["description"] == "City name"


# -- Flow selection -----------------------------------------------------------


class TestFlowSelection:
    def test_default_agent_uses_auto_flow(self):
        assert isinstance(LlmAgent(name="a").flow, AutoFlow)

    def test_no_transfer_and_no_children_uses_single_flow(self):
        agent = LlmAgent(name="a", disallow_transfer_to_parent=True, disallow_transfer_to_peers=True)
        assert type(agent.flow) is SingleFlow

    def test_children_force_auto_flow(self):
        agent = LlmAgent(
            name="a",
            disallow_transfer_to_parent=True,
            disallow_transfer_to_peers=True,
            sub_agents=[LlmAgent(name="b")],
        )
        assert isinstance(agent.flow, AutoFlow)

    def test_one_flag_is_not_enough(self):
        agent = LlmAgent(name="a", disallow_transfer_to_parent=True)
        assert isinstance(agent.flow, AutoFlow)

    def test_output_schema_agent_uses_single_flow(self):
        assert type(LlmAgent(name="a", output_schema=Answer).flow) is SingleFlow


# -- Tree ---------------------------------------------------------------------


class TestAgentTree:
    def test_parent_and_root(self):
        grandchild = LlmAgent(name="g")
        child = LlmAgent(name="c", sub_agents=[grandchild])
        root = LlmAgent(name="r", sub_agents=[child])
        assert grandchild.parent_agent is child
        assert grandchild.root_agent is root
        assert root.root_agent is root

    def test_find_agent(self):
        grandchild = LlmAgent(name="g")
        root = LlmAgent(name="r", sub_agents=[LlmAgent(name="c", sub_agents=[grandchild])])
        assert root.find_agent("r") is root
        assert root.find_agent("g") is grandchild
        assert root.find_sub_agent("r") is None
        assert root.find_agent("missing") is None

    def test_transferable_agents(self):
        a = LlmAgent(name="a", sub_agents=[LlmAgent(name="a1")])
        b = LlmAgent(name="b")
        root = LlmAgent(name="root", sub_agents=[a, b])
        assert [x.name for x in a.get_transferable_agents()] == ["a1", "root", "b"]
        assert [x.name for x in root.get_transferable_agents()] == ["a", "b"]

    def test_transfer_flags_limit_targets(self):
        a = LlmAgent(name="a", disallow_transfer_to_peers=True)
        LlmAgent(name="root", sub_agents=[a, LlmAgent(name="b")])
        assert [x.name for x in a.get_transferable_agents()] == ["root"]

    def test_orchestrator_children_cannot_transfer(self):
        a = LlmAgent(name="a")
        SequentialAgent(name="pipeline", sub_agents=[a, LlmAgent(name="b")])
        assert a.get_transferable_agents() == []

    def test_to_dict(self):
        agent = LlmAgent(name="a", model="fake-model", output_key="out", sub_agents=[LlmAgent(name="b")])
        data = agent.to_dict()
        assert data["name"] == "a"
        assert data["model"] == "fake-model"
        assert data["sub_agents"] == ["b"]
        assert data["output_key"] == "out"


# -- Model resolution ---------------------------------------------------------


class TestModelResolution:
    def test_own_model_instance(self):
        llm = FakeLlm()
        assert LlmAgent(name="a", model=llm).resolved_model is llm

    def test_inherited_through_two_levels(self):
        llm = FakeLlm()
        grandchild = LlmAgent(name="g")
        LlmAgent(name="r", model=llm, sub_agents=[LlmAgent(name="c", sub_agents=[grandchild])])
        assert grandchild.resolved_model is llm

    def test_inherited_across_orchestrator(self):
        llm = FakeLlm()
        leaf = LlmAgent(name="leaf")
        LlmAgent(name="r", model=llm, sub_agents=[SequentialAgent(name="seq", sub_agents=[leaf])])
        assert leaf.resolved_model is llm

    def test_nearest_ancestor_wins(self):
        outer, inner = FakeLlm(model="fake-outer"), FakeLlm(model="fake-inner")
        leaf = LlmAgent(name="leaf")
        LlmAgent(name="r", model=outer, sub_agents=[LlmAgent(name="c", model=inner, sub_agents=[leaf])])
        assert leaf.resolved_model is inner

    def test_no_model_anywhere(self):
        leaf = LlmAgent(name="leaf")
        LlmAgent(name="r", sub_agents=[leaf])
        with pytest.raises(ModelNotFoundError, match="leaf"):
            leaf.resolved_model

    def test_resolution_is_lazy(self):
        # 构造时不解析
        agent = LlmAgent(name="a")
        assert agent.get_model_name() == "inherited"

    def test_string_model_uses_registry(self):
        agent = LlmAgent(name="a", model="fake-pro")
        llm = agent.resolved_model
        assert isinstance(llm, FakeLlm)
        assert llm.model == "fake-pro"

    def test_unmatched_model_string_uses_openai_compatible_llm(self):
        llm = LlmAgent(name="a", model="QuantTrio/MiniMax-M2-AWQ").resolved_model
        assert isinstance(llm, OpenAILlm)
        assert llm.model == "QuantTrio/MiniMax-M2-AWQ"

    def test_unknown_model_string_without_fallback(self, monkeypatch):
        monkeypatch.setattr(LlmRegistry, "_fallback", None)
        LlmRegistry.resolve.cache_clear()
        with pytest.raises(ValueError, match="not found"):
            LlmAgent(name="a", model="no-such-model").resolved_model

    def test_resolved_once(self, monkeypatch):
        calls = []
        original = LlmAgent._resolve_model

        def counting(self):
            calls.append(self.name)
            return original(self)

        monkeypatch.setattr(LlmAgent, "_resolve_model", counting)
        agent = LlmAgent(name="a", model="fake-model")
        first = agent.resolved_model
        assert agent.resolved_model is first
        assert calls == ["a"]

    def test_concurrent_first_access_resolves_once(self, monkeypatch):
        calls = []
        lock = threading.Lock()
        original = LlmAgent._resolve_model

        def slow(self):
            with lock:
                calls.append(self.name)
            time.sleep(0.05)
            return original(self)

        monkeypatch.setattr(LlmAgent, "_resolve_model", slow)
        agent = LlmAgent(name="a", model="fake-model")
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: agent.resolved_model, range(8)))

        assert calls == ["a"]
        assert all(r is results[0] for r in results)


# -- Instruction templating ---------------------------------------------------


class TestInjectSessionState:
    def test_replaces_keys(self):
        assert inject_session_state("Hi {name}, {user:lang}", {"name": "Ada", "user:lang": "en"}) == "Hi Ada, en"

    def test_optional_missing_key(self):
        assert inject_session_state("Hi {name?}!", {}) == "Hi !"

    def test_required_missing_key(self):
        with pytest.raises(KeyError, match="name"):
            inject_session_state("Hi {name}", {})

    def test_non_identifier_kept(self):
        template = 'Reply as {"answer": 1}'
        assert inject_session_state(template, {}) == template
