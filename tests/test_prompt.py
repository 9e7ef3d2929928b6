"""
Tests for prompt assembly
"""

import pytest

from loop_runner.core.prompt import build_prompt, extract_response
from loop_runner.core.store import LoopConfig, LoopState, ModelRef


def make_config(**kwargs) -> LoopConfig:
    return LoopConfig(model=ModelRef(provider_id="p", model_id="m"), **kwargs)


class TestBuildPrompt:
    """Section order and omission."""

    def test_all_sections_in_order(self):
        config = make_config(persistent="P", working="W", user="T")
        state = LoopState(iteration=4, monitor_output="M", last_output="R")

        prompt = build_prompt(config, state)

        assert prompt == (
            "## Persistent Memory\nP\n\n"
            "## Working Memory (this iteration only)\nW\n\n"
            "## Monitor Output\n```\nM\n```\n\n"
            "## Previous Response\nR\n\n"
            "## Current Task\nT\n\n"
            "\n---\nIteration: 4"
        )

    def test_order_with_realistic_text(self):
        config = make_config(
            persistent="deploy target is staging",
            working="the last deploy failed",
            user="investigate and fix",
        )
        state = LoopState(iteration=1, monitor_output="HTTP 502", last_output="restarted nginx")

        prompt = build_prompt(config, state)

        positions = [
            prompt.index(text)
            for text in (
                "deploy target is staging",
                "the last deploy failed",
                "HTTP 502",
                "restarted nginx",
                "investigate and fix",
            )
        ]
        assert positions == sorted(positions)

    def test_minimal_prompt(self):
        prompt = build_prompt(make_config(user="T"), LoopState(iteration=1))

        assert prompt == "## Current Task\nT\n\n\n---\nIteration: 1"

    @pytest.mark.parametrize("missing,heading", [
        ("persistent", "## Persistent Memory"),
        ("working", "## Working Memory"),
        ("monitor_output", "## Monitor Output"),
        ("last_output", "## Previous Response"),
    ])
    def test_empty_section_omitted(self, missing, heading):
        config_fields = {"persistent": "P", "working": "W", "user": "T"}
        state_fields = {"monitor_output": "M", "last_output": "R"}
        if missing in config_fields:
            config_fields[missing] = ""
        else:
            state_fields[missing] = ""

        prompt = build_prompt(make_config(**config_fields), LoopState(iteration=2, **state_fields))

        assert heading not in prompt
        assert "## Current Task\nT" in prompt

    def test_empty_monitor_has_no_fence(self):
        prompt = build_prompt(make_config(user="T"), LoopState(iteration=1, monitor_output=""))

        assert "```" not in prompt

    def test_task_always_present(self):
        prompt = build_prompt(make_config(user=""), LoopState(iteration=9))

        assert "## Current Task\n" in prompt
        assert prompt.endswith("Iteration: 9")

    def test_deterministic(self):
        config = make_config(persistent="P", user="T")
        state = LoopState(iteration=3, last_output="R")

        assert build_prompt(config, state) == build_prompt(config, state)


class TestExtractResponse:
    """Text part extraction."""

    def test_joins_text_parts_in_order(self):
        parts = [
            {"type": "text", "text": "a"},
            {"type": "reasoning", "text": "hidden"},
            {"type": "tool", "tool": "bash", "state": {}},
            {"type": "text", "text": "b"},
        ]

        assert extract_response(parts) == "a\nb"

    def test_no_text_parts(self):
        assert extract_response([{"type": "step-start"}]) == ""

    def test_empty(self):
        assert extract_response([]) == ""
