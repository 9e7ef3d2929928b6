"""
Tests for the configuration/state store
"""

import json

import pytest
from pydantic import ValidationError

from loop_runner.config import Settings
from loop_runner.core.store import (
    HISTORY_LIMIT,
    HistoryEntry,
    LoopConfig,
    LoopStore,
    MonitorConfig,
)


class TestDefaults:

    def test_from_settings(self):
        settings = Settings(
            default_provider_id="openai",
            default_model_id="gpt-4o",
            default_task="watch the queue",
            default_interval_ms=2000,
        )

        config = LoopConfig.from_settings(settings)

        assert config.model.provider_id == "openai"
        assert config.model.model_id == "gpt-4o"
        assert config.user == "watch the queue"
        assert config.interval == 2000
        assert config.max_iterations == 0
        assert config.monitor is None
        assert config.working == ""
        assert config.persistent == ""

    def test_initial_state(self, store):
        state = store.state

        assert state.running is False
        assert state.iteration == 0
        assert state.session_id is None
        assert state.last_output == ""
        assert state.monitor_output == ""
        assert store.history() == []


class TestUpdateConfig:

    def test_merges_fields(self, store):
        store.update_config({"user": "new task", "max_iterations": 5})

        assert store.config.user == "new task"
        assert store.config.max_iterations == 5
        assert store.config.system == "You are a loop."

    def test_replaces_nested_model(self, store):
        store.update_config({"model": {"provider_id": "openai", "model_id": "gpt-4o"}})

        assert store.config.model.provider_id == "openai"
        assert store.config.model.model_id == "gpt-4o"

    def test_sets_and_clears_monitor(self, store):
        store.update_config({"monitor": {"command": "df -h"}})
        assert store.config.monitor == MonitorConfig(command="df -h")

        store.update_config({"monitor": None})
        assert store.config.monitor is None

    def test_last_writer_wins(self, store):
        store.update_config({"working": "first"})
        store.set_working("second")

        assert store.config.working == "second"

    def test_invalid_value_rejected(self, store):
        with pytest.raises(ValidationError):
            store.update_config({"interval": "soon"})
        assert store.config.interval == 0


class TestMemory:

    def test_working(self, store):
        store.set_working("note")
        assert store.config.working == "note"

        store.clear_working()
        assert store.config.working == ""

    def test_persistent_untouched_by_clear(self, store):
        store.set_persistent("keep")
        store.clear_working()

        assert store.config.persistent == "keep"


class TestHistory:

    def test_record_updates_last_output(self, store):
        store.record(HistoryEntry(iteration=1, prompt="p", response="r"))

        assert store.state.last_output == "r"
        assert store.history()[0]["response"] == "r"

    def test_fifo_eviction(self, store):
        for i in range(1, HISTORY_LIMIT + 6):
            store.record(HistoryEntry(iteration=i, prompt="p", response=str(i)))

        history = store.history()
        assert len(history) == HISTORY_LIMIT
        assert history[0]["iteration"] == 6
        assert history[-1]["iteration"] == HISTORY_LIMIT + 5


class TestSnapshot:

    def test_json_serializable(self, store):
        store.update_config({"monitor": {"command": "uptime"}})
        store.record(HistoryEntry(iteration=1, prompt="p", response="r", timestamp=1700000000000))

        snapshot = json.loads(json.dumps(store.snapshot()))

        assert snapshot["config"]["monitor"] == {"command": "uptime"}
        assert snapshot["config"]["model"] == {
            "provider_id": "anthropic",
            "model_id": "claude-sonnet-4-20250514",
        }
        assert snapshot["state"]["history"] == [
            {"iteration": 1, "prompt": "p", "response": "r", "timestamp": 1700000000000},
        ]
        assert snapshot["state"]["running"] is False
