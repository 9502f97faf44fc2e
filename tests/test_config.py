"""
Tests for configuration dataclasses and environment settings.
"""

from pathlib import Path

import pytest

from agent_router.errors import ConfigurationError
from agent_router.gating.router_config import MoEConfig, QLearningConfig, RouterSystemConfig
from agent_router.settings import RouterSettings


@pytest.mark.parametrize("overrides", [
    {"exploration_decay_type": "step"},
    {"route_names": ()},
    {"route_names": ("coder", "coder")},
    {"exploration_initial": 0.1, "exploration_final": 0.5},
    {"learning_rate": 0.0},
    {"state_space_dim": 32},
    {"cache_size": 0},
])
def test_invalid_q_learning_config(overrides):
    with pytest.raises(ConfigurationError):
        QLearningConfig(**overrides).validate()


@pytest.mark.parametrize("overrides", [
    {"top_k": 0},
    {"top_k": 9},
    {"temperature": 0.0},
    {"backend": "tpu"},
    {"input_dim": 0},
    {"expert_names": ()},
    {"reward_clip": -1.0},
])
def test_invalid_moe_config(overrides):
    with pytest.raises(ConfigurationError):
        MoEConfig(**overrides).validate()


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        MoEConfig(top_k=0).validate()


def test_system_config_rebases_paths(tmp_path):
    config = RouterSystemConfig(model_dir=tmp_path)

    assert config.qlearning_config.model_path == tmp_path / "q-learning-model.json"
    assert config.moe_config.weights_path == tmp_path / "moe-weights.json"


def test_explicit_paths_are_kept(tmp_path):
    custom = tmp_path / "elsewhere" / "q.json"
    config = RouterSystemConfig(model_dir=tmp_path, qlearning_config=QLearningConfig(model_path=custom))
    assert config.qlearning_config.model_path == custom


def test_auto_save_off_disables_intervals(tmp_path):
    config = RouterSystemConfig(model_dir=tmp_path, auto_save=False)
    assert config.qlearning_config.auto_save_interval == 0
    assert config.moe_config.auto_save_interval == 0


def test_json_roundtrip(tmp_path):
    config = RouterSystemConfig(
        model_dir=tmp_path,
        qlearning_config=QLearningConfig(learning_rate=0.2, exploration_decay_type="cosine"),
        moe_config=MoEConfig(top_k=3, backend="numpy"),
    )
    path = tmp_path / "router_config.json"
    config.to_json(path)

    loaded = RouterSystemConfig.from_json(path)
    assert loaded == config
    assert isinstance(loaded.qlearning_config.model_path, Path)
    assert loaded.moe_config.expert_names == config.moe_config.expert_names


def test_from_dict_ignores_unknown_keys():
    config = RouterSystemConfig.from_dict({
        "model_dir": ".models",
        "legacy_option": True,
        "moe_config": {"top_k": 1, "removed_field": 3},
    })
    assert config.moe_config.top_k == 1
    assert config.moe_config.weights_path == Path(".models") / "moe-weights.json"


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("AGENT_ROUTER_MODEL_DIR", str(tmp_path))
    monkeypatch.setenv("AGENT_ROUTER_GATING_BACKEND", "numpy")
    monkeypatch.setenv("AGENT_ROUTER_AUTO_SAVE", "false")

    settings = RouterSettings()
    config = RouterSystemConfig.from_settings(settings)

    assert settings.model_dir == tmp_path
    assert config.moe_config.backend == "numpy"
    assert config.qlearning_config.auto_save_interval == 0
    assert config.moe_config.weights_path == tmp_path / "moe-weights.json"


def test_settings_reject_unknown_backend(monkeypatch):
    monkeypatch.setenv("AGENT_ROUTER_GATING_BACKEND", "tpu")
    with pytest.raises(ValueError):
        RouterSettings()
