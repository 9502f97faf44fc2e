"""
Pytest configuration and fixtures for the routing engine tests.
"""

import numpy as np
import pytest

from agent_router.gating.components import MoERouter, QLearningRouter
from agent_router.gating.router_config import MoEConfig, QLearningConfig


@pytest.fixture
def q_config(tmp_path):
    """Seeded Q-learning config writing into a temp dir, autosave off."""
    return QLearningConfig(
        seed=7,
        model_path=tmp_path / "q-learning-model.json",
        auto_save_interval=0,
    )


@pytest.fixture
def q_router(q_config):
    router = QLearningRouter(q_config)
    yield router
    router.close()


@pytest.fixture
def moe_config(tmp_path):
    """Seeded, noise-free MoE config on the numpy backend, autosave off."""
    return MoEConfig(
        seed=11,
        backend="numpy",
        enable_noise=False,
        weights_path=tmp_path / "moe-weights.json",
        auto_save_interval=0,
    )


@pytest.fixture
def moe_router(moe_config):
    router = MoERouter(moe_config)
    yield router
    router.close()


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def embedding(rng):
    """A 384-dim task embedding."""
    return rng.standard_normal(384).astype(np.float32)
