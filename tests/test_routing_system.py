"""
Tests for the routing system orchestrator.
"""

import asyncio

import numpy as np
import pytest

from agent_router import AgentRoutingSystem, RouterSystemConfig
from agent_router.gating.router_config import MoEConfig, QLearningConfig


@pytest.fixture
def system_config(tmp_path):
    return RouterSystemConfig(
        model_dir=tmp_path,
        auto_save=False,
        qlearning_config=QLearningConfig(seed=3),
        moe_config=MoEConfig(seed=3, backend="numpy", enable_noise=False),
    )


@pytest.fixture
def system(system_config):
    routing_system = AgentRoutingSystem(system_config)
    yield routing_system
    routing_system.close()


def test_initialize_without_snapshots(system):
    assert asyncio.run(system.initialize()) == {"q_learning": False, "moe": False}


def test_route_and_learn(system, embedding):
    task = "write unit tests for the parser"
    for _ in range(20):
        system.record_task_outcome(task, "tester", 1.0)
    assert system.route_task(task, explore=False).route == "tester"

    result = system.route_embedding(embedding)
    assert len(result.experts) == 2
    assert system.record_expert_outcome(result, result.experts[0].name, 1.0) is True
    assert system.record_expert_outcome(None, "nobody", 1.0) is False


def test_save_and_restore(system, system_config, embedding):
    system.record_task_outcome("review the payment module", "reviewer", 1.0)
    result = system.route_embedding(embedding)
    system.record_expert_outcome(result, "security", 0.5)

    assert asyncio.run(system.save_all_models()) == {"q_learning": True, "moe": True}
    assert (system_config.model_dir / "q-learning-model.json").exists()
    assert (system_config.model_dir / "moe-weights.json").exists()

    restored = AgentRoutingSystem(system_config)
    assert asyncio.run(restored.initialize()) == {"q_learning": True, "moe": True}
    np.testing.assert_allclose(
        restored.route_embedding(embedding).all_scores,
        system.route_embedding(embedding).all_scores,
        rtol=1e-6,
    )
    restored.close()


def test_training_mode_skips_restore(system, system_config):
    system.record_task_outcome("review the payment module", "reviewer", 1.0)
    asyncio.run(system.save_all_models())

    trainer = AgentRoutingSystem(system_config, training_mode=True)
    assert asyncio.run(trainer.initialize()) == {"q_learning": False, "moe": False}
    assert len(trainer.task_router.q_table) == 0
    trainer.close()


def test_system_stats(system, embedding):
    system.route_embedding(embedding)
    stats = system.get_system_stats()

    assert stats["gating_backend"] == "numpy"
    assert stats["moe"]["total_routings"] == 1
    assert stats["load_balance"]["total_routings"] == 1
    assert len(stats["routes"]) == 8
    assert len(stats["experts"]) == 8
