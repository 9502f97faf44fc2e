"""
Tests for snapshot files and the engines' save/load lifecycle.
"""

import asyncio
import json
import logging

import numpy as np
import pytest

from agent_router.errors import PersistenceError
from agent_router.gating.components import MoERouter, QLearningRouter
from agent_router.persistence import AutoSaver, read_snapshot, write_snapshot

CONTEXTS = [
    "implement user authentication",
    "write unit tests for the parser",
    "review the payment module",
    "fix the memory leak in the worker",
]


# -------------------- Snapshot files -------------------- #
def test_write_is_atomic_and_leaves_no_temp_files(tmp_path):
    path = tmp_path / "models" / "snapshot.json"
    write_snapshot(path, {"version": "1.0.0", "value": 1})
    write_snapshot(path, {"version": "1.0.0", "value": 2})

    assert read_snapshot(path)["value"] == 2
    assert [p.name for p in path.parent.iterdir()] == ["snapshot.json"]


def test_failed_write_keeps_previous_snapshot(tmp_path):
    path = tmp_path / "snapshot.json"
    write_snapshot(path, {"version": "1.0.0", "value": 1})

    with pytest.raises(PersistenceError):
        write_snapshot(path, {"version": "1.0.0", "value": object()})

    assert read_snapshot(path)["value"] == 1
    assert [p.name for p in tmp_path.iterdir()] == ["snapshot.json"]


@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"version": "2.0.0"}', "{}"])
def test_read_rejects_bad_snapshots(tmp_path, content):
    path = tmp_path / "snapshot.json"
    path.write_text(content)
    with pytest.raises(PersistenceError):
        read_snapshot(path)


def test_read_missing_file(tmp_path):
    with pytest.raises(PersistenceError):
        read_snapshot(tmp_path / "absent.json")


# -------------------- Q-learning -------------------- #
def test_q_learning_roundtrip(q_router, q_config):
    for ctx in CONTEXTS:
        for _ in range(5):
            q_router.update(ctx, "reviewer", 1.0)
    before = [q_router.route(ctx, explore=False) for ctx in CONTEXTS]

    assert asyncio.run(q_router.save_model()) is True
    payload = json.loads(q_config.model_path.read_text())
    assert payload["version"] == "1.0.0"
    assert set(payload) == {"version", "config", "q_table", "stats", "metadata"}
    assert "saved_at" in payload["metadata"]

    restored = QLearningRouter(q_config)
    assert asyncio.run(restored.initialize()) is True
    after = [restored.route(ctx, explore=False) for ctx in CONTEXTS]

    assert [d.route for d in after] == [d.route for d in before]
    assert [d.q_values for d in after] == [d.q_values for d in before]
    assert restored.update_count == q_router.update_count
    assert restored.epsilon == pytest.approx(q_router.epsilon)


def test_missing_snapshot_starts_fresh(q_router):
    assert asyncio.run(q_router.initialize()) is False
    assert len(q_router.q_table) == 0


def test_version_mismatch_leaves_state_untouched(q_router, q_config, caplog):
    q_router.update(CONTEXTS[0], "coder", 1.0)
    snapshot = q_router.snapshot()
    snapshot["version"] = "2.0.0"
    snapshot["q_table"] = {}
    q_config.model_path.write_text(json.dumps(snapshot))

    with caplog.at_level(logging.WARNING):
        assert asyncio.run(q_router.load_model()) is False

    assert "Incompatible model version" in caplog.text
    assert len(q_router.q_table) == 1


def test_corrupt_snapshot_leaves_state_untouched(q_router, q_config):
    q_router.update(CONTEXTS[0], "coder", 1.0)
    q_config.model_path.write_text('{"version": "1.0.0", "q_table": {"s": {"q_values": [1, 2]}}}')

    assert asyncio.run(q_router.load_model()) is False
    assert len(q_router.q_table) == 1


@pytest.mark.parametrize("content", [
    {"version": "1.0.0", "config": [], "q_table": {}},
    {"version": "1.0.0", "stats": "x", "q_table": {}},
    {"version": "1.0.0", "metadata": 3, "q_table": {}},
    {"version": "1.0.0", "q_table": {"s": [0.0] * 8}},
    {"version": "1.0.0", "q_table": []},
    {"version": "1.0.0"},
])
def test_mistyped_q_snapshot_sections(q_router, q_config, content):
    q_router.update(CONTEXTS[0], "coder", 1.0)
    q_config.model_path.write_text(json.dumps(content))

    assert asyncio.run(q_router.load_model()) is False
    assert len(q_router.q_table) == 1


def test_route_mismatch_is_rejected(q_router, q_config):
    q_router.update(CONTEXTS[0], "coder", 1.0)
    asyncio.run(q_router.save_model())

    q_config.route_names = ("a", "b", "c")
    other = QLearningRouter(q_config)
    assert asyncio.run(other.load_model()) is False


def test_autosave_writes_in_background(q_config):
    q_config.auto_save_interval = 5
    router = QLearningRouter(q_config)
    for _ in range(5):
        router.update(CONTEXTS[1], "tester", 1.0)

    router.flush_autosave(timeout=10)
    router.close()
    assert read_snapshot(q_config.model_path)["stats"]["update_count"] == 5


def test_autosave_inside_event_loop(tmp_path):
    saver = AutoSaver("test")
    path = tmp_path / "loop.json"

    async def run():
        saver.schedule(path, {"version": "1.0.0"})
        await saver.drain()

    asyncio.run(run())
    assert saver.saves_completed == 1
    assert path.exists()


def test_autosave_failure_is_logged_not_raised(tmp_path, caplog):
    saver = AutoSaver("test")
    with caplog.at_level(logging.WARNING):
        saver.schedule(tmp_path / "bad.json", {"value": object()})
        saver.wait(timeout=10)
    saver.close()

    assert saver.saves_failed == 1
    assert "Autosave failed" in caplog.text


# -------------------- MoE -------------------- #
def test_moe_roundtrip(moe_router, moe_config, embedding):
    first = moe_router.route(embedding)
    moe_router.update_expert_weights(first.experts[0].name, 1.0, result=first)
    assert asyncio.run(moe_router.save_model()) is True

    payload = json.loads(moe_config.weights_path.read_text())
    assert set(payload) == {"version", "config", "weights", "stats", "metadata"}
    assert payload["metadata"]["expert_names"] == list(moe_config.expert_names)

    moe_config.seed = 999
    restored = MoERouter(moe_config)
    assert asyncio.run(restored.initialize()) is True

    expected = moe_router.route(embedding)
    actual = restored.route(embedding)
    assert actual.expert_names == expected.expert_names
    np.testing.assert_allclose(actual.all_scores, expected.all_scores, rtol=1e-6)
    assert restored.update_count == 1


def test_moe_rejects_mistyped_sections(moe_router, moe_config, embedding):
    moe_router.route(embedding)
    before = moe_router.backend.get_parameters()["w1"]
    for content in (
        {"version": "1.0.0", "metadata": "x", "weights": {}},
        {"version": "1.0.0", "stats": [1, 2], "weights": moe_router.snapshot()["weights"]},
        {"version": "1.0.0", "weights": []},
        {"version": "1.0.0"},
    ):
        moe_config.weights_path.write_text(json.dumps(content))
        assert asyncio.run(moe_router.load_model()) is False

    np.testing.assert_array_equal(before, moe_router.backend.get_parameters()["w1"])
    assert moe_router.total_routings == 1


def test_moe_rejects_wrong_shapes(moe_router, moe_config, embedding):
    moe_router.route(embedding)
    snapshot = moe_router.snapshot()
    snapshot["weights"]["w1"] = [[0.0] * 10]
    moe_config.weights_path.write_text(json.dumps(snapshot))

    before = moe_router.backend.get_parameters()["w1"]
    assert asyncio.run(moe_router.load_model()) is False
    np.testing.assert_array_equal(before, moe_router.backend.get_parameters()["w1"])
