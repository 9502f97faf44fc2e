"""
Tests for epsilon schedules and the reward convention.
"""

import pytest

from agent_router.errors import ConfigurationError
from agent_router.gating.components.exploration import clip_reward, exploration_rate


@pytest.mark.parametrize("decay_type", ["linear", "exponential", "cosine"])
def test_schedule_bounds(decay_type):
    initial, final, horizon = 1.0, 0.01, 1000

    assert exploration_rate(0, initial, final, horizon, decay_type) == initial
    assert exploration_rate(horizon, initial, final, horizon, decay_type) == pytest.approx(final)
    assert exploration_rate(5 * horizon, initial, final, horizon, decay_type) == pytest.approx(final)


@pytest.mark.parametrize("decay_type", ["linear", "exponential", "cosine"])
def test_schedule_is_non_increasing(decay_type):
    rates = [exploration_rate(step, 0.8, 0.05, 500, decay_type) for step in range(0, 600, 7)]

    assert all(a >= b for a, b in zip(rates, rates[1:]))
    assert all(0.05 <= r <= 0.8 for r in rates)


def test_exponential_decays_faster_than_linear_early():
    assert exploration_rate(100, 1.0, 0.01, 1000, "exponential") < exploration_rate(
        100, 1.0, 0.01, 1000, "linear"
    )


def test_flat_schedule_when_initial_equals_final():
    assert exploration_rate(10, 0.2, 0.2, 100, "exponential") == pytest.approx(0.2)


def test_unknown_schedule_raises():
    with pytest.raises(ConfigurationError):
        exploration_rate(1, 1.0, 0.1, 10, "step")


def test_clip_reward():
    assert clip_reward(5.0, None) == 5.0
    assert clip_reward(5.0, 1.0) == 1.0
    assert clip_reward(-3.0, 1.0) == -1.0
    assert clip_reward(0.25, 1.0) == 0.25
