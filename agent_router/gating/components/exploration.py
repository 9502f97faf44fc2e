"""
Epsilon schedules and reward convention for the learning routers.
"""

import math
from typing import Optional

from agent_router.errors import ConfigurationError


def linear_decay(step: int, initial: float, final: float, horizon: int) -> float:
    progress = min(step / max(1, horizon), 1.0)
    return final + (initial - final) * (1.0 - progress)


def exponential_decay(step: int, initial: float, final: float, horizon: int) -> float:
    # Geometric interpolation, shifted so the horizon lands exactly on `final`
    if initial <= final:
        return final
    progress = min(step / max(1, horizon), 1.0)
    ratio = max(final, 1e-8) / initial
    return final + (initial - final) * (ratio ** progress - ratio) / (1.0 - ratio)


def cosine_decay(step: int, initial: float, final: float, horizon: int) -> float:
    progress = min(step / max(1, horizon), 1.0)
    return final + (initial - final) * 0.5 * (1.0 + math.cos(math.pi * progress))


SCHEDULES = {
    "linear": linear_decay,
    "exponential": exponential_decay,
    "cosine": cosine_decay,
}


def exploration_rate(
    step: int,
    initial: float,
    final: float,
    horizon: int,
    decay_type: str = "exponential",
) -> float:
    """
    Epsilon at ``step`` for the given schedule.

    Every schedule starts at ``initial``, reaches ``final`` at ``horizon`` and
    never increases in between; the result is clamped to [final, initial] to
    absorb floating point drift.
    """
    try:
        schedule = SCHEDULES[decay_type]
    except KeyError:
        raise ConfigurationError(f"Unknown exploration decay type '{decay_type}'") from None
    if step <= 0:
        return initial
    rate = schedule(step, initial, final, horizon)
    return min(initial, max(final, rate))


def clip_reward(reward: float, bound: Optional[float]) -> float:
    """Shared reward convention: clamp to [-bound, bound], or pass through when unbounded."""
    if bound is None:
        return float(reward)
    return max(-bound, min(bound, float(reward)))
