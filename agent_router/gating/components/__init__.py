"""
Routing system components.

This package contains the modular components of the adaptive routing system:
- TaskStateEncoder: hashed 64-dim features and state keys for task text
- QLearningRouter: tabular Q-learning route selection
- MoERouter: gating network with top-k expert selection
- GatingBackend: numpy / torch compute strategies for the gating network
- AgentRoutingSystem: Main orchestrator

All components can be imported directly from this package:
    from agent_router.gating.components import QLearningRouter, MoERouter, AgentRoutingSystem
"""

from .state_encoder import TaskStateEncoder, murmurhash3_32
from .exploration import exploration_rate, clip_reward
from .replay_buffer import Experience, PrioritizedReplayBuffer
from .decision_cache import DecisionCache
from .base import LearningRouter
from .q_learning_router import QEntry, QLearningRouter
from .gating_backends import (
    GatingBackend,
    NumpyGatingBackend,
    TorchGatingBackend,
    select_backend,
)
from .moe_router import MoERouter
from .routing_system import AgentRoutingSystem

__all__ = [
    # Feature encoding
    "TaskStateEncoder",
    "murmurhash3_32",

    # Q-learning task routing
    "exploration_rate",
    "clip_reward",
    "Experience",
    "PrioritizedReplayBuffer",
    "DecisionCache",
    "LearningRouter",
    "QEntry",
    "QLearningRouter",

    # MoE gating
    "GatingBackend",
    "NumpyGatingBackend",
    "TorchGatingBackend",
    "select_backend",
    "MoERouter",

    # Main routing system
    "AgentRoutingSystem",
]
