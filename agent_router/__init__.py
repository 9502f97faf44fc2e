"""
agent-router - adaptive task routing for agent swarms.

Two online-learning routers behind one system object:
Task text → Q-learning route, Task embedding → MoE top-k experts

Quick start::

    import asyncio
    from agent_router import AgentRoutingSystem, RouterSystemConfig

    system = AgentRoutingSystem(RouterSystemConfig(model_dir=".swarm"))
    asyncio.run(system.initialize())

    decision = system.route_task("write unit tests for the parser")
    print(decision.route)             # e.g. "tester"
    system.record_task_outcome("write unit tests for the parser", decision.route, 1.0)
"""

from .errors import ConfigurationError, LearningNoOp, PersistenceError, RouterError
from .gating.components import AgentRoutingSystem, MoERouter, QLearningRouter
from .gating.router_config import MoEConfig, QLearningConfig, RouterSystemConfig
from .types import (
    ExpertSelection,
    ForwardTrace,
    LoadBalanceStats,
    RouteAlternative,
    RoutingDecision,
    RoutingResult,
)

__version__ = "1.0.0"

__all__ = [
    "AgentRoutingSystem",
    "QLearningRouter",
    "MoERouter",
    "RouterSystemConfig",
    "QLearningConfig",
    "MoEConfig",
    "RoutingDecision",
    "RouteAlternative",
    "RoutingResult",
    "ExpertSelection",
    "ForwardTrace",
    "LoadBalanceStats",
    "RouterError",
    "ConfigurationError",
    "PersistenceError",
    "LearningNoOp",
]
