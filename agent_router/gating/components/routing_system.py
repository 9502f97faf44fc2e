"""
Main routing system orchestrator.

Owns one Q-learning task router and one MoE expert router, wires their
snapshot files under a common model directory and exposes a single surface
for routing, reward feedback and persistence.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from agent_router.gating.router_config import RouterSystemConfig
from agent_router.types import RoutingDecision, RoutingResult

from .moe_router import MoERouter
from .q_learning_router import QLearningRouter

logger = logging.getLogger(__name__)


class AgentRoutingSystem:
    """
    Usage:
        system = AgentRoutingSystem(RouterSystemConfig(model_dir=Path(".swarm")))
        await system.initialize()
        decision = system.route_task("add retry logic to the uploader")
        system.record_task_outcome("add retry logic to the uploader", decision.route, 1.0)
        await system.save_all_models()
    """

    def __init__(self, config: Optional[RouterSystemConfig] = None, training_mode: bool = False):
        self.config = config or RouterSystemConfig()
        self.training_mode = training_mode

        self.task_router = QLearningRouter(self.config.qlearning_config)
        self.expert_router = MoERouter(self.config.moe_config)

    async def initialize(self) -> Dict[str, bool]:
        """Restore both snapshots. In training mode both engines start cold."""
        if self.training_mode:
            logger.info("Training mode: skipping snapshot restore")
            return {"q_learning": False, "moe": False}
        q_loaded, moe_loaded = await asyncio.gather(
            self.task_router.initialize(),
            self.expert_router.initialize(),
        )
        return {"q_learning": q_loaded, "moe": moe_loaded}

    # -------------------- Routing -------------------- #
    def route_task(self, text: str, explore: bool = True) -> RoutingDecision:
        return self.task_router.route(text, explore=explore)

    def route_embedding(self, embedding: Union[Sequence[float], np.ndarray]) -> RoutingResult:
        return self.expert_router.route(embedding)

    # -------------------- Feedback -------------------- #
    def record_task_outcome(
        self,
        text: str,
        route: str,
        reward: float,
        next_text: Optional[str] = None,
    ) -> float:
        return self.task_router.update(text, route, reward, next_context=next_text)

    def record_expert_outcome(
        self,
        result: Optional[RoutingResult],
        expert: Union[str, int],
        reward: float,
    ) -> bool:
        return self.expert_router.update_expert_weights(expert, reward, result=result)

    # -------------------- Persistence -------------------- #
    async def save_all_models(self) -> Dict[str, bool]:
        logger.info("Saving all models...")
        q_saved, moe_saved = await asyncio.gather(
            self.task_router.save_model(),
            self.expert_router.save_model(),
        )
        return {"q_learning": q_saved, "moe": moe_saved}

    def get_system_stats(self) -> Dict[str, Any]:
        return {
            "model_dir": str(self.config.model_dir),
            "training_mode": self.training_mode,
            "q_learning": self.task_router.get_stats(),
            "moe": self.expert_router.get_stats(),
            "load_balance": self.expert_router.get_load_balance().to_dict(),
            "routes": list(self.task_router.route_names),
            "experts": list(self.expert_router.expert_names),
            "gating_backend": self.expert_router.backend.name,
        }

    def close(self):
        """Wait for pending autosaves and release their worker threads."""
        self.task_router.close()
        self.expert_router.close()
