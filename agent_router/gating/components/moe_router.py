"""
Mixture-of-Experts gating router.

A two-layer gating network (Linear -> ReLU -> Linear -> softmax) maps a
pre-computed task embedding to a distribution over a fixed expert set and
routes to the top-k experts. Weights are trained online from reward with a
single-sample REINFORCE step. Per-expert load is always tracked; with
``enable_load_balancing`` it is also fed back into selection through a
capped balancing bias.
"""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from agent_router.errors import ConfigurationError, LearningNoOp, PersistenceError
from agent_router.gating.router_config import MoEConfig
from agent_router.types import (
    ExpertSelection,
    ForwardTrace,
    LoadBalanceStats,
    RoutingResult,
)

from .base import LearningRouter, snapshot_section
from .exploration import clip_reward
from .gating_backends import GatingBackend, box_muller, select_backend

logger = logging.getLogger(__name__)


def routing_entropy(probs: np.ndarray) -> float:
    p = probs[probs > 1e-8]
    return float(-(p * np.log(p)).sum())


def gini_coefficient(counts: np.ndarray) -> float:
    """Gini over a non-negative count vector: 0 = even, (n-1)/n = all on one."""
    total = float(counts.sum())
    if total <= 0:
        return 0.0
    ordered = np.sort(counts.astype(np.float64))
    n = len(ordered)
    weighted = float(np.dot(np.arange(1, n + 1), ordered))
    return max(0.0, (2.0 * weighted - (n + 1) * total) / (n * total))


class MoERouter(LearningRouter):
    """
    Top-k expert router over fixed-length task embeddings.

    Not safe to share across concurrently in-flight tasks when relying on the
    implicit last-pass cache; pass the RoutingResult back into
    ``update_expert_weights(..., result=...)`` instead.
    """

    log_name = "MoE"

    def __init__(self, config: Optional[MoEConfig] = None, backend: Optional[GatingBackend] = None):
        self.config = (config or MoEConfig()).validate()
        super().__init__(self.config.weights_path, self.config.auto_save_interval)

        self.expert_names = tuple(self.config.expert_names)
        self.expert2id = {e: i for i, e in enumerate(self.expert_names)}
        self.num_experts = len(self.expert_names)
        self.input_dim = self.config.input_dim

        self.rng = np.random.default_rng(self.config.seed)
        if backend is None:
            backend = select_backend(
                self.config.backend,
                self.config.input_dim,
                self.config.hidden_dim,
                self.num_experts,
                self.rng,
            )
        elif (backend.input_dim, backend.hidden_dim, backend.num_experts) != (
            self.config.input_dim, self.config.hidden_dim, self.num_experts
        ):
            raise ConfigurationError("Backend dimensions do not match MoEConfig")
        self.backend = backend

        # Statistics
        self.routing_counts = np.zeros(self.num_experts, dtype=np.int64)
        self.balance_bias = np.zeros(self.num_experts, dtype=np.float64)
        self.total_routings = 0
        self.update_count = 0
        self.avg_reward = 0.0

        self._last_trace: Optional[ForwardTrace] = None

    # -------------------- Routing -------------------- #
    def route(self, embedding: Union[Sequence[float], np.ndarray]) -> RoutingResult:
        """
        Route one task embedding to the top-k experts.

        Raises:
            ConfigurationError: embedding length differs from ``input_dim``
                or contains NaN/inf.
        """
        x = self._validate_embedding(embedding)

        noise = None
        if self.config.enable_noise and self.config.noise_std > 0:
            noise = (box_muller(self.rng, self.num_experts) * self.config.noise_std).astype(np.float32)

        trace = self.backend.forward(x, self.config.temperature, noise)
        probs = trace.probs.astype(np.float64)

        selected = self._select_top_k(probs)
        load_balance_loss = self._load_balance_loss(probs)
        entropy = routing_entropy(probs)

        self.routing_counts[selected] += 1
        self.total_routings += 1
        self._rebalance()

        trace.selected = selected
        self._last_trace = trace

        total_weight = float(probs[selected].sum())
        experts = [
            ExpertSelection(
                name=self.expert_names[idx],
                index=idx,
                weight=float(probs[idx]) / (total_weight + 1e-8),
                score=float(probs[idx]),
            )
            for idx in selected
        ]
        return RoutingResult(
            experts=experts,
            all_scores=probs.tolist(),
            load_balance_loss=load_balance_loss,
            entropy=entropy,
            trace=trace,
        )

    def _validate_embedding(self, embedding) -> np.ndarray:
        try:
            x = np.asarray(embedding, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Embedding is not a numeric vector: {exc}") from exc
        length = x.shape[0] if x.ndim == 1 else x.size
        if x.ndim != 1 or length != self.input_dim:
            raise ConfigurationError(
                f"Expected embedding dimension {self.input_dim}, got {length}"
            )
        if not np.all(np.isfinite(x)):
            raise ConfigurationError("Embedding contains non-finite values")
        return np.ascontiguousarray(x)

    def _select_top_k(self, probs: np.ndarray) -> List[int]:
        scores = probs + self.balance_bias if self.config.enable_load_balancing else probs
        order = np.argsort(-scores, kind="stable")
        return [int(i) for i in order[: self.config.top_k]]

    def _load_balance_loss(self, probs: np.ndarray) -> float:
        """Switch-Transformer style auxiliary loss: N * sum(f_i * P_i) * coef."""
        selections = self.routing_counts.sum()
        if selections == 0:
            return 0.0
        fractions = self.routing_counts / selections
        return float(self.num_experts * np.dot(fractions, probs) * self.config.load_balance_coef)

    def _rebalance(self):
        # Overused experts lose selection bias, underused ones gain it
        step = self.config.load_balance_coef
        if not self.config.enable_load_balancing or step <= 0:
            return
        self.balance_bias -= step * np.sign(self.routing_counts - self.routing_counts.mean())
        cap = self.config.balance_bias_cap
        np.clip(self.balance_bias, -cap, cap, out=self.balance_bias)

    # -------------------- Learning -------------------- #
    def update_expert_weights(
        self,
        expert: Union[str, int],
        reward: float,
        result: Optional[RoutingResult] = None,
    ) -> bool:
        """
        REINFORCE update towards (reward > 0) or away from (reward < 0) ``expert``.

        Args:
            expert: Expert name or index.
            reward: Scalar reward, clamped to [-1, 1] by default.
            result: The RoutingResult being rewarded. Without it the last
                forward pass on this instance is used.

        Returns:
            True if weights changed.
        """
        try:
            expert_idx = self._resolve_expert(expert)
            trace = self._resolve_trace(result)
            reward = self._resolve_reward(reward)
        except LearningNoOp as exc:
            logger.warning("[%s] Skipping weight update: %s", self.log_name, exc)
            return False

        if not self.backend.reinforce(trace, expert_idx, reward, self.config.learning_rate):
            logger.warning("[%s] Rejected update producing non-finite gradients", self.log_name)
            return False

        self.update_count += 1
        self.avg_reward += (reward - self.avg_reward) / self.update_count
        self._maybe_autosave(self.update_count)
        return True

    def _resolve_expert(self, expert) -> int:
        if isinstance(expert, str):
            if expert not in self.expert2id:
                raise LearningNoOp(f"invalid expert {expert!r}")
            return self.expert2id[expert]
        if isinstance(expert, (int, np.integer)) and not isinstance(expert, bool):
            if 0 <= int(expert) < self.num_experts:
                return int(expert)
        raise LearningNoOp(f"invalid expert {expert!r}")

    def _resolve_trace(self, result: Optional[RoutingResult]) -> ForwardTrace:
        trace = result.trace if result is not None else self._last_trace
        if trace is None:
            raise LearningNoOp("no cached forward pass for gradient computation")
        return trace

    def _resolve_reward(self, reward) -> float:
        try:
            reward = float(reward)
        except (TypeError, ValueError):
            raise LearningNoOp(f"reward {reward!r} is not a number") from None
        if not math.isfinite(reward):
            raise LearningNoOp(f"non-finite reward {reward}")
        return clip_reward(reward, self.config.reward_clip)

    # -------------------- Diagnostics -------------------- #
    def get_load_balance(self) -> LoadBalanceStats:
        total = self.total_routings or 1
        counts = self.routing_counts
        mean = counts.sum() / self.num_experts
        cv = float(np.sqrt(np.mean((counts - mean) ** 2)) / (mean + 1e-8))
        return LoadBalanceStats(
            utilization={name: float(counts[i]) / total for i, name in enumerate(self.expert_names)},
            total_routings=self.total_routings,
            routing_counts={name: int(counts[i]) for i, name in enumerate(self.expert_names)},
            gini_coefficient=gini_coefficient(counts),
            coefficient_of_variation=cv,
        )

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_routings": self.total_routings,
            "update_count": self.update_count,
            "avg_reward": self.avg_reward,
            "top_k": self.config.top_k,
            "temperature": self.config.temperature,
            "learning_rate": self.config.learning_rate,
            "gini_coefficient": gini_coefficient(self.routing_counts),
            "backend": self.backend.name,
        }

    def reset_stats(self):
        self.routing_counts[:] = 0
        self.balance_bias[:] = 0.0
        self.total_routings = 0
        self.update_count = 0
        self.avg_reward = 0.0

    def reset_weights(self):
        """Re-draw Xavier weights, zero biases and clear statistics."""
        self.backend.reset_parameters()
        self.reset_stats()
        self._last_trace = None

    # -------------------- Persistence hooks -------------------- #
    def _build_snapshot(self) -> Dict[str, Any]:
        params = self.backend.get_parameters()
        return {
            "config": self.config.persisted_subset(),
            "weights": {key: value.tolist() for key, value in params.items()},
            "stats": {
                "update_count": self.update_count,
                "routing_counts": self.routing_counts.tolist(),
                "total_routings": self.total_routings,
                "avg_reward": self.avg_reward,
                "balance_bias": self.balance_bias.tolist(),
            },
            "metadata": {
                "expert_names": list(self.expert_names),
                "backend": self.backend.name,
            },
        }

    def _restore_snapshot(self, payload: Dict[str, Any]):
        metadata = snapshot_section(payload, "metadata")
        stats = snapshot_section(payload, "stats")

        saved_experts = metadata.get("expert_names")
        if saved_experts is not None and tuple(saved_experts) != self.expert_names:
            raise PersistenceError(
                f"Snapshot experts {saved_experts} differ from configured {list(self.expert_names)}"
            )
        params = self.backend.validate_parameters(snapshot_section(payload, "weights", required=True))

        counts = np.asarray(stats.get("routing_counts", [0] * self.num_experts), dtype=np.int64)
        bias = np.asarray(stats.get("balance_bias", [0.0] * self.num_experts), dtype=np.float64)
        if counts.shape != (self.num_experts,) or bias.shape != (self.num_experts,):
            raise PersistenceError("Snapshot statistics do not match the expert count")
        total_routings = int(stats.get("total_routings", counts.sum()))
        update_count = int(stats.get("update_count", 0))
        avg_reward = float(stats.get("avg_reward", 0.0))

        # Validated; commit
        self.backend.set_parameters(params)
        self.routing_counts = counts
        self.balance_bias = np.clip(bias, -self.config.balance_bias_cap, self.config.balance_bias_cap)
        self.total_routings = total_routings
        self.update_count = update_count
        self.avg_reward = avg_reward
