"""
Q-learning based task routing component.

Tabular reinforcement learning over hashed task states. Includes the
QEntry row type and QLearningRouter, which combines epsilon-greedy routing,
prioritized experience replay, an exploit-mode decision cache and
least-recently-updated table eviction.
"""

import logging
import math
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

import numpy as np

from agent_router.errors import LearningNoOp, PersistenceError
from agent_router.gating.router_config import QLearningConfig
from agent_router.types import RouteAlternative, RoutingDecision

from .base import LearningRouter, snapshot_section
from .decision_cache import DecisionCache
from .exploration import clip_reward, exploration_rate
from .replay_buffer import Experience, PrioritizedReplayBuffer
from .state_encoder import TaskStateEncoder

logger = logging.getLogger(__name__)

# Fraction of max_states kept after a prune
_PRUNE_KEEP = 0.8
_NUM_ALTERNATIVES = 3


@dataclass
class QEntry:
    q_values: np.ndarray
    visits: int = 0
    last_update: float = field(default_factory=time.time)


def softmax_confidence(q_values: np.ndarray, action_idx: int) -> float:
    shifted = np.exp(q_values - np.max(q_values))
    return float(shifted[action_idx] / shifted.sum())


def _copy_decision(decision: RoutingDecision) -> RoutingDecision:
    # Cached decisions are never handed out directly
    return replace(
        decision,
        q_values=list(decision.q_values),
        alternatives=[replace(alt) for alt in decision.alternatives],
    )


class QLearningRouter(LearningRouter):
    """
    Routes task descriptions to one of a fixed set of routes and learns
    from scalar rewards.

    Usage:
        router = QLearningRouter(QLearningConfig(model_path=Path("q.json")))
        await router.initialize()
        decision = router.route("fix the flaky login test", explore=False)
        router.update("fix the flaky login test", decision.route, reward=1.0)
    """

    log_name = "Q-Learning"

    def __init__(self, config: Optional[QLearningConfig] = None):
        self.config = (config or QLearningConfig()).validate()
        super().__init__(self.config.model_path, self.config.auto_save_interval)

        self.route_names = tuple(self.config.route_names)
        self.route2id = {r: i for i, r in enumerate(self.route_names)}
        self.num_actions = len(self.route_names)

        self.rng = np.random.default_rng(self.config.seed)
        self.encoder = TaskStateEncoder(
            dim=self.config.state_space_dim,
            cache_size=self.config.feature_cache_size,
        )
        self.q_table: Dict[str, QEntry] = {}
        self.replay_buffer = PrioritizedReplayBuffer(self.config.replay_buffer_size, self.rng)
        self.cache: DecisionCache[RoutingDecision] = DecisionCache(
            max_size=self.config.cache_size, ttl=self.config.cache_ttl
        )

        self._epsilon = self.config.exploration_initial
        self.step_count = 0
        self.update_count = 0
        self.avg_td_error = 0.0

    # -------------------- Properties -------------------- #
    @property
    def epsilon(self) -> float:
        return self._epsilon

    @property
    def cache_hits(self) -> int:
        return self.cache.hits

    @property
    def cache_misses(self) -> int:
        return self.cache.misses

    def state_key(self, context: str) -> str:
        return self.encoder.state_key(context)

    def q_values(self, context: str) -> np.ndarray:
        """Copy of the Q-row for ``context`` (zeros for an unseen state)."""
        return self._get_q_values(self.state_key(context))

    # -------------------- Routing -------------------- #
    def route(self, context: str, explore: bool = True) -> RoutingDecision:
        state_key = self.state_key(context)

        # Cache only serves exploitation queries
        if not explore:
            cached = self.cache.get(state_key)
            if cached is not None:
                return _copy_decision(cached)

        should_explore = explore and self.rng.random() < self._epsilon
        q_values = self._get_q_values(state_key)
        if should_explore:
            action_idx = int(self.rng.integers(self.num_actions))
        else:
            action_idx = int(np.argmax(q_values))

        ranked = [int(i) for i in np.argsort(-q_values, kind="stable") if i != action_idx]
        decision = RoutingDecision(
            route=self.route_names[action_idx],
            confidence=softmax_confidence(q_values, action_idx),
            q_values=q_values.tolist(),
            explored=should_explore,
            alternatives=[
                RouteAlternative(route=self.route_names[i], score=float(q_values[i]))
                for i in ranked[:_NUM_ALTERNATIVES]
            ],
        )

        if not should_explore:
            self.cache.put(state_key, _copy_decision(decision))
        return decision

    def invalidate_cache(self):
        self.cache.clear()
        logger.debug("[%s] Decision cache invalidated", self.log_name)

    # -------------------- Learning -------------------- #
    def update(
        self,
        context: str,
        action: str,
        reward: float,
        next_context: Optional[str] = None,
    ) -> float:
        """
        Apply one reward and return the TD error of the direct update.

        Unknown actions and non-finite rewards are ignored with a warning
        and return 0.0.
        """
        try:
            action_idx = self._resolve_action(action)
            reward = self._resolve_reward(reward)
        except LearningNoOp as exc:
            logger.warning("[%s] Ignoring update: %s", self.log_name, exc)
            return 0.0

        state_key = self.state_key(context)
        next_state_key = self.state_key(next_context) if next_context is not None else None

        if self.config.enable_replay:
            self.replay_buffer.push(Experience(
                state_key=state_key,
                action_idx=action_idx,
                reward=reward,
                next_state_key=next_state_key,
                priority=abs(reward) + 0.1,
            ))

        td_error = self._update_q_value(state_key, action_idx, reward, next_state_key)

        if self.config.enable_replay and len(self.replay_buffer) >= self.config.replay_batch_size:
            self._experience_replay()

        self.step_count += 1
        self._epsilon = exploration_rate(
            self.step_count,
            self.config.exploration_initial,
            self.config.exploration_final,
            self.config.exploration_decay,
            self.config.exploration_decay_type,
        )

        if len(self.q_table) > self.config.max_states:
            self._prune_q_table()

        self.update_count += 1
        self.avg_td_error += (abs(td_error) - self.avg_td_error) / self.update_count

        # The updated row changed, so its cached decision is stale
        self.cache.discard(state_key)
        interval = self.config.cache_invalidate_interval
        if interval > 0 and self.update_count % interval == 0:
            self.invalidate_cache()

        self._maybe_autosave(self.update_count)
        return td_error

    def _resolve_action(self, action: str) -> int:
        try:
            return self.route2id[action]
        except (KeyError, TypeError):
            raise LearningNoOp(f"unknown action {action!r}") from None

    def _resolve_reward(self, reward: float) -> float:
        try:
            reward = float(reward)
        except (TypeError, ValueError):
            raise LearningNoOp(f"reward {reward!r} is not a number") from None
        if not math.isfinite(reward):
            raise LearningNoOp(f"non-finite reward {reward}")
        return clip_reward(reward, self.config.reward_clip)

    def _update_q_value(
        self,
        state_key: str,
        action_idx: int,
        reward: float,
        next_state_key: Optional[str],
    ) -> float:
        entry = self._get_or_create_entry(state_key)
        current_q = entry.q_values[action_idx]

        if next_state_key is not None:
            target_q = reward + self.config.gamma * float(np.max(self._get_q_values(next_state_key)))
        else:
            # Terminal transition
            target_q = reward

        td_error = float(target_q - current_q)
        new_q = current_q + self.config.learning_rate * td_error
        if not math.isfinite(new_q):
            logger.warning(
                "[%s] Rejected non-finite Q-value for %s/%s",
                self.log_name, state_key, self.route_names[action_idx],
            )
            return 0.0

        entry.q_values[action_idx] = new_q
        entry.visits += 1
        entry.last_update = time.time()
        return td_error

    def _experience_replay(self):
        for slot, exp in self.replay_buffer.sample(self.config.replay_batch_size):
            td_error = self._update_q_value(
                exp.state_key, exp.action_idx, exp.reward, exp.next_state_key
            )
            self.replay_buffer.update_priority(slot, abs(td_error) + 0.01)

    def _prune_q_table(self):
        """Evict the least-recently-updated rows down to 80% of max_states."""
        keep = int(self.config.max_states * _PRUNE_KEEP)
        to_remove = len(self.q_table) - keep
        if to_remove <= 0:
            return
        oldest = sorted(self.q_table.items(), key=lambda kv: kv[1].last_update)[:to_remove]
        for key, _ in oldest:
            del self.q_table[key]
            self.cache.discard(key)
        logger.debug("[%s] Pruned %d Q-table entries", self.log_name, to_remove)

    # -------------------- Table access -------------------- #
    def _get_q_values(self, state_key: str) -> np.ndarray:
        entry = self.q_table.get(state_key)
        if entry is None:
            return np.zeros(self.num_actions, dtype=np.float64)
        return entry.q_values.copy()

    def _get_or_create_entry(self, state_key: str) -> QEntry:
        entry = self.q_table.get(state_key)
        if entry is None:
            entry = QEntry(q_values=np.zeros(self.num_actions, dtype=np.float64))
            self.q_table[state_key] = entry
        return entry

    def export_table(self) -> Dict[str, Dict[str, Any]]:
        return {
            key: {
                "q_values": entry.q_values.tolist(),
                "visits": entry.visits,
                "last_update": entry.last_update,
            }
            for key, entry in self.q_table.items()
        }

    def import_table(self, data: Dict[str, Dict[str, Any]]):
        """
        Replace the Q-table with rows produced by ``export_table``.

        Raises:
            PersistenceError: a row is malformed, has the wrong width or holds
                non-finite values. The current table is left untouched.
        """
        self.q_table = self._parse_table(data)
        self.invalidate_cache()

    def _parse_table(self, data: Dict[str, Dict[str, Any]]) -> Dict[str, QEntry]:
        if not isinstance(data, dict):
            raise PersistenceError("q_table must be an object")
        now = time.time()
        table: Dict[str, QEntry] = {}
        for key, raw in data.items():
            if not isinstance(raw, dict):
                raise PersistenceError(f"State {key} must be an object")
            q_values = np.asarray(raw["q_values"], dtype=np.float64)
            if q_values.shape != (self.num_actions,):
                raise PersistenceError(
                    f"State {key} has {q_values.size} Q-values, expected {self.num_actions}"
                )
            if not np.all(np.isfinite(q_values)):
                raise PersistenceError(f"State {key} has non-finite Q-values")
            table[key] = QEntry(
                q_values=q_values,
                visits=int(raw.get("visits", 0)),
                last_update=float(raw.get("last_update", now)),
            )
        return table

    # -------------------- Persistence hooks -------------------- #
    def _build_snapshot(self) -> Dict[str, Any]:
        return {
            "config": self.config.persisted_subset(),
            "q_table": self.export_table(),
            "stats": {
                "step_count": self.step_count,
                "update_count": self.update_count,
                "avg_td_error": self.avg_td_error,
                "epsilon": self._epsilon,
            },
            "metadata": {
                "total_experiences": self.replay_buffer.total_pushed,
            },
        }

    def _restore_snapshot(self, payload: Dict[str, Any]):
        config = snapshot_section(payload, "config")
        stats = snapshot_section(payload, "stats")
        metadata = snapshot_section(payload, "metadata")

        saved_routes = config.get("route_names")
        if saved_routes is not None and tuple(saved_routes) != self.route_names:
            raise PersistenceError(
                f"Snapshot routes {saved_routes} differ from configured {list(self.route_names)}"
            )
        table = self._parse_table(snapshot_section(payload, "q_table", required=True))
        step_count = int(stats.get("step_count", 0))
        update_count = int(stats.get("update_count", 0))
        avg_td_error = float(stats.get("avg_td_error", 0.0))
        epsilon = float(stats.get("epsilon", self.config.exploration_initial))
        if not math.isfinite(epsilon):
            epsilon = self.config.exploration_initial
        total_experiences = int(metadata.get("total_experiences", 0))

        # Validated; commit
        self.q_table = table
        self.step_count = step_count
        self.update_count = update_count
        self.avg_td_error = avg_td_error
        self._epsilon = min(self.config.exploration_initial, max(self.config.exploration_final, epsilon))
        self.replay_buffer.total_pushed = total_experiences
        self.invalidate_cache()

    # -------------------- Stats -------------------- #
    def get_stats(self) -> Dict[str, Any]:
        return {
            "update_count": self.update_count,
            "q_table_size": len(self.q_table),
            "epsilon": self._epsilon,
            "avg_td_error": self.avg_td_error,
            "step_count": self.step_count,
            # Cache metrics
            "cache_size": len(self.cache),
            "cache_hits": self.cache.hits,
            "cache_misses": self.cache.misses,
            "cache_hit_rate": self.cache.hit_rate,
            # Replay buffer metrics
            "replay_buffer_size": len(self.replay_buffer),
            "total_experiences": self.replay_buffer.total_pushed,
            "feature_cache_size": len(self.encoder),
        }

    def reset(self):
        """Forget everything learned and start from a cold table."""
        self.q_table.clear()
        self._epsilon = self.config.exploration_initial
        self.step_count = 0
        self.update_count = 0
        self.avg_td_error = 0.0
        self.replay_buffer.clear()
        self.cache.clear()
        self.cache.reset_counters()
        self.encoder.clear_cache()
