"""
Configuration dataclasses for the adaptive routing engines.

Provides type-safe configuration with defaults for both routers and the
routing system that owns them.
"""

import json
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional, Dict, Any, Tuple

from agent_router.errors import ConfigurationError

# Order is the action index space; never reorder, only append.
ROUTE_NAMES: Tuple[str, ...] = (
    "coder",
    "tester",
    "reviewer",
    "architect",
    "researcher",
    "optimizer",
    "debugger",
    "documenter",
)

EXPERT_NAMES: Tuple[str, ...] = (
    "coder",
    "tester",
    "reviewer",
    "architect",
    "security",
    "performance",
    "researcher",
    "coordinator",
)

DECAY_TYPES = ("linear", "exponential", "cosine")
GATING_BACKENDS = ("auto", "numpy", "torch")

# The encoder emits a fixed 64-slot layout (keywords, buckets, hints, bigrams).
STATE_FEATURE_DIM = 64


@dataclass
class QLearningConfig:
    """Configuration for the tabular Q-learning router."""
    learning_rate: float = 0.1
    gamma: float = 0.99

    # Exploration
    exploration_initial: float = 1.0
    exploration_final: float = 0.01
    exploration_decay: int = 10000
    exploration_decay_type: str = "exponential"

    # Table / buffer / cache bounds
    max_states: int = 10000
    route_names: Tuple[str, ...] = ROUTE_NAMES
    replay_buffer_size: int = 1000
    replay_batch_size: int = 32
    enable_replay: bool = True
    cache_size: int = 256
    cache_ttl: float = 300.0  # seconds
    cache_invalidate_interval: int = 50

    # Encoder
    state_space_dim: int = STATE_FEATURE_DIM
    feature_cache_size: int = 1000

    # Persistence
    model_path: Path = field(default_factory=lambda: Path(".swarm/q-learning-model.json"))
    auto_save_interval: int = 100

    reward_clip: Optional[float] = None  # None = unbounded rewards
    seed: Optional[int] = None

    @property
    def num_actions(self) -> int:
        return len(self.route_names)

    def validate(self) -> "QLearningConfig":
        if not self.route_names:
            raise ConfigurationError("route_names must not be empty")
        if len(set(self.route_names)) != len(self.route_names):
            raise ConfigurationError(f"route_names must be unique: {self.route_names}")
        if self.exploration_decay_type not in DECAY_TYPES:
            raise ConfigurationError(
                f"Unknown exploration_decay_type '{self.exploration_decay_type}', "
                f"expected one of {DECAY_TYPES}"
            )
        if not 0.0 <= self.exploration_final <= self.exploration_initial <= 1.0:
            raise ConfigurationError(
                "Exploration bounds must satisfy 0 <= final <= initial <= 1, got "
                f"initial={self.exploration_initial}, final={self.exploration_final}"
            )
        if self.exploration_decay <= 0:
            raise ConfigurationError("exploration_decay must be positive")
        if not 0.0 < self.learning_rate <= 1.0:
            raise ConfigurationError(f"learning_rate must be in (0, 1], got {self.learning_rate}")
        if not 0.0 <= self.gamma <= 1.0:
            raise ConfigurationError(f"gamma must be in [0, 1], got {self.gamma}")
        if self.state_space_dim != STATE_FEATURE_DIM:
            raise ConfigurationError(
                f"state_space_dim must be {STATE_FEATURE_DIM}, got {self.state_space_dim}"
            )
        for name in ("max_states", "replay_buffer_size", "replay_batch_size", "cache_size"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive")
        if self.reward_clip is not None and self.reward_clip <= 0:
            raise ConfigurationError("reward_clip must be positive or None")
        return self

    def persisted_subset(self) -> Dict[str, Any]:
        """Config fields written into snapshots."""
        return {
            "learning_rate": self.learning_rate,
            "gamma": self.gamma,
            "exploration_decay_type": self.exploration_decay_type,
            "num_actions": self.num_actions,
            "route_names": list(self.route_names),
        }


@dataclass
class MoEConfig:
    """Configuration for the Mixture-of-Experts gating router."""
    input_dim: int = 384
    hidden_dim: int = 128
    expert_names: Tuple[str, ...] = EXPERT_NAMES

    top_k: int = 2
    learning_rate: float = 0.01
    temperature: float = 1.0
    load_balance_coef: float = 0.01

    # Selection bias towards underused experts; off = pure top-k on probabilities.
    # The cap bounds |bias| so it only reorders near-ties.
    enable_load_balancing: bool = False
    balance_bias_cap: float = 0.05

    # Exploration noise on logits
    enable_noise: bool = True
    noise_std: float = 0.1

    # "numpy" (software), "torch" (CUDA when present) or "auto"
    backend: str = "auto"

    # Persistence
    weights_path: Path = field(default_factory=lambda: Path(".swarm/moe-weights.json"))
    auto_save_interval: int = 50

    reward_clip: Optional[float] = 1.0
    seed: Optional[int] = None

    @property
    def num_experts(self) -> int:
        return len(self.expert_names)

    def validate(self) -> "MoEConfig":
        if not self.expert_names:
            raise ConfigurationError("expert_names must not be empty")
        if len(set(self.expert_names)) != len(self.expert_names):
            raise ConfigurationError(f"expert_names must be unique: {self.expert_names}")
        if self.input_dim <= 0 or self.hidden_dim <= 0:
            raise ConfigurationError(
                f"input_dim and hidden_dim must be positive, got {self.input_dim}/{self.hidden_dim}"
            )
        if not 1 <= self.top_k <= self.num_experts:
            raise ConfigurationError(
                f"top_k must be between 1 and {self.num_experts}, got {self.top_k}"
            )
        if self.temperature <= 0:
            raise ConfigurationError(f"temperature must be positive, got {self.temperature}")
        if self.noise_std < 0 or self.load_balance_coef < 0 or self.balance_bias_cap < 0:
            raise ConfigurationError(
                "noise_std, load_balance_coef and balance_bias_cap must be non-negative"
            )
        if self.backend not in GATING_BACKENDS:
            raise ConfigurationError(
                f"Unknown gating backend '{self.backend}', expected one of {GATING_BACKENDS}"
            )
        if self.reward_clip is not None and self.reward_clip <= 0:
            raise ConfigurationError("reward_clip must be positive or None")
        return self

    def persisted_subset(self) -> Dict[str, Any]:
        return {
            "top_k": self.top_k,
            "temperature": self.temperature,
            "learning_rate": self.learning_rate,
            "load_balance_coef": self.load_balance_coef,
            "input_dim": self.input_dim,
            "hidden_dim": self.hidden_dim,
        }


@dataclass
class RouterSystemConfig:
    """
    Main configuration for the routing system.

    Aggregates both engine configs. Snapshot paths are derived from
    ``model_dir`` unless a component config points somewhere else explicitly.
    Can be loaded from JSON or created programmatically.
    """

    model_dir: Path = field(default_factory=lambda: Path(".swarm"))
    auto_save: bool = True

    qlearning_config: QLearningConfig = field(default_factory=QLearningConfig)
    moe_config: MoEConfig = field(default_factory=MoEConfig)

    def __post_init__(self):
        self.model_dir = Path(self.model_dir)
        default_q = QLearningConfig().model_path
        default_moe = MoEConfig().weights_path
        if Path(self.qlearning_config.model_path) == default_q:
            self.qlearning_config.model_path = self.model_dir / default_q.name
        if Path(self.moe_config.weights_path) == default_moe:
            self.moe_config.weights_path = self.model_dir / default_moe.name
        if not self.auto_save:
            self.qlearning_config.auto_save_interval = 0
            self.moe_config.auto_save_interval = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouterSystemConfig":
        """
        Build a config from plain data, ignoring unknown keys.

        Example structure:
        ```json
        {
            "model_dir": ".swarm",
            "qlearning_config": {"learning_rate": 0.2, "exploration_decay_type": "cosine"},
            "moe_config": {"top_k": 3, "backend": "numpy"}
        }
        ```
        """
        data = dict(data)
        if "qlearning_config" in data:
            data["qlearning_config"] = QLearningConfig(
                **_coerce(QLearningConfig, data["qlearning_config"])
            )
        if "moe_config" in data:
            data["moe_config"] = MoEConfig(**_coerce(MoEConfig, data["moe_config"]))
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def from_json(cls, path: Path) -> "RouterSystemConfig":
        """Load configuration from a JSON file."""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_settings(cls, settings=None) -> "RouterSystemConfig":
        """Build a config with environment overrides from RouterSettings."""
        from agent_router.settings import RouterSettings

        settings = settings or RouterSettings()
        config = cls(model_dir=settings.model_dir, auto_save=settings.auto_save)
        config.moe_config.backend = settings.gating_backend
        return config

    def to_json(self, path: Path):
        """
        Save configuration to JSON file.

        Example usage:
            config = RouterSystemConfig()
            config.to_json(Path("router_config.json"))
        """
        data = asdict(self)

        # Convert Path / tuple values for JSON serialization
        def convert(obj):
            if isinstance(obj, Path):
                return str(obj)
            elif isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            elif isinstance(obj, (list, tuple)):
                return [convert(item) for item in obj]
            return obj

        with open(path, "w") as f:
            json.dump(convert(data), f, indent=2)


def _coerce(config_cls, values: Dict[str, Any]) -> Dict[str, Any]:
    """Keep known fields and restore Path/tuple types lost in JSON."""
    known = {f.name for f in fields(config_cls)}
    out = {k: v for k, v in values.items() if k in known}
    for key in ("model_path", "weights_path"):
        if key in out and out[key] is not None:
            out[key] = Path(out[key])
    for key in ("route_names", "expert_names"):
        if key in out:
            out[key] = tuple(out[key])
    return out
