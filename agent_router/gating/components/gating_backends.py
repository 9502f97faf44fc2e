"""
Compute backends for the MoE gating network.

Both backends implement the same two-layer network and the same manual
REINFORCE step over pre-allocated buffers:
- NumpyGatingBackend: software-only, always available
- TorchGatingBackend: torch tensors, on CUDA when a device is visible

The backend is chosen once, at router construction, by ``select_backend``.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np
import torch

from agent_router.errors import ConfigurationError, PersistenceError
from agent_router.types import ForwardTrace

logger = logging.getLogger(__name__)

# Get DEVICE constant
DEVICE = "cuda" if torch.cuda.is_available() else "cpu"

_SOFTMAX_EPS = 1e-8


def box_muller(rng: np.random.Generator, size) -> np.ndarray:
    """Standard normal samples via the Box-Muller transform."""
    u1 = rng.random(size)
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1 + 1e-8)) * np.cos(2.0 * np.pi * u2)


def xavier_init(rng: np.random.Generator, fan_out: int, fan_in: int) -> np.ndarray:
    """Glorot-scaled normal weights, shape [fan_out, fan_in] (row-major, y = Wx)."""
    std = np.sqrt(2.0 / (fan_in + fan_out))
    return (box_muller(rng, (fan_out, fan_in)) * std).astype(np.float32)


class GatingBackend(ABC):
    """Two-layer gating network: Linear -> ReLU -> Linear -> softmax."""

    name = "base"

    def __init__(self, input_dim: int, hidden_dim: int, num_experts: int, rng: np.random.Generator):
        self.input_dim = input_dim
        self.hidden_dim = hidden_dim
        self.num_experts = num_experts
        self.rng = rng

    @property
    def shapes(self) -> Dict[str, tuple]:
        return {
            "w1": (self.hidden_dim, self.input_dim),
            "b1": (self.hidden_dim,),
            "w2": (self.num_experts, self.hidden_dim),
            "b2": (self.num_experts,),
        }

    def _initial_parameters(self) -> Dict[str, np.ndarray]:
        return {
            "w1": xavier_init(self.rng, self.hidden_dim, self.input_dim),
            "b1": np.zeros(self.hidden_dim, dtype=np.float32),
            "w2": xavier_init(self.rng, self.num_experts, self.hidden_dim),
            "b2": np.zeros(self.num_experts, dtype=np.float32),
        }

    def validate_parameters(self, params: Dict[str, List]) -> Dict[str, np.ndarray]:
        """Convert nested lists to float32 arrays, checking shape and finiteness."""
        arrays = {}
        for key, shape in self.shapes.items():
            if key not in params:
                raise PersistenceError(f"Missing gating parameter '{key}'")
            arr = np.asarray(params[key], dtype=np.float32)
            if arr.shape != shape:
                raise PersistenceError(f"Parameter '{key}' has shape {arr.shape}, expected {shape}")
            if not np.all(np.isfinite(arr)):
                raise PersistenceError(f"Parameter '{key}' contains non-finite values")
            arrays[key] = arr
        return arrays

    @abstractmethod
    def reset_parameters(self):
        ...

    @abstractmethod
    def forward(self, x: np.ndarray, temperature: float, noise: Optional[np.ndarray]) -> ForwardTrace:
        """Run one pass; the returned trace owns copies, not the shared buffers."""

    @abstractmethod
    def reinforce(self, trace: ForwardTrace, expert_idx: int, reward: float, lr: float) -> bool:
        """Single-sample gradient ascent on log p(expert). False if rejected as non-finite."""

    @abstractmethod
    def get_parameters(self) -> Dict[str, np.ndarray]:
        ...

    @abstractmethod
    def set_parameters(self, params: Dict[str, np.ndarray]):
        ...


class NumpyGatingBackend(GatingBackend):
    name = "numpy"

    def __init__(self, input_dim, hidden_dim, num_experts, rng):
        super().__init__(input_dim, hidden_dim, num_experts, rng)
        self.reset_parameters()

        # Forward buffers
        self._hidden = np.zeros(hidden_dim, dtype=np.float32)
        self._logits = np.zeros(num_experts, dtype=np.float32)
        self._probs = np.zeros(num_experts, dtype=np.float32)

        # Gradient buffers
        self._grad_logits = np.zeros(num_experts, dtype=np.float32)
        self._grad_hidden = np.zeros(hidden_dim, dtype=np.float32)
        self._grad_w2 = np.zeros((num_experts, hidden_dim), dtype=np.float32)
        self._grad_w1 = np.zeros((hidden_dim, input_dim), dtype=np.float32)

    def reset_parameters(self):
        params = self._initial_parameters()
        self.w1, self.b1 = params["w1"], params["b1"]
        self.w2, self.b2 = params["w2"], params["b2"]

    def forward(self, x, temperature, noise):
        # Layer 1: Linear + ReLU
        np.dot(self.w1, x, out=self._hidden)
        self._hidden += self.b1
        np.maximum(self._hidden, 0.0, out=self._hidden)

        # Layer 2: Linear (+ exploration noise)
        np.dot(self.w2, self._hidden, out=self._logits)
        self._logits += self.b2
        if noise is not None:
            self._logits += noise

        # Temperature softmax, max-shifted
        np.subtract(self._logits, self._logits.max(), out=self._probs)
        self._probs /= temperature
        np.exp(self._probs, out=self._probs)
        self._probs /= self._probs.sum() + _SOFTMAX_EPS

        return ForwardTrace(
            input=x.copy(),
            hidden=self._hidden.copy(),
            probs=self._probs.copy(),
        )

    def reinforce(self, trace, expert_idx, reward, lr):
        # d log p_k / d logit_j = [j == k] - p_j
        np.multiply(trace.probs, -reward, out=self._grad_logits)
        self._grad_logits[expert_idx] += reward

        np.outer(self._grad_logits, trace.hidden, out=self._grad_w2)
        np.dot(self.w2.T, self._grad_logits, out=self._grad_hidden)
        self._grad_hidden[trace.hidden <= 0] = 0.0
        np.outer(self._grad_hidden, trace.input, out=self._grad_w1)

        grads = (self._grad_logits, self._grad_hidden, self._grad_w2, self._grad_w1)
        if not all(np.all(np.isfinite(g)) for g in grads):
            return False

        for param, grad in ((self.w2, self._grad_w2), (self.b2, self._grad_logits),
                            (self.w1, self._grad_w1), (self.b1, self._grad_hidden)):
            grad *= lr
            param += grad
        return True

    def get_parameters(self):
        return {"w1": self.w1.copy(), "b1": self.b1.copy(), "w2": self.w2.copy(), "b2": self.b2.copy()}

    def set_parameters(self, params):
        self.w1 = np.array(params["w1"], dtype=np.float32)
        self.b1 = np.array(params["b1"], dtype=np.float32)
        self.w2 = np.array(params["w2"], dtype=np.float32)
        self.b2 = np.array(params["b2"], dtype=np.float32)


class TorchGatingBackend(GatingBackend):
    name = "torch"

    def __init__(self, input_dim, hidden_dim, num_experts, rng, device: Optional[str] = None):
        super().__init__(input_dim, hidden_dim, num_experts, rng)
        self.device = torch.device(device or DEVICE)
        self.reset_parameters()

        def buf(*shape):
            return torch.zeros(shape, dtype=torch.float32, device=self.device)

        self._hidden = buf(hidden_dim)
        self._logits = buf(num_experts)
        self._probs = buf(num_experts)

        self._grad_logits = buf(num_experts)
        self._grad_hidden = buf(hidden_dim)
        self._grad_w2 = buf(num_experts, hidden_dim)
        self._grad_w1 = buf(hidden_dim, input_dim)

    def _tensor(self, arr) -> torch.Tensor:
        return torch.as_tensor(np.asarray(arr, dtype=np.float32), device=self.device)

    def reset_parameters(self):
        self.set_parameters(self._initial_parameters())

    @torch.no_grad()
    def forward(self, x, temperature, noise):
        x_t = self._tensor(x)

        torch.mv(self.w1, x_t, out=self._hidden)
        self._hidden.add_(self.b1).clamp_(min=0.0)

        torch.mv(self.w2, self._hidden, out=self._logits)
        self._logits.add_(self.b2)
        if noise is not None:
            self._logits.add_(self._tensor(noise))

        torch.sub(self._logits, self._logits.max(), out=self._probs)
        self._probs.div_(temperature).exp_()
        self._probs.div_(self._probs.sum() + _SOFTMAX_EPS)

        return ForwardTrace(
            input=x.copy(),
            hidden=self._hidden.cpu().numpy().copy(),
            probs=self._probs.cpu().numpy().copy(),
        )

    @torch.no_grad()
    def reinforce(self, trace, expert_idx, reward, lr):
        x_t = self._tensor(trace.input)
        hidden = self._tensor(trace.hidden)
        probs = self._tensor(trace.probs)

        torch.mul(probs, -reward, out=self._grad_logits)
        self._grad_logits[expert_idx] += reward

        torch.outer(self._grad_logits, hidden, out=self._grad_w2)
        torch.mv(self.w2.t(), self._grad_logits, out=self._grad_hidden)
        self._grad_hidden.masked_fill_(hidden <= 0, 0.0)
        torch.outer(self._grad_hidden, x_t, out=self._grad_w1)

        grads = (self._grad_logits, self._grad_hidden, self._grad_w2, self._grad_w1)
        if not all(bool(torch.isfinite(g).all()) for g in grads):
            return False

        self.w2.add_(self._grad_w2, alpha=lr)
        self.b2.add_(self._grad_logits, alpha=lr)
        self.w1.add_(self._grad_w1, alpha=lr)
        self.b1.add_(self._grad_hidden, alpha=lr)
        return True

    def get_parameters(self):
        return {
            key: getattr(self, key).detach().cpu().numpy().copy()
            for key in ("w1", "b1", "w2", "b2")
        }

    def set_parameters(self, params):
        self.w1 = self._tensor(params["w1"]).clone()
        self.b1 = self._tensor(params["b1"]).clone()
        self.w2 = self._tensor(params["w2"]).clone()
        self.b2 = self._tensor(params["b2"]).clone()


BACKENDS = {
    NumpyGatingBackend.name: NumpyGatingBackend,
    TorchGatingBackend.name: TorchGatingBackend,
}


def resolve_backend_name(name: str) -> str:
    """Map "auto" to a concrete backend by probing for a CUDA device."""
    if name == "auto":
        return "torch" if torch.cuda.is_available() else "numpy"
    if name not in BACKENDS:
        raise ConfigurationError(f"Unknown gating backend '{name}', expected one of {sorted(BACKENDS)} or 'auto'")
    return name


def select_backend(
    name: str,
    input_dim: int,
    hidden_dim: int,
    num_experts: int,
    rng: np.random.Generator,
) -> GatingBackend:
    resolved = resolve_backend_name(name)
    backend = BACKENDS[resolved](input_dim, hidden_dim, num_experts, rng)
    logger.info("Gating backend: %s (requested %s)", resolved, name)
    return backend
