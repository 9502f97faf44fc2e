"""
Result types returned by the routing engines.

Everything here converts to plain data through ``to_dict()`` so decisions
can be logged, sent over the wire or written to disk by the caller.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np


@dataclass
class RouteAlternative:
    """A runner-up route with its raw Q-value."""

    route: str
    score: float


@dataclass
class RoutingDecision:
    """Decision produced by the Q-learning router."""

    route: str
    """Chosen route name (e.g. 'coder')."""

    confidence: float
    """Softmax probability of the chosen route over the Q-value row."""

    q_values: List[float]
    """Q-values for every route, in action-space order."""

    explored: bool = False
    """True when the route was picked by epsilon exploration."""

    alternatives: List[RouteAlternative] = field(default_factory=list)
    """Next three routes ranked by raw Q-value, chosen route excluded."""

    def to_dict(self) -> Dict:
        return {
            "route": self.route,
            "confidence": self.confidence,
            "q_values": list(self.q_values),
            "explored": self.explored,
            "alternatives": [
                {"route": alt.route, "score": alt.score} for alt in self.alternatives
            ],
        }

    def __repr__(self) -> str:
        return (
            f"RoutingDecision("
            f"route={self.route!r}, "
            f"confidence={self.confidence:.2%}, "
            f"explored={self.explored})"
        )


@dataclass
class ExpertSelection:
    """One of the top-k experts picked by the gating network."""

    name: str
    index: int
    weight: float
    """Probability renormalized over the selected experts only."""

    score: float
    """Raw gating probability for this expert."""


@dataclass
class ForwardTrace:
    """
    Activations of one gating forward pass.

    REINFORCE needs the input, the post-ReLU hidden layer and the output
    distribution of the pass being rewarded. Holding them here lets the
    caller hand the exact pass back to ``update_expert_weights`` instead of
    relying on whichever pass the router saw last.
    """

    input: np.ndarray
    hidden: np.ndarray
    probs: np.ndarray
    selected: List[int] = field(default_factory=list)


@dataclass
class RoutingResult:
    """Result produced by the MoE gating router."""

    experts: List[ExpertSelection]
    """Top-k experts, best first."""

    all_scores: List[float]
    """Full softmax distribution over the expert set."""

    load_balance_loss: float = 0.0
    entropy: float = 0.0
    trace: Optional[ForwardTrace] = field(default=None, repr=False, compare=False)

    @property
    def expert_names(self) -> List[str]:
        return [e.name for e in self.experts]

    def to_dict(self) -> Dict:
        return {
            "experts": [
                {"name": e.name, "index": e.index, "weight": e.weight, "score": e.score}
                for e in self.experts
            ],
            "all_scores": list(self.all_scores),
            "load_balance_loss": self.load_balance_loss,
            "entropy": self.entropy,
        }


@dataclass
class LoadBalanceStats:
    """Expert utilization snapshot used to spot starved or overused experts."""

    utilization: Dict[str, float]
    """Per-expert share of routings (count / total routings)."""

    total_routings: int
    routing_counts: Dict[str, int]

    gini_coefficient: float
    """0 = perfectly even load, approaching 1 = everything on one expert."""

    coefficient_of_variation: float

    def to_dict(self) -> Dict:
        return {
            "utilization": dict(self.utilization),
            "total_routings": self.total_routings,
            "routing_counts": dict(self.routing_counts),
            "gini_coefficient": self.gini_coefficient,
            "coefficient_of_variation": self.coefficient_of_variation,
        }
