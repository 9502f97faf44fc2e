"""
Basic usage examples for the agent-router engine.

Run from the repository root after installing:

    pip install -e .
    python examples/basic_usage.py
"""

import asyncio
from pathlib import Path

import numpy as np

from agent_router import AgentRoutingSystem, RouterSystemConfig
from agent_router.gating.router_config import MoEConfig
from agent_router.settings import configure_logging

TASKS = [
    ("implement user authentication in auth.py", "coder"),
    ("write unit tests for the token parser", "tester"),
    ("review the payment module for security issues", "reviewer"),
    ("fix the crash when the config file is missing", "debugger"),
    ("document the public API in the readme", "documenter"),
]


async def main():
    configure_logging()

    # ------------------------------------------------------------------
    # 1. Initialize (restores snapshots from model_dir when present)
    # ------------------------------------------------------------------
    config = RouterSystemConfig(
        model_dir=Path(".swarm"),
        moe_config=MoEConfig(backend="auto", seed=0),
    )
    system = AgentRoutingSystem(config)
    loaded = await system.initialize()
    print(f"Snapshots restored: {loaded}\n")

    # ------------------------------------------------------------------
    # 2. Task routing with Q-learning feedback
    # ------------------------------------------------------------------
    print("=== Task Routing ===")
    for _ in range(30):
        for text, best_route in TASKS:
            decision = system.route_task(text)
            reward = 1.0 if decision.route == best_route else -0.1
            system.record_task_outcome(text, decision.route, reward)

    for text, _ in TASKS:
        decision = system.route_task(text, explore=False)
        print(f"  {text[:45]:<45} -> {decision.route:<10} ({decision.confidence:.2%})")
    print()

    # ------------------------------------------------------------------
    # 3. Expert gating over task embeddings
    # ------------------------------------------------------------------
    print("=== Expert Gating ===")
    rng = np.random.default_rng(0)
    embedding = rng.standard_normal(config.moe_config.input_dim)
    result = system.route_embedding(embedding)
    for expert in result.experts:
        print(f"  {expert.name:<12} weight={expert.weight:.3f} score={expert.score:.3f}")

    # Reward the first expert for the pass that produced `result`
    system.record_expert_outcome(result, result.experts[0].name, 1.0)
    print()

    # ------------------------------------------------------------------
    # 4. System stats and persistence
    # ------------------------------------------------------------------
    stats = system.get_system_stats()
    print("=== System Stats ===")
    print(f"  Q-table states : {stats['q_learning']['q_table_size']}")
    print(f"  Epsilon        : {stats['q_learning']['epsilon']:.3f}")
    print(f"  Gating backend : {stats['gating_backend']}")
    print(f"  Gini           : {stats['load_balance']['gini_coefficient']:.3f}")

    saved = await system.save_all_models()
    print(f"\nSnapshots saved: {saved}")
    system.close()


if __name__ == "__main__":
    asyncio.run(main())
