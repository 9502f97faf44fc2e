"""
pip-installable setup for the agent-router engine.

Install (editable, from the repository root)::

    pip install -e .
    pip install -e ".[test]"   # with the test suite dependencies

This installs the ``agent_router`` package:
  - agent_router.gating.components  - Q-learning and MoE routers
  - agent_router.persistence        - versioned JSON snapshots

Embedding models and agent execution are NOT included; callers supply
task text, pre-computed embeddings and rewards.
"""

from setuptools import find_packages, setup

setup(
    name="agent-router",
    version="1.0.0",
    description="Adaptive task routing for agent swarms: Q-learning routes and MoE expert gating",
    long_description=(
        "An online-learning routing core: a tabular Q-learning router maps task text to "
        "one of a fixed set of agent routes, and a Mixture-of-Experts gating network maps "
        "task embeddings to the top-k experts. Both learn from scalar rewards and persist "
        "their state as versioned JSON snapshots."
    ),
    python_requires=">=3.10",
    packages=find_packages(
        include=[
            "agent_router",
            "agent_router.*",
        ]
    ),
    install_requires=[
        "torch>=2.0.0",
        "numpy>=1.24.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
