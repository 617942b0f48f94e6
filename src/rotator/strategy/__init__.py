"""Rotation strategy: market view, policies, and decision rules."""

from rotator.strategy.engine import StrategyEngine
from rotator.strategy.policies import (
    LoserRotationPolicy,
    StrategyPolicy,
    TrailingRotationPolicy,
    build_policy,
)

__all__ = [
    "LoserRotationPolicy",
    "StrategyEngine",
    "StrategyPolicy",
    "TrailingRotationPolicy",
    "build_policy",
]
