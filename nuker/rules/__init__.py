"""Rule evaluation: idle detection, rule matching and whitelisting."""

from .evaluator import RuleEvaluator
from .idle import IdleDetector, decide_idle
from .whitelist import Whitelist

__all__ = [
    "IdleDetector",
    "RuleEvaluator",
    "Whitelist",
    "decide_idle",
]
