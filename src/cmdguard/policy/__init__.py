"""
Policy Engine module for cmdguard.

This module implements command classification: every candidate shell
command gets a safety tier before it is offered for execution.

Key concepts:
    - Verdict: The result of evaluating a command (tier + reason + rule)
    - PolicyConfig: Enterprise allow/deny patterns and compliance mode
    - Heuristics: A fixed, built-in table of danger patterns
    - PolicyEngine: Stateless evaluator combining the three

The policy engine must be:
    - Fail-closed: Any error results in BLOCKED
    - Predictable: Same inputs always produce the same verdict
    - Auditable: Blocked verdicts name the rule that fired
"""

from cmdguard.policy.engine import PolicyEngine, default_engine, evaluate
from cmdguard.policy.heuristics import BUILTIN_HEURISTICS, Heuristic

__all__ = [
    "BUILTIN_HEURISTICS",
    "Heuristic",
    "PolicyEngine",
    "default_engine",
    "evaluate",
]
