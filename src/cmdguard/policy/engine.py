"""
Policy Engine for cmdguard.

The Policy Engine classifies a candidate shell command into a safety tier
before anyone runs it. Every command must pass through it.

Design Principles:
    - Stateless: The engine holds only the immutable heuristic table;
      the policy is passed in per call and never retained
    - Fail-closed: Any error in evaluation results in BLOCKED
    - Predictable: Same inputs always produce the same verdict
    - Auditable: Every non-safe verdict names the rule that produced it

How it works:
    1. Empty commands are SAFE
    2. Deny list: any contained deny pattern blocks the command
    3. Compliance mode: the command must contain an allow pattern
    4. Built-in heuristics assign DANGEROUS or WARNING
    5. Otherwise SAFE

Matching:
    Allow and deny patterns match as case-insensitive substrings. This
    over-blocks: a deny pattern "format" also blocks
    `git log --format=oneline`.
"""

import logging

from cmdguard.policy.heuristics import BUILTIN_HEURISTICS, Heuristic, most_severe_match
from cmdguard.schema import PolicyConfig, Verdict

logger = logging.getLogger(__name__)


class PolicyEngine:
    """
    Stateless command classifier.

    Usage:
        engine = PolicyEngine()
        verdict = engine.evaluate("rm -rf /tmp/build", config)
        if verdict.is_blocked:
            # refuse to run
        elif verdict.requires_confirmation:
            # ask first

    The engine can be shared freely between threads: evaluate() reads
    only its arguments and the frozen heuristic table.

    Attributes:
        heuristics: Ordered table of built-in danger heuristics
    """

    def __init__(self, heuristics: tuple[Heuristic, ...] = BUILTIN_HEURISTICS) -> None:
        """
        Initialize the policy engine.

        Args:
            heuristics: Heuristic table to consult (defaults to the built-in table)
        """
        self.heuristics = tuple(heuristics)

    def evaluate(self, command: str, config: PolicyConfig) -> Verdict:
        """
        Classify a command against a policy.

        This is the main entry point. It never raises: if evaluation
        fails unexpectedly the command is BLOCKED.

        Args:
            command: The shell command to classify
            config: Allow/deny rules and compliance flag

        Returns:
            Verdict with tier, reason and matched rule
        """
        try:
            verdict = self._evaluate(command, config)
        except Exception as e:
            logger.exception("Policy evaluation failed for %r", command)
            return Verdict.blocked(
                f"Policy evaluation failed: {e}",
                rule="evaluation_error",
            )

        if verdict.is_blocked:
            logger.info("Blocked %r: %s", command, verdict.reason)
        return verdict

    def is_allowed(self, command: str, config: PolicyConfig) -> bool:
        """Whether a command may be executed at all (possibly after confirmation)."""
        return not self.evaluate(command, config).is_blocked

    def _evaluate(self, command: str, config: PolicyConfig) -> Verdict:
        command_lower = (command or "").strip().lower()
        if not command_lower:
            return Verdict.safe()

        # Deny takes precedence: checked even when the allow list passed,
        # and reported first because it names the specific rule.
        deny_verdict = self._check_blocked_commands(command_lower, config)
        if deny_verdict is not None:
            return deny_verdict

        compliance_verdict = self._check_compliance(command_lower, config)
        if compliance_verdict is not None:
            return compliance_verdict

        heuristic = most_severe_match(command_lower, self.heuristics)
        if heuristic is not None:
            return Verdict(
                tier=heuristic.tier,
                reason=heuristic.reason,
                matched_rule=heuristic.rule,
            )

        return Verdict.safe()

    # =========================================================================
    # Allow / Deny Lists
    # =========================================================================

    def _check_compliance(
        self,
        command_lower: str,
        config: PolicyConfig,
    ) -> Verdict | None:
        """
        Enforce the allow list in compliance mode.

        An empty allow list makes this a no-op, as does compliance mode
        being off.
        """
        if not config.compliance_mode or not config.allowed_commands:
            return None

        for pattern in config.allowed_commands:
            if pattern.lower() in command_lower:
                return None

        return Verdict.blocked("not in allow-list", rule="allowed_commands")

    def _check_blocked_commands(
        self,
        command_lower: str,
        config: PolicyConfig,
    ) -> Verdict | None:
        """Block on the first deny pattern (in declaration order) the command contains."""
        for pattern in config.blocked_commands:
            if pattern.lower() in command_lower:
                return Verdict.blocked(
                    f"Command matches blocked pattern: {pattern}",
                    rule=f"blocked_commands[{pattern}]",
                )
        return None


default_engine = PolicyEngine()


def evaluate(command: str, config: PolicyConfig) -> Verdict:
    """Classify a command with the shared default engine."""
    return default_engine.evaluate(command, config)
