"""
CommandGuard: the caller-facing gate for generated commands.

CommandGuard wires the policy engine to the audit store so callers do not
have to stamp records themselves. It coordinates between:
- Policy Engine: Classifies the command
- Configuration: Supplies the policy and the organization identity
- Audit Store: Records what was decided and what happened

Flow:
    1. guard.check(command) -> Verdict
    2. Caller confirms/executes (or refuses) based on the verdict
    3. guard.record(...) once the outcome is known

    guard.screen(...) combines 1 and, for blocked commands, 3: a blocked
    command never runs, so its outcome is already known.

Design Principles:
    - Fail-closed: Evaluation errors come back as BLOCKED verdicts
    - Full audit: Audit write failures propagate, they are never dropped
"""

import logging
from pathlib import Path

from cmdguard.config import GuardConfig, load_config
from cmdguard.policy import PolicyEngine, default_engine
from cmdguard.schema import AuditRecord, Verdict
from cmdguard.store import AuditStore

logger = logging.getLogger(__name__)


class CommandGuard:
    """
    Policy gate plus audit trail.

    Usage:
        guard = CommandGuard.from_config_file()
        verdict = guard.check("git push --force")
        exit_code = run_somehow(...) if not verdict.is_blocked else None
        guard.record(
            "git push --force",
            verdict,
            natural_language_input="force push my branch",
            backend_id="ollama",
            executed=exit_code is not None,
            exit_code=exit_code,
        )

    Attributes:
        config: Effective configuration
        engine: Policy engine used for classification
        store: Audit store records are written to
    """

    def __init__(
        self,
        config: GuardConfig | None = None,
        store: AuditStore | None = None,
        engine: PolicyEngine | None = None,
    ) -> None:
        """
        Initialize the guard.

        Args:
            config: Configuration (defaults to built-in defaults)
            store: Audit store (defaults to the configured log path)
            engine: Policy engine (defaults to the shared engine)
        """
        self.config = config or GuardConfig()
        self.engine = engine or default_engine
        if store is None:
            store = AuditStore(
                self.config.audit_log_path(),
                organization=self.config.enterprise.organization,
                department=self.config.enterprise.department,
            )
        self.store = store

    @classmethod
    def from_config_file(cls, path: Path | str | None = None) -> "CommandGuard":
        """Build a guard from a YAML config file (see cmdguard.config)."""
        return cls(config=load_config(path))

    @property
    def audit_enabled(self) -> bool:
        """Whether command events are recorded."""
        return self.config.security.audit_log

    def check(self, command: str) -> Verdict:
        """Classify a command under the configured policy."""
        return self.engine.evaluate(command, self.config.policy)

    def record(
        self,
        command: str,
        verdict: Verdict,
        natural_language_input: str,
        backend_id: str,
        executed: bool,
        exit_code: int | None = None,
        notes: str | None = None,
        session_id: str | None = None,
    ) -> AuditRecord | None:
        """
        Record the outcome of a classified command.

        Args:
            command: The command that was classified
            verdict: The verdict it received
            natural_language_input: What the user originally asked for
            backend_id: Which generator produced the command
            executed: Whether the command ran
            exit_code: Exit status if it ran
            notes: Free-form notes (defaults to the verdict reason)
            session_id: Groups related commands

        Returns:
            The record written, or None when audit logging is disabled

        Raises:
            AuditWriteError: If the record cannot be written
        """
        if not self.audit_enabled:
            logger.debug("Audit logging disabled; not recording %r", command)
            return None

        return self.store.log_command(
            natural_language_input=natural_language_input,
            generated_command=command,
            executed=executed,
            exit_code=exit_code,
            tier=verdict.tier,
            backend_id=backend_id,
            notes=notes if notes is not None else verdict.reason,
            session_id=session_id,
        )

    def screen(
        self,
        command: str,
        natural_language_input: str,
        backend_id: str,
        session_id: str | None = None,
    ) -> Verdict:
        """
        Classify a command and record it right away if it is blocked.

        Non-blocked commands are not recorded here; call record() once
        their outcome is known.

        Raises:
            AuditWriteError: If a blocked command cannot be recorded
        """
        verdict = self.check(command)
        if verdict.is_blocked:
            self.record(
                command,
                verdict,
                natural_language_input=natural_language_input,
                backend_id=backend_id,
                executed=False,
                session_id=session_id,
            )
        return verdict
