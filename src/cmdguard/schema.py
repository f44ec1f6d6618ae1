"""
Schema definitions for cmdguard.

This module defines the Pydantic models shared by the policy engine and
the audit store:
- SafetyTier: The single tier enumeration used for classification and logging
- Verdict: The result of evaluating a command against a policy
- PolicyConfig: Allow/deny patterns and the compliance flag
- AuditRecord: One line of the audit trail
- AuditFilter / AuditStatistics: Query inputs and aggregate outputs

Design Decisions:
    - The engine and the store share SafetyTier so the tier written to the
      log is always the tier the engine produced
    - Models are immutable where possible (frozen=True)
    - Audit records serialize with the log's wire names (input, safety_level,
      llm_backend) while exposing descriptive attribute names in Python
    - All timestamps are timezone-aware UTC
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_patterns(value: Any) -> list[str]:
    """
    Normalize a raw allow/deny pattern list.

    None becomes [], a bare string becomes a one-element list, and
    non-string or blank entries are dropped. A blank pattern would be a
    substring of every command, so it is never kept.
    """
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [p for p in value if isinstance(p, str) and p.strip()]


# =============================================================================
# Enums
# =============================================================================


class SafetyTier(str, Enum):
    """
    Risk classification of a shell command.

    Members are declared in ascending severity. Comparison operators
    follow severity (BLOCKED > DANGEROUS > WARNING > SAFE), not the
    alphabetical order of the underlying strings.
    """

    SAFE = "safe"
    WARNING = "warning"
    DANGEROUS = "dangerous"
    BLOCKED = "blocked"

    @property
    def severity(self) -> int:
        """Position in the severity order (0 = safe)."""
        return list(type(self)).index(self)

    @classmethod
    def most_severe(cls, *tiers: "SafetyTier") -> "SafetyTier":
        """Return the highest-severity tier, or SAFE when given none."""
        return max(tiers, key=lambda t: t.severity, default=cls.SAFE)

    def __lt__(self, other: Any) -> bool:
        if not isinstance(other, SafetyTier):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other: Any) -> bool:
        if not isinstance(other, SafetyTier):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other: Any) -> bool:
        if not isinstance(other, SafetyTier):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other: Any) -> bool:
        if not isinstance(other, SafetyTier):
            return NotImplemented
        return self.severity >= other.severity


# =============================================================================
# Policy Models
# =============================================================================


class Verdict(BaseModel):
    """
    Result of evaluating a command against a policy.

    Every command is checked before it is offered for execution.
    This model captures the tier and, for anything but SAFE, why.

    Attributes:
        tier: The safety tier assigned to the command
        reason: Human-readable explanation (None for SAFE)
        matched_rule: Which rule produced the tier (e.g. "blocked_commands[format]")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    tier: SafetyTier = Field(..., description="Assigned safety tier")
    reason: str | None = Field(
        default=None,
        description="Human-readable explanation of the verdict",
    )
    matched_rule: str | None = Field(
        default=None,
        description="Which rule produced this verdict",
    )

    @property
    def is_blocked(self) -> bool:
        """Whether the command must not be executed."""
        return self.tier == SafetyTier.BLOCKED

    @property
    def requires_confirmation(self) -> bool:
        """Whether the command may run but only after explicit confirmation."""
        return self.tier in (SafetyTier.WARNING, SafetyTier.DANGEROUS)

    @classmethod
    def safe(cls) -> "Verdict":
        """Create a SAFE verdict."""
        return cls(tier=SafetyTier.SAFE)

    @classmethod
    def blocked(cls, reason: str, rule: str | None = None) -> "Verdict":
        """Create a BLOCKED verdict."""
        return cls(tier=SafetyTier.BLOCKED, reason=reason, matched_rule=rule)


class PolicyConfig(BaseModel):
    """
    Allow/deny rules consumed by the policy engine.

    The configuration is owned by the caller and borrowed per evaluation.
    It is deliberately forgiving: None becomes an empty list, a bare
    string becomes a one-element list, and blank or non-string patterns
    are dropped, so a malformed list degrades to a no-op rule.

    Attributes:
        allowed_commands: Substring patterns a command must contain in compliance mode
        blocked_commands: Substring patterns that always block a command
        compliance_mode: Require an allow-list match (when the list is non-empty)
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    allowed_commands: tuple[str, ...] = Field(
        default=(),
        alias="allowedCommands",
        description="Allow patterns (case-insensitive substring)",
    )
    blocked_commands: tuple[str, ...] = Field(
        default=(),
        alias="blockedCommands",
        description="Deny patterns (case-insensitive substring, take precedence)",
    )
    compliance_mode: bool = Field(
        default=False,
        alias="complianceMode",
        description="Require explicit allow-listing",
    )

    @field_validator("allowed_commands", "blocked_commands", mode="before")
    @classmethod
    def coerce_patterns(cls, v: Any) -> list[str]:
        """Normalize a pattern list, dropping anything that cannot match sensibly."""
        return normalize_patterns(v)

    @field_validator("compliance_mode", mode="before")
    @classmethod
    def coerce_compliance(cls, v: Any) -> Any:
        """Treat an explicit null as the default (off)."""
        return False if v is None else v


# =============================================================================
# Audit Models
# =============================================================================


class AuditRecord(BaseModel):
    """
    One entry of the audit trail.

    A record captures what was asked, what command was produced, how it
    was classified, and whether (and how) it ran. Records are immutable
    once created.

    Attributes:
        timestamp: When the event happened (UTC)
        user: OS user that issued the command
        organization: Organization name from config
        department: Department/team name from config
        natural_language_input: The user's request (wire name: input)
        generated_command: The command that was classified
        executed: Whether the command actually ran
        exit_code: Exit status if it ran and finished
        tier: Safety tier assigned (wire name: safety_level)
        notes: Free-form notes, typically the verdict reason
        backend_id: Which generator produced the command (wire name: llm_backend)
        session_id: Groups related commands
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    timestamp: datetime = Field(..., description="Event time (UTC)")
    user: str = Field(..., description="User executing the command")
    organization: str | None = Field(default=None, description="Organization name")
    department: str | None = Field(default=None, description="Department name")
    natural_language_input: str = Field(
        ...,
        alias="input",
        description="User's natural language input",
    )
    generated_command: str = Field(..., description="Generated command")
    executed: bool = Field(..., description="Whether the command was executed")
    exit_code: int | None = Field(default=None, description="Exit code if executed")
    tier: SafetyTier = Field(
        ...,
        alias="safety_level",
        description="Safety tier assessment",
    )
    notes: str | None = Field(default=None, description="Additional notes or warnings")
    backend_id: str = Field(
        ...,
        alias="llm_backend",
        description="Backend that generated the command",
    )
    session_id: str | None = Field(default=None, description="Session identifier")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        """Store every timestamp as aware UTC."""
        return ensure_utc(v)

    @property
    def failed(self) -> bool:
        """Executed, but with a missing or nonzero exit code."""
        return self.executed and (self.exit_code is None or self.exit_code != 0)

    @classmethod
    def create(
        cls,
        *,
        user: str,
        natural_language_input: str,
        generated_command: str,
        executed: bool,
        tier: SafetyTier,
        backend_id: str,
        exit_code: int | None = None,
        organization: str | None = None,
        department: str | None = None,
        notes: str | None = None,
        session_id: str | None = None,
    ) -> "AuditRecord":
        """Create a record stamped with the current UTC time."""
        return cls(
            timestamp=datetime.now(UTC),
            user=user,
            organization=organization,
            department=department,
            natural_language_input=natural_language_input,
            generated_command=generated_command,
            executed=executed,
            exit_code=exit_code,
            tier=tier,
            notes=notes,
            backend_id=backend_id,
            session_id=session_id,
        )

    def to_json_line(self) -> str:
        """
        Serialize to a single JSON line (no trailing newline) using wire names.

        Output is pure ASCII. Strings that are not valid Unicode, such as
        arguments carrying undecodable bytes as lone surrogates, are kept
        as \\u escapes instead of failing to encode.
        """
        data = self.model_dump(mode="json", by_alias=True)
        return json.dumps(data, ensure_ascii=True, separators=(",", ":"))


class AuditFilter(BaseModel):
    """
    Criteria for querying the audit trail.

    All criteria are optional and combine with AND. User and tier are
    exact matches; the time window is inclusive of `since` and exclusive
    of `until`.

    Attributes:
        user: Only records for this user
        tier: Only records with this safety tier
        since: Only records at or after this instant
        until: Only records strictly before this instant
        newest_first: Yield matches in reverse insertion order
        limit: Stop after this many matches (applied after ordering)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    user: str | None = Field(default=None, description="Exact user match")
    tier: SafetyTier | None = Field(default=None, description="Exact tier match")
    since: datetime | None = Field(default=None, description="Inclusive lower bound")
    until: datetime | None = Field(default=None, description="Exclusive upper bound")
    newest_first: bool = Field(default=False, description="Reverse insertion order")
    limit: int | None = Field(default=None, description="Maximum matches", ge=1)

    @field_validator("since", "until")
    @classmethod
    def normalize_bounds(cls, v: datetime | None) -> datetime | None:
        """Compare against record timestamps in UTC."""
        return ensure_utc(v) if v is not None else None

    def matches(self, record: AuditRecord) -> bool:
        """Check whether a record satisfies every criterion."""
        if self.user is not None and record.user != self.user:
            return False
        if self.tier is not None and record.tier != self.tier:
            return False
        if self.since is not None and record.timestamp < self.since:
            return False
        if self.until is not None and record.timestamp >= self.until:
            return False
        return True


def _empty_tier_counts() -> dict[SafetyTier, int]:
    return {tier: 0 for tier in SafetyTier}


class AuditStatistics(BaseModel):
    """
    Aggregate figures over the whole audit trail.

    Attributes:
        total: Number of successfully parsed records
        executed: Records whose command was executed
        failed_executions: Executed records with a missing or nonzero exit code
        per_tier: Record count for every tier (zero when absent)
        skipped_lines: Malformed lines skipped during the scan
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    total: int = Field(default=0, ge=0)
    executed: int = Field(default=0, ge=0)
    failed_executions: int = Field(default=0, ge=0)
    per_tier: dict[SafetyTier, int] = Field(default_factory=_empty_tier_counts)
    skipped_lines: int = Field(default=0, ge=0)

    @property
    def dangerous_or_blocked(self) -> int:
        """Records classified as dangerous or blocked."""
        return self.per_tier.get(SafetyTier.DANGEROUS, 0) + self.per_tier.get(
            SafetyTier.BLOCKED, 0
        )
