"""
Exception hierarchy for cmdguard.

All cmdguard exceptions inherit from CmdguardError, allowing callers to catch
all cmdguard-specific exceptions with a single except clause.

Exception Categories:
    - ConfigError: Malformed or missing policy/config fields (tolerated)
    - AuditWriteError: The audit log could not be created or written
    - AuditReadError: The audit log could not be read
    - AuditLogNotFoundError: The audit log does not exist
    - AuditParseError: A single log line could not be parsed (recovered)

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (path, operation, cause where applicable)
    - All errors provide actionable suggestions where possible
    - Errors are designed to be both human-readable and machine-parseable
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Config errors: 1xxx
ERROR_CONFIG_INVALID = 1001
ERROR_CONFIG_UNREADABLE = 1002

# Audit errors: 2xxx
ERROR_AUDIT_WRITE = 2001
ERROR_AUDIT_READ = 2002
ERROR_AUDIT_NOT_FOUND = 2003
ERROR_AUDIT_PARSE = 2004


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class CmdguardError(Exception):
    """
    Base exception for all cmdguard errors.

    All cmdguard exceptions inherit from this class, providing:
    - Consistent error code for programmatic handling
    - Human-readable message
    - Optional suggestion for resolution
    - Optional context dict for debugging

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Config Errors
# =============================================================================


@dataclass
class ConfigError(CmdguardError):
    """
    Raised when configuration is malformed or unreadable.

    Config errors are never fatal: the loader logs them and falls back
    to defaults. They are raised so the loader has a single type to catch.

    Attributes:
        path: Config file the error came from (if any)
        section: Config section that failed (e.g., "enterprise")
        underlying_error: Parser or validation message
    """

    path: str | None = None
    section: str | None = None
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            where = f" [{self.section}]" if self.section else ""
            self.message = f"Invalid configuration{where}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        if not self.suggestion:
            self.suggestion = "Fix the config file; defaults are used until then"
        self.context.update({
            "path": self.path,
            "section": self.section,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Audit Errors
# =============================================================================


@dataclass
class AuditError(CmdguardError):
    """
    Base class for audit log errors.

    These errors are fatal to the single operation that raised them
    and must be surfaced to the caller: silently losing an audit record
    is a compliance violation.

    Attributes:
        path: The audit log path
        operation: The operation that failed (e.g., "append", "query")
    """

    path: str = ""
    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context.update({
            "path": self.path,
            "operation": self.operation,
        })


@dataclass
class AuditWriteError(AuditError):
    """Raised when a record cannot be appended to the audit log."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit log write failed ({self.path}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_AUDIT_WRITE
        if not self.suggestion:
            self.suggestion = "Check that the audit log directory exists, is writable and has free space"
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class AuditReadError(AuditError):
    """Raised when the audit log cannot be read."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit log read failed ({self.path}): {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_AUDIT_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class AuditLogNotFoundError(AuditReadError):
    """Raised when querying an audit log that does not exist."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Audit log not found: {self.path}"
        if self.code == 0:
            self.code = ERROR_AUDIT_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Record at least one command or point --log at an existing file"
        if not self.underlying_error:
            self.underlying_error = "no such file"
        super().__post_init__()


@dataclass
class AuditParseError(AuditError):
    """
    Raised when a single audit log line cannot be parsed.

    Scans catch this per line, count it and move on; it never
    aborts a query.

    Attributes:
        line_number: 1-based line number in the log
        underlying_error: Decoder or validation message
    """

    line_number: int = 0
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Malformed audit line {self.line_number}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_AUDIT_PARSE
        super().__post_init__()
        self.context.update({
            "line_number": self.line_number,
            "underlying_error": self.underlying_error,
        })
