"""
Pytest configuration and fixtures for cmdguard tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from cmdguard.schema import AuditRecord, SafetyTier


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def audit_log_path(temp_dir: Path) -> Path:
    """Path for an audit log that does not exist yet."""
    return temp_dir / "audit" / "audit.log"


@pytest.fixture
def make_record() -> Callable[..., AuditRecord]:
    """Factory for audit records with sensible defaults."""

    def _make(**overrides: Any) -> AuditRecord:
        fields: dict[str, Any] = {
            "timestamp": datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC),
            "user": "alice",
            "organization": "Test Corp",
            "department": "Engineering",
            "natural_language_input": "list files",
            "generated_command": "ls -la",
            "executed": True,
            "exit_code": 0,
            "tier": SafetyTier.SAFE,
            "notes": None,
            "backend_id": "ollama",
            "session_id": "session-123",
        }
        fields.update(overrides)
        return AuditRecord(**fields)

    return _make


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a config YAML with an enterprise policy."""
    return """
version: "1.0"
security:
  audit_log: true
enterprise:
  organization: Test Corp
  department: Engineering
  compliance_mode: true
  allowed_commands:
    - git
    - ls
  blocked_commands:
    - "rm -rf /"
    - "git push --force"
"""
