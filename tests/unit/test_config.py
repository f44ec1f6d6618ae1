"""
Unit tests for configuration loading.

Tests cover:
- Defaults when no file exists
- Parsing the security and enterprise sections
- Tolerance of malformed YAML and invalid sections
- Environment variable overrides
- Saving and reloading
"""

import logging
from pathlib import Path

import pytest

from cmdguard.config import (
    AUDIT_LOG_ENV_VAR,
    CONFIG_ENV_VAR,
    DEFAULT_BLOCKED_COMMANDS,
    GuardConfig,
    default_audit_log_path,
    default_config_path,
    load_config,
    load_config_from_string,
    save_config,
)
from cmdguard.policy import evaluate
from cmdguard.schema import PolicyConfig, SafetyTier


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
    """Keep tests away from the real ~/.cmdguard."""
    monkeypatch.setenv("HOME", str(temp_dir))
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(AUDIT_LOG_ENV_VAR, raising=False)


# =============================================================================
# Defaults
# =============================================================================


class TestDefaults:
    """Tests for built-in defaults."""

    def test_default_policy(self) -> None:
        """Defaults enable compliance mode with the standard deny list."""
        config = GuardConfig()

        assert config.security.audit_log is True
        assert config.enterprise.compliance_mode is True
        assert config.enterprise.allowed_commands == []
        assert config.enterprise.blocked_commands == DEFAULT_BLOCKED_COMMANDS
        assert config.policy == PolicyConfig(
            allowed_commands=[],
            blocked_commands=DEFAULT_BLOCKED_COMMANDS,
            compliance_mode=True,
        )

    def test_default_paths(self, temp_dir: Path) -> None:
        """Default paths live under ~/.cmdguard."""
        assert default_config_path() == temp_dir / ".cmdguard" / "config.yaml"
        assert default_audit_log_path() == temp_dir / ".cmdguard" / "audit.log"
        assert GuardConfig().audit_log_path() == temp_dir / ".cmdguard" / "audit.log"

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> None:
        """Environment variables override the default paths."""
        monkeypatch.setenv(CONFIG_ENV_VAR, str(temp_dir / "alt.yaml"))
        monkeypatch.setenv(AUDIT_LOG_ENV_VAR, str(temp_dir / "alt.log"))

        assert default_config_path() == temp_dir / "alt.yaml"
        assert default_audit_log_path() == temp_dir / "alt.log"

    def test_missing_file(self, temp_dir: Path) -> None:
        """A missing config file yields defaults."""
        config = load_config(temp_dir / "nope.yaml")
        assert config == GuardConfig()
        assert config.source is None

    def test_default_location_used(self, temp_dir: Path) -> None:
        """load_config() with no path reads ~/.cmdguard/config.yaml."""
        path = temp_dir / ".cmdguard" / "config.yaml"
        path.parent.mkdir()
        path.write_text("enterprise:\n  organization: Home Corp\n")

        assert load_config().enterprise.organization == "Home Corp"


# =============================================================================
# Parsing
# =============================================================================


class TestParsing:
    """Tests for reading config YAML."""

    def test_full_config(self, sample_config_yaml: str) -> None:
        """Both sections are read."""
        config = load_config_from_string(sample_config_yaml, source="test.yaml")

        assert config.source == "test.yaml"
        assert config.enterprise.organization == "Test Corp"
        assert config.enterprise.department == "Engineering"
        assert config.policy.allowed_commands == ("git", "ls")
        assert config.policy.blocked_commands == ("rm -rf /", "git push --force")
        assert config.policy.compliance_mode is True

    def test_audit_log_path(self, temp_dir: Path) -> None:
        """security.audit_log_path sets the log location."""
        config = load_config_from_string(f"security:\n  audit_log_path: {temp_dir}/a.log\n")
        assert config.audit_log_path() == temp_dir / "a.log"

    def test_audit_log_path_expands_home(self, temp_dir: Path) -> None:
        """A leading ~ in audit_log_path is expanded."""
        config = load_config_from_string("security:\n  audit_log_path: ~/logs/a.log\n")
        assert config.audit_log_path() == temp_dir / "logs" / "a.log"

    def test_empty_document(self) -> None:
        """An empty file yields defaults."""
        assert load_config_from_string("") == GuardConfig()

    def test_other_sections_ignored(self) -> None:
        """Sections owned by other components are ignored."""
        content = """
llm:
  backend: ollama
privacy:
  telemetry: false
enterprise:
  organization: Acme
"""
        config = load_config_from_string(content)
        assert config.enterprise.organization == "Acme"

    def test_missing_lists(self) -> None:
        """Missing lists keep their defaults; explicit null means empty."""
        config = load_config_from_string("enterprise:\n  blocked_commands:\n")
        assert config.enterprise.blocked_commands == []
        assert config.enterprise.allowed_commands == []

    def test_blank_patterns_dropped(self) -> None:
        """Blank and non-string patterns are removed."""
        content = """
enterprise:
  blocked_commands:
    - ""
    - 42
    - "format"
"""
        config = load_config_from_string(content)
        assert config.enterprise.blocked_commands == ["format"]

    def test_numeric_version(self) -> None:
        """A numeric version is kept as a string."""
        assert load_config_from_string("version: 2\n").version == "2"


# =============================================================================
# Error Tolerance
# =============================================================================


class TestErrorTolerance:
    """Tests for malformed configuration."""

    def test_invalid_yaml(self, caplog: pytest.LogCaptureFixture) -> None:
        """Unparseable YAML yields defaults and a warning."""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string("enterprise: [unclosed", source="bad.yaml")

        assert config.enterprise == GuardConfig().enterprise
        assert config.source == "bad.yaml"
        assert "Invalid configuration" in caplog.text

    def test_non_mapping_document(self, caplog: pytest.LogCaptureFixture) -> None:
        """A top-level list yields defaults and a warning."""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string("- a\n- b\n")

        assert config == GuardConfig()
        assert "expected a mapping" in caplog.text

    def test_invalid_section_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        """A bad section falls back to defaults without losing the others."""
        content = """
security:
  audit_log: false
enterprise:
  compliance_mode: "sometimes"
"""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string(content)

        assert config.security.audit_log is False
        assert config.enterprise == GuardConfig().enterprise
        assert "[enterprise]" in caplog.text

    def test_invalid_field_keeps_rest_of_section(self, caplog: pytest.LogCaptureFixture) -> None:
        """One bad field does not discard the deny and allow lists beside it."""
        content = """
enterprise:
  compliance_mode: sometimes
  organization: Test Corp
  blocked_commands: ["shutdown"]
  allowed_commands: ["git"]
"""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string(content)

        assert config.enterprise.compliance_mode is True
        assert config.enterprise.organization == "Test Corp"
        assert config.enterprise.blocked_commands == ["shutdown"]
        assert config.enterprise.allowed_commands == ["git"]
        assert "compliance_mode" in caplog.text

        verdict = evaluate("shutdown now", config.policy)
        assert verdict.tier == SafetyTier.BLOCKED
        assert verdict.matched_rule == "blocked_commands[shutdown]"

    def test_several_invalid_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        """Every bad field is reported and reset on its own."""
        content = """
security:
  audit_log: maybe
  audit_log_path: [1, 2]
enterprise:
  department: Ops
"""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string(content)

        assert config.security == GuardConfig().security
        assert config.enterprise.department == "Ops"
        assert "audit_log" in caplog.text
        assert "audit_log_path" in caplog.text

    def test_non_mapping_section(self, caplog: pytest.LogCaptureFixture) -> None:
        """A section that is not a mapping falls back to its defaults."""
        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config_from_string("enterprise: [git, ls]\n")

        assert config.enterprise == GuardConfig().enterprise
        assert "[enterprise]" in caplog.text
        assert "expected a mapping" in caplog.text

    def test_unreadable_file(self, temp_dir: Path, caplog: pytest.LogCaptureFixture) -> None:
        """A path that cannot be read as a file yields defaults."""
        directory = temp_dir / "config.yaml"
        directory.mkdir()

        with caplog.at_level(logging.WARNING, logger="cmdguard.config"):
            config = load_config(directory)

        assert config == GuardConfig()
        assert "Invalid configuration" in caplog.text


# =============================================================================
# Saving
# =============================================================================


class TestSaveConfig:
    """Tests for writing config files."""

    def test_save_and_reload(self, temp_dir: Path, sample_config_yaml: str) -> None:
        """A saved config loads back with the same settings."""
        original = load_config_from_string(sample_config_yaml)
        path = save_config(original, temp_dir / "nested" / "config.yaml")

        reloaded = load_config(path)
        assert reloaded.security == original.security
        assert reloaded.enterprise == original.enterprise
        assert reloaded.source == str(path)

    def test_save_defaults_to_default_path(self, temp_dir: Path) -> None:
        """save_config() with no path writes ~/.cmdguard/config.yaml."""
        path = save_config(GuardConfig())
        assert path == temp_dir / ".cmdguard" / "config.yaml"
        assert path.exists()

    def test_source_not_written(self, temp_dir: Path, sample_config_yaml: str) -> None:
        """The source field is not part of the file."""
        config = load_config_from_string(sample_config_yaml, source="somewhere.yaml")
        path = save_config(config, temp_dir / "out.yaml")
        assert "somewhere.yaml" not in path.read_text()
