"""
Configuration loading for cmdguard.

The configuration file is YAML and lives at ~/.cmdguard/config.yaml by
default (override with CMDGUARD_CONFIG or an explicit path). Only two
sections matter here:

    security:
      audit_log: true
      audit_log_path: ~/.cmdguard/audit.log
    enterprise:
      organization: Example Corp
      department: Platform
      compliance_mode: true
      allowed_commands: []
      blocked_commands: ["rm -rf /", "format", "del /s /q C:\\"]

Other sections (llm, privacy, ...) belong to other components and are
ignored.

Loading never fails. A missing file yields defaults; an unreadable or
unparseable file, or a section that does not validate, is reported as a
ConfigError in the log and replaced by its defaults.
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cmdguard.errors import ERROR_CONFIG_UNREADABLE, ConfigError
from cmdguard.schema import PolicyConfig, normalize_patterns

logger = logging.getLogger(__name__)

APP_DIR_NAME = ".cmdguard"
CONFIG_ENV_VAR = "CMDGUARD_CONFIG"
AUDIT_LOG_ENV_VAR = "CMDGUARD_AUDIT_LOG"

DEFAULT_BLOCKED_COMMANDS = [
    "rm -rf /",
    "format",
    "del /s /q C:\\",
]


def app_dir() -> Path:
    """Per-user application directory (~/.cmdguard)."""
    return Path.home() / APP_DIR_NAME


def default_config_path() -> Path:
    """Config path from CMDGUARD_CONFIG, else ~/.cmdguard/config.yaml."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return app_dir() / "config.yaml"


def default_audit_log_path() -> Path:
    """Audit log path from CMDGUARD_AUDIT_LOG, else ~/.cmdguard/audit.log."""
    override = os.environ.get(AUDIT_LOG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return app_dir() / "audit.log"


# =============================================================================
# Config Models
# =============================================================================


class SecuritySettings(BaseModel):
    """
    Audit settings.

    Attributes:
        audit_log: Whether command events are recorded at all
        audit_log_path: Where the audit log lives (None = default location)
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    audit_log: bool = Field(default=True, description="Enable audit logging")
    audit_log_path: str | None = Field(default=None, description="Path to audit log file")


class EnterpriseSettings(BaseModel):
    """
    Organization identity and command policy.

    Attributes:
        organization: Organization name stamped on audit records
        department: Department/team name stamped on audit records
        compliance_mode: Require explicit allow-listing
        allowed_commands: Allow patterns (whitelist)
        blocked_commands: Deny patterns (blacklist)
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    organization: str | None = None
    department: str | None = None
    compliance_mode: bool = True
    allowed_commands: list[str] = Field(default_factory=list)
    blocked_commands: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS)
    )

    @field_validator("allowed_commands", "blocked_commands", mode="before")
    @classmethod
    def coerce_patterns(cls, v: Any) -> list[str]:
        """Drop null, blank and non-string patterns."""
        return normalize_patterns(v)

    def policy(self) -> PolicyConfig:
        """The policy fields, as consumed by the policy engine."""
        return PolicyConfig(
            allowed_commands=self.allowed_commands,
            blocked_commands=self.blocked_commands,
            compliance_mode=self.compliance_mode,
        )


class GuardConfig(BaseModel):
    """
    Effective cmdguard configuration.

    Attributes:
        version: Config schema version
        security: Audit settings
        enterprise: Organization identity and command policy
        source: File the config was loaded from (None = defaults)
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    version: str = "1.0"
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    enterprise: EnterpriseSettings = Field(default_factory=EnterpriseSettings)
    source: str | None = Field(default=None, exclude=True)

    @property
    def policy(self) -> PolicyConfig:
        """Policy configuration for the engine."""
        return self.enterprise.policy()

    def audit_log_path(self) -> Path:
        """Configured audit log path, or the default location."""
        if self.security.audit_log_path:
            return Path(self.security.audit_log_path).expanduser()
        return default_audit_log_path()


# =============================================================================
# Loading
# =============================================================================

_SECTIONS: dict[str, type[BaseModel]] = {
    "security": SecuritySettings,
    "enterprise": EnterpriseSettings,
}


def load_config(path: Path | str | None = None) -> GuardConfig:
    """
    Load configuration from a YAML file.

    Args:
        path: Config file (None = CMDGUARD_CONFIG or ~/.cmdguard/config.yaml)

    Returns:
        The effective GuardConfig; defaults wherever the file is missing
        or invalid
    """
    path = Path(path).expanduser() if path is not None else default_config_path()

    if not path.exists():
        logger.info("Config file not found at %s, using defaults", path)
        return GuardConfig()

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _report(
            ConfigError(
                path=str(path),
                underlying_error=str(e),
                code=ERROR_CONFIG_UNREADABLE,
            )
        )
        return GuardConfig()

    config = load_config_from_string(content, source=str(path))
    logger.info("Loaded config from %s", path)
    return config


def load_config_from_string(content: str, source: str | None = None) -> GuardConfig:
    """
    Load configuration from a YAML string.

    Each section is validated on its own, and within a section an invalid
    field falls back to its default without discarding the other fields.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        _report(ConfigError(path=source, underlying_error=str(e)))
        return GuardConfig(source=source)

    if data is None:
        return GuardConfig(source=source)
    if not isinstance(data, dict):
        _report(
            ConfigError(
                path=source,
                underlying_error=f"expected a mapping, got {type(data).__name__}",
            )
        )
        return GuardConfig(source=source)

    fields: dict[str, Any] = {"source": source}
    if isinstance(data.get("version"), (str, int, float)):
        fields["version"] = str(data["version"])

    for name, model in _SECTIONS.items():
        section = data.get(name)
        if section is None:
            continue
        parsed = _load_section(model, name, section, source)
        if parsed is not None:
            fields[name] = parsed

    return GuardConfig(**fields)


def save_config(config: GuardConfig, path: Path | str | None = None) -> Path:
    """
    Write configuration as YAML, creating the parent directory.

    Returns:
        The path written

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path).expanduser() if path is not None else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json")
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    logger.info("Saved config to %s", path)
    return path


def _load_section(
    model: type[BaseModel],
    name: str,
    section: Any,
    source: str | None,
) -> BaseModel | None:
    """
    Validate one config section, dropping only the fields that fail.

    Returns:
        The section model, or None if the section is not a mapping
    """
    if not isinstance(section, dict):
        _report(
            ConfigError(
                path=source,
                section=name,
                underlying_error=f"expected a mapping, got {type(section).__name__}",
            )
        )
        return None

    values = dict(section)
    while True:
        try:
            return model.model_validate(values)
        except ValidationError as e:
            _report(ConfigError(path=source, section=name, underlying_error=_summarize(e)))
            invalid = {err["loc"][0] for err in e.errors() if err["loc"]} & values.keys()
            if not invalid:
                return None
            for key in invalid:
                del values[key]


def _summarize(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(parts)


def _report(error: ConfigError) -> None:
    logger.warning("%s; using defaults", error.message)
