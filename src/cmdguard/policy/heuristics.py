"""
Built-in danger heuristics.

These rules apply when no allow/deny list decision blocks a command. Each
heuristic is a precompiled regular expression tested against the
lower-cased command. The table is a module-level tuple of frozen entries:
it is built once at import time and never changes.

Ordering:
    The engine picks the most severe matching heuristic. Among matches
    of equal severity the first one declared here wins, so the more
    specific rules come first within each tier.

Command position:
    Several utilities (dd, format, sudo) are only dangerous when they are
    the command being run, not when they appear as an argument
    (`git log --format=...`). COMMAND_START anchors those patterns to the
    start of the command, after a shell separator, or after a privilege
    wrapper.
"""

import re
from dataclasses import dataclass

from cmdguard.schema import SafetyTier

# Start of a command: beginning of input, after ; & | ( or a backtick,
# optionally behind sudo/doas/env wrappers.
COMMAND_START = r"(?:^|[;&|(`]\s*|\b(?:sudo|doas|env|nohup|xargs)\s+(?:-\S+\s+)*)"

DELETION_VERBS = r"(?:rm|rmdir|del|rd|erase|deltree|remove-item)"

DESTRUCTIVE_WORDS = (
    "rm",
    "rmdir",
    "del",
    "deltree",
    "rd",
    "erase",
    "mv",
    "chmod",
    "chown",
    "chgrp",
    "truncate",
    "remove-item",
    "move-item",
    "remove-module",
    "remove-psdrive",
    "remove-variable",
    "clear-content",
)

SYSTEM_CONTROL_WORDS = (
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "restart-computer",
    "stop-computer",
    "stop-service",
    "reset-service",
    "remove-service",
    "start-process",
    "invoke-command",
    "invoke-webrequest",
    "kill",
    "killall",
    "pkill",
    "systemctl",
)


@dataclass(frozen=True)
class Heuristic:
    """
    A single built-in danger rule.

    Attributes:
        name: Stable identifier, used in Verdict.matched_rule
        tier: Tier assigned when the rule matches (WARNING or DANGEROUS)
        pattern: Compiled regex tested against the lower-cased command
        reason: Human-readable explanation surfaced to the user
    """

    name: str
    tier: SafetyTier
    pattern: re.Pattern[str]
    reason: str

    def matches(self, command_lower: str) -> bool:
        """Check whether this heuristic fires for a lower-cased command."""
        return self.pattern.search(command_lower) is not None

    @property
    def rule(self) -> str:
        """Rule label recorded in verdicts."""
        return f"heuristic[{self.name}]"


def _words(words: tuple[str, ...]) -> str:
    return "|".join(re.escape(w) for w in words)


def _heuristic(name: str, tier: SafetyTier, pattern: str, reason: str) -> Heuristic:
    return Heuristic(name=name, tier=tier, pattern=re.compile(pattern), reason=reason)


BUILTIN_HEURISTICS: tuple[Heuristic, ...] = (
    # -------------------------------------------------------------------------
    # Dangerous
    # -------------------------------------------------------------------------
    _heuristic(
        "no_preserve_root",
        SafetyTier.DANGEROUS,
        r"--no-preserve-root\b",
        "Deletion with --no-preserve-root can erase the whole filesystem",
    ),
    _heuristic(
        "recursive_forced_deletion",
        SafetyTier.DANGEROUS,
        rf"(?:^|[\s;&|(`]){DELETION_VERBS}\b"
        r"(?=.*(?:\s-[a-z]*[rf][a-z]*(?=\s|$)|\s--(?:recursive|force)\b|\s/[sq]\b))",
        "Recursive or forced deletion can be dangerous",
    ),
    _heuristic(
        "disk_wipe_utility",
        SafetyTier.DANGEROUS,
        rf"{COMMAND_START}(?:mkfs(?:\.\w+)?|fdisk|sfdisk|parted|dd|format|diskpart|wipefs|shred)\b",
        "Disk formatting or wiping utilities can destroy data irrecoverably",
    ),
    _heuristic(
        "execution_policy_tampering",
        SafetyTier.DANGEROUS,
        r"\bset-executionpolicy\b|-executionpolicy\s+(?:bypass|unrestricted)\b",
        "Changing the PowerShell execution policy disables script safety checks",
    ),
    _heuristic(
        "raw_device_overwrite",
        SafetyTier.DANGEROUS,
        r">\s*/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|disk)\w*|\bof=/dev/(?:sd|hd|vd|xvd|nvme|mmcblk|disk)",
        "Writing directly to a block device overwrites the disk",
    ),
    _heuristic(
        "recursive_root_permissions",
        SafetyTier.DANGEROUS,
        r"\b(?:chmod|chown|chgrp)\b(?=[^;&|]*\s-[a-z]*r[a-z]*\s)[^;&|]*\s/(?=$|[\s;&|])"
        r"|\bchmod\s+(?:-\S+\s+)*0?777\s+/(?=$|[\s;&|])",
        "Recursive permission or ownership changes on / break the system",
    ),
    _heuristic(
        "remote_code_execution",
        SafetyTier.DANGEROUS,
        r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|k|da)?sh\b"
        r"|\binvoke-expression\b|(?:^|[;|]\s*)iex\b",
        "Executing downloaded or dynamically built code runs it unreviewed",
    ),
    _heuristic(
        "fork_bomb",
        SafetyTier.DANGEROUS,
        r":\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;\s*:",
        "Fork bombs exhaust system resources",
    ),
    # -------------------------------------------------------------------------
    # Warning
    # -------------------------------------------------------------------------
    _heuristic(
        "privilege_escalation",
        SafetyTier.WARNING,
        r"(?:^|[;&|(`]\s*)(?:sudo|su|doas|runas)\b",
        "Command runs with elevated privileges",
    ),
    _heuristic(
        "destructive_command",
        SafetyTier.WARNING,
        rf"(?:^|[\s;&|(`])(?:{_words(DESTRUCTIVE_WORDS)})(?=$|[\s;&|)`])",
        "Command can delete, move or re-permission files",
    ),
    _heuristic(
        "system_control",
        SafetyTier.WARNING,
        rf"{COMMAND_START}(?:{_words(SYSTEM_CONTROL_WORDS)})\b",
        "Command controls processes, services or the machine itself",
    ),
    _heuristic(
        "confirmation_bypass",
        SafetyTier.WARNING,
        r"(?:^|\s)(?:--force|-force|-confirm:\$false|/y|/q)(?=$|\s)",
        "Flag suppresses confirmation prompts",
    ),
    _heuristic(
        "overwrite_redirection",
        SafetyTier.WARNING,
        r"(?<![>&\d])>(?![>&])",
        "File redirection (>) will overwrite existing files",
    ),
)


def most_severe_match(
    command_lower: str,
    heuristics: tuple[Heuristic, ...] = BUILTIN_HEURISTICS,
) -> Heuristic | None:
    """
    Find the heuristic that determines a command's tier.

    Args:
        command_lower: The command, already lower-cased
        heuristics: Table to consult (defaults to the built-in table)

    Returns:
        The most severe matching heuristic (first declared on ties), or None
    """
    best: Heuristic | None = None
    for heuristic in heuristics:
        if best is not None and heuristic.tier <= best.tier:
            continue
        if heuristic.matches(command_lower):
            best = heuristic
    return best
