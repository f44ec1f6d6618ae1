"""
JSON report generator for cmdguard.

Generates structured JSON for programmatic consumption of verdicts,
audit history and statistics.

Records use the same field names as the audit log itself, so a history
dump can be diffed against, or fed back into, the raw log.
"""

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from cmdguard.schema import AuditRecord, AuditStatistics, Verdict


def verdict_to_dict(command: str, verdict: Verdict) -> dict[str, Any]:
    """Build a JSON-ready dict for a verdict."""
    return {
        "command": command,
        "tier": verdict.tier.value,
        "reason": verdict.reason,
        "matched_rule": verdict.matched_rule,
        "blocked": verdict.is_blocked,
        "requires_confirmation": verdict.requires_confirmation,
    }


def records_to_dict(records: Iterable[AuditRecord]) -> dict[str, Any]:
    """Build a JSON-ready dict for a sequence of records."""
    items = [record.model_dump(mode="json", by_alias=True) for record in records]
    return {
        "generated_at": datetime.now(UTC).isoformat(),
        "count": len(items),
        "records": items,
    }


def statistics_to_dict(stats: AuditStatistics) -> dict[str, Any]:
    """Build a JSON-ready dict for statistics."""
    data = stats.model_dump(mode="json")
    data["dangerous_or_blocked"] = stats.dangerous_or_blocked
    return data


def to_json(data: dict[str, Any], indent: int = 2) -> str:
    """Serialize a report dict."""
    return json.dumps(data, indent=indent, default=str)
