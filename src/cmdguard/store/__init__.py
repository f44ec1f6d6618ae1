"""
Storage module for cmdguard.

This module provides the append-only audit trail: every classification and
execution outcome is written as one JSON line and can later be queried by
user, tier and time window, or summarized.

Design principles:
    - Append-only: Historical records are never modified
    - Atomic: One complete line per append, serialized per file
    - Streaming: Queries read line by line and are restartable
    - Tolerant: Malformed lines are skipped and counted
"""

from cmdguard.store.audit import AuditQuery, AuditStore, current_user, parse_line

__all__ = [
    "AuditQuery",
    "AuditStore",
    "current_user",
    "parse_line",
]
