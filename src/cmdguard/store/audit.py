"""
JSON-lines audit store for cmdguard.

This module persists audit records to a single append-only file, one JSON
object per line, and answers filtered queries and statistics by streaming
that file.

Design Principles:
    - Append-only: Records are never modified or deleted
    - Atomic lines: Each append is one write of one complete line,
      flushed and fsynced before append() returns
    - Serialized writers: Every AuditStore in the process that points at
      the same file shares one lock, so lines never interleave
    - Tolerant readers: A malformed or torn line is skipped and counted,
      never fatal to a scan

Not supported:
    Several processes appending to the same file at once. Deployments
    that need that must enforce a single writer themselves.

Why JSON lines?
    - Every line is independently parseable, so a crash mid-write can
      only damage the line being written
    - Greppable and streamable without loading the whole file
    - Same format the log has always had, so existing logs stay readable
"""

import itertools
import json
import logging
import os
import threading
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

from pydantic import ValidationError

from cmdguard.errors import (
    AuditLogNotFoundError,
    AuditParseError,
    AuditReadError,
    AuditWriteError,
)
from cmdguard.schema import (
    AuditFilter,
    AuditRecord,
    AuditStatistics,
    SafetyTier,
)

logger = logging.getLogger(__name__)

# One writer lock per log file, shared by every AuditStore in the process.
# Entries are never evicted: the registry holds one lock per distinct log
# path the process has opened.
_registry_lock = threading.Lock()
_writer_locks: dict[str, threading.Lock] = {}


def _writer_lock(path: Path) -> threading.Lock:
    """Return the process-wide append lock for a log file."""
    key = os.path.realpath(path)
    with _registry_lock:
        lock = _writer_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _writer_locks[key] = lock
        return lock


def current_user() -> str:
    """Get the current OS user, falling back to "unknown"."""
    return os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"


def parse_line(raw: bytes, line_number: int, path: str = "") -> AuditRecord:
    """
    Parse one audit log line.

    Args:
        raw: The raw line, with or without its trailing newline
        line_number: 1-based line number, for error reporting
        path: Log path, for error reporting

    Returns:
        The parsed AuditRecord

    Raises:
        AuditParseError: If the line is not valid UTF-8 JSON for a record
    """
    try:
        data = json.loads(raw.decode("utf-8"))
        return AuditRecord.model_validate(data)
    except UnicodeDecodeError as e:
        raise AuditParseError(
            path=path,
            operation="parse",
            line_number=line_number,
            underlying_error=f"invalid UTF-8: {e.reason}",
        ) from e
    except json.JSONDecodeError as e:
        raise AuditParseError(
            path=path,
            operation="parse",
            line_number=line_number,
            underlying_error=f"invalid JSON: {e.msg}",
        ) from e
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        detail = f"{location}: {first['msg']}" if location else first["msg"]
        raise AuditParseError(
            path=path,
            operation="parse",
            line_number=line_number,
            underlying_error=detail,
        ) from e


@dataclass
class ScanCounter:
    """Tally of one pass over the log."""

    records: int = 0
    skipped: int = 0


class AuditQuery:
    """
    Restartable, lazy view over matching audit records.

    Each iteration re-opens the log and streams it from the start, so the
    whole log is never held in memory and repeated iteration over an
    unchanged log yields the same sequence.

    Usage:
        query = store.query(AuditFilter(tier=SafetyTier.BLOCKED))
        for record in query:
            print(record.generated_command)
        print(query.skipped_lines)

    Attributes:
        store: The store being queried
        filter: The criteria applied
        skipped_lines: Malformed lines seen by the last complete pass
    """

    def __init__(self, store: "AuditStore", audit_filter: AuditFilter) -> None:
        self.store = store
        self.filter = audit_filter
        self.skipped_lines = 0

    def __iter__(self) -> Iterator[AuditRecord]:
        counter = ScanCounter()
        matches: Iterator[AuditRecord] = (
            record
            for record in self.store._read_records("query", counter)
            if self.filter.matches(record)
        )

        if self.filter.newest_first:
            # Only matches are buffered, and at most `limit` of them
            newest = deque(matches, maxlen=self.filter.limit)
            matches = reversed(newest)
        elif self.filter.limit is not None:
            matches = itertools.islice(matches, self.filter.limit)

        yield from matches
        self.skipped_lines = counter.skipped


class AuditStore:
    """
    Append-only audit trail backed by a JSON-lines file.

    Usage:
        store = AuditStore("~/.cmdguard/audit.log", organization="Acme")
        store.append(record)
        for record in store.query(user="alice"):
            ...
        stats = store.statistics()

    Attributes:
        path: Location of the log file
        organization: Stamped onto records created by log_command()
        department: Stamped onto records created by log_command()
    """

    def __init__(
        self,
        log_path: str | Path,
        organization: str | None = None,
        department: str | None = None,
    ) -> None:
        """
        Initialize the store.

        The file (and its directory) are created on the first append,
        not here.

        Args:
            log_path: Path to the audit log; "~" is expanded
            organization: Organization name for log_command()
            department: Department name for log_command()
        """
        self.path = Path(log_path).expanduser()
        self.organization = organization
        self.department = department
        self._lock = _writer_lock(self.path)

    def exists(self) -> bool:
        """Whether the log file exists yet."""
        return self.path.is_file()

    # =========================================================================
    # Write Operations
    # =========================================================================

    def append(self, record: AuditRecord) -> None:
        """
        Append one record to the log.

        The record is written as a single line with a single write call,
        then flushed and fsynced. If the file ends in a torn line from an
        earlier crash, a newline is written first so the torn line stays
        isolated.

        Args:
            record: The record to persist

        Raises:
            AuditWriteError: If the log cannot be created or written
        """
        data = (record.to_json_line() + "\n").encode("utf-8")

        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a+b") as f:
                    if f.seek(0, os.SEEK_END) > 0:
                        f.seek(-1, os.SEEK_END)
                        if f.read(1) != b"\n":
                            data = b"\n" + data
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                raise AuditWriteError(
                    path=str(self.path),
                    operation="append",
                    underlying_error=str(e),
                ) from e

        logger.debug(
            "Appended audit record for %s (%s)",
            record.user,
            record.tier.value,
        )

    def log_command(
        self,
        natural_language_input: str,
        generated_command: str,
        executed: bool,
        tier: SafetyTier,
        backend_id: str,
        exit_code: int | None = None,
        notes: str | None = None,
        session_id: str | None = None,
        user: str | None = None,
    ) -> AuditRecord:
        """
        Build a record for a command event and append it.

        The record is stamped with the current UTC time, the current OS
        user (unless given) and this store's organization/department.

        Returns:
            The record that was written

        Raises:
            AuditWriteError: If the record cannot be written
        """
        record = AuditRecord.create(
            user=user or current_user(),
            organization=self.organization,
            department=self.department,
            natural_language_input=natural_language_input,
            generated_command=generated_command,
            executed=executed,
            exit_code=exit_code,
            tier=tier,
            notes=notes,
            backend_id=backend_id,
            session_id=session_id,
        )
        self.append(record)
        return record

    # =========================================================================
    # Read Operations
    # =========================================================================

    def query(
        self,
        audit_filter: AuditFilter | None = None,
        **criteria: Any,
    ) -> AuditQuery:
        """
        Query records matching a filter.

        Criteria can be given as an AuditFilter, as keyword arguments
        (user=, tier=, since=, until=, newest_first=, limit=), or both,
        in which case keywords override the filter's fields.

        Args:
            audit_filter: Criteria to apply (None = everything)
            **criteria: AuditFilter fields

        Returns:
            A lazy, restartable AuditQuery

        Raises:
            AuditLogNotFoundError: If the log does not exist
            AuditReadError: If the log path is not a readable file
        """
        if audit_filter is None:
            audit_filter = AuditFilter(**criteria)
        elif criteria:
            audit_filter = AuditFilter(**{**audit_filter.model_dump(), **criteria})

        self._require_log("query")
        return AuditQuery(self, audit_filter)

    def statistics(self) -> AuditStatistics:
        """
        Compute aggregate statistics over the whole log.

        A failed execution is one that ran with a missing or nonzero
        exit code.

        Returns:
            AuditStatistics for every parsed record

        Raises:
            AuditLogNotFoundError: If the log does not exist
            AuditReadError: If the log cannot be read
        """
        self._require_log("statistics")

        counter = ScanCounter()
        executed = 0
        failed = 0
        per_tier = {tier: 0 for tier in SafetyTier}

        for record in self._read_records("statistics", counter):
            if record.executed:
                executed += 1
            if record.failed:
                failed += 1
            per_tier[record.tier] += 1

        return AuditStatistics(
            total=counter.records,
            executed=executed,
            failed_executions=failed,
            per_tier=per_tier,
            skipped_lines=counter.skipped,
        )

    def _require_log(self, operation: str) -> None:
        """Fail early, with the specific cause, if there is nothing to read."""
        if not self.path.exists():
            raise AuditLogNotFoundError(path=str(self.path), operation=operation)
        if not self.path.is_file():
            raise AuditReadError(
                path=str(self.path),
                operation=operation,
                underlying_error="not a regular file",
            )

    def _read_records(
        self,
        operation: str,
        counter: ScanCounter,
    ) -> Iterator[AuditRecord]:
        """
        Stream parsed records in file order.

        Blank lines are ignored. Malformed lines are logged at debug
        level, counted in counter.skipped and otherwise skipped.
        """
        try:
            f = self.path.open("rb")
        except FileNotFoundError as e:
            raise AuditLogNotFoundError(path=str(self.path), operation=operation) from e
        except OSError as e:
            raise AuditReadError(
                path=str(self.path),
                operation=operation,
                underlying_error=str(e),
            ) from e

        with f:
            for line_number, raw in enumerate(self._raw_lines(f, operation), start=1):
                if not raw.strip():
                    continue
                try:
                    record = parse_line(raw, line_number, str(self.path))
                except AuditParseError as e:
                    counter.skipped += 1
                    logger.debug("Skipping %s", e.message)
                    continue
                counter.records += 1
                yield record

    def _raw_lines(self, f: BinaryIO, operation: str) -> Iterator[bytes]:
        try:
            yield from f
        except OSError as e:
            raise AuditReadError(
                path=str(self.path),
                operation=operation,
                underlying_error=str(e),
            ) from e
