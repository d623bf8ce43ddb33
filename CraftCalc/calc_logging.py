"""
Structured logging for the crafting calculator.

Every record is kept in memory (``entries``) so callers and tests can ask
what happened, and is echoed as one text line to a stream and, optionally,
to a log file.

Verbosity levels:
    - MINIMAL: Only warnings, errors and final results
    - SUMMARY: Cache loads, bill totals, mutations
    - DETAILED: Result tables, cache hits
    - DEBUG: Per-entry bill processing and invalidations
    - TRACE: Every resolution step

Usage:
    from CraftCalc.calc_logging import LogLevel, create_string_logger

    logger, buffer = create_string_logger(LogLevel.TRACE)
    BillProcessor(cache, logger=logger).process(bill)
    logger.get_warnings("CircularDependencyWarning")
"""
from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, TextIO, Tuple, Union


class LogLevel(IntEnum):
    """Verbosity levels; a logger keeps records at or below its own level."""
    SILENT = 0      # Nothing is recorded
    MINIMAL = 10    # Warnings, errors and final results
    SUMMARY = 20    # Loads, totals, mutations
    DETAILED = 30   # Tables and cache hits
    DEBUG = 40      # Per-entry processing and invalidations
    TRACE = 50      # Every resolution step

    @classmethod
    def coerce(cls, value: Union["LogLevel", str, int]) -> "LogLevel":
        """
        Accept a member, a level name in any case, or a level number.

        Raises
        ------
        KeyError
            For an unknown name.
        ValueError
            For an unknown number.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls[value.strip().upper()]
        return cls(value)


@dataclass
class LogEntry:
    timestamp: datetime
    level: LogLevel
    category: str
    message: str
    data: Optional[Dict[str, Any]] = None

    def render(self, with_time: bool = True, with_level: bool = True) -> str:
        """One display line: ``[time] [LEVEL] [CATEGORY] message``."""
        prefix = []
        if with_time:
            prefix.append(self.timestamp.strftime("[%H:%M:%S.%f")[:-3] + "]")
        if with_level:
            prefix.append(f"[{self.level.name:<8}]")
        prefix.append(f"[{self.category}]")
        return " ".join(prefix + [self.message])


def render_table(headers: Sequence[str], rows: Sequence[Sequence[Any]],
                 title: Optional[str] = None) -> List[str]:
    """Pipe-separated text table, one string per line."""
    cells = [[str(value) for value in row] for row in [list(headers), *rows]]
    widths = [max(len(row[col]) for row in cells) for col in range(len(headers))]
    body = [" | ".join(value.ljust(width) for value, width in zip(row, widths)) for row in cells]
    heading = [title, "=" * len(title)] if title else []
    return heading + [body[0], "-" * len(body[0])] + body[1:]


@dataclass
class CraftLogger:
    """
    Collects calculator events and echoes them as text.

    Attributes
    ----------
    level : LogLevel
        Records above this level are discarded.
    output : TextIO | None
        Stream every line is written to; sys.stderr when None.
    log_to_file : Path | None
        File that also receives every line. Truncated when the logger is made.
    max_entries : int | None
        Keep only the newest this many records in ``entries``. Unbounded when
        None; echoed lines are never dropped.
    entries : list[LogEntry]
        Records kept, oldest first.
    """
    level: LogLevel = LogLevel.MINIMAL
    output: Optional[TextIO] = None
    log_to_file: Optional[Path] = None
    include_timestamp: bool = True
    include_level: bool = True
    max_entries: Optional[int] = None
    entries: List[LogEntry] = field(default_factory=list)
    _sinks: List[TextIO] = field(default_factory=list, init=False, repr=False)
    _log_file: Optional[TextIO] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self._sinks = [self.output if self.output is not None else sys.stderr]
        if self.log_to_file:
            self._log_file = Path(self.log_to_file).open("w", encoding="utf-8")
            self._sinks.append(self._log_file)

    def __enter__(self) -> "CraftLogger":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Release the log file, if this logger opened one."""
        if self._log_file is not None:
            self._sinks.remove(self._log_file)
            self._log_file.close()
            self._log_file = None

    def enabled_for(self, level: LogLevel) -> bool:
        return self.level >= level

    def _record(self, level: LogLevel, category: str, message: str,
                data: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled_for(level):
            return
        entry = LogEntry(datetime.now(), level, category, message, data)
        self.entries.append(entry)
        if self.max_entries is not None and len(self.entries) > self.max_entries:
            del self.entries[:len(self.entries) - self.max_entries]
        line = entry.render(self.include_timestamp, self.include_level) + "\n"
        for sink in self._sinks:
            sink.write(line)
            sink.flush()

    def _record_table(self, level: LogLevel, category: str, headers: Sequence[str],
                      rows: Sequence[Sequence[Any]], title: Optional[str] = None) -> None:
        if self.enabled_for(level):
            for line in render_table(headers, rows, title):
                self._record(level, category, line)

    # -------------------------------------------------------------------------
    # General
    # -------------------------------------------------------------------------

    def log_warning(self, category: str, warning: Warning,
                    data: Optional[Dict[str, Any]] = None) -> None:
        """Record a non-fatal problem; the warning class name goes into data."""
        payload = {"warning": type(warning).__name__}
        if data:
            payload.update(data)
        self._record(LogLevel.MINIMAL, category, f"WARNING: {warning}", payload)

    def log_error(self, category: str, message: str, exc: Optional[BaseException] = None) -> None:
        data = {"error": type(exc).__name__, "detail": str(exc)} if exc else None
        suffix = f": {exc}" if exc else ""
        self._record(LogLevel.MINIMAL, category, f"ERROR: {message}{suffix}", data)

    def log_config(self, source: Optional[Path], ttl_seconds: float, max_depth: int) -> None:
        self._record(LogLevel.SUMMARY, "CONFIG",
                     f"Config from {source or '<defaults>'}: cache TTL {ttl_seconds:.1f}s, "
                     f"max recipe depth {max_depth}")

    # -------------------------------------------------------------------------
    # Store / Cache
    # -------------------------------------------------------------------------

    def log_store_read(self, source: str, counts: Dict[str, int]) -> None:
        summary = ", ".join(f"{k}={v}" for k, v in counts.items())
        self._record(LogLevel.DEBUG, "STORE", f"Read catalog from {source} ({summary})")

    def log_store_write(self, source: str) -> None:
        self._record(LogLevel.SUMMARY, "STORE", f"Persisted catalog to {source}")

    def log_cache_hit(self, key: str) -> None:
        self._record(LogLevel.DETAILED, "CACHE", f"Returning cached {key}")

    def log_cache_load(self, key: str, count: int) -> None:
        self._record(LogLevel.SUMMARY, "CACHE", f"Cached {count} {key} items",
                     {"key": key, "count": count})

    def log_cache_wait(self, key: str) -> None:
        self._record(LogLevel.DEBUG, "CACHE", f"Joining in-flight load for {key}")

    def log_cache_invalidate(self, keys: Sequence[str]) -> None:
        self._record(LogLevel.DEBUG, "CACHE", f"Invalidating caches: {', '.join(keys)}",
                     {"keys": list(keys)})

    def log_cache_failure(self, key: str, exc: BaseException) -> None:
        self.log_error("CACHE", f"Error loading {key}", exc)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def log_resolve_step(self, identifier: Any, quantity: int, depth: int, outcome: str) -> None:
        # Hot path: skip formatting unless tracing
        if not self.enabled_for(LogLevel.TRACE):
            return
        self._record(LogLevel.TRACE, "RESOLVE",
                     f"{'  ' * depth}{identifier!r} x{quantity}: {outcome}")

    def log_bill_start(self, entry_count: int) -> None:
        self._record(LogLevel.SUMMARY, "BILL", f"Processing bill with {entry_count} entries")

    def log_bill_entry(self, identifier: Any, quantity: int, leaf_count: int) -> None:
        self._record(LogLevel.DEBUG, "BILL",
                     f"  {identifier!r} x{quantity} -> {leaf_count} leaf contributions")

    def log_bill_result(self, components: Sequence[Any]) -> None:
        """Totals line at SUMMARY, the material table at DETAILED."""
        if not self.enabled_for(LogLevel.SUMMARY):
            return

        unknown = sum(1 for c in components if c.is_unknown)
        self._record(LogLevel.SUMMARY, "BILL",
                     f"Bill resolved to {len(components)} materials"
                     + (f" ({unknown} unknown)" if unknown else ""))

        if components:
            rows = [
                [c.name, c.quantity,
                 "unknown" if c.is_unknown else ("raw" if c.is_raw else "terminal"),
                 c.source_skill or ""]
                for c in components
            ]
            self._record_table(LogLevel.DETAILED, "BILL",
                               ["Material", "Quantity", "Kind", "Source"],
                               rows, title="Raw Materials")

    # -------------------------------------------------------------------------
    # Gateway
    # -------------------------------------------------------------------------

    def log_mutation(self, operation: str, kind: str, result: Any) -> None:
        level = LogLevel.SUMMARY if result.success else LogLevel.MINIMAL
        status = "OK" if result.success else "FAILED"
        self._record(level, "GATEWAY", f"{operation} {kind}: {status} - {result.message}")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_entries_by_category(self, category: str) -> List[LogEntry]:
        return [e for e in self.entries if e.category == category]

    def get_warnings(self, warning_name: Optional[str] = None) -> List[LogEntry]:
        """Warning records, optionally only those of one warning class."""
        found = [e for e in self.entries if e.data and "warning" in e.data]
        if warning_name is not None:
            found = [e for e in found if e.data["warning"] == warning_name]
        return found

    def to_string(self, max_level: Optional[LogLevel] = None) -> str:
        """Kept records as text, optionally only those at or below ``max_level``."""
        return "\n".join(
            e.render(self.include_timestamp, self.include_level)
            for e in self.entries
            if max_level is None or e.level <= max_level
        )

    def clear(self) -> None:
        self.entries.clear()


def create_logger(
    level: Union[LogLevel, str, int] = LogLevel.MINIMAL,
    output: Optional[TextIO] = None,
    log_file: Optional[Path] = None,
    max_entries: Optional[int] = None,
) -> CraftLogger:
    """
    Build a CraftLogger.

    Parameters
    ----------
    level : LogLevel | str | int
        A member, a level name in any case ("debug"), or a level number.
    output : TextIO, optional
        Defaults to sys.stderr.
    log_file : Path, optional
        Also write every line to this file.
    max_entries : int, optional
        Cap on the records kept in memory.
    """
    return CraftLogger(level=LogLevel.coerce(level), output=output, log_to_file=log_file,
                       max_entries=max_entries)


def create_string_logger(level: LogLevel = LogLevel.DETAILED) -> Tuple[CraftLogger, StringIO]:
    """A logger writing into a fresh StringIO, returned alongside it."""
    buffer = StringIO()
    return CraftLogger(level=level, output=buffer), buffer
