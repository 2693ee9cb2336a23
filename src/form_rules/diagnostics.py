"""Diagnostic sinks for resolution and rule evaluation.

The engine reports what it tried (which tier matched, why a condition was rejected) to an
injected sink. Sinks are write-only: nothing they do feeds back into evaluation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger("form_rules.diagnostics")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class DiagnosticSink(Protocol):
    def emit(self, level: str, message: str, **context: Any) -> None:
        ...


class NullSink:
    def emit(self, level: str, message: str, **context: Any) -> None:
        return None


class LoggingSink:
    """Forward diagnostics to a stdlib logger (default sink)."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.log = log or logger

    def emit(self, level: str, message: str, **context: Any) -> None:
        lvl = _LEVELS.get(str(level or "").lower(), logging.DEBUG)
        if not self.log.isEnabledFor(lvl):
            return
        if context:
            extras = " ".join(f"{k}={v!r}" for k, v in sorted(context.items()))
            self.log.log(lvl, "%s %s", message, extras)
        else:
            self.log.log(lvl, "%s", message)


class CollectingSink:
    """
    Keep every diagnostic in memory.

    Entries look like `{type, message, timestamp, **context}` so a rule debugger can show the
    trail of a single submission.
    """

    def __init__(self) -> None:
        self.entries: List[Dict[str, Any]] = []

    def emit(self, level: str, message: str, **context: Any) -> None:
        entry: Dict[str, Any] = {
            "type": str(level or "debug"),
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        entry.update(context)
        self.entries.append(entry)

    def messages(self, level: Optional[str] = None) -> List[str]:
        return [e["message"] for e in self.entries if level is None or e["type"] == level]


_DEFAULT_SINK: DiagnosticSink = LoggingSink()


def default_sink() -> DiagnosticSink:
    return _DEFAULT_SINK


__all__ = ["CollectingSink", "DiagnosticSink", "LoggingSink", "NullSink", "default_sink"]
