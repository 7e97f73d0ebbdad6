"""
Decode-failure diagnostics hook.

The orchestrator hands every per-record failure to an optional reporter.
Reporters observe only; correctness never depends on one being present.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from tvguide.exceptions import DecodeError


logger = logging.getLogger(__name__)

MAX_LOGGED_PAYLOAD = 2000


class DecodeFailureReporter(Protocol):
    def report(self, entity_id: str, raw: Any, error: DecodeError) -> None: ...


class LoggingDecodeReporter:
    """Logs failures with a truncated copy of the offending payload"""

    def __init__(self, level: int = logging.WARNING, max_payload: int = MAX_LOGGED_PAYLOAD):
        self.level = level
        self.max_payload = max_payload

    def report(self, entity_id: str, raw: Any, error: DecodeError) -> None:
        try:
            payload = json.dumps(raw, default=str)
        except (TypeError, ValueError):
            payload = repr(raw)
        if len(payload) > self.max_payload:
            payload = payload[:self.max_payload] + "..."
        logger.log(self.level, f"Decode failure for {entity_id}: {error} | payload={payload}")


class CollectingDecodeReporter:
    """Keeps every report in memory; handy for tests and offline triage"""

    def __init__(self):
        self.reports: list[tuple[str, Any, DecodeError]] = []

    def report(self, entity_id: str, raw: Any, error: DecodeError) -> None:
        self.reports.append((entity_id, raw, error))
