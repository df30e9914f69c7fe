"""
Diagnostics collector shared by all analyzers of one run.

Warnings and errors are appended here instead of being raised, so that
analysis can continue on a best-effort basis. Each entry is also forwarded
to the standard logging module.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .exceptions import AnalysisError

logger = logging.getLogger(__name__)

SEVERITY_ERROR = 'error'
SEVERITY_WARNING = 'warning'


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class DiagnosticEntry:
    """One warning or error recorded during analysis"""
    severity: str
    context: str
    message: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=_now)

    @property
    def error_type(self) -> Optional[str]:
        return self.metadata.get('error_type')

    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR

    def is_warning(self) -> bool:
        return self.severity == SEVERITY_WARNING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'severity': self.severity,
            'context': self.context,
            'message': self.message,
            'metadata': dict(self.metadata),
            'timestamp': self.timestamp,
        }


class DiagnosticsCollector:
    """Append-only log of warnings and errors"""

    def __init__(self, fail_on_error: bool = False):
        self.fail_on_error = fail_on_error
        self._entries: List[DiagnosticEntry] = []

    def add_error(self, context: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> DiagnosticEntry:
        entry = DiagnosticEntry(SEVERITY_ERROR, context, message, dict(metadata or {}))
        self._entries.append(entry)
        logger.error("%s: %s %s", context, message, entry.metadata)

        if self.fail_on_error:
            raise AnalysisError(context, message, entry.metadata)

        return entry

    def add_warning(self, context: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> DiagnosticEntry:
        entry = DiagnosticEntry(SEVERITY_WARNING, context, message, dict(metadata or {}))
        self._entries.append(entry)
        logger.warning("%s: %s %s", context, message, entry.metadata)
        return entry

    @property
    def entries(self) -> List[DiagnosticEntry]:
        return list(self._entries)

    @property
    def errors(self) -> List[DiagnosticEntry]:
        return [e for e in self._entries if e.is_error()]

    @property
    def warnings(self) -> List[DiagnosticEntry]:
        return [e for e in self._entries if e.is_warning()]

    def has_errors(self) -> bool:
        return any(e.is_error() for e in self._entries)

    def has_warnings(self) -> bool:
        return any(e.is_warning() for e in self._entries)

    def by_error_type(self, error_type: str) -> List[DiagnosticEntry]:
        return [e for e in self._entries if e.error_type == error_type]

    def clear(self):
        self._entries.clear()

    def generate_report(self) -> Dict[str, Any]:
        """Summary plus every entry, ready for json.dumps"""
        errors = self.errors
        warnings = self.warnings
        return {
            'summary': {
                'total_errors': len(errors),
                'total_warnings': len(warnings),
                'generated_at': _now(),
            },
            'errors': [e.to_dict() for e in errors],
            'warnings': [w.to_dict() for w in warnings],
        }

    def __len__(self) -> int:
        return len(self._entries)
