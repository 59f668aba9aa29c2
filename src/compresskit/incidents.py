"""
Append-only security incident records.

Each incident becomes one uniquely named, owner-only file that is written
once and never touched again. Independent processes can report at the same
time without coordinating.
"""

from __future__ import annotations

import getpass
import logging
import os
import socket
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable

from compresskit._types import SecurityIncident, Severity
from compresskit.config import CONFIG, SecurityConfig
from compresskit.security.validators import sanitize_string
from compresskit.storage import SecureFileStore

logger = logging.getLogger(__name__)

INCIDENT_FILE_MODE = 0o600
_FILE_GLOB = "incident_*.log"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def _current_cwd() -> str:
    try:
        return os.getcwd()
    except OSError:
        return "unknown"


class IncidentReporter:
    """
    Records security incidents under an owner-only directory.

    Example:
        >>> reporter = IncidentReporter()
        >>> incident = reporter.report_incident("traversal_attempt", "HIGH", "path='../x'")
        >>> incident.severity
        <Severity.HIGH: 'HIGH'>
    """

    def __init__(
        self,
        *,
        config: SecurityConfig = CONFIG,
        store: SecureFileStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config
        self._store = store or SecureFileStore(config=config)
        self._clock = clock or (lambda: datetime.now().astimezone())

    @property
    def incident_dir(self) -> Path:
        return self._config.incident_dir

    def report_incident(
        self,
        incident_type: str,
        severity: Severity | str,
        details: str,
        context: str = "",
    ) -> SecurityIncident:
        """
        Record one incident.

        Args:
            incident_type: Short category, e.g. ``traversal_attempt``.
            severity: A Severity or its name; unknown names become MEDIUM.
            details: Free-form description. Sanitized before it is stored.
            context: The component or operation that detected the incident.

        Returns:
            The recorded, immutable incident.

        Raises:
            PathError, StoreError: If the record could not be written.
        """
        incident = SecurityIncident(
            incident_id=uuid.uuid4().hex[:12],
            type=sanitize_string(incident_type, max_length=64) or "unknown",
            severity=Severity.parse(severity),
            timestamp=self._clock(),
            context=sanitize_string(context, max_length=200),
            details=sanitize_string(details) or "No additional details",
        )

        directory = self._store.ensure_private_dir(self._config.incident_dir)
        stamp = incident.timestamp.strftime("%Y%m%d%H%M%S")
        name = f"incident_{incident.severity.value}_{stamp}_{incident.incident_id}.log"
        self._store.atomic_write(
            os.path.join(directory, name), self._render(incident), perms=INCIDENT_FILE_MODE
        )

        logger.warning(f"Security incident recorded: {incident.type} ({incident.severity.value})")
        if incident.severity is Severity.CRITICAL:
            logger.error(f"CRITICAL SECURITY INCIDENT DETECTED: {incident.type}")
        return incident

    def incident_files(self) -> list[Path]:
        """All incident records, oldest first."""
        directory = self._config.incident_dir
        if not directory.is_dir():
            return []
        return sorted(directory.glob(_FILE_GLOB))

    def incident_metrics(self) -> dict[Severity, int]:
        """Count recorded incidents per severity."""
        counts = {severity: 0 for severity in Severity}
        for path in self.incident_files():
            parts = path.name.split("_")
            if len(parts) > 1 and parts[1] in Severity.__members__:
                counts[Severity[parts[1]]] += 1
        return counts

    @staticmethod
    def _render(incident: SecurityIncident) -> bytes:
        lines = [
            "====== SECURITY INCIDENT REPORT ======",
            f"Incident ID: {incident.incident_id}",
            f"Timestamp: {incident.timestamp.isoformat(timespec='seconds')}",
            f"Incident Type: {incident.type}",
            f"Severity: {incident.severity.value} ({incident.severity.rank})",
            f"Username: {_current_user()}",
            f"Hostname: {socket.gethostname() or 'unknown'}",
            f"Working Directory: {_current_cwd()}",
            f"Process ID: {os.getpid()}",
            f"Context: {incident.context or 'unspecified'}",
            "Additional Details:",
            incident.details,
            "=====================================",
        ]
        return ("\n".join(lines) + "\n").encode("utf-8")


__all__ = [
    "IncidentReporter",
]
