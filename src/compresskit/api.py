"""
Main entry point: create_toolkit factory function.

Wires PathGuard, SecureFileStore, CommandGate, LicenseValidator and
IncidentReporter together and exposes their operations on one object.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from compresskit._types import PathPolicy
from compresskit.config import CONFIG, SecurityConfig
from compresskit.gate import CommandGate
from compresskit.incidents import IncidentReporter
from compresskit.license import LicenseValidator
from compresskit.security.paths import PathGuard
from compresskit.security.policy import CommandPolicy
from compresskit.storage import SecureFileStore

if TYPE_CHECKING:
    from compresskit._types import (
        ExecutionResult,
        SecurityIncident,
        Severity,
        ValidatedPath,
    )
    from compresskit.license import LicenseStatus
    from compresskit.runner._base import ProcessRunner
    from compresskit.storage import TempResource


@dataclass
class SecurityToolkit:
    """
    Toolkit returned by create_toolkit(), one instance per CLI operation.

    Attributes:
        guard: Path validation (reports attacks to ``reporter``).
        store: Temp files and atomic writes.
        gate: Allowlisted process execution (reports attacks to ``reporter``).
        licenses: License status and feature gating.
        reporter: Incident records.
    """

    guard: PathGuard
    store: SecureFileStore
    gate: CommandGate
    licenses: LicenseValidator
    reporter: IncidentReporter

    def validate_path(
        self, path: str | os.PathLike[str], policy: PathPolicy | str = PathPolicy.STRICT
    ) -> ValidatedPath:
        return self.guard.validate_path(path, policy)

    def execute(
        self, program: str, args: Sequence[str] = (), *, check: bool = False
    ) -> ExecutionResult:
        return self.gate.execute(program, args, check=check)

    def create_temp(self, prefix: str = "compresskit") -> TempResource:
        return self.store.create_temp(prefix)

    def atomic_write(
        self, path: str | os.PathLike[str], content: bytes, perms: int = 0o600
    ) -> ValidatedPath:
        return self.store.atomic_write(self.guard.validate_path(path), content, perms)

    def release(self, resource: TempResource) -> None:
        self.store.release(resource)

    def validate_license(self) -> LicenseStatus:
        return self.licenses.validate_license()

    def is_feature_licensed(self, feature: str) -> bool:
        return self.licenses.is_feature_licensed(feature)

    def report_incident(
        self, incident_type: str, severity: Severity | str, details: str, context: str = ""
    ) -> SecurityIncident:
        return self.reporter.report_incident(incident_type, severity, details, context)


def create_toolkit(
    *,
    config: SecurityConfig | None = None,
    root: Path | str | None = None,
    policy: CommandPolicy | None = None,
    runner: ProcessRunner | None = None,
    timeout: float | None = None,
) -> SecurityToolkit:
    """
    Build a fully wired SecurityToolkit.

    Args:
        config: Locations and limits. Defaults to the environment-derived config.
        root: Shortcut for ``SecurityConfig.rooted_at(root)``; ignored when
              ``config`` is given.
        policy: Command allowlist. Defaults to CommandPolicy.default().
        runner: Process backend. Defaults to LocalRunner.
        timeout: Per-command timeout in seconds. Defaults to the config value.

    Returns:
        SecurityToolkit exposing validate_path, execute, create_temp,
        atomic_write, release, validate_license, is_feature_licensed and
        report_incident.

    Example:
        >>> toolkit = create_toolkit()
        >>> toolkit.validate_path("/tmp/report.pdf")
        ValidatedPath('/tmp/report.pdf', STRICT)
    """
    if config is None:
        config = SecurityConfig.rooted_at(root) if root is not None else CONFIG

    # The reporter writes through its own guard, which reports to no one
    reporter = IncidentReporter(config=config)
    guard = PathGuard(config=config, reporter=reporter)
    store = SecureFileStore(config=config, guard=guard)
    gate = CommandGate(
        policy or CommandPolicy.default(),
        runner=runner,
        reporter=reporter,
        timeout=timeout,
        config=config,
    )
    licenses = LicenseValidator(config=config, guard=guard)

    return SecurityToolkit(
        guard=guard,
        store=store,
        gate=gate,
        licenses=licenses,
        reporter=reporter,
    )
