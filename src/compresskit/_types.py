"""
Core type definitions for compresskit.

Uses dataclasses, enums and Protocols for lightweight, typed abstractions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

from compresskit.errors import CommandError, CommandErrorKind, ConfigurationError


class PathPolicy(Enum):
    """Safety policy applied when validating a path."""

    STRICT = "strict"  # Symlink and sensitive-file checks
    NORMAL = "normal"  # Only the most critical file is denied
    RELAXED = "relaxed"  # Traversal and NUL-byte rejection only

    @classmethod
    def parse(cls, value: PathPolicy | str) -> PathPolicy:
        """Accept a policy or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise ConfigurationError(
                f"Invalid path safety level: {value!r} (valid options are: {valid})"
            ) from None


class ValidatedPath(str):
    """
    A canonical, absolute, symlink-resolved path produced by PathGuard.

    Behaves as a plain string; remembers the policy it was validated under.
    """

    policy: PathPolicy

    def __new__(cls, value: str, policy: PathPolicy) -> ValidatedPath:
        obj = super().__new__(cls, value)
        obj.policy = policy
        return obj

    def __repr__(self) -> str:
        return f"ValidatedPath({str.__repr__(self)}, {self.policy.name})"


class TempState(Enum):
    """Lifecycle of a TempResource."""

    CREATED = "created"
    ACTIVE = "active"
    RELEASED = "released"


class Severity(Enum):
    """Incident severity, ordered by rank."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Severity | str) -> Severity:
        """Unknown names fall back to MEDIUM."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.MEDIUM


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """A program and argument vector that passed the command policy."""

    program: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Immutable result from an external program run."""

    program: str
    args: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str
    truncated: bool = False
    timed_out: bool = False

    @property
    def success(self) -> bool:
        """Return True if the program exited with code 0 and did not time out."""
        return self.exit_code == 0 and not self.timed_out

    def raise_for_status(self) -> None:
        """Raise CommandError if the program failed."""
        if not self.success:
            detail = "timed out" if self.timed_out else f"exit code {self.exit_code}"
            raise CommandError(
                CommandErrorKind.NON_ZERO_EXIT,
                f"{self.program} failed with {detail}: {(self.stderr or self.stdout).strip()[:500]}",
                program=self.program,
                exit_code=self.exit_code,
            )


@dataclass(frozen=True, slots=True)
class SecurityIncident:
    """Immutable audit record of a rejected, security-relevant operation."""

    incident_id: str
    type: str
    severity: Severity
    timestamp: datetime
    context: str
    details: str


class IncidentSink(Protocol):
    """Anything that can record a security incident."""

    def report_incident(
        self,
        incident_type: str,
        severity: Severity | str,
        details: str,
        context: str = "",
    ) -> SecurityIncident: ...
