"""Pytest configuration and fixtures for compresskit tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519

from compresskit import (
    CommandGate,
    CommandPolicy,
    IncidentReporter,
    LicenseValidator,
    PathGuard,
    SecureFileStore,
    SecurityConfig,
)
from compresskit._types import ExecutionRequest, ExecutionResult, SecurityIncident, Severity
from compresskit.runner import ProcessRunner

NOW = datetime(2026, 10, 18, 12, 0, 0)
TODAY = date(2026, 10, 18)


class FakeRunner(ProcessRunner):
    """Records every request instead of spawning it."""

    def __init__(self) -> None:
        self.calls: list[tuple[ExecutionRequest, float]] = []
        self.exit_code = 0
        self.stdout = ""
        self.stderr = ""
        self.error: OSError | None = None

    def run(self, request, *, timeout, cwd=None):  # type: ignore[no-untyped-def]
        self.calls.append((request, timeout))
        if self.error is not None:
            raise self.error
        return ExecutionResult(
            program=request.program,
            args=request.args,
            exit_code=self.exit_code,
            stdout=self.stdout,
            stderr=self.stderr,
        )


class RecordingReporter:
    """In-memory incident sink."""

    def __init__(self) -> None:
        self.incidents: list[SecurityIncident] = []

    def report_incident(self, incident_type, severity, details, context=""):  # type: ignore[no-untyped-def]
        incident = SecurityIncident(
            incident_id=f"rec{len(self.incidents)}",
            type=incident_type,
            severity=Severity.parse(severity),
            timestamp=NOW,
            context=context,
            details=details,
        )
        self.incidents.append(incident)
        return incident


@pytest.fixture
def config(tmp_path: Path) -> SecurityConfig:
    """Config with every directory below the test's tmp_path."""
    return SecurityConfig.rooted_at(tmp_path / "root")


@pytest.fixture
def recorder() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def guard(config: SecurityConfig, recorder: RecordingReporter) -> PathGuard:
    """A guard that reports into ``recorder``."""
    return PathGuard(config=config, reporter=recorder)


@pytest.fixture
def store(config: SecurityConfig) -> SecureFileStore:
    return SecureFileStore(config=config)


@pytest.fixture
def reporter(config: SecurityConfig) -> IncidentReporter:
    """A real reporter with a fixed clock."""
    return IncidentReporter(config=config, clock=lambda: NOW.replace(tzinfo=timezone.utc))


@pytest.fixture
def gate(config: SecurityConfig, fake_runner: FakeRunner, recorder: RecordingReporter) -> CommandGate:
    return CommandGate(CommandPolicy.default(), runner=fake_runner, reporter=recorder, config=config)


@pytest.fixture
def signing_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture
def validator_factory(config: SecurityConfig) -> Callable[..., LicenseValidator]:
    """Build validators whose clock reads ``now`` (default NOW)."""

    def make(now: datetime = NOW) -> LicenseValidator:
        return LicenseValidator(config=config, clock=lambda: now)

    return make


@pytest.fixture
def licenses(validator_factory: Callable[..., LicenseValidator]) -> LicenseValidator:
    return validator_factory()


@pytest.fixture
def pdf_file(tmp_path: Path) -> Path:
    """A small file with a PDF header."""
    path = tmp_path / "input.pdf"
    path.write_bytes(b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n")
    return path
