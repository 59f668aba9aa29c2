"""Tests for the create_toolkit API."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from compresskit import (
    CommandError,
    CommandErrorKind,
    LicenseStatus,
    PathError,
    SecurityToolkit,
    Severity,
    create_toolkit,
)


@pytest.fixture
def toolkit(tmp_path: Path, fake_runner) -> SecurityToolkit:
    return create_toolkit(root=tmp_path / "state", runner=fake_runner)


class TestCreateToolkit:
    """Tests for the create_toolkit factory function."""

    def test_components_share_config(self, toolkit: SecurityToolkit, tmp_path: Path) -> None:
        assert toolkit.reporter.incident_dir == tmp_path / "state" / "home" / "security" / "incidents"
        assert toolkit.store.temp_dir == tmp_path / "state" / "tmp" / "compresskit_secure"

    def test_default_policy(self, toolkit: SecurityToolkit) -> None:
        assert "gs" in toolkit.gate.policy
        assert "rm" not in toolkit.gate.policy

    def test_explicit_timeout(self, tmp_path: Path, fake_runner) -> None:
        toolkit = create_toolkit(root=tmp_path, runner=fake_runner, timeout=7)
        toolkit.execute("gs", ["--version"])
        assert fake_runner.calls[0][1] == 7


class TestEndToEnd:
    """The toolkit's operations wired together."""

    def test_traversal_is_rejected_and_recorded(self, toolkit: SecurityToolkit) -> None:
        with pytest.raises(PathError):
            toolkit.validate_path("../../etc/passwd")
        assert toolkit.reporter.incident_metrics()[Severity.HIGH] == 1

    def test_disallowed_command_is_rejected_and_recorded(self, toolkit: SecurityToolkit, fake_runner) -> None:
        with pytest.raises(CommandError) as exc_info:
            toolkit.execute("rm", ["-rf", "/"])
        assert exc_info.value.kind is CommandErrorKind.NOT_ALLOWED
        assert fake_runner.calls == []
        files = toolkit.reporter.incident_files()
        assert len(files) == 1
        assert "Incident Type: not_allowed" in files[0].read_text()

    def test_allowed_command_runs(self, toolkit: SecurityToolkit, fake_runner) -> None:
        fake_runner.stdout = "10.02.1\n"
        result = toolkit.execute("gs", ["--version"])
        assert result.stdout == "10.02.1\n"
        assert toolkit.reporter.incident_files() == []

    def test_temp_lifecycle(self, toolkit: SecurityToolkit) -> None:
        resource = toolkit.create_temp("job")
        assert stat.S_IMODE(os.stat(resource.path).st_mode) == 0o600
        toolkit.release(resource)
        toolkit.release(resource)
        assert not os.path.exists(resource.path)

    def test_atomic_write(self, toolkit: SecurityToolkit, tmp_path: Path) -> None:
        target = toolkit.atomic_write(str(tmp_path / "report.txt"), b"summary")
        assert Path(target).read_bytes() == b"summary"

    def test_atomic_write_rejects_traversal(self, toolkit: SecurityToolkit) -> None:
        with pytest.raises(PathError):
            toolkit.atomic_write("../report.txt", b"x")

    def test_no_license(self, toolkit: SecurityToolkit) -> None:
        assert toolkit.validate_license() is LicenseStatus.MISSING
        assert not toolkit.is_feature_licensed("ultra_compression")

    def test_manual_incident(self, toolkit: SecurityToolkit) -> None:
        incident = toolkit.report_incident("license_tamper", "critical", "signature mismatch", "startup")
        assert incident.severity is Severity.CRITICAL
        assert toolkit.reporter.incident_metrics()[Severity.CRITICAL] == 1
