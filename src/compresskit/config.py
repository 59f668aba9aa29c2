"""
Central security configuration (trusted-only).

Values are overridable via environment variables at deploy time, not per-request.
Untrusted user input must never be used to set these.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

DEFAULT_SENSITIVE_DIRS = ("/etc", "/bin", "/sbin", "/usr", "/lib")
DEFAULT_SENSITIVE_FILES = ("/etc/shadow", "/etc/passwd", "/etc/sudoers")
DEFAULT_CRITICAL_FILE = "/etc/shadow"
DEFAULT_COMMAND_TIMEOUT = 300.0
DEFAULT_MAX_OUTPUT_BYTES = 30_000


def _split_paths(val: str | None, default: Iterable[str]) -> tuple[str, ...]:
    if not val:
        return tuple(default)
    parts = []
    for item in val.split(","):
        item = item.strip().rstrip("/")
        if item:
            parts.append(item)
    return tuple(parts) or tuple(default)


def _number(val: str | None, default: float) -> float:
    if not val:
        return default
    try:
        number = float(val)
    except ValueError:
        return default
    return number if number > 0 else default


@dataclass(frozen=True)
class SecurityConfig:
    """
    Locations and limits used by every component.

    Attributes:
        home_dir: Per-user data directory (incident records live below it).
        config_dir: Directory holding the license record, signature and key.
        temp_dir: Private, owner-only directory for temporary files.
        incident_dir: Owner-only directory for incident records.
        command_timeout: Seconds before an external program is killed.
        max_output_bytes: Captured stdout/stderr are truncated beyond this.
        sensitive_dirs: Directories a symlink may not lead into under STRICT.
        sensitive_files: Files denied outright under STRICT.
        critical_file: The single file denied under NORMAL.
    """

    home_dir: Path
    config_dir: Path
    temp_dir: Path
    incident_dir: Path
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    sensitive_dirs: tuple[str, ...] = DEFAULT_SENSITIVE_DIRS
    sensitive_files: tuple[str, ...] = DEFAULT_SENSITIVE_FILES
    critical_file: str = DEFAULT_CRITICAL_FILE

    @property
    def license_file(self) -> Path:
        return self.config_dir / "license.key"

    @property
    def signature_file(self) -> Path:
        return self.config_dir / "license.sig"

    @property
    def public_key_file(self) -> Path:
        return self.config_dir / "public.key"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> SecurityConfig:
        """Build a config from COMPRESSKIT_* environment variables."""
        env = os.environ if environ is None else environ
        user_home = Path(env.get("HOME") or Path.home())

        home_dir = Path(env.get("COMPRESSKIT_HOME") or user_home / ".compresskit")
        config_dir = Path(
            env.get("COMPRESSKIT_CONFIG_DIR") or user_home / ".config" / "compresskit"
        )
        temp_root = env.get("TMPDIR") or tempfile.gettempdir()
        temp_dir = Path(env.get("COMPRESSKIT_TEMP_DIR") or Path(temp_root) / "compresskit_secure")
        incident_dir = Path(
            env.get("COMPRESSKIT_INCIDENT_DIR") or home_dir / "security" / "incidents"
        )

        return cls(
            home_dir=home_dir,
            config_dir=config_dir,
            temp_dir=temp_dir,
            incident_dir=incident_dir,
            command_timeout=_number(env.get("COMPRESSKIT_COMMAND_TIMEOUT"), DEFAULT_COMMAND_TIMEOUT),
            max_output_bytes=int(
                _number(env.get("COMPRESSKIT_MAX_OUTPUT_BYTES"), DEFAULT_MAX_OUTPUT_BYTES)
            ),
            sensitive_dirs=_split_paths(env.get("COMPRESSKIT_SENSITIVE_DIRS"), DEFAULT_SENSITIVE_DIRS),
            sensitive_files=_split_paths(
                env.get("COMPRESSKIT_SENSITIVE_FILES"), DEFAULT_SENSITIVE_FILES
            ),
            critical_file=(env.get("COMPRESSKIT_CRITICAL_FILE") or DEFAULT_CRITICAL_FILE).rstrip("/"),
        )

    @classmethod
    def rooted_at(cls, root: Path | str, **overrides: object) -> SecurityConfig:
        """Config with every directory below ``root``; handy for tests and sandboxes."""
        base = Path(root)
        values: dict[str, object] = {
            "home_dir": base / "home",
            "config_dir": base / "config",
            "temp_dir": base / "tmp" / "compresskit_secure",
            "incident_dir": base / "home" / "security" / "incidents",
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]


CONFIG = SecurityConfig.from_env()

__all__ = [
    "CONFIG",
    "SecurityConfig",
]
