"""
Input validation helpers: allowed values, numbers, emails, extensions,
PDF files, file permissions, and sanitizing text for audit records.
"""

from __future__ import annotations

import logging
import os
import re
import stat
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from compresskit.errors import CompressKitError

if TYPE_CHECKING:
    from compresskit._types import PathPolicy, ValidatedPath
    from compresskit.security.paths import PathGuard

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
MAX_DISPLAY_CHARS = 200

_EMAIL_RX = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
_NUMERIC_RX = re.compile(r"^[0-9]+$")
# Anything outside alphanumerics, spaces and basic punctuation is dropped
_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9 _.,:;?!@#%^*()\[\]{}+=/-]")
_USUAL_UMASKS = (0o022, 0o027, 0o077)


class ValidationError(CompressKitError, ValueError):
    """Raised when user-facing input fails validation."""


def sanitize_string(value: str, *, max_length: int = 2000) -> str:
    """
    Strip characters that could carry markup, escapes or shell syntax.

    Backticks, ``$`` and backslashes never survive; neither do newlines, so a
    sanitized value cannot forge extra lines in a record.
    """
    cleaned = _UNSAFE_CHARS.sub("", value)
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length] + "...[truncated]"
    return cleaned


def safe_repr(value: str, *, max_length: int = MAX_DISPLAY_CHARS) -> str:
    """Quoted, escaped and length-capped rendering of untrusted input for messages."""
    if len(value) > max_length:
        return repr(value[:max_length]) + f"...(+{len(value) - max_length} chars)"
    return repr(value)


def validate_input(value: str, allowed: Iterable[str]) -> str:
    """Ensure ``value`` is exactly one of ``allowed``. Returns it for convenience."""
    options = list(allowed)
    if not value:
        raise ValidationError("empty input provided for validation")
    if value not in options:
        raise ValidationError(f"invalid input {safe_repr(value)}; allowed values: {', '.join(options)}")
    return value


def validate_numeric(value: str | int, minimum: int | None = None, maximum: int | None = None) -> int:
    """Parse a non-negative integer and check its bounds."""
    text = str(value).strip()
    if not _NUMERIC_RX.match(text):
        raise ValidationError(f"input must be a positive integer: {safe_repr(text)}")
    number = int(text)
    if minimum is not None and number < minimum:
        raise ValidationError(f"value must be at least {minimum}: {number}")
    if maximum is not None and number > maximum:
        raise ValidationError(f"value must be at most {maximum}: {number}")
    return number


def validate_email(address: str) -> str:
    if not _EMAIL_RX.match(address):
        raise ValidationError(f"invalid email address format: {safe_repr(address)}")
    return address


def validate_file_extension(path: str | os.PathLike[str], *extensions: str) -> str:
    """
    Ensure the file has one of ``extensions`` (case-insensitive, dot optional).

    Returns the normalized extension without its dot.
    """
    allowed = {ext.lower().lstrip(".") for ext in extensions}
    ext = Path(path).suffix.lower().lstrip(".")
    if ext not in allowed:
        raise ValidationError(
            f"invalid file extension .{ext}; allowed: {', '.join(sorted(allowed))}"
        )
    return ext


def validate_pdf(
    path: str | os.PathLike[str],
    guard: PathGuard,
    policy: PathPolicy | str = "strict",
) -> ValidatedPath:
    """
    Validate an input PDF: safe path, readable non-empty regular file,
    ``.pdf`` extension and a ``%PDF`` header.

    Raises:
        PathError: If the path itself is rejected.
        ValidationError: If the file is not a usable PDF.
    """
    safe = guard.validate_path(path, policy)
    if not os.path.exists(safe):
        raise ValidationError(f"file does not exist: {safe}")
    if not os.path.isfile(safe):
        raise ValidationError(f"not a regular file: {safe}")
    if not os.access(safe, os.R_OK):
        raise ValidationError(f"file is not readable: {safe}")
    if os.path.getsize(safe) == 0:
        raise ValidationError(f"file is empty: {safe}")
    validate_file_extension(safe, "pdf")
    with open(safe, "rb") as fh:
        header = fh.read(len(PDF_MAGIC))
    if header != PDF_MAGIC:
        raise ValidationError(f"file is not a valid PDF (missing PDF header): {safe}")
    return safe


def check_file_permissions(path: str | os.PathLike[str], required: int) -> bool:
    """
    Return True if the file's permission bits grant nothing beyond ``required``.

    ``check_file_permissions(p, 0o600)`` is True for 0600 and 0400, False for 0644.
    """
    mode = stat.S_IMODE(os.stat(path).st_mode)
    if mode & ~required:
        logger.warning(f"File has insecure permissions: {path} ({mode:o} exceeds {required:o})")
        return False
    return True


def check_environment() -> list[str]:
    """
    Look for risky process settings and return a warning per finding.

    Running as root and unusual umask values are reported; nothing is changed.
    """
    findings = []
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        findings.append("running as root is not recommended")
    current = os.umask(0o022)
    os.umask(current)
    if current not in _USUAL_UMASKS:
        findings.append(f"unusual umask setting detected: {current:04o}")
    for finding in findings:
        logger.warning(finding)
    return findings


__all__ = [
    "ValidationError",
    "check_environment",
    "check_file_permissions",
    "safe_repr",
    "sanitize_string",
    "validate_email",
    "validate_file_extension",
    "validate_input",
    "validate_numeric",
    "validate_pdf",
]
