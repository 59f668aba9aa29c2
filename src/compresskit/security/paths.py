"""
Path safety: canonicalize untrusted path strings under a tiered policy.

Rejections happen in a fixed order. Everything that can be decided from the
raw string (emptiness, NUL bytes, traversal segments, percent-encoded
traversal) is decided before the string reaches any filesystem call; only
then is the path resolved and checked against the policy.
"""

from __future__ import annotations

import logging
import os
import re
from typing import TYPE_CHECKING
from urllib.parse import unquote

from compresskit._types import PathPolicy, Severity, ValidatedPath
from compresskit.config import CONFIG, SecurityConfig
from compresskit.errors import CompressKitError, PathError, PathErrorKind
from compresskit.security.validators import safe_repr

if TYPE_CHECKING:
    from compresskit._types import IncidentSink

logger = logging.getLogger(__name__)

# A ".." segment, a "." segment in the middle, or a trailing "/." ("\" counts as a separator)
_TRAVERSAL = re.compile(r"(?:^|[/\\])\.\.(?:$|[/\\])|[/\\]\.[/\\]|[/\\]\.$")
_ENCODED_MARKERS = re.compile(r"%2e|%00", re.IGNORECASE)


def _has_traversal(value: str) -> bool:
    return bool(_TRAVERSAL.search(value))


def _is_within(path: str, root: str) -> bool:
    root = root.rstrip("/") or "/"
    if root == "/":
        return True
    return path == root or path.startswith(root + "/")


def _symlink_components(lexical: str) -> list[str]:
    """Return every prefix of an absolute lexical path that is a symlink."""
    links = []
    current = ""
    for part in lexical.split("/"):
        if not part:
            continue
        current = f"{current}/{part}"
        if os.path.islink(current):
            links.append(current)
    return links


class PathGuard:
    """
    Validates paths against a PathPolicy.

    Attack-like rejections are reported to ``reporter`` (if given) with HIGH
    severity before the PathError propagates. Benign ones (an empty string, a
    path that cannot be resolved) are raised without escalation.

    Example:
        >>> guard = PathGuard()
        >>> guard.validate_path("/tmp/report.pdf")
        ValidatedPath('/tmp/report.pdf', STRICT)
    """

    def __init__(
        self,
        *,
        config: SecurityConfig = CONFIG,
        reporter: IncidentSink | None = None,
    ) -> None:
        self._config = config
        self._reporter = reporter

    @property
    def config(self) -> SecurityConfig:
        return self._config

    def validate_path(
        self, raw: str | os.PathLike[str], policy: PathPolicy | str = PathPolicy.STRICT
    ) -> ValidatedPath:
        """
        Canonicalize ``raw`` and apply ``policy``.

        Args:
            raw: Untrusted path string (absolute or relative to the cwd).
            policy: STRICT (default), NORMAL or RELAXED.

        Returns:
            The absolute, symlink-resolved path.

        Raises:
            PathError: With the kind describing the first failed check.
            ConfigurationError: If ``policy`` names no known level.
        """
        policy = PathPolicy.parse(policy)
        value = os.fspath(raw)

        if not value:
            raise self._reject(PathErrorKind.EMPTY, "empty path provided", value, policy)
        if "\0" in value:
            raise self._reject(PathErrorKind.NULL_BYTE, "path contains a NUL byte", value, policy)
        if _has_traversal(value):
            raise self._reject(
                PathErrorKind.TRAVERSAL_ATTEMPT,
                "path contains forbidden traversal components",
                value,
                policy,
            )
        if self._is_encoded_traversal(value):
            raise self._reject(
                PathErrorKind.ENCODED_TRAVERSAL,
                "path contains percent-encoded traversal components",
                value,
                policy,
            )

        try:
            lexical = os.path.abspath(value)
            resolved = os.path.realpath(lexical)
        except (OSError, ValueError) as exc:
            raise self._reject(
                PathErrorKind.RESOLUTION_FAILED, f"failed to resolve path ({exc})", value, policy
            ) from exc

        # Input is clean here; markers come from the cwd or a symlink target
        if self._is_encoded_traversal(resolved):
            raise self._reject(
                PathErrorKind.RESOLUTION_FAILED,
                "path resolves to a location containing a percent-encoded component",
                value,
                policy,
            )

        if policy is PathPolicy.STRICT:
            self._check_strict(value, lexical, resolved, policy)
        elif policy is PathPolicy.NORMAL:
            if resolved == self._config.critical_file:
                raise self._reject(
                    PathErrorKind.SENSITIVE_PATH_DENIED,
                    "access to the shadow file is prohibited",
                    value,
                    policy,
                )

        return ValidatedPath(resolved, policy)

    def is_path_safe(self, raw: str | os.PathLike[str], policy: PathPolicy | str = PathPolicy.STRICT) -> bool:
        """Yes/no variant of validate_path; rejections are still reported."""
        try:
            self.validate_path(raw, policy)
        except PathError:
            return False
        return True

    def _check_strict(self, raw: str, lexical: str, resolved: str, policy: PathPolicy) -> None:
        """
        Refuse sensitive files, and any symlinked spelling of a path that
        lands in a sensitive directory.

        Every symlink in the lexical path counts, system ones included: on a
        merged-/usr layout ``/bin`` links to ``/usr/bin``, so ``/bin/ls`` is a
        SYMLINK_POLICY_VIOLATION under STRICT while ``/usr/bin/ls`` is not.
        NORMAL and RELAXED accept both.
        """
        in_sensitive_dir = any(_is_within(resolved, d) for d in self._config.sensitive_dirs)
        if in_sensitive_dir and _symlink_components(lexical):
            raise self._reject(
                PathErrorKind.SYMLINK_POLICY_VIOLATION,
                "symlinks not allowed into sensitive directories",
                raw,
                policy,
            )
        for forbidden in self._config.sensitive_files:
            if resolved.startswith(forbidden):
                raise self._reject(
                    PathErrorKind.SENSITIVE_PATH_DENIED,
                    "access to sensitive system file prohibited",
                    raw,
                    policy,
                )

    @staticmethod
    def _is_encoded_traversal(value: str) -> bool:
        if _ENCODED_MARKERS.search(value):
            return True
        decoded = unquote(value)
        if decoded == value:
            return False
        # One decode of a double encoding ("%252e") still leaves a marker
        return "\0" in decoded or _has_traversal(decoded) or bool(_ENCODED_MARKERS.search(decoded))

    def _reject(self, kind: PathErrorKind, message: str, raw: str, policy: PathPolicy) -> PathError:
        shown = safe_repr(raw)
        error = PathError(kind, f"{message}: {shown}", path=shown)
        if kind.is_attack:
            logger.warning(f"Security violation ({kind.value}, {policy.value}): {shown}")
            self._escalate(kind, shown, policy)
        else:
            logger.info(f"Path rejected ({kind.value}): {shown}")
        return error

    def _escalate(self, kind: PathErrorKind, shown: str, policy: PathPolicy) -> None:
        if self._reporter is None:
            return
        try:
            self._reporter.report_incident(
                kind.value,
                Severity.HIGH,
                f"policy={policy.value} path={shown}",
                context="PathGuard.validate_path",
            )
        except CompressKitError:
            logger.exception("Failed to record path incident")


__all__ = [
    "PathGuard",
]
