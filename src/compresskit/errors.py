"""
Exception hierarchy.

Every component raises a typed error whose ``kind`` names the exact reason,
so callers branch on enums rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class CompressKitError(Exception):
    """Base class for all compresskit errors."""


class ConfigurationError(CompressKitError):
    """Raised when a component is given an invalid setting."""


class PathErrorKind(Enum):
    EMPTY = "empty"
    NULL_BYTE = "null_byte"
    TRAVERSAL_ATTEMPT = "traversal_attempt"
    ENCODED_TRAVERSAL = "encoded_traversal"
    RESOLUTION_FAILED = "resolution_failed"
    SYMLINK_POLICY_VIOLATION = "symlink_policy_violation"
    SENSITIVE_PATH_DENIED = "sensitive_path_denied"

    @property
    def is_attack(self) -> bool:
        """True if this rejection indicates a hostile input rather than a mistake."""
        return self not in (PathErrorKind.EMPTY, PathErrorKind.RESOLUTION_FAILED)


class CommandErrorKind(Enum):
    NOT_ALLOWED = "not_allowed"
    ARGUMENT_REJECTED = "argument_rejected"
    SPAWN_FAILED = "spawn_failed"
    NON_ZERO_EXIT = "non_zero_exit"

    @property
    def is_attack(self) -> bool:
        return self in (CommandErrorKind.NOT_ALLOWED, CommandErrorKind.ARGUMENT_REJECTED)


class StoreErrorKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    CREATE_FAILED = "create_failed"

    @property
    def is_attack(self) -> bool:
        return False


class PathError(CompressKitError):
    """
    Raised when a path fails validation.

    Attributes:
        kind: Why the path was rejected.
        path: A safe-to-display rendering of the rejected input.
    """

    def __init__(self, kind: PathErrorKind, message: str, path: str = "") -> None:
        self.kind = kind
        self.path = path
        super().__init__(f"Path rejected ({kind.value}): {message}")


class CommandError(CompressKitError):
    """
    Raised when a command is refused or fails.

    Attributes:
        kind: Why the command was refused or how it failed.
        program: The program name (as requested).
        exit_code: Exit status for NON_ZERO_EXIT, otherwise None.
    """

    def __init__(
        self,
        kind: CommandErrorKind,
        message: str,
        *,
        program: str = "",
        exit_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.program = program
        self.exit_code = exit_code
        super().__init__(f"Command error ({kind.value}): {message}")


class StoreError(CompressKitError):
    """
    Raised when a secure file operation fails.

    Attributes:
        kind: Category of the I/O failure.
        path: The file or directory involved.
    """

    def __init__(self, kind: StoreErrorKind, message: str, path: str = "") -> None:
        self.kind = kind
        self.path = path
        super().__init__(f"File operation failed ({kind.value}): {message}")
