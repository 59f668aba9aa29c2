"""Security module for compresskit."""

from compresskit.security.paths import PathGuard
from compresskit.security.policy import CommandPolicy, CommandSpec
from compresskit.security.validators import ValidationError, sanitize_string

__all__ = ["CommandPolicy", "CommandSpec", "PathGuard", "ValidationError", "sanitize_string"]
