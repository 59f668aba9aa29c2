"""
compresskit: the trust-and-safety layer of a PDF size-reduction toolkit.

Path validation, allowlisted command execution, secure temp files and
atomic writes, license validation and security incident records.
"""

from compresskit._types import (
    ExecutionRequest,
    ExecutionResult,
    PathPolicy,
    SecurityIncident,
    Severity,
    TempState,
    ValidatedPath,
)
from compresskit.api import SecurityToolkit, create_toolkit
from compresskit.config import CONFIG, SecurityConfig
from compresskit.engine import QualityLevel, compress_pdf, ghostscript_args
from compresskit.errors import (
    CommandError,
    CommandErrorKind,
    CompressKitError,
    ConfigurationError,
    PathError,
    PathErrorKind,
    StoreError,
    StoreErrorKind,
)
from compresskit.gate import CommandGate
from compresskit.incidents import IncidentReporter
from compresskit.license import License, LicenseStatus, LicenseType, LicenseValidator
from compresskit.runner import LocalRunner, ProcessRunner
from compresskit.security import CommandPolicy, CommandSpec, PathGuard, ValidationError
from compresskit.storage import SecureFileStore, TempResource

__version__ = "1.0.1"

__all__ = [
    "CONFIG",
    "CommandError",
    "CommandErrorKind",
    "CommandGate",
    "CommandPolicy",
    "CommandSpec",
    "CompressKitError",
    "ConfigurationError",
    "ExecutionRequest",
    "ExecutionResult",
    "IncidentReporter",
    "License",
    "LicenseStatus",
    "LicenseType",
    "LicenseValidator",
    "LocalRunner",
    "PathError",
    "PathErrorKind",
    "PathGuard",
    "PathPolicy",
    "ProcessRunner",
    "QualityLevel",
    "SecureFileStore",
    "SecurityConfig",
    "SecurityIncident",
    "SecurityToolkit",
    "Severity",
    "StoreError",
    "StoreErrorKind",
    "TempResource",
    "TempState",
    "ValidatedPath",
    "ValidationError",
    "compress_pdf",
    "create_toolkit",
    "ghostscript_args",
]
