"""
How the external PDF engine may be invoked.

Builds Ghostscript argument vectors for the supported quality levels and
runs them through CommandGate after validating both paths and, for the
licensed level, the license.
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from typing import TYPE_CHECKING

from compresskit._types import PathPolicy
from compresskit.security.validators import ValidationError, validate_pdf

if TYPE_CHECKING:
    from compresskit._types import ExecutionResult
    from compresskit.gate import CommandGate
    from compresskit.license import LicenseValidator
    from compresskit.security.paths import PathGuard

logger = logging.getLogger(__name__)

ENGINE = "gs"
LICENSED_FEATURE = "ultra_compression"


class QualityLevel(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    ULTRA = "ultra"

    @property
    def requires_license(self) -> bool:
        return self is QualityLevel.ULTRA


_QUALITY_FLAGS: dict[QualityLevel, tuple[str, ...]] = {
    QualityLevel.HIGH: ("-dPDFSETTINGS=/prepress", "-dColorImageResolution=300"),
    QualityLevel.MEDIUM: ("-dPDFSETTINGS=/ebook", "-dColorImageResolution=150"),
    QualityLevel.LOW: ("-dPDFSETTINGS=/screen", "-dColorImageResolution=72"),
    QualityLevel.ULTRA: (
        "-dPDFSETTINGS=/screen",
        "-dColorImageResolution=50",
        "-dGrayImageResolution=50",
        "-dMonoImageResolution=150",
        "-dDownsampleColorImages=true",
        "-dColorImageDownsampleType=/Bicubic",
        "-dDetectDuplicateImages=true",
        "-dCompressFonts=true",
    ),
}


def ghostscript_args(
    input_path: str | os.PathLike[str],
    output_path: str | os.PathLike[str],
    quality: QualityLevel | str = QualityLevel.MEDIUM,
) -> list[str]:
    """Argument vector (without the program name) for one compression run."""
    level = QualityLevel(quality) if not isinstance(quality, QualityLevel) else quality
    return [
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.4",
        *_QUALITY_FLAGS[level],
        "-dNOPAUSE",
        "-dQUIET",
        "-dBATCH",
        "-dSAFER",
        f"-sOutputFile={os.fspath(output_path)}",
        os.fspath(input_path),
    ]


def compress_pdf(
    input_path: str | os.PathLike[str],
    output_path: str | os.PathLike[str],
    quality: QualityLevel | str = QualityLevel.MEDIUM,
    *,
    guard: PathGuard,
    gate: CommandGate,
    licenses: LicenseValidator,
) -> ExecutionResult:
    """
    Validate, gate and run one compression.

    Raises:
        ValidationError: For an unknown quality level, an unusable input
            PDF, or an unlicensed quality level.
        PathError: If either path is rejected.
        CommandError: If the engine is refused, cannot start, or fails.
    """
    try:
        level = QualityLevel(quality) if not isinstance(quality, QualityLevel) else quality
    except ValueError:
        allowed = ", ".join(q.value for q in QualityLevel)
        raise ValidationError(f"invalid quality level {quality!r}; must be one of: {allowed}") from None

    if level.requires_license and not licenses.is_feature_licensed(LICENSED_FEATURE):
        raise ValidationError("ultra compression requires a premium license")

    source = validate_pdf(input_path, guard, PathPolicy.STRICT)
    target = guard.validate_path(output_path, PathPolicy.STRICT)
    if source == target:
        raise ValidationError("input and output must be different files")

    logger.info(f"Compressing {source} -> {target} at {level.value} quality")
    return gate.execute(ENGINE, ghostscript_args(source, target, level), check=True)


__all__ = [
    "QualityLevel",
    "compress_pdf",
    "ghostscript_args",
]
