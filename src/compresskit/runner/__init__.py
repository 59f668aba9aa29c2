"""
Process runner backends.
"""

from compresskit.runner._base import ProcessRunner
from compresskit.runner.local import LocalRunner

__all__ = [
    "LocalRunner",
    "ProcessRunner",
]
