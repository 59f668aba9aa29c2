"""
Command policy: the closed allowlist of external programs and the argument
schema each one must satisfy.

A policy is built once, explicitly, and handed to CommandGate. It is never
derived from user input and cannot be changed after construction.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

# A file operand for the PDF programs: any name a user might give a document
# ("My Report (1), final.pdf"). It may not start with "-" (a flag), "%" or "|"
# (Ghostscript device and pipe prefixes) or "@" (an argument file), and no
# space inside it may be followed by such a token, so nothing can be smuggled
# in as an extra argument through the space-joined string.
_FILE = r"[^\s\-%|@](?:\S| (?!-\S|-$|[%|@]))*"

# A plain path for the filesystem utilities
_PATH = r"[\w.+/][\w.+/-]*"

_GS_FLAG = (
    r"-(?:dNOPAUSE|dQUIET|dBATCH|dSAFER"
    r"|sDEVICE=pdfwrite"
    r"|dCompatibilityLevel=1\.[3-7]"
    r"|dPDFSETTINGS=/(?:screen|ebook|printer|prepress|default)"
    r"|d(?:Color|Gray|Mono)ImageResolution=[0-9]{1,4}"
    r"|dDownsample(?:Color|Gray|Mono)Images=(?:true|false)"
    r"|d(?:Color|Gray|Mono)ImageDownsampleType=/(?:Bicubic|Average|Subsample)"
    r"|dDetectDuplicateImages=(?:true|false)"
    r"|dCompressFonts=(?:true|false)"
    rf"|sOutputFile={_FILE})"
)
_QPDF_FLAG = (
    r"--(?:linearize|recompress-flate|check|show-npages|version"
    r"|object-streams=(?:generate|preserve|disable)"
    r"|compress-streams=[yn]"
    r"|compression-level=[0-9])"
)
_PDFINFO_FLAG = r"-(?:meta|box|isodates|v)"


def _sequence(token: str) -> str:
    return rf"{token}(?: {token})*"


GS_PATTERN = rf"--version|(?:{_GS_FLAG} )+{_FILE}"
QPDF_PATTERN = rf"--version|(?:{_QPDF_FLAG} )*{_FILE}(?: {_FILE})?"
PDFINFO_PATTERN = rf"(?:{_PDFINFO_FLAG} )*{_FILE}|-v"
CONVERT_PATTERN = r".+"
MKDIR_PATTERN = rf"(?:-p )?{_sequence(_PATH)}"
CP_PATTERN = rf"(?:-[raf] )?{_PATH} {_PATH}"
CHMOD_PATTERN = rf"[0-7]{{3,4}} {_sequence(_PATH)}"


@dataclass(frozen=True)
class CommandSpec:
    """
    One allowlisted program.

    Attributes:
        program: Exact program name as it must be requested.
        pattern: Regex the space-joined argument string must fully match.
        description: Human-readable purpose.
        catch_all: True when the pattern accepts any non-empty argument string.
            CommandGate logs a warning every time one authorizes a call.
    """

    program: str
    pattern: re.Pattern[str]
    description: str = ""
    catch_all: bool = False

    @classmethod
    def build(
        cls, program: str, pattern: str, description: str = "", *, catch_all: bool = False
    ) -> CommandSpec:
        return cls(program, re.compile(pattern), description, catch_all)

    def accepts(self, args: Iterable[str]) -> bool:
        """Return True if the joined argument string matches this program's schema."""
        return self.pattern.fullmatch(" ".join(args)) is not None


class CommandPolicy(Mapping[str, CommandSpec]):
    """
    Immutable mapping of program name to CommandSpec.

    Example:
        >>> policy = CommandPolicy.default()
        >>> "gs" in policy, "rm" in policy
        (True, False)
    """

    def __init__(self, specs: Iterable[CommandSpec]) -> None:
        table: dict[str, CommandSpec] = {}
        for spec in specs:
            if spec.program in table:
                raise ValueError(f"duplicate command spec for {spec.program!r}")
            table[spec.program] = spec
        self._specs = MappingProxyType(table)

    def __getitem__(self, program: str) -> CommandSpec:
        return self._specs[program]

    def __iter__(self) -> Iterator[str]:
        return iter(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __repr__(self) -> str:
        return f"CommandPolicy({sorted(self._specs)})"

    @classmethod
    def default(cls) -> CommandPolicy:
        """
        The standard allowlist: the PDF engine, structural PDF tools, an image
        tool and a few filesystem utilities.

        ``rm`` and ``mv`` are not allowlisted; deletion and renames go
        through SecureFileStore.
        """
        return cls(
            [
                CommandSpec.build("gs", GS_PATTERN, "Ghostscript PDF engine"),
                CommandSpec.build("ghostscript", GS_PATTERN, "Ghostscript PDF engine"),
                CommandSpec.build("qpdf", QPDF_PATTERN, "Structural PDF transformations"),
                CommandSpec.build("pdfinfo", PDFINFO_PATTERN, "PDF metadata inspection"),
                CommandSpec.build(
                    "convert", CONVERT_PATTERN, "ImageMagick image conversion", catch_all=True
                ),
                CommandSpec.build("mkdir", MKDIR_PATTERN, "Create directories"),
                CommandSpec.build("cp", CP_PATTERN, "Copy a file"),
                CommandSpec.build("chmod", CHMOD_PATTERN, "Set numeric permissions"),
            ]
        )

    def without(self, *programs: str) -> CommandPolicy:
        """Return a new policy with ``programs`` removed."""
        return CommandPolicy(spec for name, spec in self._specs.items() if name not in programs)

    def with_specs(self, *specs: CommandSpec) -> CommandPolicy:
        """Return a new policy extended with ``specs``."""
        return CommandPolicy([*self._specs.values(), *specs])
