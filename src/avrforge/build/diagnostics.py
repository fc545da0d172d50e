"""
Compiler and linker diagnostic parsing.

GCC and binutils report problems as text. This module turns that text into
CompilerProblem records so callers can show file/line locations, and decides
whether output contains a non-warning diagnostic.

Recognized forms:
    src/main.cpp:12:5: error: 'foo' was not declared in this scope
    src/main.cpp:12: warning: unused variable
    error: unrecognized command-line option
    main.cpp:6:(.text.setup+0x0): undefined reference to `pins_init_all()'
    avr-ld: region `text' overflowed by 112 bytes
"""

import re
from dataclasses import dataclass
from typing import List, Optional

_LOCATED = re.compile(r"^(.+?):(\d+)(?::(\d+))?:\s*(fatal error|error|warning):\s*(.+)$", re.IGNORECASE)
_BARE = re.compile(r"^(?:[\w.+\-/]+:\s*)?(fatal error|error|warning):\s*(.+)$", re.IGNORECASE)
_LINKER_LOCATED = re.compile(r"([^\s:]+\.(?:cpp|cc|c|hpp|h|S)):(\d+):[^:]*:\s*(.+)$")
_COMMAND_ECHO = re.compile(r"^(?:Command failed:|avr-gcc\s|avr-g\+\+\s|avr-objcopy\s)")

# Linker failures that do not carry an "error:" prefix
_LINKER_FATAL = (
    "undefined reference",
    "multiple definition",
    "will not fit in region",
    "overflowed by",
    "cannot find -l",
    "no such file or directory",
)


@dataclass(frozen=True)
class CompilerProblem:
    """One diagnostic extracted from tool output."""

    severity: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def __str__(self) -> str:
        location = ""
        if self.file:
            location = self.file
            if self.line is not None:
                location += f":{self.line}"
                if self.column is not None:
                    location += f":{self.column}"
            location += ": "
        return f"{location}{self.severity}: {self.message}"


def _severity(word: str) -> str:
    return "warning" if word.lower() == "warning" else "error"


def parse_problems(output: str) -> List[CompilerProblem]:
    """
    Extract diagnostics from compiler/linker output.

    Args:
        output: Combined stdout/stderr text

    Returns:
        Problems in output order
    """
    problems: List[CompilerProblem] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or _COMMAND_ECHO.match(line):
            continue

        match = _LOCATED.match(line)
        if match:
            file, line_no, column, severity, message = match.groups()
            problems.append(CompilerProblem(
                severity=_severity(severity),
                message=message.strip(),
                file=file.strip(),
                line=int(line_no),
                column=int(column) if column else None,
            ))
            continue

        lowered = line.lower()
        if any(marker in lowered for marker in _LINKER_FATAL):
            located = _LINKER_LOCATED.search(line)
            if located:
                problems.append(CompilerProblem(
                    severity="error",
                    message=located.group(3).strip(),
                    file=located.group(1),
                    line=int(located.group(2)),
                ))
            else:
                problems.append(CompilerProblem(severity="error", message=line))
            continue

        match = _BARE.match(line)
        if match:
            problems.append(CompilerProblem(severity=_severity(match.group(1)), message=match.group(2).strip()))

    return problems


def has_fatal_diagnostics(output: str) -> bool:
    """True if the output contains any non-warning diagnostic."""
    return any(problem.is_error for problem in parse_problems(output))
