"""
Regeneration of the generated files of a project.

Three files under ``src/`` are maintained, in this order:

1. ``pins_init.h``: include and declaration regions inside an include guard
2. ``pins_init.cpp``: include region, body of ``pins_init_all()`` and,
   when interrupts are enabled, an ISR region
3. ``main.cpp``: an include of ``pins_init.h`` and a single
   ``pins_init_all();`` call inside the lifecycle hook

Missing files are created from skeletons. Existing files are only changed
inside marker regions, plus a one-time insertion of a missing region.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional

from . import markers
from .merger import MarkedSection, frame_body, merge_marked
from .models import GeneratedCode
from .synthesizer import INIT_CALL

logger = logging.getLogger(__name__)

SOURCE_DIR = "src"
HEADER_NAME = "pins_init.h"
IMPLEMENTATION_NAME = "pins_init.cpp"
ENTRY_NAME = "main.cpp"
HEADER_GUARD = "PINS_INIT_H"
INDENT = "    "

_SETUP_HOOK = re.compile(r"void\s+setup\s*\(\s*(?:void)?\s*\)\s*\{")
_MAIN_HOOK = re.compile(r"int\s+main\s*\(\s*(?:void)?\s*\)\s*\{")
_LOOP_HOOK = re.compile(r"void\s+loop\s*\(")
_INIT_FUNCTION = re.compile(r"void\s+pins_init_all\s*\(\s*(?:void)?\s*\)\s*\{")

HEADER_SKELETON = "\n".join([
    f"#ifndef {HEADER_GUARD}",
    f"#define {HEADER_GUARD}",
    "",
    markers.INCLUDES.start + markers.INCLUDES.end,
    "",
    markers.DECLARATIONS.start + markers.DECLARATIONS.end,
    "",
    f"#endif  // {HEADER_GUARD}",
    "",
])

IMPLEMENTATION_SKELETON = "\n".join([
    f'#include "{HEADER_NAME}"',
    "",
    markers.INCLUDES.start + markers.INCLUDES.end,
    "",
    "void pins_init_all(void) {",
    INDENT + markers.INIT.start + markers.INIT.end,
    "}",
    "",
])

ENTRY_SKELETON = "#include <Arduino.h>\n"


def render_header(existing: Optional[str], code: GeneratedCode) -> str:
    text = HEADER_SKELETON if existing is None else existing
    text = merge_marked(
        text, markers.INCLUDES, frame_body("\n".join(code.include_lines())),
        anchor=f"#define {HEADER_GUARD}",
    )
    return merge_marked(
        text, markers.DECLARATIONS, frame_body(code.declarations),
        anchor=markers.INCLUDES.end,
    )


def render_implementation(existing: Optional[str], code: GeneratedCode) -> str:
    text = IMPLEMENTATION_SKELETON if existing is None else existing
    text = merge_marked(
        text, markers.INCLUDES, frame_body("\n".join(code.include_lines())),
        anchor=f'#include "{HEADER_NAME}"',
    )
    if MarkedSection.find(text, markers.INIT.start, markers.INIT.end) is None:
        inserted = _insert_into_function(text, _INIT_FUNCTION, "")
        text = inserted if inserted is not None else _append_init_function(text)
    text = merge_marked(text, markers.INIT, frame_body(code.implementation, INDENT))

    has_isr_region = MarkedSection.find(text, markers.ISR.start, markers.ISR.end) is not None
    if code.isr or has_isr_region:
        text = merge_marked(text, markers.ISR, frame_body(code.isr))
    return text


def render_entry(existing: Optional[str]) -> str:
    text = ENTRY_SKELETON if existing is None else existing
    include_anchor = "#include <Arduino.h>" if "#include <Arduino.h>" in text else None
    text = merge_marked(
        text, markers.INCLUDES, frame_body(f'#include "{HEADER_NAME}"'),
        anchor=include_anchor, at_start=include_anchor is None,
    )

    if MarkedSection.find(text, markers.INIT.start, markers.INIT.end) is None:
        for hook in (_SETUP_HOOK, _MAIN_HOOK):
            inserted = _insert_into_function(text, hook, INIT_CALL)
            if inserted is not None:
                text = inserted
                break
        else:
            text = _append_setup_hook(text)
    return merge_marked(text, markers.INIT, frame_body(INIT_CALL, INDENT))


def _insert_into_function(text: str, signature: re.Pattern, body: str) -> Optional[str]:
    """Insert an INIT region right after the opening brace of a function.

    Returns None when the function is not in ``text``.
    """
    match = signature.search(text)
    if match is None:
        return None
    brace = match.end()
    rest = text[brace:]
    block = markers.INIT.start + frame_body(body, INDENT) + markers.INIT.end
    tail = rest if rest.startswith("\n") else "\n" + rest
    return f"{text[:brace]}\n{INDENT}{block}{tail}"


def _append_init_function(text: str) -> str:
    block = markers.INIT.start + frame_body("", INDENT) + markers.INIT.end
    parts = [text.rstrip("\n"), "", "void pins_init_all(void) {", f"{INDENT}{block}", "}"]
    return "\n".join(parts).lstrip("\n") + "\n"


def _append_setup_hook(text: str) -> str:
    block = markers.INIT.start + frame_body(INIT_CALL, INDENT) + markers.INIT.end
    parts = [text.rstrip("\n"), "", "void setup() {", f"{INDENT}{block}", "}"]
    if not _LOOP_HOOK.search(text):
        parts.extend(["", "void loop() {", "}"])
    return "\n".join(parts).lstrip("\n") + "\n"


def _read_optional(path: Path) -> Optional[str]:
    if not path.exists():
        return None
    # Undecodable user bytes survive the round trip unchanged
    return path.read_text(encoding="utf-8", errors="surrogateescape")


def write_project_files(project_dir: Path, code: GeneratedCode) -> List[Path]:
    """
    Apply generated code to the header, implementation and entry files.

    Files are rewritten only when their content changes.

    Args:
        project_dir: Project root directory
        code: Synthesized code

    Returns:
        Paths of the files that were written

    Raises:
        MergeError: If a merge cannot be applied
        OSError: If a file cannot be read or written
    """
    source_dir = Path(project_dir) / SOURCE_DIR
    source_dir.mkdir(parents=True, exist_ok=True)

    renderers = [
        (source_dir / HEADER_NAME, lambda existing: render_header(existing, code)),
        (source_dir / IMPLEMENTATION_NAME, lambda existing: render_implementation(existing, code)),
        (source_dir / ENTRY_NAME, render_entry),
    ]

    written = []
    for path, render in renderers:
        existing = _read_optional(path)
        updated = render(existing)
        if updated != existing:
            path.write_text(updated, encoding="utf-8", errors="surrogateescape")
            written.append(path)
            logger.info("Updated %s", path)
        else:
            logger.debug("%s is up to date", path)
    return written
