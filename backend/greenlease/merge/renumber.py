"""Clause renumbering after optional clauses were removed."""

import re

SUBSECTION_RE = re.compile(r"^(\s*)(\d+)\.(\d+)(?!\.?\d)")
BARE_SECTION_RE = re.compile(r"^\s*\d+\.\s*$")


def renumber_clauses(text: str) -> str:
    """Re-sequence ``N.M`` clause numbers so each section counts 1, 2, 3...

    Only lines that start with ``N.M`` are touched. The first ``N.M`` line of
    a section always becomes ``N.1``; top-level ``N.`` headings keep their
    numbers.
    """
    current_major = None
    minor = 0
    lines = []
    for line in text.split("\n"):
        match = SUBSECTION_RE.match(line)
        if match:
            major = match.group(2)
            if major == current_major:
                minor += 1
            else:
                current_major = major
                minor = 1
            line = f"{match.group(1)}{major}.{minor}{line[match.end():]}"
        lines.append(line)
    return "\n".join(lines)


def is_bare_section_number(line: str) -> bool:
    return bool(BARE_SECTION_RE.match(line))
