"""Template tokenizer.

Templates are plain text with four kinds of tags:

    {{key}}                 placeholder
    {{#if guard}} / {{/if}} conditional block delimiters
    {{>name}} / {{>name a}} structural marker (domain clause, role heading,
                            signature slot)

Tokenizing is the only place that knows the tag syntax. Everything after it
works on the token list.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"{{(.*?)}}", re.DOTALL)
# An opening brace pair never closed later in the template, with the key typed after it
DANGLING_TAG_RE = re.compile(r"{{[^\s{}]*")

# A block tag alone on its line owns that line break as well.
STANDALONE_BLOCK_TAG_RE = re.compile(r"^[ \t]*({{\s*[#/][^{}]*}})[ \t]*(?:\r?\n|$)", re.MULTILINE)

BLOCK_OPEN_RE = re.compile(r"^#(\w+)\s*(.*)$", re.DOTALL)
BLOCK_CLOSE_RE = re.compile(r"^/(\w+)$")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    key: str
    # Index into the tenant list when bound by the expander
    entry: Optional[int] = None


@dataclass(frozen=True)
class ConditionalOpen:
    kind: str
    guard: str


@dataclass(frozen=True)
class ConditionalClose:
    kind: str


@dataclass(frozen=True)
class StructuralMarker:
    name: str
    arg: Optional[str] = None
    entry: Optional[int] = None


Token = Union[Literal, Placeholder, ConditionalOpen, ConditionalClose, StructuralMarker]


def _classify(body: str) -> Optional[Token]:
    body = body.strip()
    if not body:
        return None

    opened = BLOCK_OPEN_RE.match(body)
    if opened:
        return ConditionalOpen(kind=opened.group(1), guard=opened.group(2).strip())

    closed = BLOCK_CLOSE_RE.match(body)
    if closed:
        return ConditionalClose(kind=closed.group(1))

    if body.startswith(">"):
        parts = body[1:].split(None, 1)
        if not parts:
            return None
        arg = parts[1].strip() if len(parts) > 1 else None
        return StructuralMarker(name=parts[0], arg=arg or None)

    return Placeholder(key=body)


def tokenize(template: str) -> List[Token]:
    """Split template text into tokens.

    Empty tags (``{{}}``) are discarded. Adjacent literals are never emitted,
    so a literal token is always followed by a tag or the end of input.
    """
    source = STANDALONE_BLOCK_TAG_RE.sub(r"\1", template or "")
    tokens: List[Token] = []
    position = 0

    for match in TAG_RE.finditer(source):
        if match.start() > position:
            tokens.append(Literal(source[position:match.start()]))
        token = _classify(match.group(1))
        if token is not None:
            tokens.append(token)
        position = match.end()

    if position < len(source):
        tail = source[position:]
        if "{{" in tail:
            logger.warning(f"Unterminated template tag dropped: {DANGLING_TAG_RE.search(tail).group(0)!r}")
            tail = DANGLING_TAG_RE.sub("", tail)
        if tail:
            tokens.append(Literal(tail))

    return _join_literals(tokens)


def _join_literals(tokens: List[Token]) -> List[Token]:
    joined: List[Token] = []
    for token in tokens:
        if isinstance(token, Literal) and joined and isinstance(joined[-1], Literal):
            joined[-1] = Literal(joined[-1].text + token.text)
        else:
            joined.append(token)
    return joined


def split_lines(tokens: List[Token]) -> List[List[Token]]:
    """Group tokens into lines by splitting literals on newlines.

    Every returned line is a (possibly empty) token list. Joining the rendered
    lines with ``\\n`` gives back the original layout.
    """
    lines: List[List[Token]] = [[]]
    for token in tokens:
        if not isinstance(token, Literal):
            lines[-1].append(token)
            continue
        pieces = token.text.split("\n")
        for index, piece in enumerate(pieces):
            if index > 0:
                lines.append([])
            if piece:
                lines[-1].append(Literal(piece))
    return lines
