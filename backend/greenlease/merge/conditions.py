"""Conditional clause evaluation.

Supported guards:
    field == "literal"      equality (single or double quotes)
    (eq field "literal")    the same, Handlebars helper form
    field                   truthiness

Anything else is a malformed guard and is never satisfied.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Union

from .tokens import ConditionalClose, ConditionalOpen, Token

logger = logging.getLogger(__name__)

EQUALS_RE = re.compile(r"""^([\w.\-]+)\s*==\s*(["'])(.*)\2$""", re.DOTALL)
EQ_HELPER_RE = re.compile(r"""^\(\s*eq\s+([\w.\-]+)\s+(["'])(.*)\2\s*\)$""", re.DOTALL)
TRUTHY_RE = re.compile(r"^([\w.\-]+)$")

# Wizard toggles store any of these for "yes"
AFFIRMATIVE_VALUES = {"yes", "true", "כן"}


@dataclass(frozen=True)
class EqualsGuard:
    key: str
    literal: str


@dataclass(frozen=True)
class TruthyGuard:
    key: str


@dataclass(frozen=True)
class InvalidGuard:
    source: str


Guard = Union[EqualsGuard, TruthyGuard, InvalidGuard]


def parse_guard(source: str) -> Guard:
    text = (source or "").strip()
    for pattern in (EQUALS_RE, EQ_HELPER_RE):
        match = pattern.match(text)
        if match:
            return EqualsGuard(key=match.group(1), literal=match.group(3))
    match = TRUTHY_RE.match(text)
    if match:
        return TruthyGuard(key=match.group(1))
    return InvalidGuard(source=text)


def is_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) > 0
    if isinstance(value, (int, float)):
        return value != 0
    return True


def is_affirmative(value: Any) -> bool:
    if value is True:
        return True
    if value is None or value is False:
        return False
    return str(value).strip().lower() in AFFIRMATIVE_VALUES


def _matches_literal(value: Any, literal: str) -> bool:
    if value is None:
        return False
    # A toggle guard such as `hasParking == "yes"` accepts every "yes" spelling
    if literal.strip().lower() in AFFIRMATIVE_VALUES and not isinstance(value, (list, tuple, set)):
        return is_affirmative(value)
    if isinstance(value, (list, tuple, set)):
        return any(_matches_literal(item, literal) for item in value)
    if isinstance(value, bool):
        return str(value).lower() == literal.strip().lower()
    return str(value).strip() == literal


def evaluate_guard(guard: Guard, answers: Mapping[str, Any]) -> bool:
    if isinstance(guard, EqualsGuard):
        return _matches_literal(answers.get(guard.key), guard.literal)
    if isinstance(guard, TruthyGuard):
        return is_truthy(answers.get(guard.key))
    logger.warning(f"Malformed template guard treated as not satisfied: {guard.source!r}")
    return False


def evaluate_conditionals(tokens: List[Token], answers: Mapping[str, Any]) -> List[Token]:
    """Drop unsatisfied blocks and strip the delimiters of satisfied ones.

    Blocks nest. A close tag with no open block is dropped; a block left open
    at the end of the template runs to the end of the text.
    """
    result: List[Token] = []
    # One entry per open block: is content inside it emitted?
    active_stack: List[bool] = []

    for token in tokens:
        if isinstance(token, ConditionalOpen):
            parent_active = all(active_stack)
            satisfied = False
            if parent_active and token.kind == "if":
                satisfied = evaluate_guard(parse_guard(token.guard), answers)
            active_stack.append(parent_active and satisfied)
            continue

        if isinstance(token, ConditionalClose):
            if active_stack:
                active_stack.pop()
            continue

        if all(active_stack):
            result.append(token)

    return result

