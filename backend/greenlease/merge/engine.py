"""Contract merge engine.

    merge_contract(template, answers) -> contract text

Pipeline:
    tokenize -> evaluate conditionals -> split into lines -> expand tenants
    -> render markers and placeholders (dropping lines whose structural
    clause is absent) -> tidy blank lines -> renumber clauses

The function is pure: no I/O, no clock, no randomness. Every view of a
contract (preview, signing page, final PDF) calls it afresh.
"""

import re
from typing import Any, Dict, List, Mapping, Optional

from .clauses import ClauseContext, render_marker
from .conditions import evaluate_conditionals
from .expander import expand_tenants, tenant_entries
from .placeholders import resolve_placeholder
from .renumber import is_bare_section_number, renumber_clauses
from .tokens import Literal, Placeholder, StructuralMarker, Token, split_lines, tokenize

ENTITY_LISTS = ("landlords", "tenants")

BLANK_RUN_RE = re.compile(r"\n{3,}")


def normalize_answers(answers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Copy of ``answers`` where each repeated-entity list has at least one entry."""
    normalized: Dict[str, Any] = dict(answers or {})
    for key in ENTITY_LISTS:
        entries = normalized.get(key)
        if not isinstance(entries, list) or not entries:
            entries = [{}]
        normalized[key] = [dict(entry) if isinstance(entry, Mapping) else {} for entry in entries]
    return normalized


def flatten_answers(answers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Answers overlaid with the first landlord entry and the first tenant entry."""
    normalized = normalize_answers(answers)
    flat = dict(normalized)
    for key in ENTITY_LISTS:
        for field, value in normalized[key][0].items():
            flat[field] = value
    return flat


def _render_line(line: List[Token], flat: Mapping[str, Any], tenants: List[Mapping[str, Any]],
                 context: ClauseContext, emphasis: bool) -> Optional[str]:
    parts = []
    for token in line:
        if isinstance(token, Literal):
            parts.append(token.text)
        elif isinstance(token, Placeholder):
            entry = None
            if token.entry is not None:
                entry = tenants[token.entry] if token.entry < len(tenants) else {}
            parts.append(resolve_placeholder(token.key, flat, entry, emphasis))
        elif isinstance(token, StructuralMarker):
            rendered = render_marker(token.name, context, token.arg, token.entry)
            if rendered is None:
                return None
            parts.append(rendered)
    return "".join(parts)


def _tidy(lines: List[str]) -> str:
    kept = [line.rstrip() for line in lines if not is_bare_section_number(line)]
    text = "\n".join(kept)
    return BLANK_RUN_RE.sub("\n\n", text).strip("\n")


def merge_contract(template: str, answers: Optional[Mapping[str, Any]], emphasis: bool = True) -> str:
    """Merge a contract template with a wizard answer set.

    Args:
        template: template text (placeholders, ``{{#if}}`` blocks, structural markers)
        answers: the answer set; ``landlords`` and ``tenants`` hold entity lists
        emphasis: wrap substituted values in ``<strong>`` tags

    Returns:
        The contract text, with role-tagged signature placeholders and
        contiguous clause numbering.
    """
    normalized = normalize_answers(answers)
    flat = flatten_answers(normalized)
    tenants = tenant_entries(normalized)
    context = ClauseContext(answers=flat, tenants=tenants, emphasis=emphasis)

    tokens = evaluate_conditionals(tokenize(template), flat)
    lines = expand_tenants(split_lines(tokens), len(tenants))

    rendered = []
    for line in lines:
        text = _render_line(line, flat, tenants, context, emphasis)
        if text is not None:
            rendered.append(text)

    return renumber_clauses(_tidy(rendered))
