"""Repeated-entity expansion for the tenant list.

Templates are written for a single tenant. With more than one tenant entry:

- the tenant identification line (the first line printing tenant fields)
  becomes one numbered line per tenant;
- the tenant signature block (the paragraph holding ``{{>signature tenant}}``)
  becomes one block per tenant, tagged "tenant 1", "tenant 2", ...

Both are driven by the same list, so the preamble and the signatures section
always name the same people in the same order. Copies are produced by
binding each placeholder/marker to an entry index; values are resolved later
by the engine.
"""

from dataclasses import replace
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from ..models.signers import SignerType
from .tokens import Literal, Placeholder, StructuralMarker, Token

TENANT_FIELDS = ("tenantName", "tenantIdNumber", "tenantCity", "tenantPhone", "tenantEmail")

Line = List[Token]


def _is_blank(line: Line) -> bool:
    return all(isinstance(token, Literal) and not token.text.strip() for token in line)


def _is_tenant_signature(token: Token) -> bool:
    return (
        isinstance(token, StructuralMarker)
        and token.name == "signature"
        and token.entry is None
        and (token.arg or "").strip().lower() == SignerType.TENANT.value
    )


def _has_tenant_field(line: Line) -> bool:
    return any(isinstance(token, Placeholder) and token.entry is None and token.key in TENANT_FIELDS for token in line)


def _bind(line: Line, index: int) -> Line:
    bound: Line = []
    for token in line:
        if isinstance(token, Placeholder) and token.key in TENANT_FIELDS:
            bound.append(replace(token, entry=index))
        elif isinstance(token, StructuralMarker) and (token.arg or "").strip().lower() == SignerType.TENANT.value:
            bound.append(replace(token, entry=index))
        else:
            bound.append(token)
    return bound


def find_signature_block(lines: Sequence[Line]) -> Optional[Tuple[int, int]]:
    """Return ``(start, end)`` of the paragraph holding the tenant signature slot."""
    for index, line in enumerate(lines):
        if any(_is_tenant_signature(token) for token in line):
            start = index
            while start > 0 and not _is_blank(lines[start - 1]):
                start -= 1
            end = index + 1
            while end < len(lines) and not _is_blank(lines[end]):
                end += 1
            return start, end
    return None


def find_identification_line(lines: Sequence[Line], skip: Optional[Tuple[int, int]] = None) -> Optional[int]:
    for index, line in enumerate(lines):
        if skip and skip[0] <= index < skip[1]:
            continue
        if _has_tenant_field(line):
            return index
    return None


def tenant_entries(answers: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    tenants = answers.get("tenants")
    if not isinstance(tenants, list):
        return []
    return [entry if isinstance(entry, Mapping) else {} for entry in tenants]


def expand_tenants(lines: List[Line], tenant_count: int) -> List[Line]:
    """Expand the tenant identification line and signature block.

    A no-op for zero or one tenant: single-tenant templates already read
    correctly from the flattened answers.
    """
    if tenant_count <= 1:
        return lines

    block = find_signature_block(lines)
    ident = find_identification_line(lines, skip=block)

    expanded: List[Line] = []
    index = 0
    while index < len(lines):
        if ident is not None and index == ident:
            for entry in range(tenant_count):
                expanded.append([Literal(f"{entry + 1}. ")] + _bind(lines[index], entry))
            index += 1
            continue

        if block is not None and index == block[0]:
            paragraph = lines[block[0]:block[1]]
            for entry in range(tenant_count):
                if entry > 0:
                    expanded.append([])
                expanded.extend(_bind(line, entry) for line in paragraph)
            index = block[1]
            continue

        expanded.append(lines[index])
        index += 1

    return expanded
