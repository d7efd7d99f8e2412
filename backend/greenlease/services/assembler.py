"""
Signed-Document Assembler

Puts signature images into a freshly merged contract.

Each signed party's slot is located in one of two ways:
- ExactTagMatch: the signature placeholder tagged with the signer's role
  (``<span class="signature-placeholder">tenant 2</span>``)
- FallbackSlotMatch: no tagged placeholder exists, so the untagged empty
  slot closest to the signer's printed name, within the same paragraph

Placeholders left over for unsigned parties become empty slots. Always
assemble from a fresh merge: assembled text has no placeholders left to
match.
"""
import html
import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from greenlease.merge.placeholders import escape_value
from greenlease.models.invitations import InvitationStatus, SignerRosterEntry
from greenlease.models.signers import EMPTY_SIGNATURE_SLOT, SIGNATURE_PLACEHOLDER_CLASS

logger = logging.getLogger(__name__)

ANY_PLACEHOLDER_RE = re.compile(
    rf'<span\s+class="{SIGNATURE_PLACEHOLDER_CLASS}"\s*>[^<]*</span>', re.IGNORECASE
)
PARAGRAPH_BREAK = "\n\n"


@dataclass(frozen=True)
class SignedSigner:
    role: str
    name: str
    signature_image: str

    @classmethod
    def from_roster_entry(cls, entry: SignerRosterEntry) -> "SignedSigner":
        return cls(role=entry.role, name=entry.name, signature_image=entry.signature_image or "")


@dataclass(frozen=True)
class ExactTagMatch:
    start: int
    end: int
    role: str


@dataclass(frozen=True)
class FallbackSlotMatch:
    start: int
    end: int
    name_position: int


SlotMatch = Union[ExactTagMatch, FallbackSlotMatch]


def _placeholder_re(role: str):
    return re.compile(
        rf'<span\s+class="{SIGNATURE_PLACEHOLDER_CLASS}"\s*>\s*{re.escape(role)}\s*</span>',
        re.IGNORECASE,
    )


def find_exact_slots(text: str, role: str) -> List[ExactTagMatch]:
    return [ExactTagMatch(m.start(), m.end(), role) for m in _placeholder_re(role).finditer(text)]


def _paragraph_bounds(text: str, position: int):
    start = text.rfind(PARAGRAPH_BREAK, 0, position)
    start = 0 if start == -1 else start + len(PARAGRAPH_BREAK)
    end = text.find(PARAGRAPH_BREAK, position)
    return start, len(text) if end == -1 else end


def find_fallback_slot(text: str, name: str) -> Optional[FallbackSlotMatch]:
    """Empty slot nearest to the first printed occurrence of ``name`` that has one."""
    printed = escape_value(name.strip()) if name and name.strip() else ""
    if not printed:
        return None

    position = text.find(printed)
    while position != -1:
        start, end = _paragraph_bounds(text, position)
        best = None
        slot = text.find(EMPTY_SIGNATURE_SLOT, start, end)
        while slot != -1:
            distance = abs(slot - position)
            if best is None or distance < best[0]:
                best = (distance, slot)
            slot = text.find(EMPTY_SIGNATURE_SLOT, slot + 1, end)
        if best is not None:
            slot = best[1]
            return FallbackSlotMatch(slot, slot + len(EMPTY_SIGNATURE_SLOT), position)
        position = text.find(printed, position + 1)
    return None


def locate_slots(text: str, signer: SignedSigner) -> List[SlotMatch]:
    exact = find_exact_slots(text, signer.role)
    if exact:
        return exact
    fallback = find_fallback_slot(text, signer.name)
    return [fallback] if fallback else []


def signature_image_html(signer: SignedSigner) -> str:
    src = html.escape(signer.signature_image, quote=True)
    name = escape_value(signer.name)
    return (
        f'<div class="signature-image"><img src="{src}" alt="Signature of {name}" />'
        f'<div class="signature-name">{name}</div></div>'
    )


def assemble_signed_contract(merged_text: str, signed_signers: Iterable[SignedSigner]) -> str:
    text = merged_text
    for signer in signed_signers:
        if not signer.signature_image:
            continue
        matches = locate_slots(text, signer)
        if not matches:
            logger.warning(f"No signature slot found for '{signer.role}'; signature not placed")
            continue
        if isinstance(matches[0], FallbackSlotMatch):
            logger.info(f"Signature for '{signer.role}' placed by name fallback")
        image = signature_image_html(signer)
        for match in sorted(matches, key=lambda m: m.start, reverse=True):
            text = text[:match.start] + image + text[match.end:]

    return ANY_PLACEHOLDER_RE.sub(EMPTY_SIGNATURE_SLOT, text)


def signed_signers_from_roster(roster: Iterable[SignerRosterEntry]) -> List[SignedSigner]:
    return [
        SignedSigner.from_roster_entry(entry)
        for entry in roster
        if entry.status == InvitationStatus.SIGNED and entry.signature_image
    ]
