"""Signer roles and the signature slot markup shared by merge and assembly."""

from enum import Enum
from typing import Optional


class SignerType(str, Enum):
    LANDLORD = "landlord"
    TENANT = "tenant"
    GUARANTOR = "guarantor"


MAX_GUARANTORS = 2

SIGNATURE_PLACEHOLDER_CLASS = "signature-placeholder"
EMPTY_SIGNATURE_SLOT = '<div class="signature-slot"></div>'


def role_tag(signer_type: SignerType, index: int = 0, count: int = 1) -> str:
    """Lowercase role tag used in signature placeholders and roster entries.

    ``index`` is zero-based. A single tenant is just "tenant"; several
    tenants are "tenant 1", "tenant 2", ... Guarantors are always numbered.
    """
    signer_type = SignerType(signer_type)
    if signer_type == SignerType.LANDLORD:
        return "landlord"
    if signer_type == SignerType.TENANT:
        return "tenant" if count <= 1 else f"tenant {index + 1}"
    return f"guarantor {index + 1}"


def role_heading(tag: str) -> str:
    return tag[:1].upper() + tag[1:]


def signature_placeholder(tag: Optional[str]) -> str:
    if not tag:
        return EMPTY_SIGNATURE_SLOT
    return f'<span class="{SIGNATURE_PLACEHOLDER_CLASS}">{tag}</span>'
