"""
Signer Roster Builder

Derives the required signers of a contract from its answer set and joins
each one to its authoritative invitation.

Required signers:
- one landlord
- one tenant per entry of the tenant list ("tenant" alone, "tenant N" when several)
- 0-2 guarantors, only when the securities include a promissory note; each
  needs a name to be listed

Signer identity is (signer_type, signer_id). signer_id is the national ID
when one was entered, otherwise a key built from the type, the position and
the name. The same answers always give the same ids, so invitations keep
matching their signer as the form is edited.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional

from greenlease.merge.clauses import guarantor_count
from greenlease.merge.engine import flatten_answers, normalize_answers
from greenlease.models.invitations import InvitationStatus, SignatureInvitation, SignerRosterEntry
from greenlease.models.signers import SignerType, role_tag
from greenlease.services.dedup_service import latest_by_identity

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def signer_identity(signer_type: SignerType, index: int, name: str, natural_id: Any = None) -> str:
    """Stable signer id: the natural id if present, else ``{type}-{index}-{name}``.

    ``index`` is zero-based for landlords and tenants and one-based for
    guarantors (matching their numbered answer fields).
    """
    natural = _text(natural_id)
    if natural:
        return natural
    return f"{SignerType(signer_type).value}-{index}-{_text(name) or 'unknown'}"


def required_signers(answers: Mapping[str, Any]) -> List[SignerRosterEntry]:
    """Required signers without invitation status, in document order."""
    normalized = normalize_answers(answers)
    flat = flatten_answers(normalized)
    signers: List[SignerRosterEntry] = []

    landlord = normalized["landlords"][0]
    landlord_name = _text(landlord.get("landlordName")) or _text(flat.get("landlordName"))
    signers.append(SignerRosterEntry(
        signer_type=SignerType.LANDLORD,
        signer_id=signer_identity(
            SignerType.LANDLORD, 0, landlord_name,
            landlord.get("landlordId") or flat.get("landlordId"),
        ),
        name=landlord_name,
        role=role_tag(SignerType.LANDLORD),
        email=_text(landlord.get("landlordEmail")) or _text(flat.get("landlordEmail")) or None,
    ))

    tenants = normalized["tenants"]
    for index, tenant in enumerate(tenants):
        # A lone tenant may still be stored with flat fields
        fallback = flat if len(tenants) == 1 else {}
        name = _text(tenant.get("tenantName")) or _text(fallback.get("tenantName"))
        signers.append(SignerRosterEntry(
            signer_type=SignerType.TENANT,
            signer_id=signer_identity(
                SignerType.TENANT, index, name,
                tenant.get("tenantIdNumber") or fallback.get("tenantIdNumber"),
            ),
            name=name,
            role=role_tag(SignerType.TENANT, index, len(tenants)),
            email=_text(tenant.get("tenantEmail")) or _text(fallback.get("tenantEmail")) or None,
        ))

    for number in range(1, guarantor_count(flat) + 1):
        name = _text(flat.get(f"guarantor{number}Name"))
        if not name:
            continue
        signers.append(SignerRosterEntry(
            signer_type=SignerType.GUARANTOR,
            signer_id=signer_identity(SignerType.GUARANTOR, number, name, flat.get(f"guarantor{number}Id")),
            name=name,
            role=role_tag(SignerType.GUARANTOR, number - 1),
            email=_text(flat.get(f"guarantor{number}Email")) or None,
        ))

    return [signer for signer in signers if signer.name]


def build_roster(
    answers: Mapping[str, Any],
    invitations: Iterable[SignatureInvitation],
    now: Optional[datetime] = None,
) -> List[SignerRosterEntry]:
    """Required signers joined to their authoritative invitations.

    Pure: the same answers, invitations and ``now`` give the same roster.
    """
    now = now or datetime.now(timezone.utc)
    latest = latest_by_identity(invitations)
    roster: List[SignerRosterEntry] = []

    for signer in required_signers(answers):
        invitation = latest.get(signer.identity_key)
        if invitation is None:
            roster.append(signer)
            continue
        email = signer.email
        if not invitation.is_direct and invitation.signer_email:
            email = invitation.signer_email
        roster.append(signer.model_copy(update={
            "email": email,
            "status": invitation.effective_status(now),
            "invitation_id": invitation.invitation_id,
            "signed_at": invitation.signed_at,
            "expires_at": invitation.expires_at,
            "resend_count": invitation.resend_count,
            "signature_image": invitation.signature_image if invitation.status == InvitationStatus.SIGNED else None,
        }))

    return roster


def find_signer(roster: Iterable[SignerRosterEntry], signer_type: SignerType, signer_id: str) -> Optional[SignerRosterEntry]:
    key = (SignerType(signer_type).value, signer_id)
    for entry in roster:
        if entry.identity_key == key:
            return entry
    return None


def all_signed(roster: Iterable[SignerRosterEntry]) -> bool:
    entries = list(roster)
    return bool(entries) and all(entry.status == InvitationStatus.SIGNED for entry in entries)
