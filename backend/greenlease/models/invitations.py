"""Signature invitation models

Lifecycle:
    not_sent -> sent -> signed
                sent -> expired

``not_sent`` is never stored: it is what the roster reports for a signer
with no invitation record. ``expired`` is derived from ``expires_at`` when
a roster is built or a token is checked; records keep ``status: sent``.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import secrets
import uuid

from .signers import SignerType

SIGNATURE_IMAGE_PREFIX = "data:image/"


class InvitationStatus(str, Enum):
    NOT_SENT = "not_sent"
    SENT = "sent"
    SIGNED = "signed"
    EXPIRED = "expired"


def new_invitation_token() -> str:
    return secrets.token_hex(32)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_signature_image(value: str) -> str:
    value = (value or "").strip()
    if not value.startswith(SIGNATURE_IMAGE_PREFIX) or ";base64," not in value:
        raise ValueError("Signature must be a base64 image data URL")
    return value


class SignatureInvitation(BaseModel):
    """One invitation for one signer of one contract.

    Several records may exist for the same signer (invite, resend, retries);
    the one with the highest (sequence, created_at) is authoritative.
    """
    model_config = ConfigDict(extra="ignore")

    invitation_id: str = Field(default_factory=lambda: f"SIG-{uuid.uuid4().hex[:12].upper()}")
    contract_id: str

    # Signer identity
    signer_type: SignerType
    signer_id: str
    signer_name: str
    signer_email: str
    signer_role: str  # role tag, e.g. "tenant 2"

    invitation_token: str = Field(default_factory=new_invitation_token)
    status: InvitationStatus = InvitationStatus.SENT

    # Server-assigned ordering within the contract
    sequence: Optional[int] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
    sent_at: Optional[datetime] = None
    resend_count: int = 0
    is_direct: bool = False

    # Set when signed
    signed_at: Optional[datetime] = None
    signature_image: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("created_at", "expires_at", "sent_at", "signed_at")
    @classmethod
    def _as_utc(cls, value):
        return ensure_utc(value)

    @property
    def identity_key(self) -> tuple:
        return (self.signer_type.value, self.signer_id)

    def is_expired(self, now: datetime) -> bool:
        if self.status == InvitationStatus.EXPIRED:
            return True
        return self.status == InvitationStatus.SENT and ensure_utc(now) >= self.expires_at

    def effective_status(self, now: datetime) -> InvitationStatus:
        if self.is_expired(now):
            return InvitationStatus.EXPIRED
        return self.status

    def to_document(self) -> dict:
        return self.model_dump(mode="json")

    def public_view(self) -> dict:
        """Fields safe to return to clients (no token, no image)."""
        return self.model_dump(
            mode="json",
            exclude={"invitation_token", "signature_image", "ip_address", "user_agent"},
        )


class SignerRosterEntry(BaseModel):
    """A required signer with the status of their authoritative invitation."""
    signer_type: SignerType
    signer_id: str
    name: str
    role: str
    email: Optional[str] = None
    status: InvitationStatus = InvitationStatus.NOT_SENT
    invitation_id: Optional[str] = None
    signed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    resend_count: int = 0
    signature_image: Optional[str] = None

    @property
    def identity_key(self) -> tuple:
        return (self.signer_type.value, self.signer_id)


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class InviteSigner(BaseModel):
    signer_type: SignerType
    signer_id: str
    email: Optional[EmailStr] = None


class SendInvitationsRequest(BaseModel):
    contract_id: str
    signers: List[InviteSigner] = Field(min_length=1)


class ResendInvitationRequest(BaseModel):
    contract_id: str
    signer_type: SignerType
    signer_id: str
    email: Optional[EmailStr] = None


class SaveSignatureRequest(BaseModel):
    token: str = Field(min_length=1)
    signature: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("signature")
    @classmethod
    def _check_signature(cls, value):
        return validate_signature_image(value)


class DirectSignRequest(BaseModel):
    contract_id: str
    signer_id: str
    signature: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @field_validator("signature")
    @classmethod
    def _check_signature(cls, value):
        return validate_signature_image(value)


class ContractRequest(BaseModel):
    contract_id: str


class InvitationResult(BaseModel):
    """Outcome of inviting one requested signer."""
    signer_type: SignerType
    signer_id: str
    success: bool
    email_sent: bool = False
    invitation: Optional[dict] = None
    message: Optional[str] = None
