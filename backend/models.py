from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class ActorRole(str, Enum):
    LANDLORD = "LANDLORD"
    TENANT = "TENANT"
    GUARANTOR = "GUARANTOR"
    SYSTEM = "SYSTEM"

class AuditAction(str, Enum):
    # Signature workflow
    INVITATION_SENT = "INVITATION_SENT"
    INVITATION_RESENT = "INVITATION_RESENT"
    INVITATIONS_DEDUPLICATED = "INVITATIONS_DEDUPLICATED"
    SIGNATURE_SAVED = "SIGNATURE_SAVED"
    DIRECT_SIGNATURE_SAVED = "DIRECT_SIGNATURE_SAVED"
    ALL_PARTIES_SIGNED = "ALL_PARTIES_SIGNED"

    # Final contract
    CONTRACT_DISTRIBUTED = "CONTRACT_DISTRIBUTED"
    CONTRACT_DISTRIBUTION_FAILED = "CONTRACT_DISTRIBUTION_FAILED"

    # Wizard
    WIZARD_STAGE_CHANGED = "WIZARD_STAGE_CHANGED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"

class EmailTemplateAlias(str, Enum):
    SIGNATURE_INVITATION = "signature-invitation"
    SIGNED_CONTRACT = "signed-contract"
    CONTRACT_PDF = "contract-pdf"

# ============================================================================
# MODELS
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[ActorRole] = None
    actor_id: Optional[str] = None
    contract_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    contract_id: Optional[str] = None
    recipient: str
    template_alias: EmailTemplateAlias
    subject: str
    status: str = "queued"
    has_attachment: bool = False
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_error_type: Optional[str] = None
    provider_error_code: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
