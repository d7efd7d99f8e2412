"""GreenLease Data Models"""

from .signers import (
    SignerType,
    role_tag,
    role_heading,
    signature_placeholder,
    EMPTY_SIGNATURE_SLOT,
)
from .invitations import (
    InvitationStatus,
    SignatureInvitation,
    SignerRosterEntry,
    InviteSigner,
    SendInvitationsRequest,
    ResendInvitationRequest,
    SaveSignatureRequest,
    DirectSignRequest,
    ContractRequest,
    InvitationResult,
)
from .wizard import (
    WizardStage,
    WizardSession,
    StageChange,
    AdvanceStageRequest,
    AdvanceStageResponse,
)

__all__ = [
    # Signers
    "SignerType",
    "role_tag",
    "role_heading",
    "signature_placeholder",
    "EMPTY_SIGNATURE_SLOT",
    # Invitations
    "InvitationStatus",
    "SignatureInvitation",
    "SignerRosterEntry",
    "InviteSigner",
    "SendInvitationsRequest",
    "ResendInvitationRequest",
    "SaveSignatureRequest",
    "DirectSignRequest",
    "ContractRequest",
    "InvitationResult",
    # Wizard
    "WizardStage",
    "WizardSession",
    "StageChange",
    "AdvanceStageRequest",
    "AdvanceStageResponse",
]
