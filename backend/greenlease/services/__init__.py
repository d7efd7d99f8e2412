"""GreenLease Services"""

from .contract_service import ContractService, ContractNotFoundError, contract_service
from .dedup_service import DedupService, dedup_service
from .email_service import EmailService, email_service
from .invitation_service import InvitationError, InvitationService, invitation_service
from .pdf_service import PdfRenderError, PdfService, pdf_service
from .wizard_service import InvalidStageTransition, WizardService, wizard_service

__all__ = [
    "ContractService",
    "ContractNotFoundError",
    "contract_service",
    "DedupService",
    "dedup_service",
    "EmailService",
    "email_service",
    "InvitationError",
    "InvitationService",
    "invitation_service",
    "PdfRenderError",
    "PdfService",
    "pdf_service",
    "InvalidStageTransition",
    "WizardService",
    "wizard_service",
]
