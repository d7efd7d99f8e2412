"""
Invitation Lifecycle Service

not_sent → sent → signed
           sent → expired

- Invite/resend always append a new record (new token, new expiry); the
  roster resolves "most recent wins" and the deduplicator removes the rest.
- Sign is one-way: the update only matches a record still in ``sent``.
- Expiry is checked at sign time against ``expires_at``; nothing sweeps.
- Email failures never undo an invitation. Distribution after the last
  signature never fails the sign action.
"""
import os
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import database
from models import AuditAction, ActorRole
from utils.audit import create_audit_log
from utils.public_app_url import build_signing_url
from greenlease.merge import format_property_address
from greenlease.models.invitations import (
    InvitationResult,
    InvitationStatus,
    InviteSigner,
    SignatureInvitation,
    SignerRosterEntry,
    ensure_utc,
    new_invitation_token,
    validate_signature_image,
)
from greenlease.models.signers import SignerType
from greenlease.models.wizard import WizardStage
from greenlease.services.contract_service import DIRECT_SIGN_EMAIL, contract_service
from greenlease.services.dedup_service import latest_by_identity
from greenlease.services.email_service import email_service
from greenlease.services.roster_service import find_signer
from greenlease.services.wizard_service import wizard_service

logger = logging.getLogger(__name__)

INVITATION_VALIDITY_DAYS = int(os.getenv("INVITATION_VALIDITY_DAYS", "7"))


class InvitationError(Exception):
    """Base error for invitation actions; carries the HTTP status to report."""
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvitationNotFoundError(InvitationError):
    status_code = 404

    def __init__(self, message: str = "Invalid signing link"):
        super().__init__(message)


class InvitationExpiredError(InvitationError):
    status_code = 410

    def __init__(self, message: str = "This signing link has expired. Ask the landlord to send a new one."):
        super().__init__(message)


class InvitationSupersededError(InvitationError):
    status_code = 410

    def __init__(self, message: str = "A newer signing link was sent for this signer. Use the latest email."):
        super().__init__(message)


class AlreadySignedError(InvitationError):
    status_code = 409

    def __init__(self, message: str = "This contract was already signed with this link"):
        super().__init__(message)


class SignerNotFoundError(InvitationError):
    status_code = 404

    def __init__(self, signer_type: SignerType, signer_id: str):
        super().__init__(f"Signer {SignerType(signer_type).value}/{signer_id} is not part of this contract")


class InvitationService:
    """Invitation issue, verification and signing."""

    def _get_db(self):
        return database.get_db()

    def _expiry(self, now: datetime) -> datetime:
        return now + timedelta(days=INVITATION_VALIDITY_DAYS)

    async def _find_by_token(self, token: str) -> SignatureInvitation:
        db = self._get_db()
        doc = await db.signature_invitations.find_one({"invitation_token": token}, {"_id": 0})
        if not doc:
            raise InvitationNotFoundError()
        return SignatureInvitation(**doc)

    async def _latest_for_signer(self, invitation: SignatureInvitation) -> SignatureInvitation:
        db = self._get_db()
        docs = await db.signature_invitations.find(
            {
                "contract_id": invitation.contract_id,
                "signer_type": invitation.signer_type.value,
                "signer_id": invitation.signer_id,
            },
            {"_id": 0},
        ).to_list(100)
        candidates = [SignatureInvitation(**doc) for doc in docs] or [invitation]
        return latest_by_identity(candidates)[invitation.identity_key]

    async def _issue(
        self,
        contract_id: str,
        signer: SignerRosterEntry,
        email: str,
        property_address: str,
        resend_count: int = 0,
    ) -> InvitationResult:
        now = datetime.now(timezone.utc)
        sequence = await contract_service.next_invitation_sequence(contract_id)
        invitation = SignatureInvitation(
            contract_id=contract_id,
            signer_type=signer.signer_type,
            signer_id=signer.signer_id,
            signer_name=signer.name,
            signer_email=email,
            signer_role=signer.role,
            status=InvitationStatus.SENT,
            sequence=sequence,
            created_at=now,
            expires_at=self._expiry(now),
            sent_at=now,
            resend_count=resend_count,
        )

        db = self._get_db()
        await db.signature_invitations.insert_one(invitation.to_document())
        logger.info(
            f"Invitation {invitation.invitation_id} created for {signer.role} of contract {contract_id} (seq {sequence})"
        )

        email_sent = False
        message = None
        try:
            message_log = await email_service.send_signature_invitation(
                recipient=email,
                signer_name=signer.name,
                property_address=property_address,
                signing_url=build_signing_url(invitation.invitation_token),
                expires_at=invitation.expires_at,
                contract_id=contract_id,
            )
            email_sent = message_log.status == "sent"
            if not email_sent:
                message = f"Invitation created but the email could not be sent: {message_log.error_message}"
        except Exception as e:
            logger.error(f"Invitation email for {invitation.invitation_id} failed: {e}")
            message = f"Invitation created but the email could not be sent: {e}"

        await create_audit_log(
            action=AuditAction.INVITATION_RESENT if resend_count else AuditAction.INVITATION_SENT,
            actor_role=ActorRole.LANDLORD,
            contract_id=contract_id,
            resource_type="signature_invitation",
            resource_id=invitation.invitation_id,
            metadata={
                "signer_type": signer.signer_type.value,
                "signer_id": signer.signer_id,
                "role": signer.role,
                "sequence": sequence,
                "resend_count": resend_count,
                "email_sent": email_sent,
            },
        )

        return InvitationResult(
            signer_type=signer.signer_type,
            signer_id=signer.signer_id,
            success=True,
            email_sent=email_sent,
            invitation=invitation.public_view(),
            message=message or "Invitation sent",
        )

    async def send_invitations(self, contract_id: str, signers: List[InviteSigner]) -> List[InvitationResult]:
        """Create and email one invitation per requested signer.

        Each requested signer is reported separately; a skipped or failed
        signer does not stop the others.
        """
        answers = await contract_service.get_answers(contract_id)
        roster = await contract_service.get_roster(contract_id, answers)
        property_address = format_property_address(answers)

        results: List[InvitationResult] = []
        for requested in signers:
            signer = find_signer(roster, requested.signer_type, requested.signer_id)
            if signer is None:
                results.append(InvitationResult(
                    signer_type=requested.signer_type,
                    signer_id=requested.signer_id,
                    success=False,
                    message="Signer is not part of this contract",
                ))
                continue
            if signer.status == InvitationStatus.SIGNED:
                results.append(InvitationResult(
                    signer_type=signer.signer_type,
                    signer_id=signer.signer_id,
                    success=False,
                    message=f"{signer.name} has already signed",
                ))
                continue
            email = (requested.email or signer.email or "").strip()
            if not email:
                results.append(InvitationResult(
                    signer_type=signer.signer_type,
                    signer_id=signer.signer_id,
                    success=False,
                    message=f"No email address for {signer.name}",
                ))
                continue
            results.append(await self._issue(contract_id, signer, email, property_address))

        if any(result.success for result in results):
            await wizard_service.advance_if_at(
                contract_id, WizardStage.PAID, WizardStage.SIGNING, "Signature invitations sent"
            )
        return results

    async def resend_invitation(
        self,
        contract_id: str,
        signer_type: SignerType,
        signer_id: str,
        email: Optional[str] = None,
    ) -> InvitationResult:
        answers = await contract_service.get_answers(contract_id)
        roster = await contract_service.get_roster(contract_id, answers)
        signer = find_signer(roster, signer_type, signer_id)
        if signer is None:
            raise SignerNotFoundError(signer_type, signer_id)
        if signer.status == InvitationStatus.SIGNED:
            raise AlreadySignedError(f"{signer.name} has already signed")
        recipient = (email or signer.email or "").strip()
        if not recipient:
            raise InvitationError(f"No email address for {signer.name}")

        previous = signer.resend_count if signer.invitation_id else -1
        return await self._issue(
            contract_id,
            signer,
            recipient,
            format_property_address(answers),
            resend_count=previous + 1,
        )

    async def verify_token(self, token: str, now: Optional[datetime] = None) -> SignatureInvitation:
        """The invitation behind a signing link, if it can still be signed."""
        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        invitation = await self._find_by_token(token)
        if invitation.status == InvitationStatus.SIGNED:
            raise AlreadySignedError()
        if invitation.is_expired(now):
            raise InvitationExpiredError()
        latest = await self._latest_for_signer(invitation)
        if latest.invitation_id != invitation.invitation_id:
            raise InvitationSupersededError()
        return invitation

    async def signing_page(self, token: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Invitation plus the current contract for the signing page."""
        invitation = await self.verify_token(token, now)
        rendered = await contract_service.render(invitation.contract_id)
        return {
            "invitation": invitation.public_view(),
            "property_address": rendered.property_address,
            "contract_html": rendered.html,
        }

    async def sign(
        self,
        token: str,
        signature_image: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SignatureInvitation:
        now = ensure_utc(now) if now else datetime.now(timezone.utc)
        signature_image = validate_signature_image(signature_image)
        invitation = await self.verify_token(token, now)

        db = self._get_db()
        updated = await db.signature_invitations.find_one_and_update(
            {"invitation_token": token, "status": InvitationStatus.SENT.value},
            {"$set": {
                "status": InvitationStatus.SIGNED.value,
                "signed_at": now.isoformat(),
                "signature_image": signature_image,
                "ip_address": ip_address,
                "user_agent": user_agent,
            }},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise AlreadySignedError()

        signed = SignatureInvitation(**updated)
        logger.info(f"Invitation {signed.invitation_id} signed by {signed.signer_role} of contract {signed.contract_id}")
        await create_audit_log(
            action=AuditAction.SIGNATURE_SAVED,
            actor_role=ActorRole[signed.signer_type.name],
            actor_id=signed.signer_id,
            contract_id=signed.contract_id,
            resource_type="signature_invitation",
            resource_id=signed.invitation_id,
            before_state={"status": invitation.status.value},
            after_state={"status": signed.status.value},
            metadata={"user_agent": user_agent},
            ip_address=ip_address,
        )
        await self._after_signature(signed.contract_id)
        return signed

    async def direct_sign(
        self,
        contract_id: str,
        signer_id: str,
        signature_image: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SignatureInvitation:
        """Landlord signs in place; recorded as a normal, already-signed invitation."""
        signature_image = validate_signature_image(signature_image)
        roster = await contract_service.get_roster(contract_id)
        signer = find_signer(roster, SignerType.LANDLORD, signer_id)
        if signer is None:
            raise SignerNotFoundError(SignerType.LANDLORD, signer_id)
        if signer.status == InvitationStatus.SIGNED:
            raise AlreadySignedError(f"{signer.name} has already signed")

        now = datetime.now(timezone.utc)
        sequence = await contract_service.next_invitation_sequence(contract_id)
        invitation = SignatureInvitation(
            contract_id=contract_id,
            signer_type=SignerType.LANDLORD,
            signer_id=signer.signer_id,
            signer_name=signer.name,
            signer_email=DIRECT_SIGN_EMAIL,
            signer_role=signer.role,
            invitation_token=new_invitation_token(),
            status=InvitationStatus.SIGNED,
            sequence=sequence,
            created_at=now,
            expires_at=self._expiry(now),
            is_direct=True,
            signed_at=now,
            signature_image=signature_image,
            ip_address=ip_address,
            user_agent=user_agent,
        )

        db = self._get_db()
        await db.signature_invitations.insert_one(invitation.to_document())
        logger.info(f"Direct signature saved for landlord of contract {contract_id}")
        await create_audit_log(
            action=AuditAction.DIRECT_SIGNATURE_SAVED,
            actor_role=ActorRole.LANDLORD,
            actor_id=signer.signer_id,
            contract_id=contract_id,
            resource_type="signature_invitation",
            resource_id=invitation.invitation_id,
            metadata={"sequence": sequence, "user_agent": user_agent},
            ip_address=ip_address,
        )
        await self._after_signature(contract_id)
        return invitation

    async def get_signed_invitations(self, contract_id: str) -> List[SignatureInvitation]:
        invitations = await contract_service.get_invitations(contract_id)
        latest = latest_by_identity(invitations).values()
        signed = [invitation for invitation in latest if invitation.status == InvitationStatus.SIGNED]
        return sorted(signed, key=lambda invitation: invitation.signed_at or invitation.created_at)

    async def _after_signature(self, contract_id: str):
        try:
            roster = await contract_service.get_roster(contract_id)
            if not await contract_service.update_signing_state(contract_id, roster):
                return
            await wizard_service.advance_if_at(
                contract_id, WizardStage.SIGNING, WizardStage.COMPLETE, "All parties signed"
            )
            await contract_service.distribute_signed_contract(contract_id)
        except Exception as e:
            logger.error(f"Post-signature processing failed for contract {contract_id}: {e}")


invitation_service = InvitationService()
