"""
Invitation lifecycle: issue, resend, token verification, one-way signing and
landlord direct sign. Store access is mocked per test.
"""
import os
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import make_db
from greenlease.models.invitations import (
    InviteSigner,
    InvitationStatus,
    SignatureInvitation,
    SignerRosterEntry,
)
from greenlease.models.signers import SignerType
from greenlease.models.wizard import WizardStage
from greenlease.services.contract_service import DIRECT_SIGN_EMAIL, contract_service
from greenlease.services.email_service import email_service
from greenlease.services.invitation_service import (
    AlreadySignedError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationSupersededError,
    SignerNotFoundError,
    invitation_service,
)
from greenlease.services.wizard_service import wizard_service

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)
TOKEN = "a" * 64


def _invitation_doc(token=TOKEN, sequence=1, status="sent", created_at=T0, invitation_id="SIG-1"):
    return SignatureInvitation(
        invitation_id=invitation_id,
        contract_id="c1",
        signer_type=SignerType.TENANT,
        signer_id="000000018",
        signer_name="Yossi Cohen",
        signer_email="yossi@example.com",
        signer_role="tenant",
        invitation_token=token,
        status=status,
        sequence=sequence,
        created_at=created_at,
        expires_at=created_at + timedelta(days=7),
    ).to_document()


def _db_with(doc, history=None):
    db = make_db("signature_invitations")
    db.signature_invitations.find_one = AsyncMock(return_value=doc)
    db.signature_invitations.find = MagicMock(
        return_value=MagicMock(to_list=AsyncMock(return_value=history if history is not None else [doc]))
    )
    return db


def _roster():
    return [
        SignerRosterEntry(signer_type=SignerType.LANDLORD, signer_id="123456782", name="Dana Levi",
                          role="landlord", email="dana@example.com"),
        SignerRosterEntry(signer_type=SignerType.TENANT, signer_id="000000018", name="Yossi Cohen",
                          role="tenant", email="yossi@example.com"),
        SignerRosterEntry(signer_type=SignerType.TENANT, signer_id="tenant-1-Rina", name="Rina",
                          role="tenant 2", email=None),
    ]


class TestSendInvitations:
    @pytest.mark.asyncio
    async def test_creates_record_even_when_email_fails(self, answers):
        db = make_db("signature_invitations")
        failed = MagicMock(status="failed", error_message="Postmark down")

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db), \
             patch("greenlease.services.invitation_service.create_audit_log", new_callable=AsyncMock), \
             patch.dict(os.environ, {"FRONTEND_PUBLIC_URL": "https://app.greenlease.test"}), \
             patch.object(contract_service, "get_answers", AsyncMock(return_value=answers)), \
             patch.object(contract_service, "get_roster", AsyncMock(return_value=_roster())), \
             patch.object(contract_service, "next_invitation_sequence", AsyncMock(return_value=7)), \
             patch.object(email_service, "send_signature_invitation", AsyncMock(return_value=failed)) as send, \
             patch.object(wizard_service, "advance_if_at", AsyncMock(return_value=True)) as advance:
            results = await invitation_service.send_invitations(
                "c1", [InviteSigner(signer_type=SignerType.TENANT, signer_id="000000018")]
            )

        assert len(results) == 1
        assert results[0].success is True
        assert results[0].email_sent is False
        assert "could not be sent" in results[0].message

        stored = db.signature_invitations.insert_one.call_args[0][0]
        assert stored["status"] == "sent"
        assert stored["sequence"] == 7
        assert stored["resend_count"] == 0
        assert len(stored["invitation_token"]) == 64
        created = datetime.fromisoformat(stored["created_at"])
        assert datetime.fromisoformat(stored["expires_at"]) - created == timedelta(days=7)

        signing_url = send.call_args.kwargs["signing_url"]
        assert signing_url == f"https://app.greenlease.test/signature/{stored['invitation_token']}"
        assert "invitation_token" not in results[0].invitation
        advance.assert_awaited_once_with("c1", WizardStage.PAID, WizardStage.SIGNING, "Signature invitations sent")

    @pytest.mark.asyncio
    async def test_skips_unknown_signed_and_emailless_signers(self, answers):
        roster = _roster()
        roster[0] = roster[0].model_copy(update={"status": InvitationStatus.SIGNED})
        db = make_db("signature_invitations")

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db), \
             patch.object(contract_service, "get_answers", AsyncMock(return_value=answers)), \
             patch.object(contract_service, "get_roster", AsyncMock(return_value=roster)), \
             patch.object(wizard_service, "advance_if_at", AsyncMock()) as advance:
            results = await invitation_service.send_invitations("c1", [
                InviteSigner(signer_type=SignerType.LANDLORD, signer_id="123456782"),
                InviteSigner(signer_type=SignerType.TENANT, signer_id="nobody"),
                InviteSigner(signer_type=SignerType.TENANT, signer_id="tenant-1-Rina"),
            ])

        assert [r.success for r in results] == [False, False, False]
        assert "already signed" in results[0].message
        assert "not part of this contract" in results[1].message
        assert "No email address" in results[2].message
        db.signature_invitations.insert_one.assert_not_awaited()
        advance.assert_not_awaited()


class TestResend:
    @pytest.mark.asyncio
    async def test_resend_creates_new_record_with_incremented_count(self, answers):
        roster = _roster()
        roster[1] = roster[1].model_copy(update={
            "status": InvitationStatus.SENT, "invitation_id": "SIG-1", "resend_count": 2,
        })
        db = make_db("signature_invitations")
        sent = MagicMock(status="sent", error_message=None)

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db), \
             patch("greenlease.services.invitation_service.create_audit_log", new_callable=AsyncMock) as audit, \
             patch("greenlease.services.invitation_service.build_signing_url", return_value="https://x/signature/t"), \
             patch.object(contract_service, "get_answers", AsyncMock(return_value=answers)), \
             patch.object(contract_service, "get_roster", AsyncMock(return_value=roster)), \
             patch.object(contract_service, "next_invitation_sequence", AsyncMock(return_value=3)), \
             patch.object(email_service, "send_signature_invitation", AsyncMock(return_value=sent)):
            result = await invitation_service.resend_invitation("c1", SignerType.TENANT, "000000018")

        assert result.success and result.email_sent
        stored = db.signature_invitations.insert_one.call_args[0][0]
        assert stored["resend_count"] == 3
        assert stored["invitation_id"] != "SIG-1"
        assert audit.call_args.kwargs["action"].value == "INVITATION_RESENT"

    @pytest.mark.asyncio
    async def test_resend_unknown_signer(self, answers):
        with patch.object(contract_service, "get_answers", AsyncMock(return_value=answers)), \
             patch.object(contract_service, "get_roster", AsyncMock(return_value=_roster())):
            with pytest.raises(SignerNotFoundError) as exc_info:
                await invitation_service.resend_invitation("c1", SignerType.GUARANTOR, "g1")
        assert exc_info.value.status_code == 404


class TestVerifyAndSign:
    @pytest.mark.asyncio
    async def test_unknown_token(self):
        db = _db_with(None)
        with patch("greenlease.services.invitation_service.database.get_db", return_value=db):
            with pytest.raises(InvitationNotFoundError):
                await invitation_service.verify_token("nope", now=T0)

    @pytest.mark.asyncio
    async def test_sign_after_expiry_fails_and_status_stays_sent(self, signature_image):
        db = _db_with(_invitation_doc())

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db):
            with pytest.raises(InvitationExpiredError) as exc_info:
                await invitation_service.sign(TOKEN, signature_image, now=T0 + timedelta(days=8))

        assert exc_info.value.status_code == 410
        db.signature_invitations.find_one_and_update.assert_not_awaited()
        db.signature_invitations.update_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_superseded_token_is_rejected(self):
        old = _invitation_doc(token=TOKEN, sequence=1, invitation_id="SIG-1")
        new = _invitation_doc(token="b" * 64, sequence=2, invitation_id="SIG-2")
        db = _db_with(old, history=[old, new])

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db):
            with pytest.raises(InvitationSupersededError):
                await invitation_service.verify_token(TOKEN, now=T0 + timedelta(hours=1))

    @pytest.mark.asyncio
    async def test_sign_marks_invitation_signed(self, signature_image):
        doc = _invitation_doc()
        signed_doc = {**doc, "status": "signed", "signature_image": signature_image,
                      "signed_at": (T0 + timedelta(days=1)).isoformat(), "ip_address": "10.0.0.1"}
        db = _db_with(doc)
        db.signature_invitations.find_one_and_update = AsyncMock(return_value=signed_doc)

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db), \
             patch("greenlease.services.invitation_service.create_audit_log", new_callable=AsyncMock) as audit, \
             patch.object(invitation_service, "_after_signature", AsyncMock()) as after:
            signed = await invitation_service.sign(
                TOKEN, signature_image, ip_address="10.0.0.1", user_agent="pytest", now=T0 + timedelta(days=1)
            )

        assert signed.status == InvitationStatus.SIGNED
        query, update = db.signature_invitations.find_one_and_update.call_args[0][:2]
        assert query == {"invitation_token": TOKEN, "status": "sent"}
        assert update["$set"]["status"] == "signed"
        assert update["$set"]["ip_address"] == "10.0.0.1"
        assert update["$set"]["user_agent"] == "pytest"
        audit.assert_awaited_once()
        after.assert_awaited_once_with("c1")

    @pytest.mark.asyncio
    async def test_signing_twice_fails(self, signature_image):
        db = _db_with(_invitation_doc(status="signed"))
        with patch("greenlease.services.invitation_service.database.get_db", return_value=db):
            with pytest.raises(AlreadySignedError) as exc_info:
                await invitation_service.sign(TOKEN, signature_image, now=T0 + timedelta(days=1))
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_concurrent_second_submit_fails(self, signature_image):
        """The record was still 'sent' when read but another request signed it first."""
        db = _db_with(_invitation_doc())
        db.signature_invitations.find_one_and_update = AsyncMock(return_value=None)

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db):
            with pytest.raises(AlreadySignedError):
                await invitation_service.sign(TOKEN, signature_image, now=T0 + timedelta(days=1))

    @pytest.mark.asyncio
    async def test_invalid_signature_image(self):
        with pytest.raises(ValueError):
            await invitation_service.sign(TOKEN, "not-an-image", now=T0)


class TestDirectSign:
    @pytest.mark.asyncio
    async def test_landlord_direct_sign_creates_signed_record(self, signature_image):
        db = make_db("signature_invitations")

        with patch("greenlease.services.invitation_service.database.get_db", return_value=db), \
             patch("greenlease.services.invitation_service.create_audit_log", new_callable=AsyncMock), \
             patch.object(contract_service, "get_roster", AsyncMock(return_value=_roster())), \
             patch.object(contract_service, "next_invitation_sequence", AsyncMock(return_value=5)), \
             patch.object(invitation_service, "_after_signature", AsyncMock()) as after:
            invitation = await invitation_service.direct_sign("c1", "123456782", signature_image)

        stored = db.signature_invitations.insert_one.call_args[0][0]
        assert stored["status"] == "signed"
        assert stored["is_direct"] is True
        assert stored["signer_email"] == DIRECT_SIGN_EMAIL
        assert stored["signer_role"] == "landlord"
        assert stored["sequence"] == 5
        assert invitation.signature_image == signature_image
        after.assert_awaited_once_with("c1")

    @pytest.mark.asyncio
    async def test_direct_sign_is_landlord_only(self, signature_image):
        with patch.object(contract_service, "get_roster", AsyncMock(return_value=_roster())):
            with pytest.raises(SignerNotFoundError):
                await invitation_service.direct_sign("c1", "000000018", signature_image)


class TestAfterSignature:
    @pytest.mark.asyncio
    async def test_completion_moves_wizard_and_distributes(self):
        with patch.object(contract_service, "get_roster", AsyncMock(return_value=[])), \
             patch.object(contract_service, "update_signing_state", AsyncMock(return_value=True)), \
             patch.object(contract_service, "distribute_signed_contract", AsyncMock()) as distribute, \
             patch.object(wizard_service, "advance_if_at", AsyncMock(return_value=True)) as advance:
            await invitation_service._after_signature("c1")

        advance.assert_awaited_once_with("c1", WizardStage.SIGNING, WizardStage.COMPLETE, "All parties signed")
        distribute.assert_awaited_once_with("c1")

    @pytest.mark.asyncio
    async def test_distribution_failure_does_not_propagate(self):
        with patch.object(contract_service, "get_roster", AsyncMock(return_value=[])), \
             patch.object(contract_service, "update_signing_state", AsyncMock(return_value=True)), \
             patch.object(contract_service, "distribute_signed_contract", AsyncMock(side_effect=RuntimeError("pdf"))), \
             patch.object(wizard_service, "advance_if_at", AsyncMock(return_value=True)):
            await invitation_service._after_signature("c1")

    @pytest.mark.asyncio
    async def test_not_complete_does_nothing(self):
        with patch.object(contract_service, "get_roster", AsyncMock(return_value=[])), \
             patch.object(contract_service, "update_signing_state", AsyncMock(return_value=False)), \
             patch.object(contract_service, "distribute_signed_contract", AsyncMock()) as distribute:
            await invitation_service._after_signature("c1")
        distribute.assert_not_awaited()
