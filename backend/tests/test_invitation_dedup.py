"""
Invitation dedup: "most recent wins" over (sequence, created_at), and the
silent cleanup run before every status view.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import make_db
from greenlease.models.invitations import InvitationStatus, SignatureInvitation
from greenlease.models.signers import SignerType
from greenlease.services.dedup_service import (
    dedup_service,
    invitation_recency_key,
    latest_by_identity,
    select_superseded,
)
from greenlease.services.roster_service import build_roster, find_signer

T0 = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def _invitation(invitation_id, signer_id="000000018", sequence=None, created_at=T0, **extra):
    return SignatureInvitation(
        invitation_id=invitation_id,
        contract_id="c1",
        signer_type=SignerType.TENANT,
        signer_id=signer_id,
        signer_name="Yossi Cohen",
        signer_email="yossi@example.com",
        signer_role="tenant",
        sequence=sequence,
        created_at=created_at,
        expires_at=created_at + timedelta(days=7),
        **extra,
    )


def test_sequence_beats_clock():
    # Server clocks disagree: the later sequence was stamped earlier
    first = _invitation("SIG-A", sequence=1, created_at=T0 + timedelta(minutes=5))
    second = _invitation("SIG-B", sequence=2, created_at=T0)
    assert latest_by_identity([first, second])[second.identity_key].invitation_id == "SIG-B"


def test_created_at_breaks_ties_for_records_without_sequence():
    old = _invitation("SIG-A", created_at=T0)
    new = _invitation("SIG-B", created_at=T0 + timedelta(seconds=1))
    assert latest_by_identity([new, old])[old.identity_key].invitation_id == "SIG-B"


def test_sequenced_record_beats_legacy_record():
    legacy = _invitation("SIG-A", created_at=T0 + timedelta(days=1))
    sequenced = _invitation("SIG-B", sequence=1, created_at=T0)
    assert invitation_recency_key(sequenced) > invitation_recency_key(legacy)


def test_select_superseded_keeps_one_per_identity():
    invitations = [
        _invitation("SIG-A", sequence=1),
        _invitation("SIG-B", sequence=3),
        _invitation("SIG-C", sequence=2),
        _invitation("SIG-D", signer_id="other", sequence=4),
    ]
    stale = {invitation.invitation_id for invitation in select_superseded(invitations)}
    assert stale == {"SIG-A", "SIG-C"}

    remaining = [i for i in invitations if i.invitation_id not in stale]
    assert len({i.identity_key for i in remaining}) == len(remaining)


def test_select_superseded_nothing_to_remove():
    assert select_superseded([_invitation("SIG-A", sequence=1)]) == []


@pytest.mark.asyncio
async def test_deduplicate_deletes_superseded_records():
    db = make_db("signature_invitations")
    db.signature_invitations.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[
        _invitation("SIG-A", sequence=1).to_document(),
        _invitation("SIG-B", sequence=2).to_document(),
    ])))
    db.signature_invitations.delete_many = AsyncMock(return_value=MagicMock(deleted_count=1))

    with patch("greenlease.services.dedup_service.database.get_db", return_value=db), \
         patch("greenlease.services.dedup_service.create_audit_log", new_callable=AsyncMock) as audit:
        removed = await dedup_service.deduplicate("c1")

    assert removed == 1
    query = db.signature_invitations.delete_many.call_args[0][0]
    assert query == {"contract_id": "c1", "invitation_id": {"$in": ["SIG-A"]}}
    audit.assert_awaited_once()


@pytest.mark.asyncio
async def test_newer_invite_supersedes_signature_and_is_reported():
    # Invite raced a sign call: the signed record is older than the new link
    signed = _invitation("SIG-A", sequence=1, status=InvitationStatus.SIGNED,
                         signed_at=T0 + timedelta(minutes=1), signature_image="data:image/png;base64,AA")
    newer = _invitation("SIG-B", sequence=2, created_at=T0 + timedelta(minutes=1))
    assert latest_by_identity([signed, newer])[signed.identity_key].invitation_id == "SIG-B"

    db = make_db("signature_invitations")
    db.signature_invitations.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[
        signed.to_document(), newer.to_document(),
    ])))
    db.signature_invitations.delete_many = AsyncMock(return_value=MagicMock(deleted_count=1))

    with patch("greenlease.services.dedup_service.database.get_db", return_value=db), \
         patch("greenlease.services.dedup_service.create_audit_log", new_callable=AsyncMock) as audit:
        assert await dedup_service.deduplicate("c1") == 1

    metadata = audit.call_args.kwargs["metadata"]
    assert metadata["removed_invitation_ids"] == ["SIG-A"]
    assert metadata["removed_signed_invitation_ids"] == ["SIG-A"]


@pytest.mark.asyncio
async def test_deduplicate_no_duplicates_does_not_delete():
    db = make_db("signature_invitations")
    db.signature_invitations.find = MagicMock(return_value=MagicMock(to_list=AsyncMock(return_value=[
        _invitation("SIG-A", sequence=1).to_document(),
    ])))

    with patch("greenlease.services.dedup_service.database.get_db", return_value=db):
        assert await dedup_service.deduplicate("c1") == 0
    db.signature_invitations.delete_many.assert_not_awaited()


@pytest.mark.asyncio
async def test_deduplicate_swallows_store_errors():
    db = make_db("signature_invitations")
    db.signature_invitations.find = MagicMock(side_effect=RuntimeError("mongo down"))

    with patch("greenlease.services.dedup_service.database.get_db", return_value=db):
        assert await dedup_service.deduplicate("c1") == 0


@pytest.mark.asyncio
async def test_two_quick_invites_leave_one_record_matching_the_last(answers):
    """Two invite calls for one signer -> two records; the status view keeps the last."""
    first = _invitation("SIG-A", sequence=1, created_at=T0)
    second = _invitation("SIG-B", sequence=2, created_at=T0, resend_count=1)
    store = [first.to_document(), second.to_document()]

    async def delete_many(query):
        ids = set(query["invitation_id"]["$in"])
        store[:] = [doc for doc in store if doc["invitation_id"] not in ids]
        return MagicMock(deleted_count=len(ids))

    db = make_db("signature_invitations")
    db.signature_invitations.find = MagicMock(side_effect=lambda *a, **k: MagicMock(to_list=AsyncMock(return_value=list(store))))
    db.signature_invitations.delete_many = AsyncMock(side_effect=delete_many)

    with patch("greenlease.services.dedup_service.database.get_db", return_value=db), \
         patch("greenlease.services.dedup_service.create_audit_log", new_callable=AsyncMock):
        await dedup_service.deduplicate("c1")

    assert [doc["invitation_id"] for doc in store] == ["SIG-B"]
    roster = build_roster(answers, [SignatureInvitation(**doc) for doc in store], T0)
    tenant = find_signer(roster, SignerType.TENANT, "000000018")
    assert tenant.invitation_id == "SIG-B"
    assert tenant.status == InvitationStatus.SENT
    assert tenant.resend_count == 1
