"""
Invitation Deduplicator

Concurrent or retried invite calls can leave several invitation records for
one signer. Only the most recent one is authoritative; the rest are removed
whenever a contract's signing status is viewed. Cleanup is silent: callers
never see an error from it.

Recency is (sequence, created_at). ``sequence`` is assigned from a
per-contract counter in the store at insert time, so it does not depend on
any server's clock; ``created_at`` only breaks ties for legacy records
without a sequence.

Recency wins even over a signature: an invite that races a sign call can
insert a ``sent`` record after the signed one, and the signed record is then
the one removed. Invite and resend refuse signers the roster already shows as
signed, so this needs the two calls to overlap. Removed signed records are
logged at warning level and listed in the audit entry.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from database import database
from models import AuditAction
from utils.audit import create_audit_log
from greenlease.models.invitations import InvitationStatus, SignatureInvitation

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def invitation_recency_key(invitation: SignatureInvitation) -> Tuple[int, datetime]:
    sequence = invitation.sequence if invitation.sequence is not None else -1
    return (sequence, invitation.created_at or _EPOCH)


def latest_by_identity(invitations: Iterable[SignatureInvitation]) -> Dict[Tuple[str, str], SignatureInvitation]:
    """Authoritative invitation per signer identity."""
    latest: Dict[Tuple[str, str], SignatureInvitation] = {}
    for invitation in invitations:
        current = latest.get(invitation.identity_key)
        if current is None or invitation_recency_key(invitation) > invitation_recency_key(current):
            latest[invitation.identity_key] = invitation
    return latest


def select_superseded(invitations: Iterable[SignatureInvitation]) -> List[SignatureInvitation]:
    """Every invitation that is not the authoritative one for its signer."""
    invitations = list(invitations)
    keep = {invitation.invitation_id for invitation in latest_by_identity(invitations).values()}
    return [invitation for invitation in invitations if invitation.invitation_id not in keep]


class DedupService:
    """Removes superseded invitation records for a contract."""

    def _get_db(self):
        return database.get_db()

    async def deduplicate(self, contract_id: str) -> int:
        """Delete superseded invitations. Returns how many were removed."""
        try:
            db = self._get_db()
            docs = await db.signature_invitations.find(
                {"contract_id": contract_id}, {"_id": 0}
            ).to_list(1000)
            invitations = [SignatureInvitation(**doc) for doc in docs]
            stale = select_superseded(invitations)
            if not stale:
                return 0

            stale_ids = [invitation.invitation_id for invitation in stale]
            signed_ids = [
                invitation.invitation_id for invitation in stale if invitation.status == InvitationStatus.SIGNED
            ]
            if signed_ids:
                logger.warning(
                    f"Dedup for contract {contract_id} removes signed invitations {signed_ids} superseded by newer records"
                )
            result = await db.signature_invitations.delete_many(
                {"contract_id": contract_id, "invitation_id": {"$in": stale_ids}}
            )
            removed = getattr(result, "deleted_count", len(stale_ids))
            logger.info(f"Removed {removed} superseded invitations for contract {contract_id}")

            await create_audit_log(
                action=AuditAction.INVITATIONS_DEDUPLICATED,
                contract_id=contract_id,
                resource_type="contract",
                resource_id=contract_id,
                metadata={"removed_invitation_ids": stale_ids, "removed_signed_invitation_ids": signed_ids},
            )
            return removed
        except Exception as e:
            logger.error(f"Invitation dedup failed for contract {contract_id}: {e}")
            return 0


dedup_service = DedupService()
