"""
Wizard Session Service

One persisted session per contract replaces ad hoc client flags:

DRAFT → SUMMARY → PAID → SIGNING → COMPLETE
        SUMMARY → DRAFT

Every change is checked against ALLOWED_TRANSITIONS and applied with a
conditional update on the current stage, so two racing requests cannot both
move the same session.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from database import database
from models import AuditAction
from utils.audit import create_audit_log
from utils.israeli_id import is_valid_israeli_id
from greenlease.merge import generate_summary_section, normalize_answers
from greenlease.merge.clauses import guarantor_count
from greenlease.models.wizard import StageChange, WizardSession, WizardStage, can_transition

logger = logging.getLogger(__name__)


class InvalidStageTransition(Exception):
    status_code = 409

    def __init__(self, current: WizardStage, target: WizardStage, message: Optional[str] = None):
        self.current = current
        self.target = target
        self.message = message or f"Cannot move wizard from '{current.value}' to '{target.value}'"
        super().__init__(self.message)


def national_id_warnings(answers: Dict[str, Any]) -> List[str]:
    """Warnings for entered national IDs that fail the check digit."""
    normalized = normalize_answers(answers)
    checks: List[Tuple[str, Any]] = []

    landlord = normalized["landlords"][0]
    checks.append(("Landlord", landlord.get("landlordId") or normalized.get("landlordId")))
    tenants = normalized["tenants"]
    for index, tenant in enumerate(tenants):
        label = "Tenant" if len(tenants) == 1 else f"Tenant {index + 1}"
        checks.append((label, tenant.get("tenantIdNumber") or (normalized.get("tenantIdNumber") if len(tenants) == 1 else None)))
    for number in range(1, guarantor_count(normalized) + 1):
        checks.append((f"Guarantor {number}", normalized.get(f"guarantor{number}Id")))

    warnings = []
    for label, value in checks:
        if value and str(value).strip() and not is_valid_israeli_id(value):
            warnings.append(f"{label}: ID number {str(value).strip()} does not pass the check digit validation")
    return warnings


class WizardService:
    """Persisted wizard sessions."""

    def _get_db(self):
        return database.get_db()

    async def get_session(self, contract_id: str) -> WizardSession:
        db = self._get_db()
        doc = await db.wizard_sessions.find_one({"contract_id": contract_id}, {"_id": 0})
        if doc:
            return WizardSession(**doc)

        session = WizardSession(contract_id=contract_id)
        await db.wizard_sessions.insert_one(session.model_dump(mode="json"))
        logger.info(f"Wizard session created for contract {contract_id}")
        return session

    async def advance(self, contract_id: str, target: WizardStage, reason: Optional[str] = None) -> WizardSession:
        session = await self.get_session(contract_id)
        current = session.stage
        if not can_transition(current, target):
            raise InvalidStageTransition(current, target)

        change = StageChange(from_stage=current, to_stage=target, reason=reason)
        now = datetime.now(timezone.utc)
        db = self._get_db()
        result = await db.wizard_sessions.update_one(
            {"contract_id": contract_id, "stage": current.value},
            {
                "$set": {"stage": target.value, "updated_at": now.isoformat()},
                "$push": {"history": change.model_dump(mode="json")},
            },
        )
        if result.matched_count == 0:
            raise InvalidStageTransition(current, target, "Wizard session changed concurrently, reload and retry")

        logger.info(f"Wizard for contract {contract_id}: {current.value} -> {target.value}")
        await create_audit_log(
            action=AuditAction.WIZARD_STAGE_CHANGED,
            contract_id=contract_id,
            resource_type="wizard_session",
            resource_id=contract_id,
            before_state={"stage": current.value},
            after_state={"stage": target.value},
            metadata={"reason": reason} if reason else None,
        )
        return session.model_copy(update={
            "stage": target,
            "updated_at": now,
            "history": session.history + [change],
        })

    async def advance_if_at(self, contract_id: str, expected: WizardStage, target: WizardStage, reason: str) -> bool:
        """Move the session only when it currently sits at ``expected``.

        Used for automatic transitions triggered by the signature workflow;
        never raises.
        """
        try:
            session = await self.get_session(contract_id)
            if session.stage != expected:
                return False
            await self.advance(contract_id, target, reason)
            return True
        except Exception as e:
            logger.warning(f"Automatic wizard transition {expected.value} -> {target.value} failed for {contract_id}: {e}")
            return False

    def review(self, answers: Dict[str, Any]) -> Tuple[str, List[str]]:
        """Summary text and ID warnings shown when entering the summary step."""
        return generate_summary_section(answers), national_id_warnings(answers)


wizard_service = WizardService()
