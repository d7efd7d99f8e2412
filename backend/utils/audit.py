from database import database
from models import AuditLog, AuditAction, ActorRole
from datetime import datetime
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)

def calculate_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Fields added, removed and changed between two states.

    Empty categories are left out; identical states give an empty dict.
    """
    if not before and not after:
        return {}
    if not before:
        return {"added": after}
    if not after:
        return {"removed": before}

    diff = {"added": {}, "removed": {}, "changed": {}}
    for key in set(before) | set(after):
        if key not in before:
            diff["added"][key] = after[key]
        elif key not in after:
            diff["removed"][key] = before[key]
        elif before[key] != after[key]:
            diff["changed"][key] = {"from": before[key], "to": after[key]}

    return {k: v for k, v in diff.items() if v}

async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[ActorRole] = None,
    actor_id: Optional[str] = None,
    contract_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
) -> str:
    """Record an audit entry for a contract or signature action.

    When both states are given, their diff is stored under ``metadata.diff``.
    Returns the audit id, or "" when the write failed. Audit failures are
    logged and never propagate to the caller.
    """
    try:
        db = database.get_db()

        enriched_metadata = dict(metadata) if metadata else {}
        if before_state and after_state:
            diff = calculate_diff(before_state, after_state)
            if diff:
                enriched_metadata["diff"] = diff

        audit_log = AuditLog(
            action=action,
            actor_role=actor_role,
            actor_id=actor_id,
            contract_id=contract_id,
            resource_type=resource_type,
            resource_id=resource_id,
            before_state=before_state,
            after_state=after_state,
            metadata=enriched_metadata or None,
            ip_address=ip_address
        )

        doc = audit_log.model_dump()
        doc["timestamp"] = doc["timestamp"].isoformat() if isinstance(doc["timestamp"], datetime) else doc["timestamp"]

        await db.audit_logs.insert_one(doc)
        logger.info(f"Audit log created: {action.value}" + (f" for contract {contract_id}" if contract_id else ""))
        return audit_log.audit_id
    except Exception as e:
        logger.error(f"Failed to create audit log: {e}")
        return ""

async def get_contract_audit_trail(contract_id: str, limit: int = 100) -> List[Dict[str, Any]]:
    """Audit entries for a contract, newest first."""
    try:
        db = database.get_db()
        cursor = db.audit_logs.find(
            {"contract_id": contract_id},
            {"_id": 0}
        ).sort("timestamp", -1).limit(limit)

        return await cursor.to_list(length=limit)
    except Exception as e:
        logger.error(f"Failed to get audit trail for contract {contract_id}: {e}")
        return []
