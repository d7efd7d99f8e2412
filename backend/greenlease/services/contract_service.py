"""
GreenLease Contract Service

Loads answers and the master template, merges them, assembles signatures
and renders the result to HTML/PDF. Also owns the per-contract signing
aggregate (contract_signatures) and the distribution of the final signed
contract to all parties.

Nothing here caches merged text: every call re-merges from the template and
the stored answers.
"""
import os
import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from database import database
from models import AuditAction
from utils.audit import create_audit_log
from greenlease.merge import merge_contract, format_property_address, generate_summary_section
from greenlease.models.invitations import InvitationStatus, SignatureInvitation, SignerRosterEntry
from greenlease.models.signers import SignerType
from greenlease.services.assembler import assemble_signed_contract, signed_signers_from_roster
from greenlease.services.email_service import email_service
from greenlease.services.pdf_service import pdf_service
from greenlease.services.roster_service import all_signed, build_roster

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "data" / "master_template.txt"
DIRECT_SIGN_EMAIL = os.getenv("DIRECT_SIGN_EMAIL", "direct-sign@greenlease.me")

MAIN_SECTION_RE = re.compile(r"^(\d+\.(?!\d)\s*[^<\n]+?)$", re.MULTILINE)
SUBSECTION_NUMBER_RE = re.compile(r"^(\d+\.\d+)(?![\d.])", re.MULTILINE)
APPENDIX_RE = re.compile(r'^(?=(?:<strong class="main-section-number">)?\d+\.\s*Appendix)', re.MULTILINE)

CONTRACT_CSS = """
        body { font-family: 'Frank Ruhl Libre', Arial, sans-serif; color: #111; background: white; margin: 0; }
        .contract-preview { white-space: pre-line; line-height: 1.4; font-size: 1.05rem; }
        .contract-title { font-size: 2rem; font-weight: bold; text-decoration: underline; text-align: center; margin: 2rem 0 0.5rem; }
        .main-section-number { font-size: 1.2em; font-weight: 700; }
        .subsection-number { font-weight: 700; }
        .signature-slot { display: inline-block; min-width: 200px; min-height: 80px; margin: 10px 0; }
        .signature-image { display: inline-block; min-width: 200px; text-align: center; margin: 10px 0; }
        .signature-image img { max-width: 180px; max-height: 60px; display: block; margin: 0 auto 10px auto; }
        .signature-name { font-size: 12px; font-weight: bold; }
        .page-break-appendix { page-break-before: always; }
"""


class ContractNotFoundError(Exception):
    status_code = 404

    def __init__(self, contract_id: str):
        super().__init__(f"Contract answers not found: {contract_id}")
        self.contract_id = contract_id
        self.message = "Contract not found"


@dataclass
class RenderedContract:
    contract_id: str
    answers: Dict[str, Any]
    merged_text: str
    assembled_text: str
    html: str
    roster: List[SignerRosterEntry] = field(default_factory=list)

    @property
    def property_address(self) -> str:
        return format_property_address(self.answers)


def load_template(path: Optional[str] = None) -> str:
    """Read the contract template fresh from disk."""
    template_path = Path(path or os.getenv("CONTRACT_TEMPLATE_PATH") or DEFAULT_TEMPLATE_PATH)
    return template_path.read_text(encoding="utf-8")


def format_contract_body(text: str) -> str:
    """Bold section headings and clause numbers, break before the appendix."""
    body = MAIN_SECTION_RE.sub(r'<strong class="main-section-number">\1</strong>', text)
    body = SUBSECTION_NUMBER_RE.sub(r'<strong class="subsection-number">\1</strong>', body)
    body = APPENDIX_RE.sub('<div class="page-break-appendix"></div>', body)
    return body


def build_contract_html(text: str, title: str = "Residential Lease Agreement") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(title)}</title>
    <style>{CONTRACT_CSS}</style>
</head>
<body>
    <div class="contract-preview">{format_contract_body(text)}</div>
</body>
</html>"""


class ContractService:
    """Contract rendering and the signing aggregate."""

    def _get_db(self):
        return database.get_db()

    async def get_answers(self, contract_id: str) -> Dict[str, Any]:
        db = self._get_db()
        doc = await db.form_answers.find_one({"contract_id": contract_id}, {"_id": 0})
        if not doc:
            raise ContractNotFoundError(contract_id)
        answers = doc.get("answers")
        return answers if isinstance(answers, dict) else doc

    async def get_invitations(self, contract_id: str) -> List[SignatureInvitation]:
        db = self._get_db()
        docs = await db.signature_invitations.find(
            {"contract_id": contract_id}, {"_id": 0}
        ).to_list(1000)
        return [SignatureInvitation(**doc) for doc in docs]

    async def get_roster(
        self,
        contract_id: str,
        answers: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> List[SignerRosterEntry]:
        if answers is None:
            answers = await self.get_answers(contract_id)
        invitations = await self.get_invitations(contract_id)
        return build_roster(answers, invitations, now)

    async def render(self, contract_id: str, with_signatures: bool = True) -> RenderedContract:
        answers = await self.get_answers(contract_id)
        merged = merge_contract(load_template(), answers)
        roster = await self.get_roster(contract_id, answers) if with_signatures else []
        assembled = assemble_signed_contract(merged, signed_signers_from_roster(roster))
        return RenderedContract(
            contract_id=contract_id,
            answers=answers,
            merged_text=merged,
            assembled_text=assembled,
            html=build_contract_html(assembled),
            roster=roster,
        )

    def summary(self, answers: Dict[str, Any]) -> str:
        return generate_summary_section(answers)

    async def next_invitation_sequence(self, contract_id: str) -> int:
        """Atomically allocate the next invitation sequence number for a contract."""
        db = self._get_db()
        now = datetime.now(timezone.utc).isoformat()
        doc = await db.contract_signatures.find_one_and_update(
            {"contract_id": contract_id},
            {
                "$inc": {"invitation_sequence": 1},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now, "all_signed": False},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["invitation_sequence"])

    async def update_signing_state(self, contract_id: str, roster: List[SignerRosterEntry]) -> bool:
        """Store ``all_signed`` for the contract.

        Returns True only for the update that moves the contract to fully
        signed, so completion side effects run once.
        """
        db = self._get_db()
        complete = all_signed(roster)
        before = await db.contract_signatures.find_one_and_update(
            {"contract_id": contract_id},
            {
                "$set": {
                    "all_signed": complete,
                    "signed_count": sum(1 for entry in roster if entry.status == InvitationStatus.SIGNED),
                    "required_count": len(roster),
                    "updated_at": datetime.now(timezone.utc).isoformat(),
                },
                "$setOnInsert": {"created_at": datetime.now(timezone.utc).isoformat()},
            },
            upsert=True,
            return_document=ReturnDocument.BEFORE,
        )
        newly_complete = complete and not (before or {}).get("all_signed", False)
        if newly_complete:
            logger.info(f"All parties signed contract {contract_id}")
            await create_audit_log(
                action=AuditAction.ALL_PARTIES_SIGNED,
                contract_id=contract_id,
                resource_type="contract",
                resource_id=contract_id,
                metadata={"signers": [entry.role for entry in roster]},
            )
        return newly_complete

    async def render_pdf(self, contract_id: str) -> bytes:
        rendered = await self.render(contract_id)
        return await pdf_service.render_pdf(rendered.html)

    def _recipient_email(self, entry: SignerRosterEntry, answers: Dict[str, Any]) -> Optional[str]:
        email = (entry.email or "").strip()
        if email and email != DIRECT_SIGN_EMAIL:
            return email
        if entry.signer_type == SignerType.LANDLORD:
            landlords = answers.get("landlords") or [{}]
            first = landlords[0] if isinstance(landlords[0], dict) else {}
            return (first.get("landlordEmail") or answers.get("landlordEmail") or "").strip() or None
        return None

    async def distribute_signed_contract(self, contract_id: str) -> Dict[str, Any]:
        """Email the signed PDF to every signed party that has an email address.

        Raises PdfRenderError when the PDF cannot be produced. Individual
        email failures are reported in the result.
        """
        rendered = await self.render(contract_id)
        pdf_bytes = await pdf_service.render_pdf(rendered.html)

        sent, failed, skipped = [], [], []
        for entry in rendered.roster:
            if entry.status != InvitationStatus.SIGNED:
                continue
            recipient = self._recipient_email(entry, rendered.answers)
            if not recipient:
                skipped.append(entry.role)
                continue
            message = await email_service.send_signed_contract(
                recipient=recipient,
                signer_name=entry.name,
                property_address=rendered.property_address,
                pdf_bytes=pdf_bytes,
                contract_id=contract_id,
            )
            (sent if message.status == "sent" else failed).append(recipient)

        now = datetime.now(timezone.utc).isoformat()
        db = self._get_db()
        await db.contract_signatures.update_one(
            {"contract_id": contract_id},
            {"$set": {
                "sent_to_all_parties": not failed and not skipped,
                "final_pdf_sent_at": now,
                "updated_at": now,
            }},
            upsert=True,
        )

        await create_audit_log(
            action=AuditAction.CONTRACT_DISTRIBUTED if not failed else AuditAction.CONTRACT_DISTRIBUTION_FAILED,
            contract_id=contract_id,
            resource_type="contract",
            resource_id=contract_id,
            metadata={"sent": sent, "failed": failed, "skipped_roles": skipped},
        )
        logger.info(f"Signed contract {contract_id} distributed: {len(sent)} sent, {len(failed)} failed")
        return {"sent": sent, "failed": failed, "skipped": skipped}


contract_service = ContractService()
