"""GreenLease Contract Routes

Endpoints:
- GET /api/contracts/{contract_id}/preview - Merged contract text, HTML and summary
- GET /api/contracts/{contract_id}/audit - Audit trail for a contract
- POST /api/contracts/generate-pdf - Render HTML to PDF
- POST /api/contracts/send-pdf - Render HTML to PDF and email it
"""

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, EmailStr, Field
import logging

from utils.audit import get_contract_audit_trail
from greenlease.services.contract_service import ContractNotFoundError, contract_service
from greenlease.services.email_service import email_service
from greenlease.services.pdf_service import PdfRenderError, pdf_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contracts", tags=["Contracts"])


class PdfRequest(BaseModel):
    html: str = Field(min_length=1)
    css: str = ""


class SendPdfRequest(PdfRequest):
    email: EmailStr


@router.get("/{contract_id}/preview")
async def preview_contract(contract_id: str):
    """Freshly merged contract with the signatures collected so far."""
    try:
        rendered = await contract_service.render(contract_id)
    except ContractNotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Preview failed for contract {contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build contract preview")

    return {
        "contract_id": contract_id,
        "merged_text": rendered.merged_text,
        "html": rendered.html,
        "summary": contract_service.summary(rendered.answers),
    }


@router.get("/{contract_id}/audit")
async def contract_audit_trail(contract_id: str, limit: int = Query(100, ge=1, le=500)):
    entries = await get_contract_audit_trail(contract_id, limit=limit)
    return {"contract_id": contract_id, "entries": entries, "count": len(entries)}


@router.post("/generate-pdf")
async def generate_pdf(body: PdfRequest):
    try:
        pdf_bytes = await pdf_service.render_pdf(body.html, body.css)
    except PdfRenderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="contract.pdf"'},
    )


@router.post("/send-pdf")
async def send_pdf(body: SendPdfRequest):
    try:
        pdf_bytes = await pdf_service.render_pdf(body.html, body.css)
    except PdfRenderError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    message = await email_service.send_contract_pdf(body.email, pdf_bytes)
    if message.status != "sent":
        raise HTTPException(status_code=502, detail="PDF was generated but the email could not be sent")
    return {"success": True, "message": f"Contract sent to {body.email}"}
