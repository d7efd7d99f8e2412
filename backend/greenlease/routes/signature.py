"""GreenLease Signature Routes

Endpoints:
- POST /api/signature/invite - Invite signers by email
- POST /api/signature/resend - New invitation for one signer
- GET /api/signature/status/{contract_id} - Signer roster (runs dedup first)
- GET /api/signature/verify-token/{token} - Signing page data for a link
- POST /api/signature/save-signature - Sign with an invitation token
- POST /api/signature/direct-sign - Landlord signs in place
- GET /api/signature/signatures/{contract_id} - Signed invitations
- POST /api/signature/download-contract - Signed contract as PDF
- POST /api/signature/distribute-contract - Email the signed PDF to all parties
"""

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import Response
import logging

from greenlease.merge import format_property_address
from greenlease.models.invitations import (
    ContractRequest,
    DirectSignRequest,
    ResendInvitationRequest,
    SaveSignatureRequest,
    SendInvitationsRequest,
)
from greenlease.services.contract_service import ContractNotFoundError, contract_service
from greenlease.services.dedup_service import dedup_service
from greenlease.services.invitation_service import InvitationError, invitation_service
from greenlease.services.pdf_service import PdfRenderError
from greenlease.services.roster_service import all_signed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/signature", tags=["Signatures"])


def _client_ip(request: Request):
    return request.client.host if request.client else None


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (InvitationError, ContractNotFoundError, PdfRenderError)):
        return HTTPException(status_code=e.status_code, detail=e.message)
    return HTTPException(status_code=400, detail=str(e))


@router.post("/invite")
async def invite_signers(body: SendInvitationsRequest):
    """Create one invitation per requested signer and email the signing links.

    Returns 200 with a per-signer result; a signer whose email failed still
    has a valid invitation.
    """
    try:
        results = await invitation_service.send_invitations(body.contract_id, body.signers)
    except (InvitationError, ContractNotFoundError, ValueError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Invite failed for contract {body.contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send invitations")

    sent = sum(1 for result in results if result.success)
    return {
        "success": sent > 0,
        "message": f"{sent} of {len(results)} invitations sent",
        "results": [result.model_dump(mode="json") for result in results],
    }


@router.post("/resend")
async def resend_invitation(body: ResendInvitationRequest):
    try:
        result = await invitation_service.resend_invitation(
            body.contract_id, body.signer_type, body.signer_id, body.email
        )
    except (InvitationError, ContractNotFoundError, ValueError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Resend failed for contract {body.contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to resend invitation")

    return {"success": True, "message": result.message, "result": result.model_dump(mode="json")}


@router.get("/status/{contract_id}")
async def get_signature_status(contract_id: str):
    """Current roster. Superseded invitations are cleaned up first."""
    await dedup_service.deduplicate(contract_id)
    try:
        answers = await contract_service.get_answers(contract_id)
        roster = await contract_service.get_roster(contract_id, answers)
    except ContractNotFoundError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Status lookup failed for contract {contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load signature status")

    return {
        "contract_id": contract_id,
        "property_address": format_property_address(answers),
        "signers": [entry.model_dump(mode="json", exclude={"signature_image"}) for entry in roster],
        "all_signed": all_signed(roster),
    }


@router.get("/verify-token/{token}")
async def verify_token(token: str):
    try:
        page = await invitation_service.signing_page(token)
    except (InvitationError, ContractNotFoundError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Token verification failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to verify signing link")

    return {"valid": True, **page}


@router.post("/save-signature")
async def save_signature(body: SaveSignatureRequest, request: Request):
    try:
        invitation = await invitation_service.sign(
            token=body.token,
            signature_image=body.signature,
            ip_address=body.ip_address or _client_ip(request),
            user_agent=body.user_agent or request.headers.get("user-agent"),
        )
    except (InvitationError, ValueError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Saving signature failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to save signature")

    return {
        "success": True,
        "message": "Signature saved",
        "invitation": invitation.public_view(),
    }


@router.post("/direct-sign")
async def direct_sign(body: DirectSignRequest, request: Request):
    try:
        invitation = await invitation_service.direct_sign(
            contract_id=body.contract_id,
            signer_id=body.signer_id,
            signature_image=body.signature,
            ip_address=body.ip_address or _client_ip(request),
            user_agent=body.user_agent or request.headers.get("user-agent"),
        )
    except (InvitationError, ContractNotFoundError, ValueError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Direct sign failed for contract {body.contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save signature")

    return {
        "success": True,
        "message": "Signature saved",
        "invitation": invitation.public_view(),
    }


@router.get("/signatures/{contract_id}")
async def get_signatures(contract_id: str):
    try:
        signed = await invitation_service.get_signed_invitations(contract_id)
    except Exception as e:
        logger.error(f"Loading signatures failed for contract {contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load signatures")

    return {
        "contract_id": contract_id,
        "signatures": [
            {**invitation.public_view(), "signature_image": invitation.signature_image}
            for invitation in signed
        ],
    }


@router.post("/download-contract")
async def download_contract(body: ContractRequest):
    try:
        pdf_bytes = await contract_service.render_pdf(body.contract_id)
    except (ContractNotFoundError, PdfRenderError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Contract download failed for {body.contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate contract")

    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="lease-{body.contract_id}.pdf"'},
    )


@router.post("/distribute-contract")
async def distribute_contract(body: ContractRequest):
    try:
        result = await contract_service.distribute_signed_contract(body.contract_id)
    except (ContractNotFoundError, PdfRenderError) as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Contract distribution failed for {body.contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to send the signed contract")

    return {
        "success": not result["failed"],
        "message": f"Signed contract sent to {len(result['sent'])} parties",
        **result,
    }
