"""GreenLease Wizard Routes

Endpoints:
- GET /api/wizard/{contract_id} - Current session (created as draft)
- POST /api/wizard/{contract_id}/advance - Move to another stage
"""

from fastapi import APIRouter, HTTPException
import logging

from greenlease.models.wizard import AdvanceStageRequest, AdvanceStageResponse, WizardStage
from greenlease.services.contract_service import ContractNotFoundError, contract_service
from greenlease.services.wizard_service import InvalidStageTransition, wizard_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wizard", tags=["Wizard"])


@router.get("/{contract_id}")
async def get_wizard_session(contract_id: str):
    session = await wizard_service.get_session(contract_id)
    return session.model_dump(mode="json")


@router.post("/{contract_id}/advance", response_model=AdvanceStageResponse)
async def advance_wizard(contract_id: str, body: AdvanceStageRequest):
    """Apply a stage transition.

    Entering the summary step also returns the contract summary and any
    national ID warnings for the owner to review.
    """
    summary, warnings = None, []
    if body.stage == WizardStage.SUMMARY:
        try:
            answers = await contract_service.get_answers(contract_id)
        except ContractNotFoundError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
        summary, warnings = wizard_service.review(answers)

    try:
        session = await wizard_service.advance(contract_id, body.stage, body.reason)
    except InvalidStageTransition as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        logger.error(f"Wizard transition failed for contract {contract_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update wizard")

    return AdvanceStageResponse(
        session=session.model_dump(mode="json"),
        summary=summary,
        warnings=warnings,
    )
