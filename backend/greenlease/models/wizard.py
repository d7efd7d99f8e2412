"""Wizard session model.

Session lifecycle (one session per contract):
DRAFT → SUMMARY → PAID → SIGNING → COMPLETE
        SUMMARY → DRAFT (owner goes back to edit answers)
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from enum import Enum


class WizardStage(str, Enum):
    DRAFT = "draft"
    SUMMARY = "summary"
    PAID = "paid"
    SIGNING = "signing"
    COMPLETE = "complete"


ALLOWED_TRANSITIONS = {
    WizardStage.DRAFT: {WizardStage.SUMMARY},
    WizardStage.SUMMARY: {WizardStage.DRAFT, WizardStage.PAID},
    WizardStage.PAID: {WizardStage.SIGNING},
    WizardStage.SIGNING: {WizardStage.COMPLETE},
    WizardStage.COMPLETE: set(),
}


def can_transition(current: WizardStage, target: WizardStage) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class StageChange(BaseModel):
    from_stage: WizardStage
    to_stage: WizardStage
    changed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    reason: Optional[str] = None


class WizardSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    contract_id: str
    stage: WizardStage = WizardStage.DRAFT
    history: List[StageChange] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AdvanceStageRequest(BaseModel):
    stage: WizardStage
    reason: Optional[str] = None


class AdvanceStageResponse(BaseModel):
    session: Dict[str, Any]
    summary: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
