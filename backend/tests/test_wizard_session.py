"""Wizard session state machine."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from conftest import make_db
from greenlease.models.wizard import ALLOWED_TRANSITIONS, WizardStage, can_transition
from greenlease.services.wizard_service import InvalidStageTransition, national_id_warnings, wizard_service


def test_transition_table():
    assert can_transition(WizardStage.DRAFT, WizardStage.SUMMARY)
    assert can_transition(WizardStage.SUMMARY, WizardStage.DRAFT)
    assert can_transition(WizardStage.SUMMARY, WizardStage.PAID)
    assert can_transition(WizardStage.PAID, WizardStage.SIGNING)
    assert can_transition(WizardStage.SIGNING, WizardStage.COMPLETE)
    assert not can_transition(WizardStage.DRAFT, WizardStage.PAID)
    assert not can_transition(WizardStage.PAID, WizardStage.DRAFT)
    assert ALLOWED_TRANSITIONS[WizardStage.COMPLETE] == set()


@pytest.mark.asyncio
async def test_get_session_creates_draft():
    db = make_db("wizard_sessions")
    with patch("greenlease.services.wizard_service.database.get_db", return_value=db):
        session = await wizard_service.get_session("c1")
    assert session.stage == WizardStage.DRAFT
    stored = db.wizard_sessions.insert_one.call_args[0][0]
    assert stored["contract_id"] == "c1"
    assert stored["stage"] == "draft"


@pytest.mark.asyncio
async def test_advance_is_conditional_on_current_stage():
    db = make_db("wizard_sessions")
    db.wizard_sessions.find_one = AsyncMock(return_value={"contract_id": "c1", "stage": "summary", "history": []})

    with patch("greenlease.services.wizard_service.database.get_db", return_value=db), \
         patch("greenlease.services.wizard_service.create_audit_log", new_callable=AsyncMock) as audit:
        session = await wizard_service.advance("c1", WizardStage.PAID, "Payment captured")

    assert session.stage == WizardStage.PAID
    assert session.history[-1].from_stage == WizardStage.SUMMARY
    query, update = db.wizard_sessions.update_one.call_args[0]
    assert query == {"contract_id": "c1", "stage": "summary"}
    assert update["$set"]["stage"] == "paid"
    assert update["$push"]["history"]["reason"] == "Payment captured"
    audit.assert_awaited_once()


@pytest.mark.asyncio
async def test_advance_rejects_disallowed_transition():
    db = make_db("wizard_sessions")
    db.wizard_sessions.find_one = AsyncMock(return_value={"contract_id": "c1", "stage": "draft"})

    with patch("greenlease.services.wizard_service.database.get_db", return_value=db):
        with pytest.raises(InvalidStageTransition) as exc_info:
            await wizard_service.advance("c1", WizardStage.SIGNING)
    assert exc_info.value.status_code == 409
    db.wizard_sessions.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_advance_loses_race():
    db = make_db("wizard_sessions")
    db.wizard_sessions.find_one = AsyncMock(return_value={"contract_id": "c1", "stage": "paid"})
    db.wizard_sessions.update_one = AsyncMock(return_value=MagicMock(matched_count=0))

    with patch("greenlease.services.wizard_service.database.get_db", return_value=db):
        with pytest.raises(InvalidStageTransition, match="concurrently"):
            await wizard_service.advance("c1", WizardStage.SIGNING)


@pytest.mark.asyncio
async def test_advance_if_at_ignores_other_stages():
    db = make_db("wizard_sessions")
    db.wizard_sessions.find_one = AsyncMock(return_value={"contract_id": "c1", "stage": "signing"})

    with patch("greenlease.services.wizard_service.database.get_db", return_value=db):
        moved = await wizard_service.advance_if_at("c1", WizardStage.PAID, WizardStage.SIGNING, "invites")
    assert moved is False
    db.wizard_sessions.update_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_advance_if_at_never_raises():
    db = make_db("wizard_sessions")
    db.wizard_sessions.find_one = AsyncMock(side_effect=RuntimeError("mongo down"))

    with patch("greenlease.services.wizard_service.database.get_db", return_value=db):
        assert await wizard_service.advance_if_at("c1", WizardStage.PAID, WizardStage.SIGNING, "x") is False


def test_national_id_warnings(answers):
    assert national_id_warnings(answers) == []
    bad = {**answers, "landlords": [{"landlordName": "Dana", "landlordId": "111"}]}
    assert national_id_warnings(bad) == ["Landlord: ID number 111 does not pass the check digit validation"]
