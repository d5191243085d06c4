# backend/tests/test_modifications.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from rentflow.domain.errors import (
    DuplicatePending,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationFailed,
)
from rentflow.models import ModificationRequest
from rentflow.services.modification_workflow import load_changes, pending_key

from lifecycle_factories import (
    ADMIN,
    LANDLORD,
    OTHER_TENANT,
    TENANT,
    TODAY,
    sent_contract,
    signed_contract,
)

REASON = "Relocating to Valencia for a new job"


def _terminate(orch, cid, actor=TENANT, days=45, reason=REASON):
    return orch.request_termination(cid, actor, reason=reason, desired_end_date=TODAY + timedelta(days=days))


def _count(db):
    return db.scalar(select(func.count()).select_from(ModificationRequest))


def test_pending_key_format():
    assert pending_key(7, "termination") == "7:termination"


def test_requests_need_a_signed_contract(orch, db):
    c = sent_contract(orch)
    with pytest.raises(Forbidden):
        _terminate(orch, c.id)
    assert _count(db) == 0


def test_reason_and_date_are_validated(orch, db):
    c = signed_contract(orch)
    with pytest.raises(ValidationFailed) as ei:
        _terminate(orch, c.id, reason="Moved")
    assert ei.value.details["min_length"] == 10
    with pytest.raises(ValidationFailed):
        _terminate(orch, c.id, days=0)
    with pytest.raises(ValidationFailed):
        orch.request_amendment(c.id, TENANT, amendment_type="pet_policy", description="Allow a small dog please")
    assert _count(db) == 0


def test_only_one_pending_request_per_type(orch):
    c = signed_contract(orch)
    _terminate(orch, c.id)
    with pytest.raises(DuplicatePending):
        _terminate(orch, c.id, actor=LANDLORD)

    # a pending termination does not block an amendment
    am = orch.request_amendment(
        c.id, LANDLORD, amendment_type="rent_change", description="Index rent to CPI from June", changes={"monthly_rent": 103000}
    )
    assert am.status == "pending"
    assert load_changes(am) == {"monthly_rent": 103000}


def test_requester_cannot_answer_their_own_request(orch):
    c = signed_contract(orch)
    req = _terminate(orch, c.id)
    with pytest.raises(Forbidden):
        orch.respond_termination(req.id, TENANT, approved=True)
    with pytest.raises(Forbidden):
        orch.respond_termination(req.id, OTHER_TENANT, approved=True)
    with pytest.raises(Forbidden):
        orch.respond_termination(req.id, ADMIN, approved=True)


def test_approved_termination_ends_the_contract(orch, clock, notifier):
    c = signed_contract(orch)
    am = orch.request_amendment(c.id, TENANT, amendment_type="other", description="Add a parking space to the lease")
    req = _terminate(orch, c.id)

    req = orch.respond_termination(req.id, LANDLORD, approved=True, message="Sorry to see you go")
    assert req.status == "approved"
    assert req.responded_by == LANDLORD.user_id
    assert req.response_message == "Sorry to see you go"
    assert req.pending_key is None

    c = orch.get_contract(c.id, TENANT)
    assert c.status == "terminated"
    assert c.end_date == TODAY + timedelta(days=45)
    assert c.terminated_at == clock.now
    assert c.termination_request_id == req.id

    am = orch.modifications.get(am.id)
    assert am.status == "rejected"
    assert am.response_message == "contract terminated"
    assert "termination.approved" in notifier.types()

    with pytest.raises(Forbidden):
        _terminate(orch, c.id)
    with pytest.raises(InvalidTransition):
        orch.respond_termination(req.id, LANDLORD, approved=False)


def test_rejected_termination_leaves_the_contract_alone(orch):
    c = signed_contract(orch)
    version = c.version
    req = _terminate(orch, c.id, actor=LANDLORD)
    req = orch.respond_termination(req.id, TENANT, approved=False)
    assert req.status == "rejected"

    c = orch.get_contract(c.id, TENANT)
    assert c.status == "fully_signed"
    assert c.version == version

    # the slot is free again
    assert _terminate(orch, c.id).status == "pending"


def test_withdraw(orch):
    c = signed_contract(orch)
    req = _terminate(orch, c.id)
    with pytest.raises(Forbidden):
        orch.withdraw_request(req.id, LANDLORD)

    req = orch.withdraw_request(req.id, TENANT)
    assert req.status == "withdrawn"
    with pytest.raises(InvalidTransition):
        orch.withdraw_request(req.id, TENANT)

    again = _terminate(orch, c.id)
    assert again.id != req.id


def test_respond_checks_the_request_type(orch):
    c = signed_contract(orch)
    req = _terminate(orch, c.id)
    with pytest.raises(ValidationFailed):
        orch.respond_amendment(req.id, LANDLORD, approved=True)
    with pytest.raises(NotFound):
        orch.respond_termination(999999, LANDLORD, approved=True)


def test_amendment_approval_does_not_change_the_contract(orch):
    c = signed_contract(orch)
    am = orch.request_amendment(
        c.id, TENANT, amendment_type="term_extension", description="Extend the lease by six months", changes={"months": 6}
    )
    am = orch.respond_amendment(am.id, LANDLORD, approved=True)
    assert am.status == "approved"
    assert orch.get_contract(c.id, TENANT).status == "fully_signed"


def test_list_pending_requests_shows_what_needs_an_answer(orch):
    c = signed_contract(orch)
    req = _terminate(orch, c.id)

    assert [r.id for r in orch.list_pending_requests(LANDLORD)] == [req.id]
    assert orch.list_pending_requests(TENANT) == []
    assert [r.id for r in orch.list_pending_requests(ADMIN)] == [req.id]
    assert [r.id for r in orch.list_requests(c.id, TENANT)] == [req.id]


def test_duplicate_pending_key_is_enforced_by_the_database(orch, db):
    c = signed_contract(orch)
    _terminate(orch, c.id)
    # bypass the friendly pre-check and hit the unique constraint directly
    orch.modifications.pending_for_contract = lambda *a, **k: []
    with pytest.raises(DuplicatePending):
        _terminate(orch, c.id, actor=LANDLORD)
    assert _count(db) == 1
