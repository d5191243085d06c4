# backend/tests/test_key_collection.py
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from rentflow.domain.errors import Forbidden, InvalidTransition, NotFound, ValidationFailed
from rentflow.services.key_collection import load_slots, normalize_slots

from lifecycle_factories import (
    LANDLORD,
    NOW,
    OTHER_TENANT,
    TENANT,
    deposit_paid_contract,
    sent_contract,
    signed_contract,
    slots,
)


def test_normalize_slots_converts_offsets_to_utc():
    out = normalize_slots(
        [{"starts_at": "2026-03-05T12:00:00+02:00", "location": " Portal 3 ", "notes": ""}],
        now=NOW,
        max_slots=10,
    )
    assert out == [{"starts_at": "2026-03-05T10:00:00", "location": "Portal 3", "notes": None}]


def test_normalize_slots_collects_every_problem():
    with pytest.raises(ValidationFailed) as ei:
        normalize_slots(
            [
                {"starts_at": "not-a-date", "location": "A"},
                {"starts_at": (NOW - timedelta(hours=1)).isoformat(), "location": ""},
            ],
            now=NOW,
            max_slots=10,
        )
    problems = ei.value.details["problems"]
    assert len(problems) == 3

    with pytest.raises(ValidationFailed):
        normalize_slots([], now=NOW, max_slots=10)


def test_proposal_requires_signed_contract_and_deposit(orch, clock):
    sent = sent_contract(orch)
    with pytest.raises(InvalidTransition):
        orch.propose_key_collection(sent.id, TENANT, slots(clock))

    signed = signed_contract(orch, property_id=601)
    with pytest.raises(Forbidden) as ei:
        orch.propose_key_collection(signed.id, TENANT, slots(clock))
    assert "deposit" in ei.value.message


def test_propose_and_confirm(orch, provider, clock):
    c = deposit_paid_contract(orch, provider)
    kc = orch.propose_key_collection(c.id, TENANT, slots(clock, 3, 4, 5))
    assert kc.status == "proposed"
    assert kc.proposed_by_role == "tenant"
    assert len(load_slots(kc)) == 3

    with pytest.raises(Forbidden):
        orch.confirm_key_collection(c.id, TENANT, 0)
    with pytest.raises(Forbidden):
        orch.confirm_key_collection(c.id, OTHER_TENANT, 0)
    with pytest.raises(ValidationFailed):
        orch.confirm_key_collection(c.id, LANDLORD, 3)

    kc = orch.confirm_key_collection(c.id, LANDLORD, 1)
    assert kc.status == "confirmed"
    assert kc.chosen_slot_index == 1
    assert kc.scheduled_for == datetime(2026, 3, 6, 10, 0)

    with pytest.raises(InvalidTransition):
        orch.confirm_key_collection(c.id, LANDLORD, 0)


def test_counter_proposal_resets_confirmation(orch, provider, clock):
    c = deposit_paid_contract(orch, provider)
    orch.propose_key_collection(c.id, TENANT, slots(clock))
    orch.confirm_key_collection(c.id, LANDLORD, 0)

    kc = orch.propose_key_collection(c.id, LANDLORD, slots(clock, 7))
    assert kc.status == "proposed"
    assert kc.revision == 2
    assert kc.chosen_slot_index is None
    assert kc.scheduled_for is None

    kc = orch.confirm_key_collection(c.id, TENANT, 0)
    assert kc.status == "confirmed"


def test_past_slot_cannot_be_confirmed(orch, provider, clock):
    c = deposit_paid_contract(orch, provider)
    orch.propose_key_collection(c.id, TENANT, slots(clock, 1))
    clock.advance(days=2)
    with pytest.raises(ValidationFailed):
        orch.confirm_key_collection(c.id, LANDLORD, 0)


def test_too_many_slots(orch, provider, clock):
    c = deposit_paid_contract(orch, provider)
    with pytest.raises(ValidationFailed):
        orch.propose_key_collection(c.id, TENANT, slots(clock, *range(1, 12)))


def test_complete_sets_keys_collected_and_activates(orch, provider, clock, notifier):
    c = deposit_paid_contract(orch, provider)
    with pytest.raises(NotFound):
        orch.complete_key_collection(c.id, TENANT)

    orch.propose_key_collection(c.id, TENANT, slots(clock))
    with pytest.raises(InvalidTransition):
        orch.complete_key_collection(c.id, LANDLORD)

    orch.confirm_key_collection(c.id, LANDLORD, 0)
    kc = orch.complete_key_collection(c.id, LANDLORD)
    assert kc.status == "completed"

    c = orch.get_contract(c.id, TENANT)
    assert c.keys_collected is True
    assert c.keys_collected_at == NOW
    assert c.status == "active"
    # activation creates the move-in checklist
    assert c.checklist_id is not None
    assert {"keys.collected", "contract.activated", "checklist.created"} <= set(notifier.types())

    with pytest.raises(InvalidTransition):
        orch.complete_key_collection(c.id, LANDLORD)
    with pytest.raises(InvalidTransition):
        orch.propose_key_collection(c.id, TENANT, slots(clock))


def test_get_key_collection(orch, provider, clock):
    c = deposit_paid_contract(orch, provider)
    orch.propose_key_collection(c.id, LANDLORD, slots(clock))
    kc = orch.get_key_collection(c.id, TENANT)
    assert kc.proposed_by_role == "landlord"
    with pytest.raises(Forbidden):
        orch.get_key_collection(c.id, OTHER_TENANT)
