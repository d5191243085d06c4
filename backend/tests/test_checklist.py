# backend/tests/test_checklist.py
from __future__ import annotations

from datetime import date, timedelta

import pytest

from rentflow.domain.checklist_templates import DEFAULT_ROOMS, blank_rooms, template_rooms
from rentflow.domain.errors import (
    AlreadySigned,
    ChecklistFrozen,
    Forbidden,
    InvalidTransition,
    NotFound,
    OutOfOrder,
    ValidationFailed,
)
from rentflow.services.checklist_workflow import (
    checklist_deadline,
    checklist_urgency,
    load_rooms,
    unassessed_items,
)

from lifecycle_factories import (
    LANDLORD,
    OTHER_LANDLORD,
    TENANT,
    TODAY,
    rated_rooms,
    sent_contract,
    signed_contract,
    tenant_signed_contract,
)

ROOMS = [
    {"room": "Studio", "items": [{"name": "Walls"}, {"name": "Sofa bed"}]},
    {"room": "Bathroom", "items": [{"name": "Shower"}]},
]


def test_deadline_is_seven_days_after_the_later_of_start_and_today():
    assert checklist_deadline(date(2026, 4, 1), date(2026, 3, 2), 7) == date(2026, 4, 8)
    assert checklist_deadline(date(2026, 2, 1), date(2026, 3, 2), 7) == date(2026, 3, 9)
    assert checklist_deadline(None, date(2026, 3, 2), 7) == date(2026, 3, 9)


def test_urgency_levels():
    d = date(2026, 3, 10)
    assert checklist_urgency(None, completed=False, today=d, due_soon_days=2) == "none"
    assert checklist_urgency(d, completed=True, today=d + timedelta(days=5), due_soon_days=2) == "none"
    assert checklist_urgency(d, completed=False, today=d - timedelta(days=5), due_soon_days=2) == "ok"
    assert checklist_urgency(d, completed=False, today=d - timedelta(days=2), due_soon_days=2) == "due_soon"
    assert checklist_urgency(d, completed=False, today=d, due_soon_days=2) == "due_soon"
    assert checklist_urgency(d, completed=False, today=d + timedelta(days=1), due_soon_days=2) == "overdue"


def test_blank_rooms_drop_assessment_data():
    rooms = blank_rooms([{"room": "Hall", "items": [{"name": "Door", "condition": "poor", "photos": ["a.jpg"]}]}])
    assert rooms == [{"room": "Hall", "items": [{"name": "Door", "condition": None, "notes": "", "photos": []}]}]
    assert [r["room"] for r in blank_rooms()] == [r["room"] for r in DEFAULT_ROOMS]


def test_template_rooms_require_items():
    with pytest.raises(ValidationFailed):
        template_rooms([{"room": "Empty", "items": []}])
    assert template_rooms(ROOMS)[1] == {"room": "Bathroom", "items": [{"name": "Shower"}]}


def test_checklist_needs_a_signed_tenant(orch):
    c = sent_contract(orch)
    with pytest.raises(InvalidTransition):
        orch.create_checklist(c.id, LANDLORD)


def test_default_rooms_and_deadline(orch):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    assert cl.status == "draft"
    assert cl.template_id is None

    rooms = load_rooms(cl)
    assert [r["room"] for r in rooms] == [r["room"] for r in DEFAULT_ROOMS]
    assert all(it["condition"] is None for r in rooms for it in r["items"])

    c = orch.get_contract(c.id, TENANT)
    assert c.checklist_id == cl.id
    assert c.checklist_deadline == c.start_date + timedelta(days=7)
    assert orch.checklist_urgency(c) == "ok"


def test_tenant_cannot_create_the_checklist(orch):
    c = tenant_signed_contract(orch)
    with pytest.raises(Forbidden):
        orch.create_checklist(c.id, TENANT)


def test_templates(orch):
    tpl = orch.create_checklist_template(LANDLORD, name="Studio", rooms=[
        {"room": "Studio", "items": [{"name": "Walls"}, {"name": "Sofa bed"}]},
    ], property_type="studio", is_default=True)
    foreign = orch.create_checklist_template(OTHER_LANDLORD, name="Theirs", rooms=[
        {"room": "Garage", "items": [{"name": "Door"}]},
    ])

    with pytest.raises(Forbidden):
        orch.create_checklist_template(TENANT, name="Nope", rooms=ROOMS)
    with pytest.raises(ValidationFailed):
        orch.create_checklist_template(LANDLORD, name="Bad type", rooms=ROOMS, property_type="castle")

    c = signed_contract(orch)
    with pytest.raises(Forbidden):
        orch.create_checklist(c.id, LANDLORD, template_id=foreign.id)

    # without an explicit template the landlord's default is used
    cl = orch.create_checklist(c.id, LANDLORD)
    assert cl.template_id == tpl.id
    assert load_rooms(cl)[0]["items"][1]["name"] == "Sofa bed"

    second = orch.create_checklist_template(LANDLORD, name="House", rooms=ROOMS, is_default=True)
    names = [t.name for t in orch.list_checklist_templates(LANDLORD)]
    assert names[0] == "House"
    assert set(names) == {"Studio", "House"}
    assert second.is_default is True


def test_recreating_a_draft_replaces_it(orch):
    c = tenant_signed_contract(orch)
    first = orch.create_checklist(c.id, LANDLORD)
    tpl = orch.create_checklist_template(LANDLORD, name="Small", rooms=[{"room": "Room", "items": [{"name": "Bed"}]}])
    again = orch.create_checklist(c.id, LANDLORD, template_id=tpl.id)
    assert again.id == first.id
    assert [r["room"] for r in load_rooms(again)] == ["Room"]


def test_every_item_must_be_rated_before_the_tenant_signs(orch):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)

    with pytest.raises(ValidationFailed) as ei:
        orch.sign_checklist(cl.id, TENANT, "t-sig")
    assert ei.value.details["unassessed"][0] == "Entrance: Front door"
    assert unassessed_items(rated_rooms(cl)) == []


def test_landlord_signs_second(orch):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    orch.update_checklist_items(cl.id, TENANT, rated_rooms(cl))

    with pytest.raises(OutOfOrder):
        orch.sign_checklist(cl.id, LANDLORD, "l-sig")

    cl = orch.sign_checklist(cl.id, TENANT, "t-sig")
    assert cl.status == "tenant_signed"
    with pytest.raises(AlreadySigned):
        orch.sign_checklist(cl.id, TENANT, "again")


def test_tenant_signature_freezes_items_and_tenant_notes(orch):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    orch.add_checklist_notes(cl.id, TENANT, "Small scratch on the kitchen counter")
    orch.update_checklist_items(cl.id, LANDLORD, rated_rooms(cl, "fair"))
    orch.sign_checklist(cl.id, TENANT, "t-sig")

    with pytest.raises(ChecklistFrozen):
        orch.update_checklist_items(cl.id, LANDLORD, rated_rooms(cl, "excellent"))
    with pytest.raises(ChecklistFrozen):
        orch.add_checklist_notes(cl.id, TENANT, "changed my mind")

    cl = orch.add_checklist_notes(cl.id, LANDLORD, "Counter scratch acknowledged")
    assert cl.landlord_notes == "Counter scratch acknowledged"
    assert cl.tenant_notes == "Small scratch on the kitchen counter"
    assert all(it["condition"] == "fair" for r in load_rooms(cl) for it in r["items"])


def test_completion_is_recorded_on_the_contract(orch, clock):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    orch.update_checklist_items(cl.id, TENANT, rated_rooms(cl))
    orch.sign_checklist(cl.id, TENANT, "t-sig")
    cl = orch.sign_checklist(cl.id, LANDLORD, "l-sig")
    assert cl.status == "completed"

    c = orch.get_contract(c.id, LANDLORD)
    assert c.checklist_completed_at == clock.now
    assert orch.checklist_urgency(c) == "none"

    with pytest.raises(ChecklistFrozen):
        orch.add_checklist_notes(cl.id, LANDLORD, "late note")
    with pytest.raises(ChecklistFrozen):
        orch.create_checklist(c.id, LANDLORD)


def test_overdue_checklist_stays_signable(orch, clock):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    clock.advance(days=60)
    c = orch.get_contract(c.id, TENANT)
    assert orch.checklist_urgency(c) == "overdue"

    orch.update_checklist_items(cl.id, TENANT, rated_rooms(cl))
    cl = orch.sign_checklist(cl.id, TENANT, "t-sig")
    assert cl.status == "tenant_signed"


def test_invalid_condition_is_rejected(orch):
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    with pytest.raises(ValidationFailed):
        orch.update_checklist_items(cl.id, TENANT, rated_rooms(cl, "destroyed"))


def test_deadline_falls_back_to_today_for_past_starts(orch):
    c = tenant_signed_contract(orch, start_date=TODAY - timedelta(days=3), end_date=TODAY + timedelta(days=300))
    orch.create_checklist(c.id, LANDLORD)
    c = orch.get_contract(c.id, TENANT)
    assert c.checklist_deadline == TODAY + timedelta(days=7)


def test_template_update_and_delete_are_owner_only(orch):
    tpl = orch.create_checklist_template(LANDLORD, name="Studio", rooms=ROOMS, is_default=True)
    house = orch.create_checklist_template(LANDLORD, name="House", rooms=ROOMS)

    with pytest.raises(Forbidden):
        orch.update_checklist_template(tpl.id, OTHER_LANDLORD, name="Mine now")
    with pytest.raises(Forbidden):
        orch.delete_checklist_template(tpl.id, OTHER_LANDLORD)
    with pytest.raises(Forbidden):
        orch.update_checklist_template(tpl.id, TENANT, name="Tenant edit")
    with pytest.raises(ValidationFailed):
        orch.update_checklist_template(tpl.id, LANDLORD, name="   ")
    with pytest.raises(ValidationFailed):
        orch.update_checklist_template(tpl.id, LANDLORD, rooms=[{"room": "Empty", "items": []}])

    tpl = orch.update_checklist_template(
        tpl.id, LANDLORD, name="Studio v2", rooms=[{"room": "Loft", "items": [{"name": "Skylight"}]}]
    )
    assert tpl.name == "Studio v2"
    assert tpl.is_default is True

    # a checklist keeps its own copy of the rooms once built
    c = tenant_signed_contract(orch)
    cl = orch.create_checklist(c.id, LANDLORD)
    assert [r["room"] for r in load_rooms(cl)] == ["Loft"]

    orch.update_checklist_template(house.id, LANDLORD, is_default=True)
    assert [t.name for t in orch.list_checklist_templates(LANDLORD)] == ["House", "Studio v2"]

    tpl_id = tpl.id
    orch.delete_checklist_template(tpl_id, LANDLORD)
    assert [t.name for t in orch.list_checklist_templates(LANDLORD)] == ["House"]
    assert [r["room"] for r in load_rooms(orch.get_checklist(cl.id, TENANT))] == ["Loft"]
    with pytest.raises(NotFound):
        orch.update_checklist_template(tpl_id, LANDLORD, name="Gone")
