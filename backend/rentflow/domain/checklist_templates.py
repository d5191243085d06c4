# backend/rentflow/domain/checklist_templates.py
from __future__ import annotations

from typing import Any

from .errors import ValidationFailed

CONDITIONS = ("excellent", "good", "fair", "poor")
PROPERTY_TYPES = ("apartment", "house", "studio", "commercial", "other")

# Built-in skeleton used when the landlord has no template.
DEFAULT_ROOMS: list[dict[str, Any]] = [
    {"room": "Entrance", "items": ["Front door", "Lock", "Intercom", "Walls", "Floor"]},
    {"room": "Living Room", "items": ["Walls", "Ceiling", "Floor", "Windows", "Doors", "Light Fixtures"]},
    {
        "room": "Kitchen",
        "items": ["Walls", "Ceiling", "Floor", "Cabinets", "Countertops", "Appliances", "Sink", "Faucet"],
    },
    {"room": "Bedroom", "items": ["Walls", "Ceiling", "Floor", "Windows", "Wardrobe", "Light Fixtures"]},
    {"room": "Bathroom", "items": ["Walls", "Floor", "Toilet", "Shower/Bath", "Sink", "Mirror", "Ventilation"]},
]


def _item_name(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return str(item.get("name") or "")
    return ""


def blank_rooms(skeleton: list[dict[str, Any]] | None = None) -> list[dict[str, Any]]:
    """
    Fresh, unassessed rooms from a skeleton (template rooms or the default).

    Whatever assessment data the skeleton carries is dropped: a new checklist
    always starts with condition=None, empty notes and no photos.
    """
    src = skeleton if skeleton else DEFAULT_ROOMS
    out: list[dict[str, Any]] = []
    for room in src:
        out.append(
            {
                "room": str(room.get("room") or room.get("name") or "").strip(),
                "items": [
                    {"name": _item_name(it).strip(), "condition": None, "notes": "", "photos": []}
                    for it in (room.get("items") or [])
                ],
            }
        )
    return validate_rooms(out)


def validate_rooms(rooms: Any, *, require_items: bool = False) -> list[dict[str, Any]]:
    """Normalize a rooms payload; raises ValidationFailed with every problem found."""
    if not isinstance(rooms, list) or not rooms:
        raise ValidationFailed("A checklist needs at least one room")

    problems: list[str] = []
    out: list[dict[str, Any]] = []
    for i, room in enumerate(rooms):
        if not isinstance(room, dict):
            problems.append(f"rooms[{i}] must be an object")
            continue
        name = str(room.get("room") or "").strip()
        if not name:
            problems.append(f"rooms[{i}].room is required")

        items_in = room.get("items") or []
        if not isinstance(items_in, list):
            problems.append(f"rooms[{i}].items must be a list")
            items_in = []
        if require_items and not items_in:
            problems.append(f"rooms[{i}] has no items")

        items: list[dict[str, Any]] = []
        for j, it in enumerate(items_in):
            if not isinstance(it, dict):
                problems.append(f"rooms[{i}].items[{j}] must be an object")
                continue
            item_name = str(it.get("name") or "").strip()
            if not item_name:
                problems.append(f"rooms[{i}].items[{j}].name is required")
            cond = it.get("condition")
            if cond is not None and cond not in CONDITIONS:
                problems.append(f"rooms[{i}].items[{j}].condition must be one of {', '.join(CONDITIONS)}")
            photos = it.get("photos") or []
            if not isinstance(photos, list):
                problems.append(f"rooms[{i}].items[{j}].photos must be a list")
                photos = []
            items.append(
                {
                    "name": item_name,
                    "condition": cond,
                    "notes": str(it.get("notes") or ""),
                    "photos": [str(p) for p in photos],
                }
            )
        out.append({"room": name, "items": items})

    if problems:
        raise ValidationFailed("Invalid checklist rooms", details={"problems": problems})
    return out


def template_rooms(rooms: Any) -> list[dict[str, Any]]:
    """Skeleton stored on a template: room + item names only."""
    normalized = validate_rooms(rooms, require_items=True)
    return [{"room": r["room"], "items": [{"name": it["name"]} for it in r["items"]]} for r in normalized]
