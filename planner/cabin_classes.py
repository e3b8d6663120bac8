"""Cabin class helpers shared by the load factor tables."""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping

# Display order, First -> Economy
CLASS_ORDER = ("F", "J", "C", "W", "Y")

CLASS_LABELS: Dict[str, str] = {
    "F": "First (F)",
    "J": "Business (J)",
    "C": "Club (C)",
    "W": "Premium (W)",
    "Y": "Economy (Y)",
}

_SEGMENT_RE = re.compile(r"^([A-Z])(\d+)$")


def class_label(code: str) -> str:
    return CLASS_LABELS.get(code, code)


def parse_layout_classes(layout: str | None) -> List[Dict[str, Any]]:
    """Parse a layout such as "J30-W21-Y222" or "F12 Y138" into cabin entries."""
    if not layout:
        return []
    result: List[Dict[str, Any]] = []
    for segment in re.split(r"[-\s]+", layout):
        match = _SEGMENT_RE.match(segment)
        if match:
            result.append({"code": match.group(1), "seats": int(match.group(2))})
    return result


def active_classes(fleet_entries: Iterable[Mapping[str, Any]]) -> List[str]:
    """Union of cabin class codes flown by the fleet, in display order."""
    seen = set()
    for entry in fleet_entries:
        classes = entry.get("cabinClasses") or parse_layout_classes(entry.get("layout"))
        seen.update(cls["code"] for cls in classes)
    return [code for code in CLASS_ORDER if code in seen]
