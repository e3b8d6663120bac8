"""Capture and re-apply the period-bound fields of entity collections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from planner.timeline import MonthKey, Timeline, shift_month_keys

Entity = Mapping[str, Any]
# entity id -> {field name: value}
ModeSnapshot = Dict[str, Dict[str, Any]]
FallbackFactory = Callable[[Entity], Dict[str, Any]]


@dataclass(frozen=True)
class DateFieldSpec:
    """Which fields of a collection depend on the period."""

    collection: str
    start_field: Optional[str] = None
    end_field: Optional[str] = None
    month_map_field: Optional[str] = None
    id_field: str = "id"

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(
            name for name in (self.start_field, self.end_field, self.month_map_field) if name
        )


FLEET_ENTRIES = DateFieldSpec("fleetEntries", start_field="enterInService", end_field="retirement")
ROUTE_ENTRIES = DateFieldSpec("routeEntries", start_field="startDate", end_field="endDate")
ROUTE_FREQUENCIES = DateFieldSpec("routeFrequencyData", month_map_field="frequencies", id_field="routeId")

DEFAULT_SPECS: Tuple[DateFieldSpec, ...] = (FLEET_ENTRIES, ROUTE_ENTRIES, ROUTE_FREQUENCIES)


def _copy_value(value: Any) -> Any:
    # Month-keyed maps are the only mutable values carried in snapshots.
    if isinstance(value, Mapping):
        return dict(value)
    return value


def snapshot(entities: Iterable[Entity], field_names: Sequence[str], id_field: str = "id") -> ModeSnapshot:
    """Record the current value of ``field_names`` for every entity, keyed by id."""
    captured: ModeSnapshot = {}
    for entity in entities:
        entity_id = entity.get(id_field)
        if entity_id is None:
            continue
        captured[str(entity_id)] = {name: _copy_value(entity.get(name)) for name in field_names}
    return captured


def restore(
    entities: Iterable[Entity],
    saved: Optional[Mapping[str, Mapping[str, Any]]],
    fallback_factory: FallbackFactory,
    id_field: str = "id",
) -> List[Dict[str, Any]]:
    """
    Return new entities with snapshot values applied.

    Entities missing from ``saved`` receive ``fallback_factory(entity)`` instead.
    Ids and every field not named by the snapshot or fallback are left as they were.
    """
    saved = saved or {}
    restored: List[Dict[str, Any]] = []
    for entity in entities:
        entity_id = entity.get(id_field)
        values = saved.get(str(entity_id)) if entity_id is not None else None
        if values is None:
            values = fallback_factory(entity)
        updated = dict(entity)
        for name, value in values.items():
            # An unset field stays absent rather than becoming an explicit None.
            if value is None and name not in updated:
                continue
            updated[name] = _copy_value(value)
        restored.append(updated)
    return restored


def _clamp(value: MonthKey, start: Optional[MonthKey], end: Optional[MonthKey]) -> MonthKey:
    if end is not None and value > end:
        value = end
    if start is not None and value < start:
        value = start
    return value


def period_fallback(
    spec: DateFieldSpec,
    start: Optional[MonthKey],
    end: Optional[MonthKey],
    *,
    previous_start: Optional[MonthKey] = None,
    clamp_end: bool = False,
) -> FallbackFactory:
    """
    Default values for entities entering a period they have no snapshot for.

    * the start field moves to ``start``;
    * an end field that is set either moves to ``end`` or, with ``clamp_end``,
      is clamped into ``[start, end]``; an unset end field stays unset;
    * month-keyed maps are re-based from ``previous_start`` to ``start``,
      dropping months outside the new period.

    A boundary that is ``None`` leaves the matching field untouched.
    """

    def factory(entity: Entity) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        if spec.start_field and start is not None:
            values[spec.start_field] = start
        current = entity.get(spec.end_field) if spec.end_field else None
        if current is not None and end is not None:
            if clamp_end and isinstance(current, MonthKey):
                values[spec.end_field] = _clamp(current, start, end)
            else:
                values[spec.end_field] = end
        if spec.month_map_field and start is not None and previous_start is not None:
            current_map = entity.get(spec.month_map_field) or {}
            values[spec.month_map_field] = shift_month_keys(
                current_map,
                start.ordinal - previous_start.ordinal,
                within=Timeline(start, end),
            )
        return values

    return factory
