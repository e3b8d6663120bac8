"""Planning period state and the Dates <-> Duration mode transitions.

The state is an immutable value. Every transition returns a new state (or the
same object when the request is rejected), so callers can detect changes by
identity and persist after each one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from planner.entity_dates import (
    DEFAULT_SPECS,
    ROUTE_ENTRIES,
    DateFieldSpec,
    ModeSnapshot,
    period_fallback,
    restore,
    snapshot,
)
from planner.settings import DEFAULT_EPOCH_YEAR, DEFAULT_SIMULATION_YEARS
from planner.timeline import MonthKey, PeriodMode, Timeline, coerce_month

logger = logging.getLogger(__name__)

# collection name -> snapshot of that collection
CollectionSnapshots = Dict[str, ModeSnapshot]


@dataclass(frozen=True)
class Period:
    start: Optional[MonthKey] = None
    end: Optional[MonthKey] = None

    @property
    def is_set(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def is_valid(self) -> bool:
        return self.is_set and self.start <= self.end


def synthetic_period(simulation_years: int, epoch_year: int = DEFAULT_EPOCH_YEAR) -> Optional[Period]:
    """Jan of the epoch year through Dec of its last simulated year; ``None`` if years < 1."""
    if simulation_years < 1:
        return None
    return Period(MonthKey(epoch_year, 1), MonthKey(epoch_year + simulation_years - 1, 12))


@dataclass(frozen=True)
class PlannerState:
    mode: PeriodMode = PeriodMode.DATES
    period: Period = field(default_factory=Period)
    simulation_years: int = DEFAULT_SIMULATION_YEARS
    collections: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    dates_snapshot: Optional[CollectionSnapshots] = None
    duration_snapshot: Optional[CollectionSnapshots] = None
    period_snapshot: Optional[Period] = None
    epoch_year: int = DEFAULT_EPOCH_YEAR

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", PeriodMode(self.mode))

    @property
    def timeline(self) -> Timeline:
        return Timeline(self.period.start, self.period.end, self.mode)

    def collection(self, name: str) -> List[Dict[str, Any]]:
        return self.collections.get(name, [])


def _entity_count(collections: Mapping[str, Sequence[Any]]) -> int:
    return sum(len(entities) for entities in collections.values())


def _capture(state: PlannerState, specs: Sequence[DateFieldSpec]) -> CollectionSnapshots:
    return {
        spec.collection: snapshot(state.collections[spec.collection], spec.field_names, spec.id_field)
        for spec in specs
        if spec.collection in state.collections
    }


def _restore_all(
    state: PlannerState,
    saved: Optional[CollectionSnapshots],
    target: Period,
    specs: Sequence[DateFieldSpec],
    *,
    clamp_end: bool,
) -> Dict[str, List[Dict[str, Any]]]:
    collections = dict(state.collections)
    saved = saved or {}
    for spec in specs:
        if spec.collection not in collections:
            continue
        fallback = period_fallback(
            spec,
            target.start,
            target.end,
            previous_start=state.period.start,
            clamp_end=clamp_end,
        )
        collections[spec.collection] = restore(
            collections[spec.collection],
            saved.get(spec.collection),
            fallback,
            spec.id_field,
        )
    return collections


def _to_duration(
    state: PlannerState,
    simulation_years: Optional[int],
    specs: Sequence[DateFieldSpec],
) -> PlannerState:
    years = state.simulation_years if simulation_years is None else int(simulation_years)
    target = synthetic_period(years, state.epoch_year)
    if target is None:
        logger.warning(
            "rejected duration mode with fewer than one simulated year",
            extra={"target_mode": PeriodMode.DURATION.value, "simulation_years": years},
        )
        return state

    dates_snapshot = _capture(state, specs)
    collections = _restore_all(state, state.duration_snapshot, target, specs, clamp_end=True)
    logger.info(
        "switched period mode",
        extra={
            "mode": state.mode.value,
            "target_mode": PeriodMode.DURATION.value,
            "simulation_years": years,
            "entities": _entity_count(collections),
        },
    )
    return replace(
        state,
        mode=PeriodMode.DURATION,
        period=target,
        simulation_years=years,
        collections=collections,
        dates_snapshot=dates_snapshot,
        period_snapshot=state.period,
    )


def _to_dates(
    state: PlannerState,
    start: Optional[MonthKey],
    end: Optional[MonthKey],
    specs: Sequence[DateFieldSpec],
) -> PlannerState:
    if state.period_snapshot is not None:
        target = state.period_snapshot
    else:
        # First switch out of a study created in Duration mode: the caller
        # supplies the calendar period, or it stays unset.
        target = Period(start, end)
        if target.is_set and not target.is_valid:
            logger.warning(
                "rejected dates mode with start after end",
                extra={"target_mode": PeriodMode.DATES.value},
            )
            return state

    duration_snapshot = _capture(state, specs)
    collections = _restore_all(state, state.dates_snapshot, target, specs, clamp_end=False)
    logger.info(
        "switched period mode",
        extra={
            "mode": state.mode.value,
            "target_mode": PeriodMode.DATES.value,
            "entities": _entity_count(collections),
        },
    )
    return replace(
        state,
        mode=PeriodMode.DATES,
        period=target,
        collections=collections,
        duration_snapshot=duration_snapshot,
    )


def switch_mode(
    state: PlannerState,
    target_mode: PeriodMode | str,
    *,
    simulation_years: Optional[int] = None,
    start=None,
    end=None,
    specs: Sequence[DateFieldSpec] = DEFAULT_SPECS,
) -> PlannerState:
    """
    Move the study between Dates and Duration mode.

    Entering Duration uses ``simulation_years`` (or the state's current count).
    Entering Dates restores the calendar period saved when Dates mode was last
    left; ``start``/``end`` are only consulted when no such period exists.
    Switching to the current mode returns ``state`` unchanged.
    """
    target = PeriodMode(target_mode)
    if target is state.mode:
        return state
    if target is PeriodMode.DURATION:
        return _to_duration(state, simulation_years, specs)
    return _to_dates(state, coerce_month(start), coerce_month(end), specs)


def set_simulation_years(state: PlannerState, simulation_years: int) -> PlannerState:
    """Change the simulated year count; in Duration mode the period end follows it."""
    years = int(simulation_years)
    if years < 1:
        logger.warning(
            "rejected simulation year count below one",
            extra={"mode": state.mode.value, "simulation_years": years},
        )
        return state
    if years == state.simulation_years:
        return state
    if state.mode is PeriodMode.DATES:
        return replace(state, simulation_years=years)
    return replace(state, simulation_years=years, period=synthetic_period(years, state.epoch_year))


def set_period_dates(state: PlannerState, start=None, end=None) -> PlannerState:
    """Edit the calendar period; only meaningful in Dates mode."""
    if state.mode is not PeriodMode.DATES:
        logger.warning("ignored calendar period edit outside dates mode", extra={"mode": state.mode.value})
        return state
    period = Period(coerce_month(start), coerce_month(end))
    if period.is_set and not period.is_valid:
        logger.warning("rejected calendar period with start after end", extra={"mode": state.mode.value})
        return state
    if period == state.period:
        return state
    return replace(state, period=period)


def replace_collection(state: PlannerState, name: str, entities: Iterable[Mapping[str, Any]]) -> PlannerState:
    collections = dict(state.collections)
    collections[name] = [dict(entity) for entity in entities]
    return replace(state, collections=collections)


def remove_entity(state: PlannerState, name: str, entity_id: str, id_field: str = "id") -> PlannerState:
    if name not in state.collections:
        raise ValueError(f"Unknown collection: {name}")
    remaining = [entity for entity in state.collections[name] if str(entity.get(id_field)) != str(entity_id)]
    if len(remaining) == len(state.collections[name]):
        return state
    return replace_collection(state, name, remaining)


def remove_route(state: PlannerState, route_id: str, specs: Sequence[DateFieldSpec] = DEFAULT_SPECS) -> PlannerState:
    """Delete a route together with every per-route row keyed by ``routeId``."""
    targets = [(ROUTE_ENTRIES.collection, ROUTE_ENTRIES.id_field)]
    targets += [(spec.collection, spec.id_field) for spec in specs if spec.id_field == "routeId"]
    collections = dict(state.collections)
    removed = 0
    for name, id_field in targets:
        entities = collections.get(name)
        if entities is None:
            continue
        remaining = [entity for entity in entities if str(entity.get(id_field)) != str(route_id)]
        removed += len(entities) - len(remaining)
        collections[name] = remaining
    if not removed:
        return state
    logger.info("removed route", extra={"route_id": str(route_id), "entities": removed})
    return replace(state, collections=collections)


StateObserver = Callable[[PlannerState], None]


class PeriodModeController:
    """Holds the current state and notifies observers after every change."""

    def __init__(
        self,
        state: Optional[PlannerState] = None,
        observers: Optional[Iterable[StateObserver]] = None,
        specs: Sequence[DateFieldSpec] = DEFAULT_SPECS,
    ):
        self._state = state or PlannerState()
        self._observers: List[StateObserver] = list(observers or [])
        self.specs = tuple(specs)

    @property
    def state(self) -> PlannerState:
        return self._state

    def subscribe(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def _commit(self, new_state: PlannerState) -> PlannerState:
        if new_state is self._state:
            return new_state
        self._state = new_state
        for observer in self._observers:
            observer(new_state)
        return new_state

    def switch_mode(self, target_mode: PeriodMode | str, **params) -> PlannerState:
        return self._commit(switch_mode(self._state, target_mode, specs=self.specs, **params))

    def set_simulation_years(self, simulation_years: int) -> PlannerState:
        return self._commit(set_simulation_years(self._state, simulation_years))

    def set_period_dates(self, start=None, end=None) -> PlannerState:
        return self._commit(set_period_dates(self._state, start, end))

    def replace_collection(self, name: str, entities: Iterable[Mapping[str, Any]]) -> PlannerState:
        return self._commit(replace_collection(self._state, name, entities))

    def remove_entity(self, name: str, entity_id: str, id_field: str = "id") -> PlannerState:
        return self._commit(remove_entity(self._state, name, entity_id, id_field))

    def remove_route(self, route_id: str) -> PlannerState:
        return self._commit(remove_route(self._state, route_id, self.specs))
