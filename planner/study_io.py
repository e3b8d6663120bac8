"""Conversion between the persisted study document and in-memory planner state.

The document uses camelCase keys and ISO-8601 date strings; internally every
period-bound date is a ``MonthKey``. Keys the planner does not model are kept
as-is so a load/dump round trip does not lose data owned by other panels.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from planner.entity_dates import DEFAULT_SPECS, FLEET_ENTRIES, ROUTE_ENTRIES, ROUTE_FREQUENCIES, DateFieldSpec
from planner.load_factor import (
    LoadFactorInputs,
    OverrideTable,
    default_seasonality,
    overrides_from_records,
    overrides_to_records,
    prune_route,
)
from planner.period import Period, PlannerState, remove_route, synthetic_period
from planner.settings import PlannerSettings
from planner.timeline import MonthKey, MonthKeyError, PeriodMode, coerce_month

logger = logging.getLogger(__name__)

_SPECS_BY_COLLECTION: Dict[str, DateFieldSpec] = {spec.collection: spec for spec in DEFAULT_SPECS}


class StudyFormatError(ValueError):
    """Raised when a persisted study document cannot be read."""

    def __init__(self, message: str, status_code: int = 422):
        super().__init__(message)
        self.status_code = status_code


class PersistedStudy(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    period_type: PeriodMode = Field(PeriodMode.DATES, alias="periodType")
    simulation_years: Optional[int] = Field(None, ge=1, alias="simulationYears")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")
    fleet_entries: List[Dict[str, Any]] = Field(default_factory=list, alias="fleetEntries")
    route_entries: List[Dict[str, Any]] = Field(default_factory=list, alias="routeEntries")
    route_frequency_data: List[Dict[str, Any]] = Field(default_factory=list, alias="routeFrequencyData")
    targeted_yearly_lf: Dict[str, Dict[str, float]] = Field(default_factory=dict, alias="targetedYearlyLF")
    seasonality_correction: Dict[str, float] = Field(default_factory=default_seasonality, alias="seasonalityCorrection")
    first_year_ramp_up: Dict[str, Dict[str, float]] = Field(default_factory=dict, alias="firstYearRampUp")
    max_load_factor: Dict[str, float] = Field(default_factory=dict, alias="maxLoadFactor")
    route_load_factor_data: List[Dict[str, Any]] = Field(default_factory=list, alias="routeLoadFactorData")
    period_snapshot: Optional[Dict[str, Optional[str]]] = Field(None, alias="periodSnapshot")
    dates_snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = Field(None, alias="datesSnapshot")
    duration_snapshot: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = Field(None, alias="durationSnapshot")


@dataclass
class Study:
    state: PlannerState
    load_factor: LoadFactorInputs = field(default_factory=LoadFactorInputs)
    overrides: OverrideTable = field(default_factory=dict)
    extras: Dict[str, Any] = field(default_factory=dict)


def _month_from_iso(value: Any) -> Optional[MonthKey]:
    try:
        return coerce_month(value)
    except MonthKeyError as exc:
        raise StudyFormatError(f"Invalid date {value!r}: {exc}") from exc


def _month_to_iso(value: Any) -> Any:
    return value.iso() if isinstance(value, MonthKey) else value


def _month_map_keys(values: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(_month_from_iso(key)): value for key, value in (values or {}).items()}


def _parse_fields(spec: DateFieldSpec, values: Mapping[str, Any]) -> Dict[str, Any]:
    parsed = dict(values)
    for name in (spec.start_field, spec.end_field):
        if name and name in parsed:
            parsed[name] = _month_from_iso(parsed[name])
    if spec.month_map_field and parsed.get(spec.month_map_field) is not None:
        parsed[spec.month_map_field] = _month_map_keys(parsed[spec.month_map_field])
    return parsed


def _format_fields(spec: Optional[DateFieldSpec], values: Mapping[str, Any]) -> Dict[str, Any]:
    formatted = dict(values)
    if spec is None:
        return formatted
    for name in (spec.start_field, spec.end_field):
        if name and name in formatted:
            formatted[name] = _month_to_iso(formatted[name])
    return formatted


def _format_collection(state: PlannerState, spec: DateFieldSpec) -> List[Dict[str, Any]]:
    return [_format_fields(spec, entity) for entity in state.collection(spec.collection)]


def _parse_snapshots(raw: Optional[Mapping[str, Mapping[str, Mapping[str, Any]]]]):
    if raw is None:
        return None
    parsed: Dict[str, Dict[str, Dict[str, Any]]] = {}
    for collection, entries in raw.items():
        spec = _SPECS_BY_COLLECTION.get(collection)
        parsed[collection] = {
            str(entity_id): (_parse_fields(spec, values) if spec else dict(values))
            for entity_id, values in entries.items()
        }
    return parsed


def _format_snapshots(snapshots):
    if snapshots is None:
        return None
    return {
        collection: {
            entity_id: _format_fields(_SPECS_BY_COLLECTION.get(collection), values)
            for entity_id, values in entries.items()
        }
        for collection, entries in snapshots.items()
    }


def load_study(payload: Mapping[str, Any], settings: Optional[PlannerSettings] = None) -> Study:
    """Validate a persisted study document and build the in-memory study."""
    settings = settings or PlannerSettings.from_env()
    try:
        document = PersistedStudy.model_validate(dict(payload))
    except ValidationError as exc:
        raise StudyFormatError(f"Invalid study document: {exc}") from exc

    collections = {
        FLEET_ENTRIES.collection: [_parse_fields(FLEET_ENTRIES, entry) for entry in document.fleet_entries],
        ROUTE_ENTRIES.collection: [_parse_fields(ROUTE_ENTRIES, entry) for entry in document.route_entries],
        ROUTE_FREQUENCIES.collection: [
            _parse_fields(ROUTE_FREQUENCIES, entry) for entry in document.route_frequency_data
        ],
    }

    period_snapshot = None
    if document.period_snapshot is not None:
        period_snapshot = Period(
            _month_from_iso(document.period_snapshot.get("startDate")),
            _month_from_iso(document.period_snapshot.get("endDate")),
        )

    simulation_years = document.simulation_years or settings.default_simulation_years
    period = Period(_month_from_iso(document.start_date), _month_from_iso(document.end_date))
    if document.period_type is PeriodMode.DURATION and not period.is_set:
        # Duration studies may be saved with only their year count.
        period = synthetic_period(simulation_years, settings.epoch_year)

    state = PlannerState(
        mode=document.period_type,
        period=period,
        simulation_years=simulation_years,
        collections=collections,
        dates_snapshot=_parse_snapshots(document.dates_snapshot),
        duration_snapshot=_parse_snapshots(document.duration_snapshot),
        period_snapshot=period_snapshot,
        epoch_year=settings.epoch_year,
    )
    load_factor = LoadFactorInputs(
        ramp_up={code: _month_map_keys(values) for code, values in document.first_year_ramp_up.items()},
        targeted_yearly=document.targeted_yearly_lf,
        seasonality=document.seasonality_correction,
        max_load_factor=document.max_load_factor,
    )
    return Study(
        state=state,
        load_factor=load_factor,
        overrides=overrides_from_records(document.route_load_factor_data),
        extras=dict(document.model_extra or {}),
    )


def dump_study(study: Study) -> Dict[str, Any]:
    """Serialize a study back to the camelCase, ISO-8601 document."""
    state = study.state
    document: Dict[str, Any] = dict(study.extras)
    document.update(
        {
            "periodType": state.mode.value,
            "simulationYears": state.simulation_years,
            "startDate": _month_to_iso(state.period.start),
            "endDate": _month_to_iso(state.period.end),
            "fleetEntries": _format_collection(state, FLEET_ENTRIES),
            "routeEntries": _format_collection(state, ROUTE_ENTRIES),
            "routeFrequencyData": _format_collection(state, ROUTE_FREQUENCIES),
            "targetedYearlyLF": {code: dict(v) for code, v in study.load_factor.targeted_yearly.items()},
            "seasonalityCorrection": dict(study.load_factor.seasonality),
            "firstYearRampUp": {code: dict(v) for code, v in study.load_factor.ramp_up.items()},
            "maxLoadFactor": dict(study.load_factor.max_load_factor),
            "routeLoadFactorData": overrides_to_records(study.overrides),
            "periodSnapshot": (
                None
                if state.period_snapshot is None
                else {
                    "startDate": _month_to_iso(state.period_snapshot.start),
                    "endDate": _month_to_iso(state.period_snapshot.end),
                }
            ),
            "datesSnapshot": _format_snapshots(state.dates_snapshot),
            "durationSnapshot": _format_snapshots(state.duration_snapshot),
        }
    )
    return document


def delete_route(study: Study, route_id: str) -> Study:
    """Remove a route along with its frequency rows and load factor overrides."""
    return Study(
        state=remove_route(study.state, route_id),
        load_factor=study.load_factor,
        overrides=prune_route(study.overrides, route_id),
        extras=dict(study.extras),
    )


def read_study_file(path: str | Path, settings: Optional[PlannerSettings] = None) -> Study:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise StudyFormatError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise StudyFormatError(f"{path} must contain a JSON object")
    logger.info("loaded study", extra={"study_path": str(path), "mode": payload.get("periodType")})
    return load_study(payload, settings)


def write_study_file(path: str | Path, study: Study) -> None:
    path = Path(path)
    path.write_text(json.dumps(dump_study(study), indent=2), encoding="utf-8")
    logger.info("saved study", extra={"study_path": str(path), "mode": study.state.mode.value})

