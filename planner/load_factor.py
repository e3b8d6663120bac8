"""Load factor per cabin class and month, with per-route manual overrides.

Year 1 values come straight from the ramp-up table. From year 2 on the value is
the targeted yearly load factor scaled by the calendar month's seasonality
correction and capped at the class maximum. Overrides always win and are never
capped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from planner.cabin_classes import CLASS_ORDER
from planner.timeline import MONTH_ABBREVIATIONS, MonthKey, MonthKeyError, Timeline, coerce_month, year_key_to_label

logger = logging.getLogger(__name__)

DEFAULT_SEASONALITY_PCT = 100.0
DEFAULT_CAP_PCT = 100.0
# Cap written into the table of a new study for every cabin class.
DEFAULT_MAX_LOAD_FACTOR = 90.0

RECORD_ID_COLUMNS = ("routeId", "classType", "routeDisplay")

OverrideKey = Tuple[str, str]
# (route id, class code) -> {month key: value}; entries are never empty.
OverrideTable = Dict[OverrideKey, Dict[str, float]]


def default_seasonality() -> Dict[str, float]:
    return {abbrev: DEFAULT_SEASONALITY_PCT for abbrev in MONTH_ABBREVIATIONS}


def default_max_load_factor(classes: Iterable[str] = CLASS_ORDER) -> Dict[str, float]:
    return {code: DEFAULT_MAX_LOAD_FACTOR for code in classes}


@dataclass(frozen=True)
class LoadFactorInputs:
    ramp_up: Mapping[str, Mapping[str, float]] = field(default_factory=dict)
    targeted_yearly: Mapping[str, Mapping[str, float]] = field(default_factory=dict)
    seasonality: Mapping[str, float] = field(default_factory=default_seasonality)
    max_load_factor: Mapping[str, float] = field(default_factory=dict)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_base(class_code: str, month_key: MonthKey | str, inputs: LoadFactorInputs, timeline: Timeline) -> float:
    """Computed load factor for one class and month, ignoring overrides."""
    month = coerce_month(month_key)
    month_index = timeline.month_index(month)
    if month_index is None:
        return 0
    if month_index <= 12:
        return inputs.ramp_up.get(class_code, {}).get(str(month), 0)

    year_key = f"Y{(month_index + 11) // 12}"
    targeted = inputs.targeted_yearly.get(class_code, {}).get(year_key, 0)
    seasonality = inputs.seasonality.get(month.month_abbrev, DEFAULT_SEASONALITY_PCT)
    raw = round_half_up(targeted * seasonality / 100)
    return min(raw, inputs.max_load_factor.get(class_code, DEFAULT_CAP_PCT))


def compute_displayed(
    route_id: str,
    class_code: str,
    month_key: MonthKey | str,
    inputs: LoadFactorInputs,
    overrides: Mapping[OverrideKey, Mapping[str, float]],
    timeline: Timeline,
) -> float:
    month = coerce_month(month_key)
    entry = overrides.get((str(route_id), class_code))
    if entry is not None and str(month) in entry:
        return entry[str(month)]
    return compute_base(class_code, month, inputs, timeline)


def set_override(
    overrides: Mapping[OverrideKey, Mapping[str, float]],
    route_id: str,
    class_code: str,
    month_key: MonthKey | str,
    value: float,
) -> OverrideTable:
    key = (str(route_id), class_code)
    month = str(coerce_month(month_key))
    updated: OverrideTable = {k: dict(v) for k, v in overrides.items()}
    updated.setdefault(key, {})[month] = value
    logger.debug(
        "set load factor override",
        extra={"route_id": key[0], "class_code": class_code, "month_key": month},
    )
    return updated


def clear_override(
    overrides: Mapping[OverrideKey, Mapping[str, float]],
    route_id: str,
    class_code: str,
    month_key: MonthKey | str,
) -> OverrideTable:
    """Drop one month from an entry, deleting the entry once it has no months left."""
    key = (str(route_id), class_code)
    month = str(coerce_month(month_key))
    if month not in overrides.get(key, {}):
        return dict(overrides)
    updated: OverrideTable = {k: dict(v) for k, v in overrides.items()}
    del updated[key][month]
    if not updated[key]:
        del updated[key]
    logger.debug(
        "cleared load factor override",
        extra={"route_id": key[0], "class_code": class_code, "month_key": month},
    )
    return updated


def prune_route(overrides: Mapping[OverrideKey, Mapping[str, float]], route_id: str) -> OverrideTable:
    """Remove every override of a deleted route."""
    return {key: dict(values) for key, values in overrides.items() if key[0] != str(route_id)}


def overrides_from_records(records: Iterable[Mapping[str, Any]]) -> OverrideTable:
    """Build the keyed table from `{routeId, classType, <month>: value}` rows."""
    table: OverrideTable = {}
    for record in records:
        route_id = record.get("routeId")
        class_code = record.get("classType")
        if route_id is None or class_code is None:
            continue
        months: Dict[str, float] = {}
        for column, value in record.items():
            if column in RECORD_ID_COLUMNS or value is None:
                continue
            try:
                months[str(MonthKey.parse(column))] = value
            except MonthKeyError:
                continue
        if months:
            table.setdefault((str(route_id), str(class_code)), {}).update(months)
    return table


def overrides_to_records(overrides: Mapping[OverrideKey, Mapping[str, float]]) -> List[Dict[str, Any]]:
    return [
        {"routeId": route_id, "classType": class_code, **dict(sorted(months.items()))}
        for (route_id, class_code), months in overrides.items()
        if months
    ]


def base_load_factor_frame(classes: Sequence[str], timeline: Timeline, inputs: LoadFactorInputs) -> pd.DataFrame:
    """Computed load factors as a class x month frame (index ``classType``)."""
    columns = timeline.columns()
    index = pd.Index(list(classes), name="classType")
    if not columns:
        return pd.DataFrame(index=index)

    months = pd.DataFrame(
        {
            "key": [column.key for column in columns],
            "month_index": [column.month_index for column in columns],
            "year_key": [f"Y{column.year_index}" for column in columns],
            "abbrev": [MonthKey.parse(column.key).month_abbrev for column in columns],
        }
    )
    seasonality = (
        months["abbrev"].map(dict(inputs.seasonality)).fillna(DEFAULT_SEASONALITY_PCT).astype(float)
    )

    rows = []
    for code in classes:
        ramp = months["key"].map(dict(inputs.ramp_up.get(code, {}))).fillna(0).astype(float)
        targeted = months["year_key"].map(dict(inputs.targeted_yearly.get(code, {}))).fillna(0).astype(float)
        raw = np.floor(targeted * seasonality / 100 + 0.5)
        capped = np.minimum(raw, float(inputs.max_load_factor.get(code, DEFAULT_CAP_PCT)))
        values = np.where(months["month_index"] <= 12, ramp, capped)
        rows.append(values)

    return pd.DataFrame(rows, index=index, columns=months["key"].tolist())


def route_load_factor_frame(
    routes: Iterable[Mapping[str, Any]],
    classes: Sequence[str],
    timeline: Timeline,
    inputs: LoadFactorInputs,
    overrides: Mapping[OverrideKey, Mapping[str, float]],
) -> pd.DataFrame:
    """Displayed load factor for every route x active class x month."""
    base = base_load_factor_frame(classes, timeline, inputs)
    month_keys = list(base.columns)
    records: List[Dict[str, Any]] = []
    for route in routes:
        route_id = str(route.get("id"))
        display = f"{route.get('origin', '')} - {route.get('destination', '')}"
        for code in classes:
            row: Dict[str, Any] = {"routeId": route_id, "classType": code, "routeDisplay": display}
            row.update(base.loc[code].to_dict())
            entry = overrides.get((route_id, code), {})
            row.update({month: value for month, value in entry.items() if month in row})
            records.append(row)
    return pd.DataFrame(records, columns=[*RECORD_ID_COLUMNS, *month_keys])


def yearly_summary(frame: pd.DataFrame, timeline: Timeline) -> pd.DataFrame:
    """Mean load factor per class and simulation year of a class/route grid."""
    if "classType" not in frame.columns:
        frame = frame.reset_index()
    year_of = {column.key: f"Y{column.year_index}" for column in timeline.columns()}
    month_columns = [key for key in year_of if key in frame.columns]
    result_columns = ["classType", "yearKey", "label", "loadFactor"]
    if frame.empty or not month_columns:
        return pd.DataFrame(columns=result_columns)

    long = frame[["classType", *month_columns]].melt(
        id_vars=["classType"], var_name="monthKey", value_name="loadFactor"
    )
    long["loadFactor"] = pd.to_numeric(long["loadFactor"], errors="coerce")
    long["yearKey"] = long["monthKey"].map(year_of)
    summary = long.groupby(["classType", "yearKey"], as_index=False).agg(loadFactor=("loadFactor", "mean"))

    order = {code: idx for idx, code in enumerate(CLASS_ORDER)}
    summary["_class_order"] = summary["classType"].map(order).fillna(len(order))
    summary["_year_index"] = summary["yearKey"].str.lstrip("Y").astype(int)
    summary = summary.sort_values(["_class_order", "classType", "_year_index"], kind="mergesort")
    summary["label"] = [year_key_to_label(key, timeline.mode, timeline.start) for key in summary["yearKey"]]
    return summary[result_columns].reset_index(drop=True)


OverrideObserver = Callable[[OverrideTable], None]


class LoadFactorEditor:
    """Holds the override table and notifies observers after each edit."""

    def __init__(
        self,
        overrides: Optional[Mapping[OverrideKey, Mapping[str, float]]] = None,
        observers: Optional[Iterable[OverrideObserver]] = None,
    ):
        self._overrides: OverrideTable = {key: dict(values) for key, values in (overrides or {}).items()}
        self._observers: List[OverrideObserver] = list(observers or [])

    @property
    def overrides(self) -> OverrideTable:
        return self._overrides

    def subscribe(self, observer: OverrideObserver) -> None:
        self._observers.append(observer)

    def _commit(self, updated: OverrideTable) -> OverrideTable:
        if updated == self._overrides:
            return self._overrides
        self._overrides = updated
        for observer in self._observers:
            observer(updated)
        return updated

    def set_override(self, route_id: str, class_code: str, month_key: MonthKey | str, value: float) -> OverrideTable:
        return self._commit(set_override(self._overrides, route_id, class_code, month_key, value))

    def clear_override(self, route_id: str, class_code: str, month_key: MonthKey | str) -> OverrideTable:
        return self._commit(clear_override(self._overrides, route_id, class_code, month_key))

    def prune_route(self, route_id: str) -> OverrideTable:
        return self._commit(prune_route(self._overrides, route_id))
