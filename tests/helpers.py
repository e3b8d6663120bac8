from planner.period import Period, PlannerState
from planner.timeline import MonthKey, PeriodMode


def sample_collections():
    """Two aircraft, two routes and one frequency map over 2026-2027."""
    return {
        "fleetEntries": [
            {
                "id": "f1",
                "aircraftType": "A320neo",
                "engine": "LEAP-1A",
                "layout": "J12-Y150",
                "numberOfAircraft": 2,
                "enterInService": MonthKey(2026, 1),
                "ownership": "Owned",
            },
            {
                "id": "f2",
                "aircraftType": "A321neo",
                "engine": "PW1100G",
                "layout": "W21-Y190",
                "numberOfAircraft": 1,
                "enterInService": MonthKey(2026, 7),
                "retirement": MonthKey(2030, 6),
                "ownership": "Leased",
            },
        ],
        "routeEntries": [
            {"id": "r1", "origin": "CDG", "destination": "JFK", "startDate": MonthKey(2026, 1), "endDate": MonthKey(2027, 12)},
            {"id": "r2", "origin": "CDG", "destination": "LHR", "startDate": MonthKey(2026, 4), "endDate": MonthKey(2027, 6)},
        ],
        "routeFrequencyData": [
            {"routeId": "r1", "frequencies": {"2026-01": 7, "2026-02": 7, "2027-12": 14}},
        ],
    }


def seed_dates_state(simulation_years=3):
    return PlannerState(
        mode=PeriodMode.DATES,
        period=Period(MonthKey(2026, 1), MonthKey(2027, 12)),
        simulation_years=simulation_years,
        collections=sample_collections(),
    )


def sample_study_document():
    """A persisted study as the browser stores it (camelCase, ISO-8601 dates)."""
    return {
        "studyName": "Transatlantic launch",
        "workspaceName": "Network planning",
        "periodType": "dates",
        "simulationYears": 3,
        "startDate": "2026-01-01T00:00:00.000Z",
        "endDate": "2027-12-01T00:00:00.000Z",
        "operatingDays": 360,
        "startupDuration": 6,
        "fleetEntries": [
            {
                "id": "f1",
                "aircraftType": "A320neo",
                "engine": "LEAP-1A",
                "layout": "J12-Y150",
                "numberOfAircraft": 2,
                "enterInService": "2026-01-01",
                "ownership": "Owned",
            }
        ],
        "routeEntries": [
            {"id": "r1", "origin": "CDG", "destination": "JFK", "startDate": "2026-01-01", "endDate": "2027-12-01"},
        ],
        "routeFrequencyData": [{"routeId": "r1", "frequencies": {"2026-01": 7}}],
        "targetedYearlyLF": {"Y": {"Y2": 80}, "J": {"Y2": 70}},
        "seasonalityCorrection": {"Jan": 90, "Jul": 130},
        "firstYearRampUp": {"Y": {"2026-01": 55, "2026-03": 40}},
        "maxLoadFactor": {"Y": 90, "J": 85},
        "routeLoadFactorData": [
            {"routeId": "r1", "classType": "Y", "routeDisplay": "CDG - JFK", "2027-07": 99},
        ],
    }
