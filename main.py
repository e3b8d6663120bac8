import argparse

import pandas as pd

from planner.cabin_classes import active_classes, class_label
from planner.load_factor import base_load_factor_frame, route_load_factor_frame, yearly_summary
from planner.logging_setup import setup_logging
from planner.period import set_simulation_years, switch_mode
from planner.settings import PlannerSettings
from planner.study_io import Study, StudyFormatError, read_study_file, write_study_file
from planner.timeline import PeriodMode

VIEWS = ("timeline", "years", "load-factor", "routes", "summary")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Inspect the planning period and load factor tables of an airline business study."
    )
    parser.add_argument(
        "--study",
        required=True,
        help="Path to a persisted study JSON document."
    )
    parser.add_argument(
        "--switch",
        choices=[mode.value for mode in PeriodMode],
        help="Switch the study to Dates or Duration mode before rendering."
    )
    parser.add_argument(
        "--years",
        type=int,
        help="Number of simulated years (Duration mode)."
    )
    parser.add_argument(
        "--show",
        choices=VIEWS,
        default="timeline",
        help="Table to print."
    )
    parser.add_argument(
        "--output",
        help="Optional path to write the (possibly switched) study back to."
    )
    return parser.parse_args(argv)


def timeline_frame(study: Study) -> pd.DataFrame:
    columns = study.state.timeline.columns()
    return pd.DataFrame([column.as_descriptor() for column in columns], columns=["key", "label"])


def year_frame(study: Study) -> pd.DataFrame:
    columns = study.state.timeline.year_columns()
    return pd.DataFrame([column.as_descriptor() for column in columns], columns=["key", "label"])


def study_classes(study: Study):
    classes = active_classes(study.state.collection("fleetEntries"))
    # Studies without a fleet still show the classes that have load factor inputs.
    return classes or sorted(set(study.load_factor.targeted_yearly) | set(study.load_factor.ramp_up))


def load_factor_frame(study: Study) -> pd.DataFrame:
    frame = base_load_factor_frame(study_classes(study), study.state.timeline, study.load_factor)
    labels = {column.key: column.label for column in study.state.timeline.columns()}
    frame = frame.rename(columns=labels)
    frame.index = [class_label(code) for code in frame.index]
    return frame


def routes_frame(study: Study) -> pd.DataFrame:
    return route_load_factor_frame(
        study.state.collection("routeEntries"),
        study_classes(study),
        study.state.timeline,
        study.load_factor,
        study.overrides,
    )


def summary_frame(study: Study) -> pd.DataFrame:
    routes = study.state.collection("routeEntries")
    if routes:
        grid = routes_frame(study)
    else:
        grid = base_load_factor_frame(study_classes(study), study.state.timeline, study.load_factor)
    return yearly_summary(grid, study.state.timeline)


def apply_period_options(study: Study, args) -> Study:
    state = study.state
    if args.switch:
        state = switch_mode(state, args.switch, simulation_years=args.years)
    if args.years is not None:
        state = set_simulation_years(state, args.years)
    study.state = state
    return study


def main(argv=None):
    args = parse_args(argv)
    setup_logging()
    settings = PlannerSettings.from_env()

    try:
        study = read_study_file(args.study, settings)
    except FileNotFoundError as exc:
        raise SystemExit(f"Study file not found: {exc}") from exc
    except StudyFormatError as exc:
        raise SystemExit(str(exc)) from exc

    study = apply_period_options(study, args)

    renderers = {
        "timeline": timeline_frame,
        "years": year_frame,
        "load-factor": load_factor_frame,
        "routes": routes_frame,
        "summary": summary_frame,
    }
    frame = renderers[args.show](study)
    if frame.empty:
        print("No data for the current period.")
    else:
        print(frame.to_string(index=args.show == "load-factor"))

    if args.output:
        write_study_file(args.output, study)
        print(f"Saved study to {args.output}")


if __name__ == "__main__":
    main()
