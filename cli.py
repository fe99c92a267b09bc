import argparse
import logging
import sys
from typing import List, Optional

from seed_sample_data import seed
from stats_service import DateRangePreset
from workout_app import WorkoutApp


def show_startup(app: WorkoutApp) -> None:
    report = app.startup()
    print(f"Seeded {len(report.seeded)} workout types")
    if report.repair is not None:
        print(
            f"Repair: {report.repair.total_fixes} fixes across "
            f"{report.repair.sessions_touched} sessions"
        )
    for error in report.errors:
        print(f"Startup error: {error}")


def show_history(app: WorkoutApp) -> None:
    sessions = app.timeline.filter_sessions(app.session_repo.fetch_all_sessions())
    if not sessions:
        print("No workouts logged")
        return
    for week in app.timeline.group_by_week(sessions):
        print(app.timeline.week_label(week.week_start))
        for session in week.sessions:
            category = app.categories.resolve(session.category_id)
            title = category.name if category else "Workout"
            local = app.calendar.localize(session.started_at)
            duration = app.timeline.duration_label(session) or ""
            print(f"  {local:%a %d %b %H:%M}  {title}  {duration}")
            print(f"    {app.timeline.session_caption(session)}")
            for line in app.timeline.summary_lines(
                session, app.settings.summary_max_lines
            ):
                print(f"    - {line}")


def show_stats(app: WorkoutApp, exercise: str, range_label: str) -> None:
    interval = DateRangePreset(range_label).interval()
    snapshot = app.dashboard.recompute(
        app.session_repo.fetch_all_sessions(active=False), exercise, interval
    )
    if snapshot is None or snapshot.is_empty:
        print(f"No history for {exercise}")
        return
    unit = app.settings.weight_unit
    print(f"Trend: {snapshot.trend.value}")
    print(f"Last workout: {app.calendar.localize(snapshot.last_workout_date):%Y-%m-%d}")
    print(f"Best weight: {snapshot.best_weight:g} {unit}")
    print(f"Best est. 1RM: {snapshot.best_estimated_one_rep_max:.1f} {unit}")
    delta = app.stats.trend_delta(snapshot)
    if delta is not None:
        print(f"Recent vs previous: {delta:+.1f} {unit}")
    for point in snapshot.weekly_volume_points:
        print(f"  {point.week_start:%Y-%m-%d}  {point.volume:g}")


def show_previous(app: WorkoutApp, exercise: str) -> None:
    active = app.sessions.active_session()
    ref = app.lookup.latest_reference_in(
        app.session_repo.fetch_all_sessions(),
        exercise,
        active.id if active is not None else None,
    )
    if ref is None:
        print(f"No previous sets for {exercise}")
        return
    local = app.calendar.localize(ref.logged_at)
    print(
        f"{ref.exercise_name}: {ref.weight:g} {app.settings.weight_unit} x {ref.reps}"
        f" on {local:%Y-%m-%d}"
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Workout log utility commands")
    parser.add_argument("--db", default=None, help="database file")
    parser.add_argument("--yaml", default="settings.yaml")
    parser.add_argument(
        "--in-memory", action="store_true", help="use a throwaway in-memory store"
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("startup")
    sub.add_parser("demo")
    sub.add_parser("history")

    stats = sub.add_parser("stats")
    stats.add_argument("exercise")
    stats.add_argument(
        "--range",
        dest="range_label",
        choices=[p.value for p in DateRangePreset],
        default=None,
    )

    prev = sub.add_parser("previous")
    prev.add_argument("exercise")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        app = WorkoutApp(args.db, args.yaml, in_memory=args.in_memory)
    except ValueError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 2
    try:
        if args.cmd == "startup":
            show_startup(app)
        elif args.cmd == "demo":
            app.startup()
            count = seed(app)
            print(f"Demo data inserted: {count} sessions" if count else "Database already contains workouts")
            if app.db.in_memory:
                show_history(app)
        elif args.cmd == "history":
            show_history(app)
        elif args.cmd == "stats":
            show_stats(app, args.exercise, args.range_label or app.settings.stats_default_range)
        elif args.cmd == "previous":
            show_previous(app, args.exercise)
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
