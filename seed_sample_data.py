import datetime
import logging

from db import utcnow
from workout_app import WorkoutApp

logger = logging.getLogger(__name__)

DEMO_WEEKS = 8


def seed(app: WorkoutApp, now: datetime.datetime | None = None) -> int:
    """Insert a few weeks of demo history into an empty store.

    Returns the number of sessions created.
    """
    if app.session_repo.fetch_all_sessions():
        logger.info("store already contains sessions")
        return 0
    now = now or utcnow()
    app.categories.seed_defaults()
    by_name = {c.name: c for c in app.categories.list_active()}
    created = 0
    for week in range(DEMO_WEEKS):
        started = now - datetime.timedelta(weeks=DEMO_WEEKS - week, hours=1)
        session = app.sessions.start_session(
            by_name.get("Chest"), "Demo session", started_at=started
        )
        bench = app.sessions.add_exercise(session, "Bench Press")
        app.sessions.add_set(bench, 10, 40.0, is_warmup=True, logged_at=started)
        for offset in range(1, 4):
            app.sessions.add_set(
                bench,
                5,
                80.0 + 2.5 * week,
                logged_at=started + datetime.timedelta(minutes=5 * offset),
            )
        fly = app.sessions.add_exercise(session, "Cable Fly")
        app.sessions.add_set(
            fly, 12, 15.0, logged_at=started + datetime.timedelta(minutes=25)
        )
        app.sessions.finish_session(
            session, ended_at=started + datetime.timedelta(minutes=45)
        )
        created += 1
    logger.info("inserted %d demo sessions", created)
    return created


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    seed(WorkoutApp())
