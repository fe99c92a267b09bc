from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional
from zoneinfo import ZoneInfo

from category_service import CategoryService
from config import YamlConfig
from db import IN_MEMORY, CategoryRepository, Database, SessionRepository
from lookup_service import PreviousValueLookup
from models import Category, RepairReport
from repair_service import DataIntegrityService
from session_service import SessionService
from settings_schema import SettingsSchema, validate_settings
from stats_service import DashboardRecomputer, StatisticsService
from timeline_service import TimelineService
from tools import LocalCalendar

logger = logging.getLogger(__name__)

ENV_DB_PATH = "LIFTLOG_DB_PATH"
ENV_IN_MEMORY = "LIFTLOG_IN_MEMORY"


@dataclass
class StartupReport:
    """Outcome of :meth:`WorkoutApp.startup`; failures are listed, not raised."""

    seeded: List[Category] = field(default_factory=list)
    repair: Optional[RepairReport] = None
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def load_settings(yaml_path: str = "settings.yaml", environ: dict | None = None) -> SettingsSchema:
    """Read ``yaml_path`` and apply environment overrides."""
    environ = os.environ if environ is None else environ
    data = YamlConfig(yaml_path).load()
    if environ.get(ENV_DB_PATH):
        data["db_path"] = environ[ENV_DB_PATH]
    if environ.get(ENV_IN_MEMORY) == "1":
        data["in_memory"] = True
    return validate_settings(data)


class WorkoutApp:
    """Wire the store and the services that share it."""

    def __init__(
        self,
        db_path: str | None = None,
        yaml_path: str = "settings.yaml",
        *,
        in_memory: bool = False,
        settings: SettingsSchema | None = None,
    ) -> None:
        self.settings = settings or load_settings(yaml_path)
        if in_memory or self.settings.in_memory:
            path = IN_MEMORY
        else:
            path = db_path or self.settings.db_path
        self.db = Database(path)
        tz = ZoneInfo(self.settings.timezone) if self.settings.timezone else None
        self.calendar = LocalCalendar(tz, self.settings.first_weekday)
        self.category_repo = CategoryRepository(self.db)
        self.session_repo = SessionRepository(self.db)
        self.categories = CategoryService(self.db, self.category_repo)
        self.sessions = SessionService(self.db, self.session_repo)
        self.lookup = PreviousValueLookup(self.db, self.session_repo.entries)
        self.integrity = DataIntegrityService(self.db, self.session_repo)
        self.stats = StatisticsService(self.calendar)
        self.dashboard = DashboardRecomputer(self.stats)
        self.timeline = TimelineService(self.calendar)
        logger.debug("opened store at %s", path)

    def startup(self) -> StartupReport:
        """Seed the built-in types, then repair stored data.

        Either step may fail without stopping the other; the app keeps
        running with whatever data is in the store.
        """
        report = StartupReport()
        try:
            report.seeded = self.categories.seed_defaults()
        except Exception as exc:
            logger.exception("seeding default workout types failed")
            report.errors.append(f"seed: {exc}")
        try:
            report.repair = self.integrity.repair()
        except Exception as exc:
            logger.exception("data repair failed")
            report.errors.append(f"repair: {exc}")
        return report

    def close(self) -> None:
        self.db.close()
