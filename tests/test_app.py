import os
import sys
import unittest
from unittest import mock

import yaml

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig
from errors import PersistenceError
from settings_schema import SettingsSchema, validate_settings
from workout_app import WorkoutApp, load_settings


class SettingsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.yaml = "test_liftlog_settings.yaml"
        if os.path.exists(self.yaml):
            os.remove(self.yaml)

    def tearDown(self) -> None:
        if os.path.exists(self.yaml):
            os.remove(self.yaml)

    def test_defaults(self) -> None:
        settings = validate_settings({})
        self.assertEqual(settings.db_path, "workout.db")
        self.assertEqual(settings.summary_max_lines, 3)
        self.assertEqual(settings.stats_default_range, "3M")
        self.assertIsNone(settings.timezone)

    def test_invalid_values(self) -> None:
        for data in (
            {"first_weekday": 7},
            {"summary_max_lines": 0},
            {"stats_default_range": "2W"},
            {"weight_unit": "stone"},
            {"timezone": "Mars/Olympus"},
        ):
            with self.subTest(data=data):
                with self.assertRaises(ValueError):
                    validate_settings(data)

    def test_yaml_round_trip(self) -> None:
        cfg = YamlConfig(self.yaml)
        self.assertEqual(cfg.load(), {})
        cfg.save({"weight_unit": "lb", "first_weekday": 6})
        self.assertEqual(cfg.load(), {"first_weekday": 6, "weight_unit": "lb"})
        self.assertEqual(validate_settings(cfg.load()).weight_unit, "lb")

    def test_yaml_must_be_mapping(self) -> None:
        with open(self.yaml, "w", encoding="utf-8") as f:
            yaml.safe_dump(["not", "a", "mapping"], f)
        with self.assertRaises(ValueError):
            YamlConfig(self.yaml).load()

    def test_environment_overrides(self) -> None:
        YamlConfig(self.yaml).save({"db_path": "from_yaml.db"})
        self.assertEqual(load_settings(self.yaml, environ={}).db_path, "from_yaml.db")
        settings = load_settings(
            self.yaml, environ={"LIFTLOG_DB_PATH": "env.db", "LIFTLOG_IN_MEMORY": "1"}
        )
        self.assertEqual(settings.db_path, "env.db")
        self.assertTrue(settings.in_memory)


class WorkoutAppTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.app = WorkoutApp(settings=SettingsSchema(in_memory=True))

    def tearDown(self) -> None:
        self.app.close()

    def test_in_memory_switch(self) -> None:
        self.assertTrue(self.app.db.in_memory)

    def test_startup_seeds_then_repairs(self) -> None:
        report = self.app.startup()
        self.assertTrue(report.ok)
        self.assertEqual(len(report.seeded), 8)
        self.assertFalse(report.repair.has_fixes)
        again = self.app.startup()
        self.assertEqual(again.seeded, [])

    def test_startup_failures_are_logged_not_raised(self) -> None:
        with mock.patch.object(
            self.app.categories, "seed_defaults", side_effect=PersistenceError("disk full")
        ), self.assertLogs("workout_app", level="ERROR") as logs:
            report = self.app.startup()
        self.assertFalse(report.ok)
        self.assertEqual(report.errors, ["seed: disk full"])
        self.assertIsNotNone(report.repair)
        self.assertIn("seeding default workout types failed", logs.output[0])

    def test_repair_failure_does_not_stop_startup(self) -> None:
        with mock.patch.object(
            self.app.integrity, "repair", side_effect=PersistenceError("locked")
        ), self.assertLogs("workout_app", level="ERROR"):
            report = self.app.startup()
        self.assertEqual(len(report.seeded), 8)
        self.assertIsNone(report.repair)
        self.assertEqual(report.errors, ["repair: locked"])


if __name__ == "__main__":
    unittest.main()
