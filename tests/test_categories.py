import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Database
from category_service import CategoryService, DEFAULT_CATEGORIES
from errors import DuplicateNameError, EmptyNameError, DomainValidationError


class CategoryServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = Database(":memory:")
        self.service = CategoryService(self.db)

    def tearDown(self) -> None:
        self.db.close()

    def test_seed_is_idempotent(self) -> None:
        first = self.service.seed_defaults()
        self.assertEqual([c.name for c in first], [d.name for d in DEFAULT_CATEGORIES])
        self.assertTrue(all(c.is_built_in for c in first))
        self.assertEqual([c.sort_order for c in first], list(range(8)))
        self.assertEqual(self.service.seed_defaults(), [])
        self.assertEqual(len(self.service.list_active()), 8)

    def test_seed_skips_existing_names(self) -> None:
        custom = self.service.create("  CARDIO ")
        self.assertEqual(custom.sort_order, 0)
        seeded = self.service.seed_defaults()
        self.assertEqual(len(seeded), 7)
        self.assertNotIn("Cardio", [c.name for c in seeded])
        self.assertEqual(seeded[0].sort_order, 1)

    def test_seed_respects_archived(self) -> None:
        self.service.seed_defaults()
        back = self.service.list_active()[0]
        self.service.archive(back)
        self.assertEqual(self.service.seed_defaults(), [])
        self.assertEqual([c.name for c in self.service.list_archived()], ["Back"])

    def test_create_validation(self) -> None:
        self.service.seed_defaults()
        with self.assertRaises(EmptyNameError):
            self.service.create("   ")
        with self.assertRaises(DuplicateNameError) as ctx:
            self.service.create(" bÁck ")
        self.assertIn("already exists", str(ctx.exception))
        self.assertIsInstance(ctx.exception, DomainValidationError)
        self.assertIsInstance(ctx.exception, ValueError)

    def test_create_assigns_next_sort_order(self) -> None:
        self.service.seed_defaults()
        glutes = self.service.create(" Glutes ", color_hex="112233")
        self.assertEqual(glutes.name, "Glutes")
        self.assertEqual(glutes.sort_order, 8)
        self.assertFalse(glutes.is_built_in)
        self.assertEqual(glutes.color_hex, "112233")

    def test_rename(self) -> None:
        self.service.seed_defaults()
        legs, core = self.service.list_active()[5:7]
        self.assertEqual(self.service.rename(legs, "LEGS").name, "LEGS")
        with self.assertRaises(DuplicateNameError):
            self.service.rename(legs, "core")
        renamed = self.service.rename(core, "Abs")
        self.assertEqual(self.service.resolve(core.id).name, "Abs")
        self.assertEqual(renamed.name, "Abs")

    def test_archive_is_noop_twice(self) -> None:
        cat = self.service.create("Mobility")
        self.service.archive(cat)
        self.assertTrue(cat.is_archived)
        self.service.archive(cat)
        self.assertTrue(self.service.resolve(cat.id).is_archived)
        self.assertEqual(self.service.list_active(), [])

    def test_resolve_missing(self) -> None:
        self.assertIsNone(self.service.resolve(None))
        self.assertIsNone(self.service.resolve(99))


if __name__ == "__main__":
    unittest.main()
