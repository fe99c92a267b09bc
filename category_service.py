import logging
from typing import List, NamedTuple, Optional

from db import Database, CategoryRepository
from errors import DuplicateNameError, EmptyNameError
from models import Category
from tools import normalize_name

logger = logging.getLogger(__name__)


class CategoryDefinition(NamedTuple):
    name: str
    color_hex: str
    icon_token: str


DEFAULT_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition("Back", "4A5A66", "figure.rower"),
    CategoryDefinition("Triceps", "6A7077", "bolt.arm"),
    CategoryDefinition("Biceps", "7C6A5A", "dumbbell"),
    CategoryDefinition("Chest", "8A5A4A", "figure.strengthtraining.traditional"),
    CategoryDefinition("Shoulders", "5D667F", "figure.flexibility"),
    CategoryDefinition("Legs", "5E6C5A", "figure.run"),
    CategoryDefinition("Core", "7D5C50", "figure.core.training"),
    CategoryDefinition("Cardio", "8C6B3A", "heart.circle"),
)


class CategoryService:
    """Manage workout types: seeding, creation, renaming and archiving."""

    def __init__(
        self,
        db: Database,
        category_repo: CategoryRepository | None = None,
        defaults: tuple[CategoryDefinition, ...] = DEFAULT_CATEGORIES,
    ) -> None:
        self.db = db
        self.categories = category_repo or CategoryRepository(db)
        self.defaults = defaults

    def _next_sort_order(self) -> int:
        current = self.categories.max_sort_order()
        return 0 if current is None else current + 1

    def _validated_name(self, name: str, exclude_id: int | None = None) -> str:
        trimmed = (name or "").strip()
        key = normalize_name(trimmed)
        if not key:
            raise EmptyNameError()
        for existing in self.categories.fetch_all_categories(include_archived=True):
            if existing.id == exclude_id:
                continue
            if normalize_name(existing.name) == key:
                raise DuplicateNameError(trimmed)
        return trimmed

    def seed_defaults(self) -> List[Category]:
        """Insert built-in types that are missing; safe to run repeatedly."""
        inserted: List[Category] = []
        with self.db.transaction():
            existing = self.categories.fetch_all_categories(include_archived=True)
            present = {normalize_name(c.name) for c in existing}
            next_order = self._next_sort_order()
            for definition in self.defaults:
                key = normalize_name(definition.name)
                if key in present:
                    continue
                inserted.append(
                    self.categories.create(
                        definition.name,
                        sort_order=next_order,
                        is_built_in=True,
                        color_hex=definition.color_hex,
                        icon_token=definition.icon_token,
                    )
                )
                present.add(key)
                next_order += 1
        if inserted:
            logger.info("seeded %d default workout types", len(inserted))
        return inserted

    def create(
        self,
        name: str,
        color_hex: str | None = None,
        icon_token: str | None = None,
    ) -> Category:
        with self.db.transaction():
            trimmed = self._validated_name(name)
            category = self.categories.create(
                trimmed,
                sort_order=self._next_sort_order(),
                color_hex=color_hex,
                icon_token=icon_token,
            )
        logger.info("created workout type %r", category.name)
        return category

    def rename(self, category: Category, new_name: str) -> Category:
        with self.db.transaction():
            trimmed = self._validated_name(new_name, exclude_id=category.id)
            self.categories.set_name(category.id, trimmed)
        category.name = trimmed
        return category

    def archive(self, category: Category) -> Category:
        """Hide ``category`` from pickers while keeping it for history."""
        if category.is_archived:
            return category
        with self.db.transaction():
            self.categories.set_archived(category.id, True)
        category.is_archived = True
        logger.info("archived workout type %r", category.name)
        return category

    def resolve(self, category_id: int | None) -> Optional[Category]:
        return self.categories.find(category_id)

    def list_active(self) -> List[Category]:
        active = self.categories.fetch_all_categories(include_archived=False)
        return sorted(active, key=lambda c: (c.sort_order, c.name.casefold()))

    def list_archived(self) -> List[Category]:
        archived = [
            c
            for c in self.categories.fetch_all_categories(include_archived=True)
            if c.is_archived
        ]
        return sorted(archived, key=lambda c: c.name.casefold())
