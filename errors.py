class WorkoutLogError(Exception):
    """Base class for all workout log failures."""


class DomainValidationError(WorkoutLogError, ValueError):
    """User-correctable input problem."""

    message = "invalid input"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class EmptyNameError(DomainValidationError):
    message = "Name cannot be empty."


class DuplicateNameError(DomainValidationError):
    message = "A workout type with this name already exists."

    def __init__(self, name: str) -> None:
        super().__init__(f"A workout type named '{name}' already exists.")
        self.name = name


class EmptyExerciseNameError(DomainValidationError):
    message = "Exercise name cannot be empty."


class ActiveSessionExistsError(DomainValidationError):
    message = "Finish the active session before starting a new one."


class RecordNotFoundError(WorkoutLogError, LookupError):
    """Raised when an id does not resolve to a stored record."""

    def __init__(self, kind: str, record_id: int) -> None:
        super().__init__(f"{kind} not found: {record_id}")
        self.kind = kind
        self.record_id = record_id


class PersistenceError(WorkoutLogError):
    """The store failed to apply or commit a change."""
