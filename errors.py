class LoglyError(ValueError):
    """Base class for failures raised by the storage core."""


class ValidationError(LoglyError):
    """Input failed validation before reaching storage."""


class NotFoundError(LoglyError):
    """An operation targeted an entity that does not exist."""


class StateConflictError(LoglyError):
    """An operation would violate a state invariant."""


class IntegrityError(LoglyError):
    """A uniqueness or foreign key constraint rejected a write."""


class NutritionServiceError(Exception):
    """Base class for failures of the external food database."""


class NutritionUnavailableError(NutritionServiceError):
    """The food database could not be reached or answered garbage."""


class NutritionQueryError(NutritionServiceError):
    """The food database rejected the query or had no usable data."""
