"""
Exception types raised by the recordbase services.

Store errors (SQLAlchemy, asyncpg) are not wrapped; they propagate unchanged.
"""


class RecordbaseError(Exception):
    """Base class for all recordbase errors."""


class NotFoundError(RecordbaseError):
    """A referenced entity, property, instance or query does not exist."""


class SchemaValidationError(RecordbaseError):
    """A schema mutation was rejected before anything was written."""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {self.field: self.message}


class CircularReferenceError(SchemaValidationError):
    def __init__(self, field: str = "referenced_entity_id"):
        super().__init__(field, "This reference would create a circular dependency")


class InstanceValidationError(RecordbaseError):
    """
    Every field-level problem found while validating instance values.

    ``errors`` maps property machine names to a human readable message so a
    caller can report all of them at once.
    """

    def __init__(self, errors: dict[str, str]):
        super().__init__(
            "Instance validation failed: "
            + ", ".join(f"{name} ({message})" for name, message in errors.items())
        )
        self.errors = errors


class QueryEvaluationError(RecordbaseError):
    """A query tree could not be evaluated; no partial result exists."""
