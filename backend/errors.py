"""Typed failures raised by the harvest engine.

HarvestError
├── NotFoundError
├── InvalidArgumentError
├── InvalidStateError
└── ValidationFailedError
"""
from dataclasses import dataclass


class HarvestError(Exception):
    """Base exception for all harvest engine errors."""

    code = "HARVEST_ERROR"

    def __init__(self, message: str = "", *, code: str = ""):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class NotFoundError(HarvestError):
    """A reference does not resolve inside the caller's tenant."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, id_value=None, **kwargs):
        if id_value is not None:
            message = f"{entity} with ID {id_value} not found"
        else:
            message = f"{entity} not found"
        super().__init__(message, **kwargs)
        self.entity = entity
        self.id_value = id_value


class InvalidArgumentError(HarvestError):
    """Malformed caller input (bad date, empty trader name, negative number)."""

    code = "INVALID_ARGUMENT"

    def __init__(self, message: str, *, field: str = "", **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class InvalidStateError(HarvestError):
    """The entry's status forbids the requested operation."""

    code = "INVALID_STATE"


@dataclass(frozen=True)
class Violation:
    field: str
    message: str


class ValidationFailedError(HarvestError):
    """Submission gate failure carrying every violated rule."""

    code = "VALIDATION_FAILED"

    def __init__(self, violations: list[Violation]):
        super().__init__(" ".join(v.message for v in violations))
        self.violations = list(violations)

    @property
    def fields(self) -> list[str]:
        return [v.field for v in self.violations]
