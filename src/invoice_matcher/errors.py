"""
Error taxonomy for the matching core.

A disqualified score is a valid outcome and is never raised. These
exceptions cover lookups, state transitions and persistence failures.
"""


class MatchingError(Exception):
    """Base exception for the matching core."""

    pass


class ValidationError(MatchingError):
    """Malformed identifiers or an invalid state transition."""

    pass


class ConflictError(ValidationError):
    """Target is already linked, or linked to something else."""

    pass


class NotFoundError(MatchingError):
    """A referenced record does not exist."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} not found: {record_id}")


class ExternalDependencyError(MatchingError):
    """Persistence or rate-provider failure."""

    pass


def require_id(value: str | None, field_name: str) -> str:
    """Validate that an identifier is a non-empty string.

    Raises:
        ValidationError: If the identifier is missing or blank
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} is required")
    return value.strip()
