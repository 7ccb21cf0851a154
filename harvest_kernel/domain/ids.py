"""Parsing of client-supplied batch identifiers."""

from uuid import UUID

from harvest_kernel.exceptions import BatchNotFoundError


def parse_batch_id(stage: str, value: object) -> UUID:
    """
    Turn a client-supplied batch id into a UUID.

    A malformed id can never name a batch, so it is reported as not found
    rather than as a validation failure.
    """
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise BatchNotFoundError(str(stage), str(value)) from None
