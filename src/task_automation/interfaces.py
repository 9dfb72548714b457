"""Interfaces to collaborators outside the scheduling core."""

import uuid
from typing import Protocol


class IdentityValidator(Protocol):
    """Decides whether a value is a well-formed reference to a user."""

    def is_valid(self, reference: object) -> bool: ...


class UUIDIdentityValidator:
    """Accepts hyphenated UUID strings, the form user ids take in this system."""

    def is_valid(self, reference: object) -> bool:
        if not isinstance(reference, str):
            return False
        try:
            parsed = uuid.UUID(reference)
        except ValueError:
            return False
        return str(parsed) == reference.lower()
